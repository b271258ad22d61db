"""Configuration constants for the rig pipeline."""

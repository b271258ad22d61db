"""
Errors

Failure taxonomy shared by every pipeline phase.

Structural errors and invariant violations abort the whole document.
Data quality problems are never raised: they are recorded on the scene
state, logged, and replaced with a safe default.
"""


class GltfRigError(Exception):
    """Base class for fatal pipeline errors."""


class StructuralError(GltfRigError):
    """A reference or byte range in the document is malformed."""


class InvariantViolation(GltfRigError):
    """Internal consistency check failed after a resolution pass."""


class DataQualityWarning(UserWarning):
    """Recoverable problem in the input; a default was substituted."""

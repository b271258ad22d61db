"""
Rig Pipeline Configuration Settings

All configuration constants for the glTF rig pipeline.
Modify these values to change import/export behavior.
"""

# ============================================================================
# Logging
# ============================================================================

LOG_LEVEL = "INFO"  # Applied by the command line scripts; the library never configures handlers
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

# ============================================================================
# Accessor Codec
# ============================================================================

VERTEX_ALIGNMENT = 4  # Per-vertex element strides are rounded up to this many bytes
JOINT_GROUP_SIZE = 4  # Influences per JOINTS_n / WEIGHTS_n attribute
CMP_NORMALIZE_TOLERANCE = 1e-6  # Snapping step for exported weights

# ============================================================================
# Animation Settings
# ============================================================================

BAKE_FPS = 30.0  # Sample rate used when spline tracks must be baked
TRIM_ANIMATIONS = False  # Start imported animations at their first key instead of 0
REMOVE_IMMUTABLE_TRACKS = False  # Drop imported transform tracks that never leave the rest pose
EXPORT_REMOVE_IMMUTABLE_TRACKS = False  # Same policy for exported transform channels

# Loop detection: animation names starting/ending with these are flagged as looping
LOOP_NAME_HINTS = ("loop", "cycle")

# ============================================================================
# Numeric Tolerances
# ============================================================================

UNIT_EPSILON = 0.001  # Quaternions whose squared length is this close to 1 count as unit
CMP_EPSILON = 1e-5  # Approximate equality used when comparing against rest poses

# ============================================================================
# Naming
# ============================================================================

DEFAULT_BONE_NAME = "bone"
DEFAULT_SKIN_NAME = "Skin"
DEFAULT_ANIMATION_NAME = "Animation"
DEFAULT_NODE_NAME = "Node"

# Skins bind by bone name instead of bone index
USE_NAMED_SKIN_BINDS = False

"""
gltfrig - glTF skin, skeleton and animation pipeline

Decodes typed accessor buffers, rebuilds skeletons from skin joint lists
and resamples keyframe animations, in both directions.
"""

# Configuration
from .config.settings import *

# Core
from .core import DataQualityWarning, DisjointSet, GltfRigError, InvariantViolation, Node, NodeGraph, StructuralError

# Codec
from .codec import Accessor, AccessorCodec, BufferView, ComponentType, ElementType, SparseAccessor

# Animation
from .animation import (
    Animation,
    AnimationSampler,
    AnimationTarget,
    AnimationTrack,
    Bone,
    Channel,
    InterpolationType,
    PlayerAnimation,
    PlayerTrack,
    Skeleton,
    Skin,
    TopologyResolver,
    interpolate,
)

# Loaders
from .loaders import (
    DocumentExtension,
    ExportOptions,
    ExtensionRegistry,
    GltfExporter,
    GltfLoader,
    ImportOptions,
    SceneState,
    default_registry,
)

__version__ = "0.1.0"
__all__ = [
    # Config (exported via *)
    # Core
    "DataQualityWarning",
    "DisjointSet",
    "GltfRigError",
    "InvariantViolation",
    "Node",
    "NodeGraph",
    "StructuralError",
    # Codec
    "Accessor",
    "AccessorCodec",
    "BufferView",
    "ComponentType",
    "ElementType",
    "SparseAccessor",
    # Animation
    "Animation",
    "AnimationSampler",
    "AnimationTarget",
    "AnimationTrack",
    "Bone",
    "Channel",
    "InterpolationType",
    "PlayerAnimation",
    "PlayerTrack",
    "Skeleton",
    "Skin",
    "TopologyResolver",
    "interpolate",
    # Loaders
    "DocumentExtension",
    "ExportOptions",
    "ExtensionRegistry",
    "GltfExporter",
    "GltfLoader",
    "ImportOptions",
    "SceneState",
    "default_registry",
]

"""
Animation System

Skin and skeleton resolution plus keyframe sampling for glTF documents.
"""

from .skeleton import Bone, Skeleton
from .skin import Skin, SkinBind, SkinState
from .topology import TopologyResolver, sanitize_bone_name
from .animation import Animation, AnimationTarget, AnimationTrack, Channel, InterpolationType, is_loop_name
from .interpolation import bezier, catmull_rom, interpolate, lerp, slerp
from .sampler import AnimationSampler, PlayerAnimation, PlayerTrack

__all__ = [
    'Bone',
    'Skeleton',
    'Skin',
    'SkinBind',
    'SkinState',
    'TopologyResolver',
    'sanitize_bone_name',
    'Animation',
    'AnimationTarget',
    'AnimationTrack',
    'Channel',
    'InterpolationType',
    'is_loop_name',
    'bezier',
    'catmull_rom',
    'interpolate',
    'lerp',
    'slerp',
    'AnimationSampler',
    'PlayerAnimation',
    'PlayerTrack',
]

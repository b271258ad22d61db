"""
Accessor Codec

Typed binary accessor encoding/decoding and skinning attribute assembly.
"""

from .types import Accessor, BufferView, ComponentType, ElementType, SparseAccessor
from .accessor_codec import AccessorCodec, calc_min_max
from .skinning import combine_joints, combine_weights, decode_skin_attributes, normalize_weights

__all__ = [
    'Accessor',
    'BufferView',
    'ComponentType',
    'ElementType',
    'SparseAccessor',
    'AccessorCodec',
    'calc_min_max',
    'combine_joints',
    'combine_weights',
    'decode_skin_attributes',
    'normalize_weights',
]

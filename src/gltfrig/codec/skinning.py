"""
Skinning Attributes

Assembles per-vertex joint and weight arrays from one or two
JOINTS_n / WEIGHTS_n attribute sets (4 or 8 influences per vertex).
"""

import logging
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from ..config.settings import JOINT_GROUP_SIZE, UNIT_EPSILON
from ..core.errors import StructuralError
from .accessor_codec import AccessorCodec

logger = logging.getLogger(__name__)


def _groups(values: np.ndarray, name: str) -> np.ndarray:
    data = np.asarray(values).reshape(-1)
    if data.size % JOINT_GROUP_SIZE:
        raise StructuralError(f"{name} holds {data.size} values, expected groups of {JOINT_GROUP_SIZE}")
    return data.reshape(-1, JOINT_GROUP_SIZE)


def combine_joints(joints_0, joints_1=None) -> np.ndarray:
    """
    Combine joint index sets into one per-vertex array.

    Returns:
        int array of shape (vertex_count, 4) or (vertex_count, 8)
    """
    first = _groups(joints_0, "JOINTS_0").astype(np.int64)
    if joints_1 is None:
        return first

    second = _groups(joints_1, "JOINTS_1").astype(np.int64)
    if first.shape != second.shape:
        raise StructuralError(
            f"JOINTS_0 has {first.shape[0]} vertices but JOINTS_1 has {second.shape[0]}"
        )
    return np.hstack([first, second])


def combine_weights(weights_0, weights_1=None) -> np.ndarray:
    """Combine weight sets into one (vertex_count, 4|8) array, unnormalized."""
    first = _groups(weights_0, "WEIGHTS_0").astype('f8')
    if weights_1 is None:
        return first

    second = _groups(weights_1, "WEIGHTS_1").astype('f8')
    if first.shape != second.shape:
        raise StructuralError(
            f"WEIGHTS_0 has {first.shape[0]} vertices but WEIGHTS_1 has {second.shape[0]}"
        )
    return np.hstack([first, second])


def normalize_weights(weights: np.ndarray) -> np.ndarray:
    """
    Scale every vertex's weights to sum to 1.

    Vertices whose weights sum to zero are left untouched.
    """
    weights = np.array(weights, dtype='f8')
    totals = weights.sum(axis=1)
    positive = totals > 0.0
    weights[positive] /= totals[positive, np.newaxis]
    return weights


def decode_skin_attributes(
    codec: AccessorCodec,
    attributes: Dict[str, int],
    on_warning: Optional[Callable[[str], None]] = None,
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Decode the joint and weight attributes of a mesh primitive.

    Args:
        codec: Codec holding the primitive's accessors
        attributes: Attribute name -> accessor index
        on_warning: Called when weights had to be renormalized

    Returns:
        (joints, weights); either is None when the primitive lacks it
    """
    joints = None
    if attributes.get("JOINTS_0") is not None:
        joints_1 = None
        if attributes.get("JOINTS_1") is not None:
            joints_1 = codec.decode_as_ints(attributes["JOINTS_1"], True)
        joints = combine_joints(codec.decode_as_ints(attributes["JOINTS_0"], True), joints_1)

    weights = None
    if attributes.get("WEIGHTS_0") is not None:
        weights_1 = None
        if attributes.get("WEIGHTS_1") is not None:
            weights_1 = codec.decode_as_floats(attributes["WEIGHTS_1"], True)
        raw = combine_weights(codec.decode_as_floats(attributes["WEIGHTS_0"], True), weights_1)

        totals = raw.sum(axis=1)
        off = np.count_nonzero((totals > 0.0) & (np.abs(totals - 1.0) > UNIT_EPSILON))
        if off:
            message = f"{off} vertices have weights that do not sum to 1, renormalizing"
            if on_warning is not None:
                on_warning(message)
            else:
                logger.warning(message)
        weights = normalize_weights(raw)

    if joints is not None and weights is not None and joints.shape != weights.shape:
        raise StructuralError(
            f"Joint attributes have shape {joints.shape} but weights have shape {weights.shape}"
        )

    return joints, weights

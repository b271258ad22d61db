"""
Interpolation

Samples a keyframe channel at an arbitrary time.
"""

import logging

import numpy as np
from pyrr import quaternion

from ..config.settings import UNIT_EPSILON
from .animation import InterpolationType

logger = logging.getLogger(__name__)

_mismatch_reported = False


def lerp(a, b, c: float):
    return a + (b - a) * c


def catmull_rom(p0, p1, p2, p3, t: float):
    t2 = t * t
    t3 = t2 * t
    return 0.5 * ((2.0 * p1) + (-p0 + p2) * t + (2.0 * p0 - 5.0 * p1 + 4.0 * p2 - p3) * t2
                  + (-p0 + 3.0 * p1 - 3.0 * p2 + p3) * t3)


def bezier(start, control_1, control_2, end, t: float):
    """Cubic Bezier curve through ``start`` and ``end``."""
    omt = 1.0 - t
    omt2 = omt * omt
    omt3 = omt2 * omt
    t2 = t * t
    t3 = t2 * t
    return start * omt3 + control_1 * omt2 * t * 3.0 + control_2 * omt * t2 * 3.0 + end * t3


def is_normalized(q) -> bool:
    return abs(float(np.dot(q, q)) - 1.0) <= UNIT_EPSILON


def slerp(a, b, c: float) -> np.ndarray:
    """
    Spherical interpolation between two unit quaternions (x, y, z, w).

    Raises:
        ValueError: If either quaternion is not unit length
    """
    a = np.asarray(a, dtype='f8')
    b = np.asarray(b, dtype='f8')
    if not is_normalized(a):
        raise ValueError(f"Quaternion {a} must be normalized")
    if not is_normalized(b):
        raise ValueError(f"Quaternion {b} must be normalized")

    # Take the short way round
    if np.dot(a, b) < 0.0:
        b = -b
    return quaternion.normalize(quaternion.slerp(a, b, c))


def _find_key(times: np.ndarray, t: float) -> int:
    """Index of the last key at or before ``t``, -1 before the first key."""
    return int(np.searchsorted(times, t, side='right')) - 1


def interpolate(times, values, t: float, mode: InterpolationType, rotation: bool = False) -> np.ndarray:
    """
    Sample keyframes at time ``t``.

    Times before the first key clamp to the first value, times at or past
    the last key clamp to the last value. Quaternions are blended with
    slerp for every mode; spline modes only slerp between the two values
    surrounding ``t``.

    Args:
        times: Key times, ascending
        values: Value rows (three per key for the spline modes)
        t: Sample time
        mode: Interpolation mode
        rotation: Values are (x, y, z, w) quaternions

    Returns:
        Sampled value row
    """
    global _mismatch_reported

    times = np.asarray(times, dtype='f8')
    values = np.asarray(values, dtype='f8')
    if len(values) == 0:
        raise ValueError("Cannot interpolate a channel without values")

    key_count = len(times)
    if key_count != len(values) // mode.values_per_key:
        if not _mismatch_reported:
            logger.error("The interpolated values are not corresponding to its times.")
            _mismatch_reported = True
        return values[0]

    idx = _find_key(times, t)
    last = key_count - 1

    if mode in (InterpolationType.LINEAR, InterpolationType.STEP):
        if idx == -1:
            return values[0]
        if idx >= last:
            return values[last]
        if mode == InterpolationType.STEP:
            return values[idx]

        c = (t - times[idx]) / (times[idx + 1] - times[idx])
        if rotation:
            return slerp(values[idx], values[idx + 1], c)
        return lerp(values[idx], values[idx + 1], c)

    if idx == -1:
        return values[1]
    if idx >= last:
        return values[last * 3 + 1]

    c = (t - times[idx]) / (times[idx + 1] - times[idx])

    if mode == InterpolationType.CATMULLROMSPLINE:
        top = len(values) - 1
        p0 = values[max(idx - 1, 0)]
        p1 = values[idx]
        p2 = values[min(idx + 1, top)]
        p3 = values[min(idx + 3, top)]
        if rotation:
            return slerp(p1, p2, c)
        return catmull_rom(p0, p1, p2, p3, c)

    start = values[idx * 3 + 1]
    end = values[idx * 3 + 4]
    if rotation:
        return slerp(start, end, c)

    control_1 = start + values[idx * 3 + 2]
    control_2 = end + values[idx * 3 + 3]
    return bezier(start, control_1, control_2, end, c)

"""
Animation

Keyframe animation data as stored in a document: per-node tracks made of
channels, each with an interpolation mode, key times and values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..config.settings import LOOP_NAME_HINTS


class InterpolationType(Enum):
    """Animation interpolation types."""
    STEP = "STEP"
    LINEAR = "LINEAR"
    CATMULLROMSPLINE = "CATMULLROMSPLINE"
    CUBICSPLINE = "CUBICSPLINE"

    @property
    def values_per_key(self) -> int:
        """Spline modes store (in-tangent, value, out-tangent) per key."""
        if self in (InterpolationType.CATMULLROMSPLINE, InterpolationType.CUBICSPLINE):
            return 3
        return 1

    @property
    def is_spline(self) -> bool:
        return self.values_per_key == 3

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional['InterpolationType']:
        """Parse an interpolation string, None when unknown."""
        if value is None:
            return cls.LINEAR
        try:
            return cls(value)
        except ValueError:
            return None


class AnimationTarget(Enum):
    """Animation target properties."""
    TRANSLATION = "translation"
    ROTATION = "rotation"
    SCALE = "scale"
    WEIGHTS = "weights"  # Morph target weights

    @classmethod
    def from_string(cls, value: str) -> Optional['AnimationTarget']:
        try:
            return cls(value)
        except ValueError:
            return None


class Channel:
    """
    Keyframes for one animated property.

    ``values`` has one row per stored value. Spline channels store three
    rows per key, so ``len(values) == 3 * len(times)`` for them.
    """

    def __init__(self, interpolation: InterpolationType = InterpolationType.LINEAR,
                 times=None, values=None):
        self.interpolation = interpolation
        self.times = np.asarray(times if times is not None else [], dtype='f8').reshape(-1)
        values = np.asarray(values if values is not None else [], dtype='f8')
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        self.values = values

    @property
    def is_empty(self) -> bool:
        return len(self.values) == 0

    @property
    def width(self) -> int:
        return self.values.shape[1] if self.values.ndim == 2 else 1

    def key_values(self) -> np.ndarray:
        """The value of every key, skipping spline tangents."""
        if self.interpolation.is_spline:
            return self.values[1::3]
        return self.values

    def start_time(self) -> float:
        return float(self.times[0]) if len(self.times) else 0.0

    def end_time(self) -> float:
        return float(self.times[-1]) if len(self.times) else 0.0

    def __repr__(self):
        return f"Channel({self.interpolation.value}, keys={len(self.times)}, width={self.width})"


@dataclass
class AnimationTrack:
    """All channels animating a single node."""
    position: Channel = field(default_factory=Channel)
    rotation: Channel = field(default_factory=Channel)
    scale: Channel = field(default_factory=Channel)
    weights: List[Channel] = field(default_factory=list)

    def channels(self) -> List[Channel]:
        """Non-empty channels in position/rotation/scale/weights order."""
        result = [c for c in (self.position, self.rotation, self.scale) if not c.is_empty]
        result.extend(c for c in self.weights if not c.is_empty)
        return result

    @property
    def has_transform(self) -> bool:
        return not (self.position.is_empty and self.rotation.is_empty and self.scale.is_empty)


def is_loop_name(name: str) -> bool:
    """Animation names starting or ending with a loop hint are looped."""
    lower = name.lower()
    return any(lower.startswith(hint) or lower.endswith(hint) for hint in LOOP_NAME_HINTS)


class Animation:
    """
    Complete animation with one track per animated node.

    Tracks are keyed by node index.
    """

    def __init__(self, name: str = "", loop: bool = False):
        """
        Initialize animation.

        Args:
            name: Animation name
            loop: Whether the animation loops
        """
        self.name = name
        self.loop = loop
        self.tracks: Dict[int, AnimationTrack] = {}

    def track_for(self, node_index: int) -> AnimationTrack:
        """Track of a node, created on first use."""
        track = self.tracks.get(node_index)
        if track is None:
            track = AnimationTrack()
            self.tracks[node_index] = track
        return track

    def time_range(self, trimming: bool = False) -> Tuple[float, float]:
        """
        Start and end time over every channel.

        Without trimming the animation always starts at 0.
        """
        start = float('inf') if trimming else 0.0
        end = 0.0
        for track in self.tracks.values():
            for channel in track.channels():
                if not len(channel.times):
                    continue
                if trimming:
                    start = min(start, float(channel.times.min()))
                end = max(end, float(channel.times.max()))

        if start == float('inf'):
            start = 0.0
        return start, end

    @property
    def duration(self) -> float:
        return self.time_range()[1]

    def __repr__(self):
        return f"Animation(name='{self.name}', loop={self.loop}, tracks={len(self.tracks)})"

"""
Animation Sampler

Converts between sparse keyframe tracks and fixed-rate player tracks:
baking, elision of tracks that never leave the rest pose, and the
import/export conversions built on them.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from pyrr import quaternion

from ..config.settings import (
    BAKE_FPS,
    CMP_EPSILON,
    DEFAULT_ANIMATION_NAME,
    REMOVE_IMMUTABLE_TRACKS,
    TRIM_ANIMATIONS,
)
from .animation import Animation, AnimationTarget, AnimationTrack, Channel, InterpolationType
from .interpolation import interpolate

logger = logging.getLogger(__name__)


@dataclass
class PlayerTrack:
    """
    One fixed-rate (or keyed LINEAR/STEP) track of a player animation.

    Transform tracks of skeleton joints carry the skeleton index and bone
    name; weight tracks carry the blend shape index.
    """
    node_index: int
    target: AnimationTarget
    times: np.ndarray
    values: np.ndarray
    interpolation: InterpolationType = InterpolationType.LINEAR
    skeleton: int = -1
    bone: str = ""
    blend_shape: int = -1

    @property
    def key_count(self) -> int:
        return len(self.times)


@dataclass
class PlayerAnimation:
    """Animation in the player's format: flat list of tracks plus length."""
    name: str
    loop: bool = False
    length: float = 0.0
    tracks: List[PlayerTrack] = field(default_factory=list)

    def find_track(self, node_index: int, target: AnimationTarget, blend_shape: int = -1) -> Optional[PlayerTrack]:
        for track in self.tracks:
            if track.node_index == node_index and track.target == target and track.blend_shape == blend_shape:
                return track
        return None


def _rows(values) -> np.ndarray:
    values = np.asarray(values, dtype='f8')
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    return values


class AnimationSampler:
    """
    Bakes and filters animation channels.

    Args:
        bake_fps: Sample rate used when a track has to be baked
        remove_immutable_tracks: Drop transform tracks equal to the rest pose
    """

    def __init__(self, bake_fps: float = BAKE_FPS, remove_immutable_tracks: bool = REMOVE_IMMUTABLE_TRACKS,
                 tolerance: float = CMP_EPSILON):
        if bake_fps <= 0:
            raise ValueError(f"bake_fps must be positive, got {bake_fps}")
        self.bake_fps = bake_fps
        self.remove_immutable_tracks = remove_immutable_tracks
        self.tolerance = tolerance

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @staticmethod
    def sample_times(fps: float, duration: float, start: float = 0.0) -> List[float]:
        """
        Fixed-rate sample times from ``start`` to ``duration``.

        The final sample always lands exactly on ``duration``.
        """
        if duration <= start:
            return [start]

        increment = 1.0 / fps
        time = start
        result = []
        last = False
        while True:
            result.append(time)
            if last:
                break
            time += increment
            if time >= duration:
                last = True
                time = duration
        return result

    def bake(self, times, values, mode: InterpolationType, fps: Optional[float] = None,
             duration: Optional[float] = None, start: float = 0.0,
             rotation: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Resample a channel at a fixed rate.

        Args:
            times: Key times
            values: Value rows for ``mode``
            mode: Source interpolation
            fps: Sample rate (defaults to the sampler's)
            duration: End time (defaults to the last key)
            start: First sample time
            rotation: Values are quaternions

        Returns:
            (sample_times, sample_values)
        """
        fps = fps or self.bake_fps
        times = np.asarray(times, dtype='f8')
        values = _rows(values)
        if duration is None:
            duration = float(times[-1]) if len(times) else start

        sample_times = self.sample_times(fps, duration, start)
        samples = [interpolate(times, values, t, mode, rotation) for t in sample_times]
        return np.asarray(sample_times, dtype='f8'), np.asarray(samples, dtype='f8').reshape(len(sample_times), -1)

    def elide_if_constant(self, channel: Channel, baseline, rotation: bool = False,
                          tolerance: Optional[float] = None) -> bool:
        """
        Check whether every key of a channel equals the rest pose.

        Rotations are normalized before comparing and q equals -q.
        """
        tolerance = self.tolerance if tolerance is None else tolerance
        if channel.is_empty:
            return True

        keys = channel.key_values()
        baseline = np.asarray(baseline, dtype='f8').reshape(-1)

        if rotation:
            baseline = quaternion.normalize(baseline)
            for key in keys:
                key = quaternion.normalize(key)
                if not (np.allclose(key, baseline, atol=tolerance, rtol=0.0)
                        or np.allclose(-key, baseline, atol=tolerance, rtol=0.0)):
                    return False
            return True

        return bool(np.allclose(keys, baseline, atol=tolerance, rtol=0.0))

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_animation(self, state, animation: Animation, trimming: bool = TRIM_ANIMATIONS,
                         bake_fps: Optional[float] = None,
                         remove_immutable_tracks: Optional[bool] = None) -> PlayerAnimation:
        """
        Convert a document animation into a player animation.

        Transform tracks are baked at ``bake_fps``. Weight tracks stay keyed
        when LINEAR or STEP and are baked otherwise. Transform tracks on a
        skinned mesh that is not itself a bone are skipped since they would
        not move the mesh.

        Args:
            state: SceneState holding nodes and meshes
            animation: Parsed animation
            trimming: Start at the first key instead of 0
            bake_fps: Sample rate (defaults to the sampler's)
            remove_immutable_tracks: Drop tracks equal to the rest pose

        Returns:
            PlayerAnimation with times relative to the start
        """
        fps = bake_fps or self.bake_fps
        if remove_immutable_tracks is None:
            remove_immutable_tracks = self.remove_immutable_tracks

        name = animation.name or DEFAULT_ANIMATION_NAME
        player = PlayerAnimation(name=name, loop=animation.loop)

        start, end = animation.time_range(trimming)
        graph = state.graph

        for node_index in sorted(animation.tracks):
            track = animation.tracks[node_index]
            node = graph[node_index]

            skinned_mesh_only = node.skeleton < 0 and node.skin >= 0
            if track.has_transform and not skinned_mesh_only:
                player.tracks.extend(
                    self._import_transform_tracks(node_index, node, track, fps, start, end, remove_immutable_tracks)
                )

            for blend_shape, channel in enumerate(track.weights):
                if channel.is_empty:
                    continue
                if node.mesh < 0 or node.mesh >= len(state.meshes):
                    state.warn(f"Weight track on node {node_index} has no mesh, skipping")
                    continue
                player.tracks.append(self._import_weight_track(node_index, blend_shape, channel, fps, start, end))

        player.length = end - start
        logger.debug("Imported animation '%s': %d tracks, length %.3f", player.name, len(player.tracks), player.length)
        return player

    def _import_transform_tracks(self, node_index, node, track: AnimationTrack, fps, start, end,
                                 remove_immutable_tracks) -> List[PlayerTrack]:
        targets = (
            (AnimationTarget.TRANSLATION, track.position, np.asarray(node.position), False),
            (AnimationTarget.ROTATION, track.rotation, np.asarray(node.rotation.normalized), True),
            (AnimationTarget.SCALE, track.scale, np.asarray(node.scale), False),
        )

        result = []
        sample_times = np.asarray(self.sample_times(fps, end, start), dtype='f8')
        for target, channel, baseline, rotation in targets:
            if channel.is_empty:
                continue
            if remove_immutable_tracks and self.elide_if_constant(channel, baseline, rotation):
                logger.debug("Node %d %s track never leaves the rest pose, removed", node_index, target.value)
                continue

            samples = [interpolate(channel.times, channel.values, t, channel.interpolation, rotation)
                       for t in sample_times]
            result.append(PlayerTrack(
                node_index=node_index,
                target=target,
                times=sample_times - start,
                values=np.asarray(samples, dtype='f8').reshape(len(sample_times), -1),
                skeleton=node.skeleton,
                bone=node.name if node.skeleton >= 0 else "",
            ))
        return result

    def _import_weight_track(self, node_index, blend_shape, channel: Channel, fps, start, end) -> PlayerTrack:
        if channel.interpolation in (InterpolationType.LINEAR, InterpolationType.STEP):
            times = channel.times - start
            values = channel.values.reshape(-1, 1).copy()
            interpolation = channel.interpolation
        else:
            times, values = self.bake(channel.times, channel.values, channel.interpolation, fps, end, start)
            times = times - start
            interpolation = InterpolationType.LINEAR

        return PlayerTrack(
            node_index=node_index,
            target=AnimationTarget.WEIGHTS,
            times=times,
            values=values,
            interpolation=interpolation,
            blend_shape=blend_shape,
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _bake_channel(self, channel: Channel, fps: float, rotation: bool) -> Channel:
        if channel.is_empty or not channel.interpolation.is_spline:
            return channel
        times, values = self.bake(channel.times, channel.values, channel.interpolation, fps,
                                  channel.end_time(), channel.start_time(), rotation)
        return Channel(InterpolationType.LINEAR, times, values)

    def export_track(self, track: AnimationTrack, node, fps: Optional[float] = None,
                     remove_immutable_tracks: Optional[bool] = None) -> AnimationTrack:
        """
        Prepare a track for writing.

        Spline channels are baked to LINEAR. Transform channels equal to the
        node's rest pose are dropped when requested; weight channels are
        always kept.
        """
        fps = fps or self.bake_fps
        if remove_immutable_tracks is None:
            remove_immutable_tracks = self.remove_immutable_tracks

        position = self._bake_channel(track.position, fps, False)
        rotation = self._bake_channel(track.rotation, fps, True)
        scale = self._bake_channel(track.scale, fps, False)

        if remove_immutable_tracks:
            if self.elide_if_constant(position, np.asarray(node.position)):
                position = Channel()
            if self.elide_if_constant(rotation, np.asarray(node.rotation.normalized), rotation=True):
                rotation = Channel()
            if self.elide_if_constant(scale, np.asarray(node.scale)):
                scale = Channel()

        weights = [self._bake_channel(channel, fps, False) for channel in track.weights]
        return AnimationTrack(position=position, rotation=rotation, scale=scale, weights=weights)

    def player_to_animation(self, player: PlayerAnimation, node_indices: Optional[Sequence[int]] = None) -> Animation:
        """Turn a player animation back into per-node keyframe tracks."""
        animation = Animation(player.name, player.loop)
        for player_track in player.tracks:
            if node_indices is not None and player_track.node_index not in node_indices:
                continue
            track = animation.track_for(player_track.node_index)
            channel = Channel(player_track.interpolation, player_track.times, player_track.values)

            if player_track.target == AnimationTarget.TRANSLATION:
                track.position = channel
            elif player_track.target == AnimationTarget.ROTATION:
                track.rotation = channel
            elif player_track.target == AnimationTarget.SCALE:
                track.scale = channel
            else:
                while len(track.weights) <= player_track.blend_shape:
                    track.weights.append(Channel())
                track.weights[player_track.blend_shape] = channel
        return animation

"""
GLTF/GLB Exporter

Writes a SceneState back out as a glTF document: nodes, skinned meshes,
skins and animations packed into a single binary buffer.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pygltflib

from ..animation import Animation, AnimationSampler, AnimationTrack, Channel, InterpolationType, PlayerAnimation
from ..animation.interpolation import interpolate
from ..codec import AccessorCodec
from ..config.settings import JOINT_GROUP_SIZE
from .document import SceneState
from .extensions import ExtensionRegistry, default_registry
from .options import ExportOptions

logger = logging.getLogger(__name__)

GENERATOR = "gltfrig"


class GltfExporter:
    """
    Converts a SceneState into a pygltflib document.

    All binary data is encoded through a fresh AccessorCodec, so the
    exported document always has exactly one buffer.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None, options: Optional[ExportOptions] = None):
        """
        Initialize exporter.

        Args:
            registry: Extensions to consult (defaults to the process-wide one)
            options: Export options
        """
        self.registry = registry if registry is not None else default_registry
        self.options = options or ExportOptions()
        self.sampler = AnimationSampler(self.options.bake_fps, self.options.remove_immutable_tracks)

    def export(self, state: SceneState, player_animations: Optional[Sequence[PlayerAnimation]] = None) -> pygltflib.GLTF2:
        """
        Build a glTF document from a scene.

        Args:
            state: Scene to write
            player_animations: Player animations to write instead of the
                scene's keyframe animations

        Returns:
            pygltflib document with its binary blob set
        """
        extensions = ExtensionRegistry(ext for ext in self.registry if ext.export_preflight(state))
        codec = AccessorCodec()
        gltf = pygltflib.GLTF2(asset=pygltflib.Asset(version="2.0", generator=GENERATOR))

        gltf.nodes = self._export_nodes(state, extensions)
        gltf.scenes = [pygltflib.Scene(name=state.scene_name or None, nodes=list(state.graph.root_nodes))]
        gltf.scene = 0
        gltf.meshes = self._export_meshes(state, codec)
        gltf.skins = self._export_skins(state, codec)

        if player_animations is not None:
            animations = [self.convert_player_animation(state, player) for player in player_animations]
        else:
            animations = state.animations
        gltf.animations = [self._export_animation(state, codec, animation) for animation in animations]

        self._write_buffers(gltf, codec)
        extensions.call_all("export_post", state, gltf)

        logger.info(
            "Exported %d nodes, %d skins, %d animations",
            len(gltf.nodes), len(gltf.skins), len(gltf.animations),
        )
        return gltf

    def save(self, state: SceneState, filepath, player_animations: Optional[Sequence[PlayerAnimation]] = None):
        """
        Write a scene to disk.

        ``.glb`` files get a binary chunk; anything else is written as JSON
        with the buffer embedded as a data URI.
        """
        filepath = Path(filepath)
        gltf = self.export(state, player_animations)

        if filepath.suffix.lower() == ".glb":
            gltf.save_binary(str(filepath))
        else:
            gltf.convert_buffers(pygltflib.BufferFormat.DATAURI)
            gltf.save_json(str(filepath))

        logger.info("Saved document: %s", filepath)

    def convert_player_animation(self, state: SceneState, player: PlayerAnimation) -> Animation:
        """Turn a fixed-rate player animation back into per-node keyframe tracks."""
        return self.sampler.player_to_animation(player, range(len(state.graph)))

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _export_nodes(self, state: SceneState, extensions: ExtensionRegistry) -> List[pygltflib.Node]:
        nodes = []
        for node_index, node in enumerate(state.graph):
            gltf_node = pygltflib.Node(name=node.name or None, children=list(node.children))

            if node.matrix is not None:
                # pyrr row-major read back row by row is glTF column-major
                gltf_node.matrix = [float(v) for v in np.asarray(node.matrix).reshape(16)]
            else:
                gltf_node.translation = [float(v) for v in node.position]
                gltf_node.rotation = [float(v) for v in node.rotation.normalized]
                gltf_node.scale = [float(v) for v in node.scale]

            if node.mesh >= 0:
                gltf_node.mesh = node.mesh
            if node.skin >= 0:
                gltf_node.skin = node.skin
            if node.camera >= 0:
                gltf_node.camera = node.camera
            if node.extras:
                gltf_node.extras = dict(node.extras)

            extensions.call_all("export_node", state, node_index, gltf_node)
            nodes.append(gltf_node)
        return nodes

    def _export_meshes(self, state: SceneState, codec: AccessorCodec) -> List[pygltflib.Mesh]:
        meshes = []
        for mesh in state.meshes:
            primitives = []
            for record in mesh.primitives:
                attributes = pygltflib.Attributes()
                positions = record.get("positions")
                if positions is not None:
                    attributes.POSITION = codec.encode_as_vec3(positions, True)

                joints = record.get("joints")
                weights = record.get("weights")
                if joints is not None and weights is not None:
                    for set_index in range(joints.shape[1] // JOINT_GROUP_SIZE):
                        columns = slice(set_index * JOINT_GROUP_SIZE, (set_index + 1) * JOINT_GROUP_SIZE)
                        setattr(attributes, f"JOINTS_{set_index}", codec.encode_as_joints(joints[:, columns]))
                        setattr(attributes, f"WEIGHTS_{set_index}", codec.encode_as_weights(weights[:, columns]))

                primitives.append(pygltflib.Primitive(attributes=attributes))

            gltf_mesh = pygltflib.Mesh(name=mesh.name or None, primitives=primitives)
            if mesh.blend_weights:
                gltf_mesh.weights = list(mesh.blend_weights)
            meshes.append(gltf_mesh)
        return meshes

    def _export_skins(self, state: SceneState, codec: AccessorCodec) -> List[pygltflib.Skin]:
        skins = []
        for skin in state.skins:
            gltf_skin = pygltflib.Skin(name=skin.name or None, joints=list(skin.joints_original))
            if skin.inverse_binds:
                gltf_skin.inverseBindMatrices = codec.encode_as_matrices(skin.inverse_binds)
            if skin.skin_root >= 0:
                gltf_skin.skeleton = skin.skin_root
            skins.append(gltf_skin)
        return skins

    def _export_animation(self, state: SceneState, codec: AccessorCodec, animation: Animation) -> pygltflib.Animation:
        gltf_anim = pygltflib.Animation(name=animation.name or None, channels=[], samplers=[])

        def add_channel(node_index: int, path: str, times, values, interpolation: InterpolationType):
            values = np.asarray(values, dtype='f8')
            input_accessor = codec.encode_as_floats(times)
            if path == "rotation":
                output_accessor = codec.encode_as_quaternions(values)
            elif path == "weights":
                output_accessor = codec.encode_as_floats(values)
            else:
                output_accessor = codec.encode_as_vec3(values)

            gltf_anim.samplers.append(pygltflib.AnimationSampler(
                input=input_accessor, output=output_accessor, interpolation=interpolation.value,
            ))
            gltf_anim.channels.append(pygltflib.AnimationChannel(
                sampler=len(gltf_anim.samplers) - 1,
                target=pygltflib.AnimationChannelTarget(node=node_index, path=path),
            ))

        for node_index in sorted(animation.tracks):
            node = state.graph[node_index]
            track = self.sampler.export_track(animation.tracks[node_index], node)

            for path, channel in (
                ("translation", track.position),
                ("rotation", track.rotation),
                ("scale", track.scale),
            ):
                if channel.is_empty:
                    continue
                add_channel(node_index, path, channel.times, channel.values, channel.interpolation)

            weights = self._merge_weight_channels(track)
            if weights is not None:
                add_channel(node_index, "weights", weights.times, weights.values, weights.interpolation)

        return gltf_anim

    def _merge_weight_channels(self, track: AnimationTrack) -> Optional[Channel]:
        """
        Interleave per blend shape channels into one glTF weights channel.

        Channels with differing keys are resampled onto a shared fixed-rate
        timeline first.
        """
        present = [c for c in track.weights if not c.is_empty]
        if not present:
            return None

        first = present[0]
        shared = len(present) == len(track.weights) and all(
            c.interpolation == first.interpolation and np.array_equal(c.times, first.times)
            for c in present
        )
        if shared:
            values = np.hstack([c.values.reshape(-1, 1) for c in present])
            return Channel(first.interpolation, first.times, values)

        start = min(c.start_time() for c in present)
        end = max(c.end_time() for c in present)
        times = np.asarray(self.sampler.sample_times(self.sampler.bake_fps, end, start), dtype='f8')
        columns = []
        for channel in track.weights:
            if channel.is_empty:
                # Unanimated blend shapes stay at 0
                columns.append(np.zeros(len(times)))
                continue
            columns.append(np.array([
                interpolate(channel.times, channel.values, t, channel.interpolation)[0] for t in times
            ]))
        return Channel(InterpolationType.LINEAR, times, np.stack(columns, axis=1))

    def _write_buffers(self, gltf: pygltflib.GLTF2, codec: AccessorCodec):
        blob = bytes(codec.buffers[0]) if codec.buffers else b""

        gltf.bufferViews = []
        for bv in codec.buffer_views:
            gltf_bv = pygltflib.BufferView(buffer=0, byteOffset=bv.byte_offset, byteLength=bv.byte_length)
            if bv.byte_stride is not None:
                gltf_bv.byteStride = bv.byte_stride
            if bv.indices:
                gltf_bv.target = pygltflib.ELEMENT_ARRAY_BUFFER
            gltf.bufferViews.append(gltf_bv)

        gltf.accessors = []
        for a in codec.accessors:
            gltf.accessors.append(pygltflib.Accessor(
                bufferView=a.buffer_view,
                byteOffset=a.byte_offset,
                componentType=int(a.component_type),
                normalized=a.normalized,
                count=a.count,
                type=a.element_type.value,
                min=a.min,
                max=a.max,
            ))

        if blob:
            gltf.buffers = [pygltflib.Buffer(byteLength=len(blob))]
            gltf.set_binary_blob(blob)
        else:
            gltf.buffers = []

        logger.debug("Buffer: %d bytes, %d views, %d accessors", len(blob), len(gltf.bufferViews), len(gltf.accessors))

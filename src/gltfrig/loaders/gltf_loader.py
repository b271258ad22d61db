"""
GLTF/GLB Loader

Loads GLTF and GLB documents into a SceneState: decoded accessors, the
node graph, resolved skins and skeletons, and keyframe animations.
"""

import logging
from pathlib import Path
from typing import List, Optional

import pygltflib
from pyrr import Quaternion, Vector3

from ..animation import Animation, AnimationSampler, InterpolationType, PlayerAnimation, TopologyResolver, is_loop_name
from ..animation.animation import AnimationTarget, Channel
from ..codec import Accessor, BufferView, ComponentType, ElementType, SparseAccessor, decode_skin_attributes
from ..config.settings import DEFAULT_ANIMATION_NAME, DEFAULT_NODE_NAME
from ..core.errors import StructuralError
from ..core.node_graph import Node
from .document import MeshRecord, SceneState
from .extensions import ExtensionRegistry, default_registry
from .options import ImportOptions

logger = logging.getLogger(__name__)

SKIN_ATTRIBUTES = ("JOINTS_0", "JOINTS_1", "WEIGHTS_0", "WEIGHTS_1")


class GltfLoader:
    """
    Loads GLTF/GLB documents.

    Parsing runs in a fixed order: buffers, buffer views, accessors,
    nodes, meshes, skins (with topology resolution), cameras,
    animations and finally node naming.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None, options: Optional[ImportOptions] = None):
        """
        Initialize loader.

        Args:
            registry: Extensions to consult (defaults to the process-wide one)
            options: Import options
        """
        self.registry = registry if registry is not None else default_registry
        self.options = options or ImportOptions()
        self.extensions = ExtensionRegistry()

    def load(self, filepath) -> SceneState:
        """
        Load a GLTF or GLB file.

        Args:
            filepath: Path to .gltf or .glb file

        Returns:
            Parsed SceneState
        """
        filepath = Path(filepath)
        logger.info("Loading document: %s", filepath)

        gltf = pygltflib.GLTF2().load(str(filepath))
        if gltf is None:
            raise StructuralError(f"Could not parse {filepath}")
        return self.load_gltf(gltf, scene_name=filepath.stem)

    def load_gltf(self, gltf: pygltflib.GLTF2, scene_name: str = "") -> SceneState:
        """Parse an already loaded pygltflib document."""
        state = SceneState()
        state.extensions_used = list(gltf.extensionsUsed or [])

        self.extensions = self.registry.import_preflight(
            state, state.extensions_used, list(gltf.extensionsRequired or [])
        )

        self._parse_scene_name(gltf, state, scene_name)
        self._parse_buffers(gltf, state)
        self._parse_buffer_views(gltf, state)
        self._parse_accessors(gltf, state)
        self._parse_nodes(gltf, state)
        self._parse_meshes(gltf, state)
        self._parse_skins(gltf, state)
        self._parse_cameras(gltf, state)
        self._parse_animations(gltf, state)
        self._assign_node_names(state)

        for node_index, node in enumerate(state.graph):
            self.extensions.call_all("import_node", state, node_index, node)
        self.extensions.call_all("import_post", state)

        logger.info(
            "Loaded %d nodes, %d skins, %d skeletons, %d animations",
            len(state.graph), len(state.skins), len(state.skeletons), len(state.animations),
        )
        return state

    def generate_animations(self, state: SceneState, options: Optional[ImportOptions] = None) -> List[PlayerAnimation]:
        """
        Convert every parsed animation to the player format.

        Args:
            state: Loaded document
            options: Overrides the loader's import options

        Returns:
            One PlayerAnimation per document animation
        """
        options = options or self.options
        sampler = AnimationSampler(options.bake_fps, options.remove_immutable_tracks)
        return [
            sampler.import_animation(state, animation, options.trimming)
            for animation in state.animations
        ]

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _parse_scene_name(self, gltf: pygltflib.GLTF2, state: SceneState, fallback: str):
        name = ""
        scene_idx = gltf.scene if gltf.scene is not None else 0
        if 0 <= scene_idx < len(gltf.scenes):
            name = gltf.scenes[scene_idx].name or ""
        state.scene_name = state.gen_unique_name(name or fallback or "Scene")

    def _parse_buffers(self, gltf: pygltflib.GLTF2, state: SceneState):
        for buffer_idx, buffer in enumerate(gltf.buffers):
            if buffer.uri:
                # Data URI or external file
                data = gltf.get_data_from_buffer_uri(buffer.uri)
            else:
                # Embedded buffer (GLB)
                data = gltf.binary_blob()
                if data is None:
                    raise StructuralError(f"Buffer {buffer_idx} has no uri and the document has no binary chunk")

            if buffer.byteLength is not None and len(data) < buffer.byteLength:
                raise StructuralError(
                    f"Buffer {buffer_idx} declares {buffer.byteLength} bytes but holds {len(data)}"
                )
            state.codec.buffers.append(bytearray(data))

        logger.debug("Total buffers: %d", len(state.codec.buffers))

    def _parse_buffer_views(self, gltf: pygltflib.GLTF2, state: SceneState):
        for bv_idx, bv in enumerate(gltf.bufferViews):
            if bv.buffer is None or bv.buffer < 0 or bv.buffer >= len(state.codec.buffers):
                raise StructuralError(f"Buffer view {bv_idx} references nonexistent buffer {bv.buffer}")
            state.codec.buffer_views.append(BufferView(
                buffer=bv.buffer,
                byte_length=bv.byteLength,
                byte_offset=bv.byteOffset or 0,
                byte_stride=bv.byteStride,
                indices=bv.target == pygltflib.ELEMENT_ARRAY_BUFFER,
            ))

        logger.debug("Total buffer views: %d", len(state.codec.buffer_views))

    def _parse_accessors(self, gltf: pygltflib.GLTF2, state: SceneState):
        for accessor_idx, a in enumerate(gltf.accessors):
            sparse = None
            if a.sparse is not None and a.sparse.count:
                sparse = SparseAccessor(
                    count=a.sparse.count,
                    indices_buffer_view=a.sparse.indices.bufferView,
                    indices_component_type=ComponentType.from_value(a.sparse.indices.componentType),
                    values_buffer_view=a.sparse.values.bufferView,
                    indices_byte_offset=a.sparse.indices.byteOffset or 0,
                    values_byte_offset=a.sparse.values.byteOffset or 0,
                )

            buffer_view = a.bufferView if a.bufferView is not None else -1
            if buffer_view >= len(state.codec.buffer_views):
                raise StructuralError(f"Accessor {accessor_idx} references nonexistent buffer view {buffer_view}")

            state.codec.accessors.append(Accessor(
                component_type=ComponentType.from_value(a.componentType),
                element_type=ElementType.from_string(a.type),
                count=a.count,
                buffer_view=buffer_view,
                byte_offset=a.byteOffset or 0,
                normalized=bool(a.normalized),
                min=a.min,
                max=a.max,
                sparse=sparse,
            ))

        logger.debug("Total accessors: %d", len(state.codec.accessors))

    def _parse_nodes(self, gltf: pygltflib.GLTF2, state: SceneState):
        for gltf_node in gltf.nodes:
            node = Node(name=gltf_node.name or "", children=list(gltf_node.children or []))

            # Matrix wins over translation/rotation/scale
            if gltf_node.matrix is not None and len(gltf_node.matrix) == 16:
                node.set_matrix(gltf_node.matrix)
            else:
                if gltf_node.translation is not None:
                    node.position = Vector3(gltf_node.translation)
                if gltf_node.rotation is not None:
                    # glTF and pyrr both store (x, y, z, w)
                    node.rotation = Quaternion(gltf_node.rotation).normalized
                if gltf_node.scale is not None:
                    node.scale = Vector3(gltf_node.scale)

            if gltf_node.mesh is not None:
                node.mesh = gltf_node.mesh
            if gltf_node.skin is not None:
                node.skin = gltf_node.skin
            if gltf_node.camera is not None:
                node.camera = gltf_node.camera
            if gltf_node.extras:
                node.extras = dict(gltf_node.extras)

            if gltf_node.extensions:
                replacement = self.extensions.first_result("parse_node_extensions", state, node, gltf_node.extensions)
                if replacement is not None:
                    node = replacement

            state.graph.nodes.append(node)

        for node_idx, node in enumerate(state.graph):
            if node.mesh >= len(gltf.meshes):
                raise StructuralError(f"Node {node_idx} references nonexistent mesh {node.mesh}")
            if node.skin >= len(gltf.skins):
                raise StructuralError(f"Node {node_idx} references nonexistent skin {node.skin}")
            if node.camera >= len(gltf.cameras):
                raise StructuralError(f"Node {node_idx} references nonexistent camera {node.camera}")

        state.graph.build_parent_hierarchy(state.warn)
        logger.debug("Total nodes: %d", len(state.graph))

    def _parse_meshes(self, gltf: pygltflib.GLTF2, state: SceneState):
        for mesh_idx, gltf_mesh in enumerate(gltf.meshes):
            mesh = MeshRecord(name=gltf_mesh.name or "")

            target_count = 0
            for primitive in gltf_mesh.primitives:
                attributes = {
                    name: value for name, value in vars(primitive.attributes).items()
                    if value is not None and not name.startswith("_")
                }
                record = {"attributes": attributes, "indices": primitive.indices}

                if attributes.get("POSITION") is not None:
                    record["positions"] = state.codec.decode_as_vec3(attributes["POSITION"], True)

                if any(name in attributes for name in SKIN_ATTRIBUTES):
                    joints, weights = decode_skin_attributes(state.codec, attributes, state.warn)
                    record["joints"] = joints
                    record["weights"] = weights

                target_count = max(target_count, len(primitive.targets or []))
                mesh.primitives.append(record)

            if gltf_mesh.weights:
                mesh.blend_weights = [float(w) for w in gltf_mesh.weights]
            else:
                mesh.blend_weights = [0.0] * target_count

            state.meshes.append(mesh)
            logger.debug("Mesh %d: %d primitives, %d blend shapes", mesh_idx, len(mesh.primitives), mesh.blend_shape_count)

        logger.debug("Total meshes: %d", len(state.meshes))

    def _parse_skins(self, gltf: pygltflib.GLTF2, state: SceneState):
        if not gltf.skins:
            return

        resolver = TopologyResolver(state.graph, state.skins, state.warn)
        for skin_idx, gltf_skin in enumerate(gltf.skins):
            if not gltf_skin.joints:
                raise StructuralError(f"Skin {skin_idx} has no joints")

            inverse_binds = None
            if gltf_skin.inverseBindMatrices is not None:
                inverse_binds = state.codec.decode_as_matrices(gltf_skin.inverseBindMatrices)

            resolver.parse_skin(gltf_skin.joints, inverse_binds, gltf_skin.name, gltf_skin.skeleton)

        state.skeletons = resolver.resolve(self.options.use_named_skin_binds)
        logger.info("Loaded %d skins into %d skeletons", len(state.skins), len(state.skeletons))

    def _parse_cameras(self, gltf: pygltflib.GLTF2, state: SceneState):
        state.cameras = list(range(len(gltf.cameras)))
        logger.debug("Total cameras: %d", len(state.cameras))

    def _parse_animations(self, gltf: pygltflib.GLTF2, state: SceneState):
        for anim_idx, gltf_anim in enumerate(gltf.animations):
            if not gltf_anim.channels or not gltf_anim.samplers:
                continue

            animation = Animation()
            if gltf_anim.name:
                animation.loop = is_loop_name(gltf_anim.name)
                animation.name = state.gen_unique_animation_name(gltf_anim.name)
            else:
                animation.name = state.gen_unique_animation_name(DEFAULT_ANIMATION_NAME)

            for channel in gltf_anim.channels:
                target = channel.target
                if target is None or target.node is None or target.path is None:
                    continue

                if channel.sampler is None or channel.sampler < 0 or channel.sampler >= len(gltf_anim.samplers):
                    raise StructuralError(f"Animation {anim_idx} channel references nonexistent sampler {channel.sampler}")
                node_idx = state.graph.ensure_index(target.node, f"Animation {anim_idx} channel")
                sampler = gltf_anim.samplers[channel.sampler]
                if sampler.input is None or sampler.output is None:
                    raise StructuralError(f"Animation {anim_idx} sampler {channel.sampler} lacks input or output")

                interpolation = InterpolationType.from_string(sampler.interpolation)
                if interpolation is None:
                    state.warn(f"Unknown interpolation '{sampler.interpolation}', using LINEAR")
                    interpolation = InterpolationType.LINEAR

                path = AnimationTarget.from_string(target.path)
                if path is None:
                    state.warn(f"Invalid path '{target.path}'.")
                    continue

                times = state.codec.decode_as_floats(sampler.input)
                track = animation.track_for(node_idx)

                if path == AnimationTarget.TRANSLATION:
                    track.position = Channel(interpolation, times, state.codec.decode_as_vec3(sampler.output))
                elif path == AnimationTarget.ROTATION:
                    track.rotation = Channel(interpolation, times, state.codec.decode_as_quaternions(sampler.output))
                elif path == AnimationTarget.SCALE:
                    track.scale = Channel(interpolation, times, state.codec.decode_as_vec3(sampler.output))
                else:
                    self._parse_weight_channels(state, node_idx, interpolation, times, sampler.output, track)

            state.animations.append(animation)

        logger.debug("Total animations: %d", len(state.animations))

    def _parse_weight_channels(self, state: SceneState, node_idx: int, interpolation: InterpolationType,
                               times, output: int, track):
        mesh_idx = state.graph[node_idx].mesh
        if mesh_idx < 0 or mesh_idx >= len(state.meshes):
            raise StructuralError(f"Weights animated on node {node_idx} which has no mesh")

        mesh = state.meshes[mesh_idx]
        blend_count = mesh.blend_shape_count
        if not blend_count:
            state.warn(f"Weights animated on mesh '{mesh.name}' which has no blend shapes")
            return

        weights = state.codec.decode_as_floats(output)
        expected = len(times) * interpolation.values_per_key * blend_count
        if weights.size != expected:
            state.warn(f"Invalid weight data, expected {expected} weight values, got {weights.size} instead.")
            return

        # One channel per blend shape
        per_shape = weights.reshape(-1, blend_count)
        track.weights = [Channel(interpolation, times, per_shape[:, k]) for k in range(blend_count)]

    def _assign_node_names(self, state: SceneState):
        for node in state.graph:
            # Joints are named uniquely per skeleton when the skeleton is built
            if node.skeleton >= 0:
                continue

            name = node.name
            if not name:
                if node.mesh >= 0:
                    name = "Mesh"
                elif node.camera >= 0:
                    name = "Camera"
                else:
                    name = DEFAULT_NODE_NAME
            node.name = state.gen_unique_name(name)

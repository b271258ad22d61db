"""
Topology Resolver

Reconstructs skins and skeletons from the flat node graph.

glTF only lists the joints of each skin. Engines need whole joint
trees, so skins are expanded to include the nodes lying between their
joints, multi-rooted skins are grown until all roots share a parent,
and skins that touch each other are merged into one skeleton.
"""

import logging
from collections import deque
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..config.settings import DEFAULT_BONE_NAME, USE_NAMED_SKIN_BINDS
from ..core.disjoint_set import DisjointSet
from ..core.errors import InvariantViolation, StructuralError
from ..core.node_graph import NodeGraph
from .skeleton import Bone, Skeleton
from .skin import Skin, SkinBind, SkinState

logger = logging.getLogger(__name__)


def sanitize_bone_name(name: str) -> str:
    """Replace characters that are not allowed in bone names."""
    return name.replace(":", "_").replace("/", "_")


class TopologyResolver:
    """
    Expands skins and builds skeletons over a node graph.

    Every pass builds its own DisjointSet from scratch and sorts whatever
    it reads back, so results do not depend on input ordering.
    """

    def __init__(self, graph: NodeGraph, skins: Optional[List[Skin]] = None,
                 on_warning: Optional[Callable[[str], None]] = None):
        """
        Initialize resolver.

        Args:
            graph: Node graph with parents and heights computed
            skins: Existing skin records (mutated in place)
            on_warning: Receives data quality messages
        """
        self.graph = graph
        self.skins: List[Skin] = skins if skins is not None else []
        self.skeletons: List[Skeleton] = []
        self._on_warning = on_warning
        self._bone_names: Dict[int, Set[str]] = {}

    def _warn(self, message: str):
        if self._on_warning is not None:
            self._on_warning(message)
        else:
            logger.warning(message)

    # ------------------------------------------------------------------
    # Skins
    # ------------------------------------------------------------------

    def parse_skin(self, joints: Sequence[int], inverse_binds=None,
                   name: Optional[str] = None, skeleton_root: Optional[int] = None) -> int:
        """
        Create a skin from a raw joint list and mark its joints.

        Args:
            joints: Joint node indices in file order
            inverse_binds: Optional matrices, one per joint
            name: Skin name (defaults to ``skin_<index>``)
            skeleton_root: Optional ``skeleton`` hint from the file

        Returns:
            Index of the new skin
        """
        skin_i = len(self.skins)
        skin = Skin(name if name else f"skin_{skin_i}")

        if inverse_binds is not None:
            if len(inverse_binds) != len(joints):
                raise StructuralError(
                    f"Skin {skin_i} has {len(joints)} joints but {len(inverse_binds)} inverse bind matrices"
                )
            skin.inverse_binds = list(inverse_binds)

        for node_i in joints:
            node_i = self.graph.ensure_index(node_i, f"Skin {skin_i} joint")
            skin.add_joint(node_i)
            self.graph[node_i].joint = True

        if skeleton_root is not None:
            skin.skin_root = self.graph.ensure_index(skeleton_root, f"Skin {skin_i} skeleton")

        self.skins.append(skin)
        return skin_i

    def _component_roots(self, nodes: Sequence[int]) -> List[int]:
        """Highest node of every parent-linked component of ``nodes``, sorted."""
        node_set = set(nodes)
        disjoint_set = DisjointSet(node_set)
        for node_i in node_set:
            parent = self.graph[node_i].parent
            if parent in node_set:
                disjoint_set.create_union(parent, node_i)

        roots = []
        for representative in disjoint_set.get_representatives():
            root = self.graph.find_highest_node(disjoint_set.get_members(representative))
            if root < 0:
                raise InvariantViolation("Empty component while computing skin roots")
            roots.append(root)

        return sorted(set(roots))

    def capture_nodes_in_skin(self, skin: Skin, node_index: int) -> bool:
        """
        Capture every node between ``node_index`` and the skin joints below it.

        Returns:
            True if ``node_index`` is a joint of the skin
        """
        found_joint = False
        for child_i in self.graph[node_index].children:
            found_joint = self.capture_nodes_in_skin(skin, child_i) or found_joint

        if found_joint:
            skin.capture(node_index, self.graph[node_index].joint)

        return node_index in skin.joints

    def capture_nodes_for_multirooted_skin(self, skin: Skin):
        """Grow a multi-rooted skin upward until all its roots share one parent."""
        roots = self._component_roots(skin.joints)
        if len(roots) <= 1:
            return

        # Bring every root up to the height of the highest one
        max_height = min(self.graph[root].height for root in roots)
        for i, current in enumerate(roots):
            while self.graph[current].height > max_height:
                parent = self.graph[current].parent
                skin.capture(parent, self.graph[parent].joint)
                current = parent
            roots[i] = current

        # Climb in lockstep until they all have the same parent
        while True:
            first_parent = self.graph[roots[0]].parent
            if all(self.graph[root].parent == first_parent for root in roots[1:]):
                break

            for i, current in enumerate(roots):
                parent = self.graph[current].parent
                skin.capture(parent, self.graph[parent].joint)
                roots[i] = parent

    def expand_skin(self, skin: Skin):
        """Expand a skin's raw joints into a closed node set with resolved roots."""
        self.capture_nodes_for_multirooted_skin(skin)

        roots = self._component_roots(skin.all_nodes())
        for root in roots:
            self.capture_nodes_in_skin(skin, root)

        skin.roots = roots
        skin.state = SkinState.EXPANDED

    def verify_skin(self, skin: Skin):
        """
        Recompute a skin's roots and check them against the expanded ones.

        Raises:
            InvariantViolation: If the roots differ, or several roots do
                not share one parent
        """
        roots = self._component_roots(skin.all_nodes())

        if not roots:
            raise InvariantViolation(f"Skin '{skin.name}' has no roots")
        if roots != skin.roots:
            raise InvariantViolation(
                f"Skin '{skin.name}' roots {roots} do not match expanded roots {skin.roots}"
            )

        if len(roots) > 1:
            parent = self.graph[roots[0]].parent
            for root in roots[1:]:
                if self.graph[root].parent != parent:
                    raise InvariantViolation(
                        f"Skin '{skin.name}' roots {roots} do not share a parent"
                    )

        skin.state = SkinState.VERIFIED

    def resolve_skins(self):
        """Expand and verify every skin."""
        for skin in self.skins:
            self.expand_skin(skin)
            self.verify_skin(skin)

        logger.debug("Total skins: %d", len(self.skins))

    # ------------------------------------------------------------------
    # Skeletons
    # ------------------------------------------------------------------

    def _recurse_children(self, node_index: int, all_skin_nodes: Set[int], visited: Set[int]):
        if node_index in visited:
            return
        visited.add(node_index)

        node = self.graph[node_index]
        for child_i in node.children:
            self._recurse_children(child_i, all_skin_nodes, visited)

        # Skinned mesh leaves stay outside the skeleton
        if node.skin < 0 or node.mesh < 0 or node.children:
            all_skin_nodes.add(node_index)

    def determine_skeletons(self):
        """
        Merge skins into skeletons.

        Skins sharing nodes collapse into one skeleton, as do skins whose
        highest nodes are siblings or hang below another skin's nodes.
        """
        skeleton_sets = DisjointSet()

        for skin in self.skins:
            visited: Set[int] = set()
            all_skin_nodes: Set[int] = set()
            for node_i in skin.all_nodes():
                all_skin_nodes.add(node_i)
                self._recurse_children(node_i, all_skin_nodes, visited)

            for node_i in sorted(all_skin_nodes):
                skeleton_sets.insert(node_i)
            for node_i in sorted(all_skin_nodes):
                parent = self.graph[node_i].parent
                if parent in all_skin_nodes:
                    skeleton_sets.create_union(parent, node_i)

            # Connect the separate subtrees of a multi-rooted skin
            for root in skin.roots[1:]:
                skeleton_sets.create_union(skin.roots[0], root)

        # Attach touching groups: siblings, or a group hanging below another
        groups = [skeleton_sets.get_members(rep) for rep in skeleton_sets.get_representatives()]
        group_sets = [set(group) for group in groups]
        highest = [self.graph.find_highest_node(group) for group in groups]

        for i, node_i in enumerate(highest):
            for j in range(i + 1, len(highest)):
                node_j = highest[j]
                if self.graph[node_i].parent == self.graph[node_j].parent:
                    skeleton_sets.create_union(node_i, node_j)

            node_i_parent = self.graph[node_i].parent
            if node_i_parent >= 0:
                for j, group in enumerate(group_sets):
                    if j != i and node_i_parent in group:
                        skeleton_sets.create_union(node_i, highest[j])

        self.skeletons = []
        for skel_i, owner in enumerate(skeleton_sets.get_representatives()):
            skeleton = Skeleton(name=f"Skeleton_{skel_i}")
            skeleton_nodes = skeleton_sets.get_members(owner)
            node_set = set(skeleton_nodes)

            for skin in self.skins:
                if node_set.intersection(skin.all_nodes()):
                    skin.skeleton = skel_i

            non_joints = []
            for node_i in skeleton_nodes:
                if self.graph[node_i].joint:
                    skeleton.joints.append(node_i)
                else:
                    non_joints.append(node_i)

            self.skeletons.append(skeleton)
            self.reparent_non_joint_subtrees(skeleton, non_joints)

        for skel_i, skeleton in enumerate(self.skeletons):
            for node_i in skeleton.joints:
                node = self.graph[node_i]
                if not node.joint:
                    raise InvariantViolation(f"Skeleton {skel_i} contains non-joint node {node_i}")
                if node.skeleton >= 0:
                    raise InvariantViolation(
                        f"Node {node_i} belongs to skeleton {node.skeleton} and skeleton {skel_i}"
                    )
                node.skeleton = skel_i

            self.determine_skeleton_roots(skel_i)

        logger.debug("Total skeletons: %d", len(self.skeletons))

    def reparent_non_joint_subtrees(self, skeleton: Skeleton, non_joints: Sequence[int]):
        """
        Promote non-joint nodes inside a skeleton to joints.

        A skeleton may only contain joints, but files are free to put
        ordinary nodes between joints. Contiguous runs of such nodes are
        grouped and every member becomes a joint.
        """
        non_joint_set = set(non_joints)
        subtree_set = DisjointSet(non_joints)
        for node_i in non_joints:
            parent = self.graph[node_i].parent
            if parent >= 0 and parent in non_joint_set and not self.graph[parent].joint:
                subtree_set.create_union(parent, node_i)

        for subtree_root in subtree_set.get_representatives():
            for node_i in subtree_set.get_members(subtree_root):
                self.graph[node_i].joint = True
                skeleton.joints.append(node_i)

    def determine_skeleton_roots(self, skel_i: int):
        """
        Compute the sorted roots of a skeleton.

        Raises:
            InvariantViolation: If there are no roots, or several roots
                with different parents
        """
        disjoint_set = DisjointSet()
        for node_i, node in enumerate(self.graph):
            if node.skeleton != skel_i:
                continue
            disjoint_set.insert(node_i)

        for node_i in list(range(len(self.graph))):
            node = self.graph[node_i]
            if node.skeleton == skel_i and node.parent >= 0 and self.graph[node.parent].skeleton == skel_i:
                disjoint_set.create_union(node.parent, node_i)

        roots = []
        for representative in disjoint_set.get_representatives():
            root = self.graph.find_highest_node(disjoint_set.get_members(representative))
            if root < 0:
                raise InvariantViolation(f"Empty component in skeleton {skel_i}")
            roots.append(root)
        roots.sort()

        skeleton = self.skeletons[skel_i]
        skeleton.roots = roots

        if not roots:
            raise InvariantViolation(f"Skeleton {skel_i} has no roots")

        parent = self.graph[roots[0]].parent
        for root in roots[1:]:
            if self.graph[root].parent != parent:
                raise InvariantViolation(f"Skeleton {skel_i} roots {roots} have different parents")

    def _gen_unique_bone_name(self, skel_i: int, name: str) -> str:
        base = sanitize_bone_name(name) or DEFAULT_BONE_NAME
        used = self._bone_names.setdefault(skel_i, set())

        unique = base
        index = 2
        while unique in used:
            unique = f"{base}_{index}"
            index += 1

        used.add(unique)
        return unique

    def create_skeletons(self):
        """
        Build the ordered bone list of every skeleton.

        Roots are visited in sorted order and each node's sorted children
        are pushed to the front of the queue (depth first), which keeps
        bone indices stable across imports of the same file.
        """
        self._bone_names = {}
        for skel_i, skeleton in enumerate(self.skeletons):
            skeleton.bones = []
            skeleton.bone_by_name = {}
            skeleton.node_to_bone = {}
            skeleton.bone_to_node = {}

            bones = deque(sorted(skeleton.roots))
            while bones:
                node_i = bones.popleft()
                node = self.graph[node_i]
                if node.skeleton != skel_i:
                    raise InvariantViolation(f"Node {node_i} reached from skeleton {skel_i} belongs to {node.skeleton}")

                child_nodes = sorted(c for c in node.children if self.graph[c].skeleton == skel_i)
                bones.extendleft(reversed(child_nodes))

                node.name = self._gen_unique_bone_name(skel_i, node.name)

                bone = Bone(node.name, node_i)
                bone.rest = node.local_transform()
                bone.position = node.position.copy()
                bone.rotation = node.rotation.normalized
                bone.scale = node.scale.copy()

                if node.parent >= 0 and self.graph[node.parent].skeleton == skel_i:
                    parent_bone = skeleton.node_to_bone.get(node.parent, -1)
                    if parent_bone < 0:
                        raise InvariantViolation(f"Parent of bone '{node.name}' was not created first")
                    bone.parent = parent_bone

                skeleton.add_bone(bone)

        self.map_skin_joints_to_bones()

    def map_skin_joints_to_bones(self):
        """Map every original skin joint to its skeleton bone index."""
        for skin_i, skin in enumerate(self.skins):
            if skin.skeleton < 0 or skin.skeleton >= len(self.skeletons):
                raise InvariantViolation(f"Skin {skin_i} was not assigned to a skeleton")
            skeleton = self.skeletons[skin.skeleton]

            skin.joint_i_to_bone_i = {}
            for joint_index, node_i in enumerate(skin.joints_original):
                bone_index = skeleton.node_to_bone.get(node_i, -1)
                if bone_index < 0:
                    raise InvariantViolation(f"Skin {skin_i} joint {node_i} has no bone in skeleton {skin.skeleton}")
                skin.joint_i_to_bone_i[joint_index] = bone_index

    def create_skin_binds(self, use_named_binds: bool = USE_NAMED_SKIN_BINDS):
        """Produce the bone bindings of every skin and share duplicates."""
        for skin in self.skins:
            skin.binds = []
            skin.shared_with = None
            for joint_index, node_i in enumerate(skin.joints_original):
                bone_name = self.graph[node_i].name
                inverse_bind = skin.inverse_bind_for(joint_index)
                if use_named_binds:
                    skin.binds.append(SkinBind(-1, bone_name, inverse_bind))
                else:
                    skin.binds.append(SkinBind(skin.joint_i_to_bone_i[joint_index], "", inverse_bind))

        self.remove_duplicate_skins()

    def remove_duplicate_skins(self):
        """Let later skins that bind identically share the earlier skin's binds."""
        for i, skin_i in enumerate(self.skins):
            if skin_i.shared_with is not None:
                continue
            for j in range(i + 1, len(self.skins)):
                skin_j = self.skins[j]
                if skin_j.shared_with is None and skin_i.has_same_binds(skin_j):
                    skin_j.binds = skin_i.binds
                    skin_j.shared_with = i
                    self._warn(f"Skin '{skin_j.name}' duplicates skin '{skin_i.name}', sharing its binds")

    def resolve(self, use_named_binds: bool = USE_NAMED_SKIN_BINDS) -> List[Skeleton]:
        """
        Run the full resolution: skins, skeletons, bones and binds.

        Returns:
            The resolved skeletons
        """
        if not self.skins:
            return self.skeletons

        self.resolve_skins()
        self.determine_skeletons()
        self.create_skeletons()
        self.create_skin_binds(use_named_binds)

        logger.info("Resolved %d skins into %d skeletons", len(self.skins), len(self.skeletons))
        return self.skeletons

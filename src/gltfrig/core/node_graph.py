"""
Node Graph

Flat node arena with parent/child links and cached heights.

Nodes are addressed by their position in the list. Skins, skeletons and
animation tracks only ever hold these indices, never the nodes themselves.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from pyrr import Matrix44, Quaternion, Vector3, matrix44

from .errors import StructuralError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Node:
    """
    Single scene node.

    The local transform comes either from an explicit matrix or from
    translation/rotation/scale; when a matrix is given it wins and the
    TRS fields are derived from it.
    """

    name: str = ""
    parent: int = -1
    children: List[int] = field(default_factory=list)
    position: Vector3 = field(default_factory=lambda: Vector3([0.0, 0.0, 0.0]))
    rotation: Quaternion = field(default_factory=Quaternion)  # (x, y, z, w)
    scale: Vector3 = field(default_factory=lambda: Vector3([1.0, 1.0, 1.0]))
    matrix: Optional[Matrix44] = None
    joint: bool = False
    skin: int = -1
    mesh: int = -1
    camera: int = -1
    skeleton: int = -1
    height: int = -1
    extras: dict = field(default_factory=dict)

    def set_matrix(self, values: Sequence[float]):
        """
        Set the local transform from a glTF matrix.

        Args:
            values: 16 floats in glTF column-major order
        """
        # Column-major floats read row by row give pyrr's row-major layout
        self.matrix = Matrix44(np.array(values, dtype='f8').reshape(4, 4))
        scale, rotation, translation = matrix44.decompose(self.matrix)
        self.position = Vector3(translation)
        self.rotation = Quaternion(rotation)
        self.scale = Vector3(scale)

    def local_transform(self) -> Matrix44:
        """Get the local transform relative to the parent (row-major)."""
        if self.matrix is not None:
            return Matrix44(self.matrix)

        matrix = Matrix44.from_scale(self.scale)
        matrix = matrix @ Matrix44.from_quaternion(self.rotation.normalized)
        matrix = matrix @ Matrix44.from_translation(self.position)
        return matrix

    def __repr__(self):
        return f"Node(name='{self.name}', parent={self.parent}, children={self.children}, joint={self.joint})"


class NodeGraph:
    """
    Owns the node list and keeps the parent graph a forest.

    Heights are cached on the nodes: height(root) == 0 and
    height(n) == height(parent(n)) + 1. They are recomputed whenever a
    parent link changes.
    """

    def __init__(self, nodes: Optional[List[Node]] = None):
        self.nodes: List[Node] = list(nodes) if nodes else []
        self.root_nodes: List[int] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> Node:
        return self.nodes[index]

    def __iter__(self):
        return iter(self.nodes)

    def ensure_index(self, index: int, what: str = "node") -> int:
        """Raise StructuralError unless ``index`` addresses a node."""
        if not isinstance(index, (int, np.integer)) or index < 0 or index >= len(self.nodes):
            raise StructuralError(f"{what} references nonexistent node {index}")
        return int(index)

    def build_parent_hierarchy(self, on_warning: Optional[Callable[[str], None]] = None):
        """
        Derive parent links from the children lists and compute heights.

        Args:
            on_warning: Called with a message when a child is claimed by
                more than one parent (the first claim is kept)
        """
        for node in self.nodes:
            node.parent = -1

        for node_i, node in enumerate(self.nodes):
            for child_i in node.children:
                self.ensure_index(child_i, f"Node {node_i} child")
                if child_i == node_i:
                    raise StructuralError(f"Node {node_i} lists itself as a child")

                child = self.nodes[child_i]
                if child.parent != -1:
                    message = f"Node {child_i} already has parent {child.parent}, ignoring parent {node_i}"
                    if on_warning is not None:
                        on_warning(message)
                    else:
                        logger.warning(message)
                    continue
                child.parent = node_i

        # Keep one link per child, and only to the parent that claimed it
        for node_i, node in enumerate(self.nodes):
            node.children = list(dict.fromkeys(c for c in node.children if self.nodes[c].parent == node_i))

        self.compute_heights()

    def compute_heights(self):
        """Recompute every node's height and the root list."""
        self.root_nodes = []
        for node_i, node in enumerate(self.nodes):
            height = 0
            current_i = node.parent
            while current_i >= 0:
                height += 1
                if height > len(self.nodes):
                    raise StructuralError(f"Cycle in node hierarchy through node {node_i}")
                current_i = self.nodes[current_i].parent
            node.height = height

            if height == 0:
                self.root_nodes.append(node_i)

    def reparent(self, node_index: int, new_parent: int):
        """Move ``node_index`` under ``new_parent`` (-1 makes it a root)."""
        self.ensure_index(node_index)
        if new_parent >= 0:
            self.ensure_index(new_parent, "Reparent target")

        node = self.nodes[node_index]
        if node.parent >= 0:
            self.nodes[node.parent].children.remove(node_index)
        node.parent = new_parent
        if new_parent >= 0:
            self.nodes[new_parent].children.append(node_index)

        self.compute_heights()

    def find_highest_node(self, subset: Sequence[int]) -> int:
        """
        Find the member of ``subset`` closest to a root.

        Returns:
            Node index with the lowest height (first one wins ties), -1 if empty
        """
        highest = -1
        best_node = -1
        for node_i in subset:
            height = self.nodes[node_i].height
            if highest == -1 or height < highest:
                highest = height
                best_node = node_i
        return best_node

    def world_transforms(self) -> Dict[int, Matrix44]:
        """Compute the world transform of every node."""
        transforms: Dict[int, Matrix44] = {}

        def traverse(node_i: int, parent_transform: Matrix44):
            world = self.nodes[node_i].local_transform() @ parent_transform
            transforms[node_i] = world
            for child_i in self.nodes[node_i].children:
                traverse(child_i, world)

        for root_i in self.root_nodes:
            traverse(root_i, Matrix44.identity())

        return transforms

    def __repr__(self):
        return f"NodeGraph(nodes={len(self.nodes)}, roots={len(self.root_nodes)})"

"""
Skeleton

Resolved, deduplicated tree of joint nodes shared by one or more skins.
"""

from typing import Dict, List, Optional, Tuple

from pyrr import Matrix44, Quaternion, Vector3


class Bone:
    """
    Single bone in a skeleton.

    Each bone has:
    - Parent bone index (-1 for roots)
    - Rest transform (relative to parent)
    - Pose position/rotation/scale taken from the source node
    """

    def __init__(self, name: str, node_index: int, parent: int = -1):
        """
        Initialize a bone.

        Args:
            name: Unique bone name within the skeleton
            node_index: Node this bone was built from
            parent: Parent bone index (-1 for root)
        """
        self.name = name
        self.node_index = node_index
        self.parent = parent
        self.rest = Matrix44.identity()
        self.position = Vector3([0.0, 0.0, 0.0])
        self.rotation = Quaternion()
        self.scale = Vector3([1.0, 1.0, 1.0])

    def pose_transform(self, pose: Optional[Tuple[Vector3, Quaternion, Vector3]] = None) -> Matrix44:
        """Local transform from a (position, rotation, scale) pose, or the bone's own pose."""
        position, rotation, scale = pose if pose is not None else (self.position, self.rotation, self.scale)
        matrix = Matrix44.from_scale(scale)
        matrix = matrix @ Matrix44.from_quaternion(Quaternion(rotation).normalized)
        matrix = matrix @ Matrix44.from_translation(position)
        return matrix

    def __repr__(self):
        return f"Bone(name='{self.name}', node={self.node_index}, parent={self.parent})"


class Skeleton:
    """
    Joint set merged from one or more skins.

    ``joints`` and ``roots`` hold node indices; ``bones`` is the ordered
    bone list built from them. Bone order is depth first from the sorted
    roots with children visited in index order, so it is the same on
    every import of a file.
    """

    def __init__(self, name: str = "Skeleton"):
        """
        Initialize skeleton.

        Args:
            name: Skeleton name for debugging
        """
        self.name = name
        self.joints: List[int] = []
        self.roots: List[int] = []
        self.bones: List[Bone] = []
        self.bone_by_name: Dict[str, int] = {}
        self.node_to_bone: Dict[int, int] = {}
        self.bone_to_node: Dict[int, int] = {}

    def add_bone(self, bone: Bone) -> int:
        """
        Add a bone to the skeleton.

        Args:
            bone: Bone to add (its name must be unique)

        Returns:
            Index of the new bone
        """
        bone_index = len(self.bones)
        self.bones.append(bone)
        self.bone_by_name[bone.name] = bone_index
        self.node_to_bone[bone.node_index] = bone_index
        self.bone_to_node[bone_index] = bone.node_index
        return bone_index

    def find_bone(self, name: str) -> int:
        """
        Find a bone by name.

        Returns:
            Bone index, -1 if not found
        """
        return self.bone_by_name.get(name, -1)

    def world_transforms(self, poses: Optional[Dict[int, Tuple[Vector3, Quaternion, Vector3]]] = None) -> List[Matrix44]:
        """
        Compute every bone's transform relative to the skeleton.

        Parents always precede their children in ``bones``, so one pass
        accumulates world = local @ parent_world (row-major form).

        Args:
            poses: Optional bone index -> (position, rotation, scale) overrides

        Returns:
            One matrix per bone, in bone order
        """
        poses = poses or {}
        transforms: List[Matrix44] = []
        for bone_index, bone in enumerate(self.bones):
            local = bone.pose_transform(poses.get(bone_index))
            if bone.parent >= 0:
                transforms.append(local @ transforms[bone.parent])
            else:
                transforms.append(local)
        return transforms

    def __repr__(self):
        return f"Skeleton(name='{self.name}', joints={len(self.joints)}, bones={len(self.bones)}, roots={self.roots})"

"""
Skin

Binding between mesh vertices and a set of joint nodes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
from pyrr import Matrix44

from ..config.settings import DEFAULT_SKIN_NAME


class SkinState(Enum):
    """Resolution stage of a skin."""
    RAW_JOINTS = "RawJoints"
    EXPANDED = "Expanded"
    VERIFIED = "Verified"


@dataclass
class SkinBind:
    """One bone binding of a finalized skin."""
    bone: int
    name: str
    inverse_bind: Matrix44


class Skin:
    """
    Skin record built from a raw joint list.

    Contains:
    - joints_original: joint nodes in file order (stable for JOINTS_n lookups)
    - joints / non_joints: working node sets grown by topology resolution
    - inverse_binds: one matrix per entry of joints_original
    - binds: bone bindings produced once skeletons exist
    """

    def __init__(self, name: str = DEFAULT_SKIN_NAME):
        """
        Initialize skin.

        Args:
            name: Skin name for debugging
        """
        self.name = name
        self.joints_original: List[int] = []
        self.joints: List[int] = []
        self.non_joints: List[int] = []
        self.roots: List[int] = []
        self.skeleton: int = -1
        self.skin_root: int = -1
        self.inverse_binds: List[Matrix44] = []
        self.joint_i_to_bone_i: Dict[int, int] = {}
        self.binds: List[SkinBind] = []
        self.shared_with: Optional[int] = None
        self.state = SkinState.RAW_JOINTS

    def add_joint(self, node_index: int):
        """Append a joint from the raw skin record."""
        self.joints_original.append(node_index)
        self.joints.append(node_index)

    def all_nodes(self) -> List[int]:
        """Joints followed by non-joints."""
        return self.joints + self.non_joints

    def capture(self, node_index: int, is_joint: bool):
        """Add a node to the joint or non-joint set unless it is already there."""
        if is_joint and node_index not in self.joints:
            self.joints.append(node_index)
        elif not is_joint and node_index not in self.non_joints:
            self.non_joints.append(node_index)

    def inverse_bind_for(self, joint_index: int) -> Matrix44:
        """Inverse bind matrix of a joint, identity when the skin has none."""
        if self.inverse_binds:
            return self.inverse_binds[joint_index]
        return Matrix44.identity()

    def has_same_binds(self, other: 'Skin') -> bool:
        """Check whether two finalized skins bind identically."""
        if len(self.binds) != len(other.binds):
            return False

        for a, b in zip(self.binds, other.binds):
            if a.bone != b.bone or a.name != b.name:
                return False
            if not np.array_equal(np.asarray(a.inverse_bind), np.asarray(b.inverse_bind)):
                return False

        return True

    def __repr__(self):
        return f"Skin(name='{self.name}', joints={len(self.joints)}, non_joints={len(self.non_joints)}, roots={self.roots})"

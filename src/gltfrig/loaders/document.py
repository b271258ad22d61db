"""
Scene State

Typed record of a parsed document shared by every import/export phase.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..animation.animation import Animation
from ..animation.skeleton import Skeleton
from ..animation.skin import Skin
from ..codec.accessor_codec import AccessorCodec
from ..core.errors import DataQualityWarning
from ..core.node_graph import NodeGraph

logger = logging.getLogger(__name__)


@dataclass
class MeshRecord:
    """
    Mesh as far as skinning and animation care about it.

    Each primitive keeps its attribute accessor indices plus the decoded
    joints/weights arrays when the primitive is skinned.
    """
    name: str = ""
    primitives: List[dict] = field(default_factory=list)
    blend_weights: List[float] = field(default_factory=list)

    @property
    def blend_shape_count(self) -> int:
        return len(self.blend_weights)


class SceneState:
    """
    Everything known about one document.

    Created once at parse entry and filled phase by phase; the exporter
    reads the same structure back out.
    """

    def __init__(self, graph: Optional[NodeGraph] = None, codec: Optional[AccessorCodec] = None):
        self.graph = graph if graph is not None else NodeGraph()
        self.codec = codec if codec is not None else AccessorCodec()
        self.meshes: List[MeshRecord] = []
        self.skins: List[Skin] = []
        self.skeletons: List[Skeleton] = []
        self.animations: List[Animation] = []
        self.cameras: List[int] = []
        self.scene_name = ""
        self.extensions_used: List[str] = []
        self.warnings: List[DataQualityWarning] = []
        self.unique_names: Set[str] = set()
        self.unique_animation_names: Set[str] = set()

    def warn(self, message: str):
        """Record a data quality problem; import continues."""
        warning = DataQualityWarning(message)
        self.warnings.append(warning)
        logger.warning(message)

    def gen_unique_name(self, name: str) -> str:
        """Make ``name`` unique among node/scene names by appending 2, 3, ..."""
        unique = name
        index = 1
        while unique in self.unique_names:
            index += 1
            unique = f"{name}{index}"

        self.unique_names.add(unique)
        return unique

    def gen_unique_animation_name(self, name: str) -> str:
        """Make an animation name unique; ',' and '[' are stripped."""
        base = name.replace(",", "").replace("[", "")
        unique = base
        index = 1
        while unique in self.unique_animation_names:
            index += 1
            unique = f"{base}{index}"

        self.unique_animation_names.add(unique)
        return unique

    def __repr__(self):
        return (
            f"SceneState(nodes={len(self.graph)}, meshes={len(self.meshes)}, skins={len(self.skins)}, "
            f"skeletons={len(self.skeletons)}, animations={len(self.animations)})"
        )

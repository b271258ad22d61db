"""Import and export options for JSON-driven pipelines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.settings import (
    BAKE_FPS,
    EXPORT_REMOVE_IMMUTABLE_TRACKS,
    REMOVE_IMMUTABLE_TRACKS,
    TRIM_ANIMATIONS,
    USE_NAMED_SKIN_BINDS,
)


@dataclass
class ImportOptions:
    """Options for turning a document into skeletons and player animations."""

    bake_fps: float = BAKE_FPS
    trimming: bool = TRIM_ANIMATIONS
    remove_immutable_tracks: bool = REMOVE_IMMUTABLE_TRACKS
    use_named_skin_binds: bool = USE_NAMED_SKIN_BINDS

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImportOptions":
        """Create options from a dictionary; unknown keys are ignored."""
        if data is None:
            return cls()
        options = cls(
            bake_fps=float(data.get("bake_fps", BAKE_FPS)),
            trimming=bool(data.get("trimming", TRIM_ANIMATIONS)),
            remove_immutable_tracks=bool(data.get("remove_immutable_tracks", REMOVE_IMMUTABLE_TRACKS)),
            use_named_skin_binds=bool(data.get("use_named_skin_binds", USE_NAMED_SKIN_BINDS)),
        )
        if options.bake_fps <= 0:
            raise ValueError(f"bake_fps must be positive, got {options.bake_fps}")
        return options

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bake_fps": self.bake_fps,
            "trimming": self.trimming,
            "remove_immutable_tracks": self.remove_immutable_tracks,
            "use_named_skin_binds": self.use_named_skin_binds,
        }


@dataclass
class ExportOptions:
    """Options for writing a scene back out."""

    bake_fps: float = BAKE_FPS
    remove_immutable_tracks: bool = EXPORT_REMOVE_IMMUTABLE_TRACKS

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExportOptions":
        """Create options from a dictionary; unknown keys are ignored."""
        if data is None:
            return cls()
        options = cls(
            bake_fps=float(data.get("bake_fps", BAKE_FPS)),
            remove_immutable_tracks=bool(data.get("remove_immutable_tracks", EXPORT_REMOVE_IMMUTABLE_TRACKS)),
        )
        if options.bake_fps <= 0:
            raise ValueError(f"bake_fps must be positive, got {options.bake_fps}")
        return options

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bake_fps": self.bake_fps,
            "remove_immutable_tracks": self.remove_immutable_tracks,
        }

#!/usr/bin/env python3
"""
GLTF Rig Diagnostic Tool

Loads a GLTF/GLB document through the rig pipeline and reports:
- Skins and how they were expanded
- Resolved skeletons with their bone order
- Animations, their tracks and baked lengths
- Data quality warnings raised while importing

Usage:
    python debug_gltf_rig.py path/to/model.gltf [bake_fps]
"""

import logging
import sys
from pathlib import Path

from gltfrig.config.settings import LOG_FORMAT, LOG_LEVEL
from gltfrig.core.errors import GltfRigError
from gltfrig.loaders import GltfLoader, ImportOptions


class RigDiagnostics:
    """Diagnostic tool for skinned and animated documents."""

    def __init__(self, options: ImportOptions):
        self.options = options
        self.issues = []

    def analyze_model(self, filepath: str) -> bool:
        """Load a document and print what the pipeline made of it."""
        filepath = Path(filepath)
        print(f"🔍 Analyzing rig: {filepath}")
        print("=" * 60)

        if not filepath.exists():
            print(f"❌ ERROR: File not found: {filepath}")
            return False

        loader = GltfLoader(options=self.options)
        try:
            state = loader.load(filepath)
            player_animations = loader.generate_animations(state)
        except GltfRigError as e:
            print(f"❌ ERROR: Document rejected: {e}")
            return False

        self._print_skins(state)
        self._print_skeletons(state)
        self._print_animations(player_animations)

        self.issues = [str(w) for w in state.warnings]
        self._print_summary()
        return True

    def _print_skins(self, state):
        print(f"\n🧷 Skins: {len(state.skins)}")
        for skin_idx, skin in enumerate(state.skins):
            shared = f" (shares binds of skin {skin.shared_with})" if skin.shared_with is not None else ""
            print(f"   Skin {skin_idx}: '{skin.name}' -> skeleton {skin.skeleton}{shared}")
            print(f"      joints: {len(skin.joints_original)} original, {len(skin.joints)} expanded, "
                  f"{len(skin.non_joints)} non-joints, roots {skin.roots}")

    def _print_skeletons(self, state):
        print(f"\n🦴 Skeletons: {len(state.skeletons)}")
        for skel_idx, skeleton in enumerate(state.skeletons):
            print(f"   Skeleton {skel_idx}: {len(skeleton.bones)} bones, roots {skeleton.roots}")
            depth = {}
            for bone_idx, bone in enumerate(skeleton.bones):
                depth[bone_idx] = depth[bone.parent] + 1 if bone.parent >= 0 else 0
                indent = "      " + "  " * depth[bone_idx]
                print(f"{indent}{bone_idx}: '{bone.name}' (node {bone.node_index})")

    def _print_animations(self, player_animations):
        print(f"\n🎬 Animations: {len(player_animations)} (baked at {self.options.bake_fps} fps)")
        for player in player_animations:
            loop = " 🔁" if player.loop else ""
            print(f"   '{player.name}'{loop}: {len(player.tracks)} tracks, {player.length:.3f}s")
            for track in player.tracks:
                target = track.bone or f"node {track.node_index}"
                if track.blend_shape >= 0:
                    target += f" blend {track.blend_shape}"
                print(f"      {target} {track.target.value}: {track.key_count} keys ({track.interpolation.value})")

    def _print_summary(self):
        print("\n" + "=" * 60)
        print("📋 Analysis Summary:")

        if not self.issues:
            print("   ✅ No data quality warnings.")
        else:
            print(f"   ⚠️  {len(self.issues)} Warnings:")
            for issue in self.issues:
                print(f"      • {issue}")


def main():
    """Main entry point."""
    if len(sys.argv) not in (2, 3):
        print("Usage: python debug_gltf_rig.py <path_to_gltf_model> [bake_fps]")
        sys.exit(1)

    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    options = ImportOptions()
    if len(sys.argv) == 3:
        options = ImportOptions.from_dict({"bake_fps": sys.argv[2]})

    diagnostics = RigDiagnostics(options)
    success = diagnostics.analyze_model(sys.argv[1])
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Rebake Animations Example

Loads a skinned document, bakes every animation into fixed-rate player
tracks and writes the result next to the source as <name>_baked.glb.

Usage:
    python examples/rebake_animations.py path/to/model.glb [bake_fps]
"""

import logging
import sys
from pathlib import Path

from gltfrig.config.settings import LOG_FORMAT, LOG_LEVEL
from gltfrig.loaders import ExportOptions, GltfExporter, GltfLoader, ImportOptions

if __name__ == '__main__':
    if len(sys.argv) not in (2, 3):
        print("Usage: python examples/rebake_animations.py <model> [bake_fps]")
        sys.exit(1)

    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    source = Path(sys.argv[1])
    settings = {"bake_fps": sys.argv[2]} if len(sys.argv) == 3 else {}
    import_options = ImportOptions.from_dict(dict(settings, trimming=True, remove_immutable_tracks=True))
    export_options = ExportOptions.from_dict(settings)

    loader = GltfLoader(options=import_options)
    state = loader.load(source)
    players = loader.generate_animations(state)

    print(f"Baking {len(players)} animations at {import_options.bake_fps} fps...")
    for player in players:
        print(f"  {player.name}: {len(player.tracks)} tracks, {player.length:.3f}s")

    target = source.with_name(f"{source.stem}_baked.glb")
    GltfExporter(options=export_options).save(state, target, players)
    print(f"Wrote {target}")

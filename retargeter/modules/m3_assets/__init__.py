"""
#WHERE
    Imported by pipeline.py, cli.py and tests.

#WHAT
    Asset module (Module 3) — AssetStore capability and the ``.npz``
    implementation with in-memory import namespaces.

#INPUT
    Asset file paths.

#OUTPUT
    ImportedAsset, exported clip files.
"""

from .store import (
    AssetStore,
    ImportedAsset,
    NpzAssetStore,
    load_asset,
    save_animation,
    save_skeleton,
)
from .synthetic import build_demo_dataset, make_humanoid, make_walk_clip

__all__ = [
    'AssetStore', 'ImportedAsset', 'NpzAssetStore',
    'load_asset', 'save_animation', 'save_skeleton',
    'build_demo_dataset', 'make_humanoid', 'make_walk_clip',
]

"""
#WHERE
    Imported by every retargeter module (m1–m5), pipeline.py and tests.

#WHAT
    Shared constants, the error hierarchy and memory helpers.

#INPUT
    None (constants and small utilities).

#OUTPUT
    Exceptions, ``tracemalloc_snapshot``, ``collect_garbage``.
"""

from .errors import (
    AssetExportError,
    AssetImportError,
    ConfigError,
    RetargetError,
    SolverError,
    TopologyError,
)
from .mem_profile import collect_garbage, tracemalloc_snapshot

__all__ = [
    "AssetExportError",
    "AssetImportError",
    "ConfigError",
    "RetargetError",
    "SolverError",
    "TopologyError",
    "collect_garbage",
    "tracemalloc_snapshot",
]

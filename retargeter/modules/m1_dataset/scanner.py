"""
#WHERE
    Used by m5_sharding (worker + coordinator) and the CLI.

#WHAT
    Dataset layout helpers — lists skeleton / animation files for a subset
    in a stable order so index-based sharding is reproducible across
    processes, and owns the output naming and Retarget/ directory reset.

#INPUT
    Subset directory (``<base>/<train|val|test>``), asset file extension.

#OUTPUT
    SubsetFiles (sorted skeleton + animation paths), output file names.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import List, Optional

from retargeter.shared.constants import (
    ANIMATION_DIR,
    CHARACTER_DIR,
    PAIR_SEPARATOR,
    RETARGET_DIR,
    TRAIN_SUBSET,
)

log = logging.getLogger(__name__)


@dataclass(slots=True)
class SubsetFiles:
    skeletons: List[str] = field(default_factory=list)
    animations: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.skeletons or not self.animations


def expand_path(path: str) -> str:
    """Expand ``~`` and return an absolute, normalised path."""
    return os.path.abspath(os.path.expanduser(path))


def base_name(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def list_asset_files(directory: str, extension: str) -> List[str]:
    """All ``*.<extension>`` files directly in *directory*, sorted by name.

    A missing directory yields an empty list.
    """
    if not os.path.isdir(directory):
        log.debug("[scan] no directory %s", directory)
        return []
    suffix = "." + extension.lower().lstrip(".")
    names = sorted(
        name for name in os.listdir(directory)
        if name.lower().endswith(suffix)
        and os.path.isfile(os.path.join(directory, name))
    )
    return [os.path.join(directory, name) for name in names]


def scan_subset(subset_dir: str, extension: str) -> SubsetFiles:
    files = SubsetFiles(
        skeletons=list_asset_files(os.path.join(subset_dir, CHARACTER_DIR), extension),
        animations=list_asset_files(os.path.join(subset_dir, ANIMATION_DIR), extension),
    )
    log.info("[scan] %s: %d skeletons, %d animations",
             subset_dir, len(files.skeletons), len(files.animations))
    return files


def is_sampled_subset(subset: str) -> bool:
    """Only the train subset caps clips per skeleton; val/test pair everything."""
    return subset == TRAIN_SUBSET


def output_name(skeleton_path: str, animation_path: str, extension: str) -> str:
    return (f"{base_name(skeleton_path)}{PAIR_SEPARATOR}"
            f"{base_name(animation_path)}.{extension.lstrip('.')}")


def retarget_dir(subset_dir: str) -> str:
    return os.path.join(subset_dir, RETARGET_DIR)


def prepare_output_dir(subset_dir: str) -> Optional[str]:
    """Clear and recreate ``<subset>/Retarget``.

    Returns the directory, or ``None`` when it cannot be created (the caller
    skips the subset).
    """
    out_dir = retarget_dir(subset_dir)
    try:
        if os.path.isdir(out_dir):
            log.info("[scan] clearing existing Retarget directory: %s", out_dir)
            shutil.rmtree(out_dir)
        os.makedirs(out_dir, exist_ok=True)
    except OSError as exc:
        log.error("[scan] failed to create Retarget directory %s: %s", out_dir, exc)
        return None
    return out_dir

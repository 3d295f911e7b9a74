"""
#WHERE
    Used by pipeline.py (import / export / persist) and by tests and tooling
    that build datasets.

#WHAT
    Asset store — the seam to the 3D interchange format.  ``AssetStore`` is
    the capability the pipeline depends on; ``NpzAssetStore`` implements it
    over numpy ``.npz`` files (one skeleton per file, optionally with a bound
    clip) and keeps imported assets in named in-memory namespaces.

    Importing into a namespace first releases whatever occupied it, so a
    pair never sees objects left by the previous pair.  Two pairs running at
    the same time must use different namespaces.

    File layout (all arrays, no pickled objects):
        skeleton_name, bone_names, parents,
        ref_translations (B,3), ref_rotations (B,4), ref_scales (B,3)
      with a clip additionally:
        clip_name, fps, num_frames, track_names (K,),
        track_positions (K,F,3), track_rotations (K,F,4), track_scales (K,F,3)
      exported with a preview payload:
        preview_translations (B,3)  reference pose in component space

#INPUT
    Asset file paths, namespace names.

#OUTPUT
    ImportedAsset(skeleton, clip), exported clip files, persisted rig JSON.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import zipfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import numpy as np

from retargeter.modules.m2_skeleton.models import AnimationClip, BoneTrack, Skeleton
from retargeter.shared.constants import ASSET_EXTENSION
from retargeter.shared.errors import AssetExportError, AssetImportError

log = logging.getLogger(__name__)


@dataclass
class ImportedAsset:
    skeleton: Skeleton
    clip: Optional[AnimationClip] = None


class AssetStore(Protocol):
    extension: str

    def import_asset(self, path: str, namespace: str) -> ImportedAsset: ...

    def contents(self, namespace: str) -> List[str]: ...

    def release(self, namespace: str) -> None: ...

    def export_clip(self, clip: AnimationClip, skeleton: Skeleton, output_path: str,
                    include_preview_mesh: bool = False) -> None: ...

    def persist_json(self, namespace: str, name: str, data: dict) -> str: ...

    def persist_clip(self, namespace: str, clip: AnimationClip, skeleton: Skeleton) -> str: ...


# ── (de)serialisation ─────────────────────────────────────────────────────────

def skeleton_arrays(skeleton: Skeleton) -> Dict[str, np.ndarray]:
    return {
        "skeleton_name": np.array(skeleton.name),
        "bone_names": np.array(skeleton.bone_names, dtype=str),
        "parents": skeleton.parents.astype(np.int64),
        "ref_translations": skeleton.ref_translations,
        "ref_rotations": skeleton.ref_rotations,
        "ref_scales": skeleton.ref_scales,
    }


def clip_arrays(clip: AnimationClip) -> Dict[str, np.ndarray]:
    names = list(clip.tracks)
    f = clip.num_frames
    return {
        "clip_name": np.array(clip.name),
        "fps": np.array(float(clip.fps)),
        "num_frames": np.array(int(f)),
        "track_names": np.array(names, dtype=str),
        "track_positions": np.array([clip.tracks[n].positions for n in names]).reshape(len(names), f, 3),
        "track_rotations": np.array([clip.tracks[n].rotations for n in names]).reshape(len(names), f, 4),
        "track_scales": np.array([clip.tracks[n].scales for n in names]).reshape(len(names), f, 3),
    }


def _write_npz_atomic(path: str, arrays: Dict[str, np.ndarray]) -> None:
    """Write to a temporary file next to *path*, then rename over it."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".npz", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            np.savez(fh, **arrays)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def save_skeleton(path: str, skeleton: Skeleton) -> None:
    _write_npz_atomic(path, skeleton_arrays(skeleton))


def save_animation(path: str, skeleton: Skeleton, clip: AnimationClip) -> None:
    clip.validate()
    _write_npz_atomic(path, {**skeleton_arrays(skeleton), **clip_arrays(clip)})


def load_asset(path: str) -> ImportedAsset:
    base = os.path.splitext(os.path.basename(path))[0]
    try:
        with np.load(path, allow_pickle=False) as data:
            skeleton = Skeleton(
                name=str(data["skeleton_name"]) if "skeleton_name" in data else base,
                bone_names=[str(n) for n in data["bone_names"]],
                parents=data["parents"],
                ref_translations=data["ref_translations"],
                ref_rotations=data["ref_rotations"],
                ref_scales=data["ref_scales"],
            )
            clip = None
            if "track_names" in data:
                names = [str(n) for n in data["track_names"]]
                num_frames = int(data["num_frames"])
                for key, width in (("track_positions", 3), ("track_rotations", 4),
                                   ("track_scales", 3)):
                    shape = data[key].shape
                    if shape != (len(names), num_frames, width):
                        raise ValueError(f"{key} has shape {shape}, expected "
                                         f"{(len(names), num_frames, width)}")
                clip = AnimationClip(
                    name=str(data["clip_name"]) if "clip_name" in data else base,
                    skeleton_name=skeleton.name,
                    fps=float(data["fps"]),
                    num_frames=num_frames,
                    tracks={
                        n: BoneTrack(np.array(data["track_positions"][k], dtype=np.float64),
                                     np.array(data["track_rotations"][k], dtype=np.float64),
                                     np.array(data["track_scales"][k], dtype=np.float64))
                        for k, n in enumerate(names)
                    },
                )
                clip.validate()
    except (OSError, EOFError, KeyError, IndexError, TypeError, ValueError,
            zipfile.BadZipFile) as exc:
        raise AssetImportError(f"cannot import {path}: {exc}") from exc
    return ImportedAsset(skeleton, clip)


# ── store ─────────────────────────────────────────────────────────────────────

class NpzAssetStore:
    """AssetStore over ``.npz`` files with in-memory namespaces."""

    extension = ASSET_EXTENSION

    def __init__(self, persist_dir: Optional[str] = None) -> None:
        self.persist_dir = persist_dir
        self._namespaces: Dict[str, ImportedAsset] = {}

    def import_asset(self, path: str, namespace: str) -> ImportedAsset:
        self.release(namespace)
        asset = load_asset(path)
        self._namespaces[namespace] = asset
        log.debug("[assets] imported %s into %s (%d bones, clip=%s)", path, namespace,
                  asset.skeleton.num_bones, asset.clip.name if asset.clip else None)
        return asset

    def contents(self, namespace: str) -> List[str]:
        asset = self._namespaces.get(namespace)
        if asset is None:
            return []
        names = [asset.skeleton.name]
        if asset.clip is not None:
            names.append(asset.clip.name)
        return names

    def release(self, namespace: str) -> None:
        if self._namespaces.pop(namespace, None) is not None:
            log.debug("[assets] released %s", namespace)

    def export_clip(self, clip: AnimationClip, skeleton: Skeleton, output_path: str,
                    include_preview_mesh: bool = False) -> None:
        arrays = {**skeleton_arrays(skeleton), **clip_arrays(clip)}
        if include_preview_mesh:
            arrays["preview_translations"] = skeleton.reference_component_pose().translations
        try:
            _write_npz_atomic(output_path, arrays)
        except OSError as exc:
            raise AssetExportError(f"cannot export {output_path}: {exc}") from exc
        log.info("[assets] exported %s (%d frames, %d tracks)",
                 output_path, clip.num_frames, len(clip.tracks))

    def _persist_path(self, namespace: str, filename: str) -> str:
        if not self.persist_dir:
            raise AssetExportError("persistence requested but no persist_dir configured")
        directory = os.path.join(self.persist_dir, namespace)
        os.makedirs(directory, exist_ok=True)
        return os.path.join(directory, filename)

    def persist_json(self, namespace: str, name: str, data: dict) -> str:
        path = self._persist_path(namespace, f"{name}.json")
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        log.info("[assets] saved %s", path)
        return path

    def persist_clip(self, namespace: str, clip: AnimationClip, skeleton: Skeleton) -> str:
        path = self._persist_path(namespace, f"{clip.name}.{self.extension}")
        save_animation(path, skeleton, clip)
        log.info("[assets] saved %s", path)
        return path

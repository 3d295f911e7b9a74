"""Shared fixtures: a canonical humanoid, clip / dataset builders, and test
doubles for the asset store and the pose solver."""

import os
from typing import Dict, List, Optional

import pytest

from retargeter.modules.m2_skeleton import COMPONENT, AnimationClip, Pose, Skeleton
from retargeter.modules.m3_assets import ImportedAsset, save_animation, save_skeleton
from retargeter.modules.m3_assets.synthetic import make_humanoid, make_walk_clip
from retargeter.shared.errors import AssetImportError, SolverError

make_clip = make_walk_clip


def make_dataset(base, subset: str, skeletons: Dict[str, Skeleton],
                 animations: Dict[str, AnimationClip], source: Optional[Skeleton] = None) -> str:
    """Write ``<base>/<subset>/Character`` and ``Animation`` npz files."""
    subset_dir = os.path.join(str(base), subset)
    source = source or make_humanoid("Source")
    for name, skel in skeletons.items():
        save_skeleton(os.path.join(subset_dir, "Character", f"{name}.npz"), skel)
    for name, clip in animations.items():
        save_animation(os.path.join(subset_dir, "Animation", f"{name}.npz"), source, clip)
    return subset_dir


class MemoryAssetStore:
    """In-memory AssetStore: 'files' are dict keys, exports are kept in memory."""

    extension = "npz"

    def __init__(self) -> None:
        self.files: Dict[str, ImportedAsset] = {}
        self.exported: Dict[str, dict] = {}
        self.persisted: Dict[str, object] = {}
        self.namespaces: Dict[str, ImportedAsset] = {}
        self.seen_at_import: List[tuple] = []   # (namespace, contents before import)

    def add(self, path: str, skeleton: Skeleton, clip: Optional[AnimationClip] = None) -> str:
        self.files[path] = ImportedAsset(skeleton, clip)
        return path

    def import_asset(self, path: str, namespace: str) -> ImportedAsset:
        self.seen_at_import.append((namespace, self.contents(namespace)))
        self.release(namespace)
        if path not in self.files:
            raise AssetImportError(f"cannot import {path}")
        src = self.files[path]
        asset = ImportedAsset(src.skeleton,
                              src.clip.duplicate(src.clip.name) if src.clip else None)
        self.namespaces[namespace] = asset
        return asset

    def contents(self, namespace: str) -> List[str]:
        asset = self.namespaces.get(namespace)
        if asset is None:
            return []
        return [asset.skeleton.name] + ([asset.clip.name] if asset.clip else [])

    def release(self, namespace: str) -> None:
        self.namespaces.pop(namespace, None)

    def export_clip(self, clip, skeleton, output_path, include_preview_mesh=False) -> None:
        self.exported[output_path] = {"clip": clip, "skeleton": skeleton,
                                      "preview": include_preview_mesh}

    def persist_json(self, namespace, name, data) -> str:
        key = f"{namespace}/{name}.json"
        self.persisted[key] = data
        return key

    def persist_clip(self, namespace, clip, skeleton) -> str:
        key = f"{namespace}/{clip.name}.npz"
        self.persisted[key] = clip
        return key


class FixedPoseSession:
    def __init__(self, target: Skeleton, fail_at: Optional[int] = None) -> None:
        self.pose = target.reference_component_pose()
        self.fail_at = fail_at
        self.delta_times: List[float] = []
        self.source_poses: List[Pose] = []

    def scale_source_pose(self, pose: Pose) -> Pose:
        return pose

    def run(self, source_pose: Pose, delta_time: float) -> Pose:
        if self.fail_at is not None and len(self.delta_times) == self.fail_at:
            raise SolverError("solver diverged")
        assert source_pose.space == COMPONENT
        self.delta_times.append(delta_time)
        self.source_poses.append(source_pose)
        return self.pose.copy()


class FixedPoseSolver:
    """PoseSolver double: always answers with the target reference pose."""

    def __init__(self, fail_at: Optional[int] = None) -> None:
        self.fail_at = fail_at
        self.sessions: List[FixedPoseSession] = []

    def create_session(self, source, target, profile) -> FixedPoseSession:
        session = FixedPoseSession(target, self.fail_at)
        self.sessions.append(session)
        return session


@pytest.fixture
def humanoid():
    return make_humanoid()


@pytest.fixture
def memory_store():
    return MemoryAssetStore()


@pytest.fixture
def fixed_solver():
    return FixedPoseSolver()

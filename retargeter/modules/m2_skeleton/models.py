"""
#WHERE
    Used by chains.py, m3_assets (load/save), m4_solver, pipeline.py, tests.

#WHAT
    Core data model — Skeleton (bone hierarchy + reference pose), Pose,
    per-bone key tracks, AnimationClip bound to a skeleton, and the rig
    description types (BoneChain, RetargetDefinition).

#INPUT
    Bone names, parent indices, numpy transform arrays.

#OUTPUT
    Dataclass instances; pose evaluation in local or component space.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .transforms import (
    component_to_local,
    depth_levels,
    identity_quats,
    local_to_component,
    normalize_quats,
)

LOCAL = "local"
COMPONENT = "component"


@dataclass
class Pose:
    translations: np.ndarray   # (B, 3)
    rotations: np.ndarray      # (B, 4) [x, y, z, w]
    scales: np.ndarray         # (B, 3)
    space: str = LOCAL

    @property
    def num_bones(self) -> int:
        return len(self.translations)

    def copy(self) -> "Pose":
        return Pose(self.translations.copy(), self.rotations.copy(),
                    self.scales.copy(), self.space)


@dataclass
class Skeleton:
    name: str
    bone_names: List[str]
    parents: np.ndarray                 # (B,) int, -1 for a root
    ref_translations: np.ndarray        # (B, 3) local reference pose
    ref_rotations: np.ndarray           # (B, 4)
    ref_scales: np.ndarray              # (B, 3)
    _children: List[List[int]] = field(init=False, repr=False, default_factory=list)
    _levels: List[np.ndarray] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self) -> None:
        self.bone_names = [str(n) for n in self.bone_names]
        self.parents = np.asarray(self.parents, dtype=np.int64).reshape(-1)
        n = len(self.bone_names)
        self.ref_translations = np.asarray(self.ref_translations, dtype=np.float64).reshape(n, 3)
        self.ref_rotations = normalize_quats(np.asarray(self.ref_rotations).reshape(n, 4))
        self.ref_scales = np.asarray(self.ref_scales, dtype=np.float64).reshape(n, 3)
        self.validate()
        self._children = [[] for _ in range(n)]
        for i, p in enumerate(self.parents):
            if p >= 0:
                self._children[int(p)].append(i)
        self._levels = depth_levels(self.parents)

    @classmethod
    def from_hierarchy(cls, name: str, bones: List[tuple]) -> "Skeleton":
        """Build from ``(bone_name, parent_name | None, (tx, ty, tz))`` rows.

        Rotations start at identity and scales at one.
        """
        names = [b[0] for b in bones]
        index = {b: i for i, b in enumerate(names)}
        parents = [index[b[1]] if b[1] is not None else -1 for b in bones]
        offsets = np.array([b[2] for b in bones], dtype=np.float64).reshape(-1, 3)
        return cls(name, names, np.array(parents), offsets,
                   identity_quats(len(names)), np.ones((len(names), 3)))

    def validate(self) -> None:
        n = len(self.bone_names)
        if len(self.parents) != n:
            raise ValueError(f"{self.name}: {len(self.parents)} parents for {n} bones")
        if n == 0:
            raise ValueError(f"{self.name}: skeleton has no bones")
        bad = [i for i, p in enumerate(self.parents) if p < -1 or p >= n or p == i]
        if bad:
            raise ValueError(f"{self.name}: invalid parent for bones {bad}")
        if not np.any(self.parents < 0):
            raise ValueError(f"{self.name}: no root bone")
        for i in range(n):
            j, steps = i, 0
            while j >= 0:
                j = int(self.parents[j])
                steps += 1
                if steps > n:
                    raise ValueError(f"{self.name}: hierarchy cycle through "
                                     f"'{self.bone_names[i]}'")

    @property
    def num_bones(self) -> int:
        return len(self.bone_names)

    @property
    def levels(self) -> List[np.ndarray]:
        """Bone indices grouped by depth, roots first."""
        return self._levels

    def index_of(self, bone_name: str) -> int:
        """Exact-name lookup; -1 when absent."""
        try:
            return self.bone_names.index(bone_name)
        except ValueError:
            return -1

    def parent_of(self, index: int) -> Optional[int]:
        p = int(self.parents[index])
        return p if p >= 0 else None

    def children(self, index: int) -> List[int]:
        return list(self._children[index])

    def leaves(self) -> List[int]:
        return [i for i, c in enumerate(self._children) if not c]

    def is_ancestor(self, ancestor: int, index: int) -> bool:
        j = index
        while j >= 0:
            if j == ancestor:
                return True
            j = int(self.parents[j])
        return False

    def path_to_ancestor(self, index: int, ancestor: int) -> List[int]:
        """Bones from *index* up to and including *ancestor* (tip first)."""
        path = []
        j = index
        while j >= 0:
            path.append(j)
            if j == ancestor:
                return path
            j = int(self.parents[j])
        raise ValueError(f"{self.name}: '{self.bone_names[ancestor]}' is not an "
                         f"ancestor of '{self.bone_names[index]}'")

    def reference_pose(self) -> Pose:
        return Pose(self.ref_translations.copy(), self.ref_rotations.copy(),
                    self.ref_scales.copy(), LOCAL)

    def reference_component_pose(self) -> Pose:
        return self.to_component(self.reference_pose())

    def to_component(self, pose: Pose) -> Pose:
        if pose.space == COMPONENT:
            return pose
        t, r, s = local_to_component(self.parents, self._levels,
                                     pose.translations, pose.rotations, pose.scales)
        return Pose(t, r, s, COMPONENT)

    def to_local(self, pose: Pose) -> Pose:
        if pose.space == LOCAL:
            return pose
        t, r, s = component_to_local(self.parents, pose.translations,
                                     pose.rotations, pose.scales)
        return Pose(t, r, s, LOCAL)


@dataclass
class BoneTrack:
    positions: np.ndarray   # (F, 3)
    rotations: np.ndarray   # (F, 4)
    scales: np.ndarray      # (F, 3)

    @classmethod
    def empty(cls, num_frames: int) -> "BoneTrack":
        return cls(np.zeros((num_frames, 3)), identity_quats(num_frames),
                   np.ones((num_frames, 3)))

    @property
    def num_frames(self) -> int:
        return len(self.positions)


@dataclass
class AnimationClip:
    name: str
    skeleton_name: str
    fps: float
    num_frames: int
    tracks: Dict[str, BoneTrack] = field(default_factory=dict)

    def validate(self) -> None:
        if self.fps <= 0:
            raise ValueError(f"{self.name}: fps must be positive, got {self.fps}")
        for bone, track in self.tracks.items():
            lengths = {len(track.positions), len(track.rotations), len(track.scales)}
            if lengths != {self.num_frames}:
                raise ValueError(f"{self.name}: track '{bone}' has {sorted(lengths)} "
                                 f"keys, expected {self.num_frames}")

    @property
    def duration(self) -> float:
        return self.num_frames / self.fps

    def time_at_frame(self, frame: int) -> float:
        return frame / self.fps

    def delta_time(self, frame: int) -> float:
        """Seconds since the previous frame; frame 0 uses its own timestamp."""
        if frame == 0:
            return self.time_at_frame(0)
        return self.time_at_frame(frame) - self.time_at_frame(frame - 1)

    def track_names(self) -> List[str]:
        return list(self.tracks)

    def local_pose_at_frame(self, skeleton: Skeleton, frame: int) -> Pose:
        """Keys for animated bones, reference pose for the rest."""
        pose = skeleton.reference_pose()
        for i, bone in enumerate(skeleton.bone_names):
            track = self.tracks.get(bone)
            if track is None:
                continue
            pose.translations[i] = track.positions[frame]
            pose.rotations[i] = track.rotations[frame]
            pose.scales[i] = track.scales[frame]
        pose.rotations = normalize_quats(pose.rotations)
        return pose

    def component_pose_at_frame(self, skeleton: Skeleton, frame: int) -> Pose:
        return skeleton.to_component(self.local_pose_at_frame(skeleton, frame))

    def duplicate(self, name: str) -> "AnimationClip":
        return AnimationClip(name, self.skeleton_name, self.fps, self.num_frames,
                             copy.deepcopy(self.tracks))

    def update_with_skeleton(self, skeleton: Skeleton) -> None:
        """Rebind to *skeleton*, dropping tracks for bones it does not have."""
        keep = set(skeleton.bone_names)
        self.tracks = {b: t for b, t in self.tracks.items() if b in keep}
        self.skeleton_name = skeleton.name

    def add_bone_track(self, bone_name: str) -> BoneTrack:
        if bone_name in self.tracks:
            raise ValueError(f"{self.name}: track '{bone_name}' already exists")
        track = BoneTrack.empty(self.num_frames)
        self.tracks[bone_name] = track
        return track

    def set_bone_track_keys(self, bone_name: str, positions: np.ndarray,
                            rotations: np.ndarray, scales: np.ndarray) -> None:
        if bone_name not in self.tracks:
            raise ValueError(f"{self.name}: no track for bone '{bone_name}'")
        for label, keys in (("position", positions), ("rotation", rotations),
                            ("scale", scales)):
            if len(keys) != self.num_frames:
                raise ValueError(f"{self.name}: {len(keys)} {label} keys for "
                                 f"'{bone_name}', expected {self.num_frames}")
        self.tracks[bone_name] = BoneTrack(np.array(positions, dtype=np.float64),
                                           np.array(rotations, dtype=np.float64),
                                           np.array(scales, dtype=np.float64))


@dataclass(frozen=True)
class BoneChain:
    name: str
    start_bone: str   # root-side canonical joint
    end_bone: str     # tip-side bone, a descendant of start_bone


@dataclass
class RetargetDefinition:
    skeleton_name: str
    root_bone: str
    chains: Dict[str, BoneChain] = field(default_factory=dict)

    def add_bone_chain(self, name: str, start_bone: str, end_bone: str) -> None:
        self.chains[name] = BoneChain(name, start_bone, end_bone)

    def to_dict(self) -> dict:
        return {
            "skeleton": self.skeleton_name,
            "root_bone": self.root_bone,
            "chains": {n: [c.start_bone, c.end_bone] for n, c in self.chains.items()},
        }

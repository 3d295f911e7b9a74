"""
#WHERE
    Called by pipeline.py once per frame (through a SolverSession created
    fresh for every pair).

#WHAT
    Pose solver capability plus the default chain-transfer implementation.

    ``ChainTransferSolver`` drives the target from the source with direct
    chain-to-chain rotation transfer:

      * bones of a chain are matched proportionally along the chain length
        (target bone k of n -> source bone round(k * (m-1) / (n-1)))
      * a matched bone takes the source bone's component-space rotation
        delta from its reference pose:
            R_t = (R_s · R_s_ref⁻¹) · R_t_ref
      * unmatched bones keep their reference local transform
      * the root translation is the source root's offset from its reference,
        scaled by the ratio of the two reference root heights

    Target proportions are preserved because translations are rebuilt from
    the target reference pose.  No IK.

#INPUT
    Source / target Skeleton, RetargetProfile, source component pose, delta time.

#OUTPUT
    Target component-space Pose.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol

import numpy as np
from scipy.spatial.transform import Rotation as R

from retargeter.modules.m2_skeleton.models import COMPONENT, Pose, Skeleton
from retargeter.shared.errors import SolverError

from .profile import OP_CHAIN_FK, OP_ROOT_MOTION, RetargetProfile

log = logging.getLogger(__name__)

_EPS = 1e-8


class SolverSession(Protocol):
    def scale_source_pose(self, pose: Pose) -> Pose: ...

    def run(self, source_pose: Pose, delta_time: float) -> Pose: ...


class PoseSolver(Protocol):
    def create_session(self, source: Skeleton, target: Skeleton,
                       profile: RetargetProfile) -> SolverSession: ...


def _chain_path(skeleton: Skeleton, start_bone: str, end_bone: str) -> List[int]:
    start, end = skeleton.index_of(start_bone), skeleton.index_of(end_bone)
    if start < 0 or end < 0:
        raise SolverError(f"{skeleton.name}: chain bones {start_bone}/{end_bone} not found")
    try:
        return list(reversed(skeleton.path_to_ancestor(end, start)))
    except ValueError as exc:
        raise SolverError(str(exc)) from exc


class ChainTransferSession:
    """Per-pair solver state; discard after the pair."""

    def __init__(self, source: Skeleton, target: Skeleton, profile: RetargetProfile) -> None:
        self.source = source
        self.target = target
        self.profile = profile
        self.frames_run = 0
        self.elapsed = 0.0

        self._src_ref = source.reference_component_pose()
        self._tgt_ref = target.reference_component_pose()
        self._tgt_local = target.reference_pose()

        self.bone_map: Dict[int, int] = {}   # target index -> source index
        if profile.is_enabled(OP_CHAIN_FK):
            for name in profile.matched_chains():
                src_chain = profile.source.chains[name]
                tgt_chain = profile.target.chains[name]
                src_path = _chain_path(source, src_chain.start_bone, src_chain.end_bone)
                tgt_path = _chain_path(target, tgt_chain.start_bone, tgt_chain.end_bone)
                n, m = len(tgt_path), len(src_path)
                for k, t_idx in enumerate(tgt_path):
                    s_k = 0 if n == 1 else int(round(k * (m - 1) / (n - 1)))
                    self.bone_map[t_idx] = src_path[s_k]

        self._src_root = source.index_of(profile.source.root_bone)
        self._tgt_root = target.index_of(profile.target.root_bone)
        if self._src_root < 0 or self._tgt_root < 0:
            raise SolverError(f"root bone missing: {profile.source.root_bone} / "
                              f"{profile.target.root_bone}")
        self._root_motion = profile.is_enabled(OP_ROOT_MOTION)
        if self._root_motion:
            self.bone_map[self._tgt_root] = self._src_root

        src_h = np.linalg.norm(self._src_ref.translations[self._src_root])
        tgt_h = np.linalg.norm(self._tgt_ref.translations[self._tgt_root])
        self.height_ratio = float(tgt_h / src_h) if src_h > _EPS else 1.0

        self._t_idx = np.array(sorted(self.bone_map), dtype=np.int64)
        self._s_idx = np.array([self.bone_map[t] for t in self._t_idx], dtype=np.int64)
        self._mapped = np.zeros(target.num_bones, dtype=bool)
        self._mapped[self._t_idx] = True
        log.debug("[solver] %s -> %s: %d driven bones, height ratio %.3f",
                  source.name, target.name, len(self._t_idx), self.height_ratio)

    def scale_source_pose(self, pose: Pose) -> Pose:
        scale = self.profile.source_scale
        if np.isclose(scale, 1.0):
            return pose
        out = pose.copy()
        out.translations = out.translations * scale
        return out

    def run(self, source_pose: Pose, delta_time: float) -> Pose:
        if source_pose.space != COMPONENT:
            raise SolverError("source pose must be in component space")
        if source_pose.num_bones != self.source.num_bones:
            raise SolverError(f"source pose has {source_pose.num_bones} bones, "
                              f"skeleton {self.source.name} has {self.source.num_bones}")
        if delta_time < 0:
            raise SolverError(f"negative delta time {delta_time}")
        if not (np.all(np.isfinite(source_pose.translations))
                and np.all(np.isfinite(source_pose.rotations))):
            raise SolverError("source pose contains non-finite values")

        tgt = self.target
        driven = self._tgt_ref.rotations.copy()
        if self._t_idx.size:
            delta = (R.from_quat(source_pose.rotations[self._s_idx])
                     * R.from_quat(self._src_ref.rotations[self._s_idx]).inv())
            driven[self._t_idx] = (delta * R.from_quat(self._tgt_ref.rotations[self._t_idx])).as_quat()

        ct = self._tgt_ref.translations.copy()
        cr = np.where(self._mapped[:, None], driven, self._tgt_ref.rotations)
        cs = self._tgt_ref.scales.copy()

        root_pos = None
        if self._root_motion:
            offset = (source_pose.translations[self._src_root]
                      - self._src_ref.translations[self._src_root])
            root_pos = self._tgt_ref.translations[self._tgt_root] + offset * self.height_ratio
            ct[self._tgt_root] = root_pos

        lt, lr, ls = self._tgt_local.translations, self._tgt_local.rotations, self._tgt_local.scales
        for level in tgt.levels[1:]:
            par = tgt.parents[level]
            rp = R.from_quat(cr[par])
            ct[level] = ct[par] + rp.apply(cs[par] * lt[level])
            inherited = (rp * R.from_quat(lr[level])).as_quat()
            cr[level] = np.where(self._mapped[level][:, None], driven[level], inherited)
            cs[level] = cs[par] * ls[level]
            # the retarget root may sit below a scene root
            if root_pos is not None and self._tgt_root in level:
                ct[self._tgt_root] = root_pos

        self.frames_run += 1
        self.elapsed += delta_time
        return Pose(ct, cr, cs, COMPONENT)


class ChainTransferSolver:
    """PoseSolver doing direct chain-to-chain transfer only."""

    def create_session(self, source: Skeleton, target: Skeleton,
                       profile: RetargetProfile) -> ChainTransferSession:
        return ChainTransferSession(source, target, profile)

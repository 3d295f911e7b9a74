"""
#WHERE
    Called by m5_sharding (worker loop), cli.py (``pair`` command) and tests.

#WHAT
    Pair retargeting pipeline: one source animation + one target skeleton →
    one clip on the target skeleton.

        import → rig build → profile build → per-frame transfer
               → commit → export → (persist) → cleanup

    Import, rig, profile, solver and export failures end the pair with a
    failed PairResult; they never escape into the batch.  Cleanup always
    runs, so nothing from one pair is visible to the next.

#INPUT
    RetargetJob(animation_path, skeleton_path, output_path), RetargetConfig,
    an AssetStore and a PoseSolver.

#OUTPUT
    PairResult; the exported clip file on success.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from retargeter.modules.m2_skeleton import (
    AnimationClip,
    RetargetDefinition,
    Skeleton,
    apply_uniform_scale,
    build_retarget_definition,
    normalize_quats,
)
from retargeter.modules.m3_assets import AssetStore
from retargeter.modules.m4_solver import PoseSolver, RetargetProfile, build_retarget_profile
from retargeter.shared.constants import (
    DEFAULT_NAMESPACE,
    DEFAULT_PERSIST_DIR,
    MAX_ANIMATIONS_PER_SKELETON,
    OUTPUT_SUFFIX,
    RETARGET_ROOT_BONE,
)
from retargeter.shared.errors import (
    AssetExportError,
    AssetImportError,
    RetargetError,
    SolverError,
    TopologyError,
)
from retargeter.shared.mem_profile import collect_garbage

log = logging.getLogger(__name__)


@dataclass
class RetargetConfig:
    persist: bool = False                 # also save rigs / profile / clip under persist_dir
    persist_dir: str = DEFAULT_PERSIST_DIR
    uniform_scale: float = 1.0            # translation scale for input poses and output keys
    unattended: bool = True               # batch mode: no preview mesh, gc after each pair
    namespace: str = DEFAULT_NAMESPACE    # working import namespace, one per concurrent pair
    max_animations: int = MAX_ANIMATIONS_PER_SKELETON
    trace_memory: bool = False


@dataclass(frozen=True)
class RetargetJob:
    animation_path: str
    skeleton_path: str
    output_path: str


@dataclass
class PairResult:
    job: RetargetJob
    ok: bool
    stage: str
    error: Optional[RetargetError] = None
    num_frames: int = 0
    seconds: float = 0.0

    @property
    def topology_role(self) -> Optional[str]:
        """'source' / 'target' when the pair failed on skeleton topology."""
        if isinstance(self.error, TopologyError):
            return self.error.role
        return None


@dataclass
class _PairState:
    source_skeleton: Optional[Skeleton] = None
    source_clip: Optional[AnimationClip] = None
    target_skeleton: Optional[Skeleton] = None
    source_rig: Optional[RetargetDefinition] = None
    target_rig: Optional[RetargetDefinition] = None
    profile: Optional[RetargetProfile] = None
    output_clip: Optional[AnimationClip] = None
    tracks: dict = field(default_factory=dict)


class PairRetargeter:
    """Retargets (animation, skeleton) pairs one at a time."""

    def __init__(self, store: AssetStore, solver: PoseSolver,
                 config: RetargetConfig | None = None) -> None:
        self.store = store
        self.solver = solver
        self.config = config or RetargetConfig()

    @property
    def input_namespace(self) -> str:
        return f"{self.config.namespace}/input"

    @property
    def target_namespace(self) -> str:
        return f"{self.config.namespace}/target"

    def retarget_pair(self, job: RetargetJob) -> PairResult:
        state = _PairState()
        stage = "import"
        t0 = time.time()
        log.info("[pair] %s -> %s", job.animation_path, job.output_path)
        try:
            self._import(job, state)
            stage = "rig"
            self._build_rigs(state)
            stage = "profile"
            state.profile = build_retarget_profile(state.source_rig, state.target_rig)
            stage = "transfer"
            self._transfer(state)
            stage = "commit"
            self._commit(state)
            stage = "export"
            self.store.export_clip(state.output_clip, state.target_skeleton, job.output_path,
                                   include_preview_mesh=not self.config.unattended)
            if self.config.persist:
                stage = "persist"
                self._persist(state)
        except TopologyError as exc:
            log.warning("[pair] skipped (%s skeleton): %s", exc.role, exc)
            return PairResult(job, False, stage, exc, seconds=time.time() - t0)
        except RetargetError as exc:
            log.error("[pair] failed at %s: %s", stage, exc)
            return PairResult(job, False, stage, exc, seconds=time.time() - t0)
        finally:
            num_frames = state.source_clip.num_frames if state.source_clip else 0
            self._cleanup(state)

        seconds = time.time() - t0
        log.info("[pair] done: %d frames in %.2fs", num_frames, seconds)
        return PairResult(job, True, "done", None, num_frames, seconds)

    # ── stages ───────────────────────────────────────────────────────────

    def _import(self, job: RetargetJob, state: _PairState) -> None:
        # release first so a failed import leaves nothing behind
        self.store.release(self.input_namespace)
        self.store.release(self.target_namespace)

        source = self.store.import_asset(job.animation_path, self.input_namespace)
        if source.clip is None:
            raise AssetImportError(f"no animation clip in {job.animation_path}")
        target = self.store.import_asset(job.skeleton_path, self.target_namespace)

        state.source_skeleton, state.source_clip = source.skeleton, source.clip
        state.target_skeleton = target.skeleton
        log.debug("[pair] imported clip %s (%d frames @ %.1f fps), target %s (%d bones)",
                  source.clip.name, source.clip.num_frames, source.clip.fps,
                  target.skeleton.name, target.skeleton.num_bones)

    def _build_rigs(self, state: _PairState) -> None:
        for role in ("source", "target"):
            skeleton = state.source_skeleton if role == "source" else state.target_skeleton
            try:
                rig = build_retarget_definition(skeleton, RETARGET_ROOT_BONE)
            except TopologyError as exc:
                exc.role = role
                raise
            if role == "source":
                state.source_rig = rig
            else:
                state.target_rig = rig

    def _transfer(self, state: _PairState) -> None:
        src, tgt, clip = state.source_skeleton, state.target_skeleton, state.source_clip
        n, b = clip.num_frames, tgt.num_bones
        positions = np.zeros((b, n, 3))
        rotations = np.zeros((b, n, 4))
        scales = np.ones((b, n, 3))

        session = self.solver.create_session(src, tgt, state.profile)
        scale = self.config.uniform_scale
        for frame in range(n):
            pose = clip.component_pose_at_frame(src, frame)
            pose.translations, pose.scales = apply_uniform_scale(
                pose.translations, pose.scales, scale)
            pose = session.scale_source_pose(pose)
            try:
                target_pose = session.run(pose, clip.delta_time(frame))
            except (ValueError, FloatingPointError) as exc:
                raise SolverError(f"frame {frame}: {exc}") from exc
            local = tgt.to_local(target_pose)
            positions[:, frame] = local.translations
            rotations[:, frame] = normalize_quats(local.rotations)
            scales[:, frame] = local.scales

        state.tracks = {"positions": positions, "rotations": rotations, "scales": scales}

    def _commit(self, state: _PairState) -> None:
        tgt, clip = state.target_skeleton, state.source_clip
        out = clip.duplicate(f"{clip.name}{OUTPUT_SUFFIX}")
        out.update_with_skeleton(tgt)

        scale = self.config.uniform_scale
        existing = set(out.track_names())
        for i, bone in enumerate(tgt.bone_names):
            if bone not in existing:
                out.add_bone_track(bone)
            positions = state.tracks["positions"][i]
            if not np.isclose(scale, 1.0):
                positions = positions * scale
            out.set_bone_track_keys(bone, positions, state.tracks["rotations"][i],
                                    state.tracks["scales"][i])
        state.output_clip = out

    def _persist(self, state: _PairState) -> None:
        ns = self.config.namespace
        try:
            self.store.persist_json(ns, f"IK_{state.source_skeleton.name}_input",
                                    state.source_rig.to_dict())
            self.store.persist_json(ns, f"IK_{state.target_skeleton.name}_target",
                                    state.target_rig.to_dict())
            self.store.persist_json(ns, f"RTG_{state.source_skeleton.name}",
                                    state.profile.to_dict())
            self.store.persist_clip(ns, state.output_clip, state.target_skeleton)
        except OSError as exc:
            raise AssetExportError(f"persist failed: {exc}") from exc

    def _cleanup(self, state: _PairState) -> None:
        self.store.release(self.input_namespace)
        self.store.release(self.target_namespace)
        state.source_skeleton = state.source_clip = state.target_skeleton = None
        state.source_rig = state.target_rig = None
        state.profile = None
        state.output_clip = None
        state.tracks = {}
        if self.config.unattended:
            collect_garbage("pair")

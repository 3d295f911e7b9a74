"""
Shard arithmetic: which skeletons a worker owns, which seed it samples with,
and the ordered pair jobs that follow from both.

Skeletons are striped round-robin (worker w owns w, w+W, w+2W, ...) over the
sorted skeleton list, so the union over all workers covers every index exactly
once.  Seeds depend only on (subset, worker index, base seed) and the
skeleton index, never on process history.
"""

from __future__ import annotations

import logging
import os
import zlib
from dataclasses import dataclass
from typing import List, Tuple

from retargeter.modules.m1_dataset import (
    SubsetFiles,
    is_sampled_subset,
    output_name,
    random_subset,
)
from retargeter.pipeline import RetargetJob
from retargeter.shared.constants import (
    MAX_ANIMATIONS_PER_SKELETON,
    SUBSET_HASH_MODULO,
    WORKER_SEED_STRIDE,
)

log = logging.getLogger(__name__)


def validate_num_workers(num_workers: int) -> int:
    if num_workers < 1:
        log.warning("[shard] worker count %d is invalid, using 1", num_workers)
        return 1
    return int(num_workers)


def subset_hash(subset: str) -> int:
    """Process-independent hash of a subset name (CRC32 of the lower-cased name)."""
    return zlib.crc32(subset.lower().encode("utf-8")) & 0xFFFFFFFF


def worker_seed(subset: str, worker_index: int, base_seed: int) -> int:
    return (base_seed + worker_index * WORKER_SEED_STRIDE
            + subset_hash(subset) % SUBSET_HASH_MODULO)


@dataclass(frozen=True)
class WorkerShard:
    worker_index: int
    num_workers: int
    seed: int

    def __post_init__(self) -> None:
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")
        if not 0 <= self.worker_index < self.num_workers:
            raise ValueError(f"worker_index {self.worker_index} outside [0, {self.num_workers})")

    @classmethod
    def for_subset(cls, subset: str, worker_index: int, num_workers: int,
                   base_seed: int) -> "WorkerShard":
        return cls(worker_index, num_workers, worker_seed(subset, worker_index, base_seed))

    def indices(self, num_skeletons: int) -> range:
        return range(self.worker_index, num_skeletons, self.num_workers)

    def skeleton_seed(self, skeleton_index: int) -> int:
        return self.seed + skeleton_index


def build_jobs(subset: str, files: SubsetFiles, out_dir: str, shard: WorkerShard,
               extension: str,
               max_animations: int = MAX_ANIMATIONS_PER_SKELETON,
               ) -> List[Tuple[int, List[RetargetJob]]]:
    """Ordered ``(skeleton_index, jobs)`` for every skeleton *shard* owns.

    Train skeletons get a seeded sample of at most *max_animations* clips;
    val/test skeletons are paired with every clip.  Jobs within a skeleton
    follow the (sampled) animation list order.
    """
    sampled = is_sampled_subset(subset)
    plan: List[Tuple[int, List[RetargetJob]]] = []
    for idx in shard.indices(len(files.skeletons)):
        skeleton_path = files.skeletons[idx]
        if sampled:
            count = min(max_animations, len(files.animations))
            animations = random_subset(files.animations, count, shard.skeleton_seed(idx))
        else:
            animations = list(files.animations)
        jobs = [
            RetargetJob(animation_path=anim,
                        skeleton_path=skeleton_path,
                        output_path=os.path.join(out_dir, output_name(skeleton_path, anim, extension)))
            for anim in animations
        ]
        plan.append((idx, jobs))
    return plan

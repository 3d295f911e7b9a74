"""
#WHERE
    Called by cli.py (``worker`` and ``all --in-process``) and tests.

#WHAT
    Single-process worker: retargets every pair of the skeletons one shard
    owns, skeletons in round-robin order and clips in list order.

    A target skeleton whose topology cannot be rigged is skipped as a whole;
    any other pair failure skips only that pair.

#INPUT
    Dataset base dir, subset name, WorkerShard, PairRetargeter.

#OUTPUT
    WorkerStats; one exported file per successful pair under <subset>/Retarget.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from tqdm import tqdm

from retargeter.modules.m1_dataset import base_name, prepare_output_dir, retarget_dir, scan_subset
from retargeter.pipeline import PairRetargeter
from retargeter.shared.constants import SUBSETS
from retargeter.shared.mem_profile import tracemalloc_snapshot

from .sharding import WorkerShard, build_jobs, validate_num_workers

log = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    subset: str
    worker_index: int
    processed: List[int] = field(default_factory=list)         # skeleton indices, in order
    skipped_skeletons: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    pairs_ok: int = 0
    pairs_failed: int = 0

    @property
    def pairs_total(self) -> int:
        return self.pairs_ok + self.pairs_failed


def process_subset(base_dir: str, subset: str, shard: WorkerShard,
                   retargeter: PairRetargeter,
                   show_progress: Optional[bool] = None) -> WorkerStats:
    stats = WorkerStats(subset, shard.worker_index)
    subset_dir = os.path.join(base_dir, subset)
    if not os.path.isdir(subset_dir):
        log.warning("[shard] directory does not exist, skipping: %s", subset_dir)
        return stats

    extension = retargeter.store.extension
    files = scan_subset(subset_dir, extension)
    if files.is_empty:
        log.info("[shard] nothing to do in %s", subset_dir)
        return stats

    cfg = retargeter.config
    plan = build_jobs(subset, files, retarget_dir(subset_dir), shard, extension,
                      cfg.max_animations)
    log.info("[shard] worker %d/%d seed %d: %d of %d skeletons in %s",
             shard.worker_index, shard.num_workers, shard.seed,
             len(plan), len(files.skeletons), subset)

    if show_progress is None:
        show_progress = sys.stderr.isatty()
    for idx, jobs in tqdm(plan, desc=f"{subset} w{shard.worker_index}", unit="skel",
                          disable=not show_progress):
        name = base_name(files.skeletons[idx])
        log.info("[shard] worker %d: skeleton %d/%d: %s (%d clips)",
                 shard.worker_index, idx + 1, len(files.skeletons), name, len(jobs))
        stats.processed.append(idx)
        with tracemalloc_snapshot(f"skeleton {name}", enabled=cfg.trace_memory):
            _run_skeleton(name, jobs, retargeter, stats)

    log.info("[shard] worker %d done with %s: %d ok, %d failed, %d skeletons skipped",
             shard.worker_index, subset, stats.pairs_ok, stats.pairs_failed,
             len(stats.skipped_skeletons))
    return stats


def _run_skeleton(name: str, jobs, retargeter: PairRetargeter, stats: WorkerStats) -> None:
    for job in jobs:
        try:
            result = retargeter.retarget_pair(job)
        except Exception:
            log.exception("[shard] unexpected failure on %s", job.animation_path)
            stats.pairs_failed += 1
            continue

        if result.ok:
            stats.pairs_ok += 1
            stats.outputs.append(job.output_path)
            continue

        stats.pairs_failed += 1
        if result.topology_role == "target":
            log.warning("[shard] skipping skeleton %s: %s", name, result.error)
            stats.skipped_skeletons.append(name)
            return


def run_in_process(base_dir: str, base_seed: int, num_workers: int,
                   retargeter: PairRetargeter,
                   show_progress: Optional[bool] = None) -> List[WorkerStats]:
    """Every subset, every shard, sequentially in this process."""
    num_workers = validate_num_workers(num_workers)
    results: List[WorkerStats] = []
    for subset in SUBSETS:
        subset_dir = os.path.join(base_dir, subset)
        if not os.path.isdir(subset_dir):
            log.warning("[shard] directory does not exist, skipping: %s", subset_dir)
            continue
        if prepare_output_dir(subset_dir) is None:
            continue
        for w in range(num_workers):
            shard = WorkerShard.for_subset(subset, w, num_workers, base_seed)
            results.append(process_subset(base_dir, subset, shard, retargeter, show_progress))
    log.info("[shard] all subsets processed: %d pairs ok, %d failed",
             sum(r.pairs_ok for r in results), sum(r.pairs_failed for r in results))
    return results

"""
#WHERE
    Called by cli.py (``all`` without ``--in-process``).

#WHAT
    Multi-process coordinator.  Per subset: clear <subset>/Retarget, launch one
    ``python -m retargeter worker`` process per shard with its output going to
    ``<log_dir>/worker_<subset>_<i>.log``, then wait for every process.

    A failed launch or non-zero exit is logged and recorded; sibling workers
    are never killed.

#INPUT
    Dataset base dir, base seed, worker count, log directory.

#OUTPUT
    List[ShardReport] (one per subset × worker).
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from retargeter.modules.m1_dataset import prepare_output_dir
from retargeter.shared.constants import DEFAULT_LOG_DIR, DEFAULT_NAMESPACE, SUBSETS

from .sharding import WorkerShard, validate_num_workers

log = logging.getLogger(__name__)

# directory holding the ``retargeter`` package, for uninstalled checkouts
_PACKAGE_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(
    os.path.dirname(os.path.abspath(__file__)))))


@dataclass
class ShardReport:
    subset: str
    worker_index: int
    seed: int
    log_file: str
    exit_code: Optional[int] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def worker_namespace(subset: str, worker_index: int) -> str:
    return f"{DEFAULT_NAMESPACE}_{subset}_{worker_index}"


def worker_command(base_dir: str, subset: str, shard: WorkerShard,
                   extra_args: Sequence[str] = ()) -> List[str]:
    return [
        sys.executable, "-m", "retargeter", "worker",
        "--input", base_dir,
        "--subdir", subset,
        "--workerindex", str(shard.worker_index),
        "--numworkers", str(shard.num_workers),
        "--seed", str(shard.seed),
        "--namespace", worker_namespace(subset, shard.worker_index),
        *extra_args,
    ]


def _worker_env() -> dict:
    env = dict(os.environ)
    paths = [_PACKAGE_ROOT] + ([env["PYTHONPATH"]] if env.get("PYTHONPATH") else [])
    env["PYTHONPATH"] = os.pathsep.join(paths)
    return env


def spawn_workers(base_dir: str, subset: str, num_workers: int, base_seed: int,
                  log_dir: str = DEFAULT_LOG_DIR,
                  extra_args: Sequence[str] = ()) -> List[ShardReport]:
    """Launch one worker process per shard of *subset* and wait for all of them."""
    num_workers = validate_num_workers(num_workers)
    os.makedirs(log_dir, exist_ok=True)
    env = _worker_env()

    reports: List[ShardReport] = []
    running = []
    log.info("[coord] spawning %d workers for %s", num_workers, subset)
    for w in range(num_workers):
        shard = WorkerShard.for_subset(subset, w, num_workers, base_seed)
        report = ShardReport(subset, w, shard.seed,
                             os.path.join(log_dir, f"worker_{subset}_{w}.log"))
        reports.append(report)

        cmd = worker_command(base_dir, subset, shard, extra_args)
        log.info("[coord] launching worker %d for %s: %s", w, subset, " ".join(cmd))
        try:
            log_fh = open(report.log_file, "w", encoding="utf-8")
        except OSError as exc:
            report.error = str(exc)
            log.error("[coord] cannot open log file for worker %d (%s): %s", w, subset, exc)
            continue
        try:
            proc = subprocess.Popen(cmd, stdout=log_fh, stderr=subprocess.STDOUT, env=env)
        except OSError as exc:
            log_fh.close()
            report.error = str(exc)
            log.error("[coord] failed to launch worker %d for %s: %s", w, subset, exc)
            continue
        running.append((report, proc, log_fh))

    log.info("[coord] waiting for %d worker processes for %s", len(running), subset)
    for report, proc, log_fh in running:
        try:
            report.exit_code = proc.wait()
        finally:
            log_fh.close()
        if report.ok:
            log.info("[coord] worker %d for %s finished with exit code 0",
                     report.worker_index, subset)
        else:
            log.warning("[coord] worker %d for %s finished with exit code %d (log: %s)",
                        report.worker_index, subset, report.exit_code, report.log_file)
    log.info("[coord] all workers for %s finished", subset)
    return reports


def run_coordinator(base_dir: str, base_seed: int = 0, num_workers: int = 2,
                    log_dir: str = DEFAULT_LOG_DIR,
                    extra_args: Sequence[str] = ()) -> List[ShardReport]:
    num_workers = validate_num_workers(num_workers)
    reports: List[ShardReport] = []
    for subset in SUBSETS:
        subset_dir = os.path.join(base_dir, subset)
        if not os.path.isdir(subset_dir):
            log.warning("[coord] directory does not exist, skipping: %s", subset_dir)
            continue
        if prepare_output_dir(subset_dir) is None:
            continue
        reports.extend(spawn_workers(base_dir, subset, num_workers, base_seed,
                                     log_dir, extra_args))

    failed = [r for r in reports if not r.ok]
    if failed:
        log.warning("[coord] %d of %d shards failed: %s", len(failed), len(reports),
                    ", ".join(f"{r.subset}/{r.worker_index}" for r in failed))
    else:
        log.info("[coord] all subdirectories processed (%d shards)", len(reports))
    return reports

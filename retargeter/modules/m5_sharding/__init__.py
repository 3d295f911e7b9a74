"""
#WHERE
    Imported by cli.py and tests.

#WHAT
    Sharding module (Module 5) — round-robin skeleton striping, per-worker
    and per-skeleton seeds, the single-process worker loop and the
    multi-process coordinator.

#INPUT
    Dataset base dir, base seed, worker count.

#OUTPUT
    WorkerStats (in-process), ShardReport (multi-process).
"""

from .coordinator import ShardReport, run_coordinator, spawn_workers, worker_command
from .sharding import WorkerShard, build_jobs, subset_hash, validate_num_workers, worker_seed
from .worker import WorkerStats, process_subset, run_in_process

__all__ = [
    'ShardReport', 'run_coordinator', 'spawn_workers', 'worker_command',
    'WorkerShard', 'build_jobs', 'subset_hash', 'validate_num_workers', 'worker_seed',
    'WorkerStats', 'process_subset', 'run_in_process',
]

"""
#WHERE
    Entry point for ``main.py`` and ``python -m retargeter``; also what the
    coordinator runs in every worker process.

#WHAT
    Three commands:

      all     retarget the whole dataset (train/val/test), either by spawning
              worker processes or, with --in-process, sequentially here
      worker  retarget one shard of one subset
      pair    retarget a single (animation, target skeleton) pair

    Arguments are validated before any work starts and each kind of missing
    or invalid argument maps to its own exit code (see shared/constants.py).

#INPUT
    argv.

#OUTPUT
    Process exit code.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional, Sequence

from retargeter.modules.m1_dataset import expand_path
from retargeter.modules.m3_assets import NpzAssetStore
from retargeter.modules.m4_solver import ChainTransferSolver
from retargeter.modules.m5_sharding import (
    WorkerShard,
    process_subset,
    run_coordinator,
    run_in_process,
    validate_num_workers,
)
from retargeter.pipeline import PairRetargeter, RetargetConfig, RetargetJob
from retargeter.shared.constants import (
    DEFAULT_LOG_DIR,
    DEFAULT_NAMESPACE,
    DEFAULT_NUM_WORKERS,
    DEFAULT_PERSIST_DIR,
    DEFAULT_SEED,
    EXIT_BASE_DIR_MISSING,
    EXIT_INPUT_NOT_FOUND,
    EXIT_MISSING_ARGUMENT,
    EXIT_MISSING_INPUT,
    EXIT_MISSING_OUTPUT,
    EXIT_MISSING_TARGET,
    EXIT_OK,
    EXIT_OUTPUT_DIR_FAILED,
    EXIT_PAIR_FAILED,
    EXIT_TARGET_NOT_FOUND,
    MAX_ANIMATIONS_PER_SKELETON,
    SUBSETS,
)
from retargeter.shared.errors import ConfigError

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(message)s"
LOG_DATEFMT = "%H:%M:%S"

_TRUE_VALUES = ("1", "true", "yes")


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that reports errors as ConfigError instead of exiting with 2."""

    def error(self, message: str) -> None:
        raise ConfigError(message, EXIT_MISSING_ARGUMENT)


def build_parser() -> argparse.ArgumentParser:
    common = _Parser(add_help=False)
    common.add_argument("--uniform-scale", type=float, default=1.0,
                        help="translation scale applied to input poses and output keys")
    common.add_argument("--max-animations", type=int, default=MAX_ANIMATIONS_PER_SKELETON,
                        help="train subset: clips sampled per skeleton")
    common.add_argument("--trace-memory", action="store_true")
    common.add_argument("--verbose", "-v", action="store_true")

    p = _Parser(
        prog="retargeter",
        description="Batch skeleton animation retargeting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py all --input ~/dataset --seed 7 --workers 4\n"
            "  python main.py worker --input ~/dataset --subdir train --workerindex 0 --numworkers 2\n"
            "  python main.py pair --input walk.npz --target Mannequin.npz --output out/walk.npz\n"
        ),
    )
    sub = p.add_subparsers(dest="command", parser_class=_Parser)

    a = sub.add_parser("all", parents=[common], help="retarget every subset of a dataset")
    a.add_argument("--input", help="dataset base folder (contains train/ val/ test/)")
    a.add_argument("--seed", type=int, default=DEFAULT_SEED)
    a.add_argument("--workers", type=int, default=DEFAULT_NUM_WORKERS)
    a.add_argument("--in-process", action="store_true",
                   help="run all shards sequentially in this process")
    a.add_argument("--log-dir", default=DEFAULT_LOG_DIR)

    w = sub.add_parser("worker", parents=[common], help="retarget one shard of one subset")
    w.add_argument("--input")
    w.add_argument("--subdir")
    w.add_argument("--workerindex", type=int)
    w.add_argument("--numworkers", type=int)
    w.add_argument("--seed", type=int, default=DEFAULT_SEED)
    w.add_argument("--namespace", default=DEFAULT_NAMESPACE)

    r = sub.add_parser("pair", parents=[common], help="retarget a single pair")
    r.add_argument("--input", help="source animation file")
    r.add_argument("--target", help="target skeleton file")
    r.add_argument("--output", help="output clip file")
    r.add_argument("--persist", default="false", help="true|false (default false)")
    r.add_argument("--persist-dir", default=DEFAULT_PERSIST_DIR)
    return p


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format=LOG_FORMAT, datefmt=LOG_DATEFMT)


def _retargeter(args: argparse.Namespace, namespace: str = DEFAULT_NAMESPACE,
                persist: bool = False,
                persist_dir: str = DEFAULT_PERSIST_DIR) -> PairRetargeter:
    config = RetargetConfig(
        persist=persist,
        persist_dir=persist_dir,
        uniform_scale=args.uniform_scale,
        namespace=namespace,
        max_animations=args.max_animations,
        trace_memory=args.trace_memory,
    )
    store = NpzAssetStore(persist_dir=persist_dir if persist else None)
    return PairRetargeter(store, ChainTransferSolver(), config)


def _forwarded_args(args: argparse.Namespace) -> List[str]:
    extra = ["--uniform-scale", repr(args.uniform_scale),
             "--max-animations", str(args.max_animations)]
    if args.trace_memory:
        extra.append("--trace-memory")
    if args.verbose:
        extra.append("--verbose")
    return extra


def _base_dir(value: Optional[str]) -> str:
    if not value:
        raise ConfigError("missing required argument: --input <base folder path>",
                          EXIT_MISSING_ARGUMENT)
    base = expand_path(value)
    if not os.path.isdir(base):
        raise ConfigError(f"base directory does not exist: {base}", EXIT_BASE_DIR_MISSING)
    return base


# ── commands ─────────────────────────────────────────────────────────────────

def cmd_all(args: argparse.Namespace) -> int:
    base = _base_dir(args.input)
    workers = validate_num_workers(args.workers)
    log.info("base path: %s  seed: %d  workers: %d", base, args.seed, workers)

    if args.in_process:
        stats = run_in_process(base, args.seed, workers, _retargeter(args))
        failed = sum(s.pairs_failed for s in stats)
        log.info("in-process batch finished: %d shards, %d failed pairs", len(stats), failed)
    else:
        reports = run_coordinator(base, args.seed, workers, expand_path(args.log_dir),
                                  _forwarded_args(args))
        failed = [r for r in reports if not r.ok]
        log.info("batch finished: %d shards, %d failed", len(reports), len(failed))
    return EXIT_OK


def cmd_worker(args: argparse.Namespace) -> int:
    if not args.input:
        raise ConfigError("worker: missing required argument: --input <base folder path>",
                          EXIT_MISSING_ARGUMENT)
    if not args.subdir:
        raise ConfigError("worker: missing required argument: --subdir <train|val|test>",
                          EXIT_MISSING_ARGUMENT)
    if args.subdir not in SUBSETS:
        raise ConfigError(f"worker: --subdir must be one of {', '.join(SUBSETS)}",
                          EXIT_MISSING_ARGUMENT)
    if args.workerindex is None:
        raise ConfigError("worker: missing required argument: --workerindex <index>",
                          EXIT_MISSING_ARGUMENT)
    if args.numworkers is None:
        raise ConfigError("worker: missing required argument: --numworkers <total>",
                          EXIT_MISSING_ARGUMENT)
    try:
        shard = WorkerShard(args.workerindex, args.numworkers, args.seed)
    except ValueError as exc:
        raise ConfigError(f"worker: {exc}", EXIT_MISSING_ARGUMENT) from exc
    base = _base_dir(args.input)

    log.info("worker %d/%d processing %s in %s (seed %d)",
             shard.worker_index, shard.num_workers, args.subdir, base, shard.seed)
    process_subset(base, args.subdir, shard, _retargeter(args, namespace=args.namespace))
    return EXIT_OK


def cmd_pair(args: argparse.Namespace) -> int:
    if not args.input:
        raise ConfigError("missing required argument: --input <source animation>",
                          EXIT_MISSING_INPUT)
    if not args.target:
        raise ConfigError("missing required argument: --target <target skeleton>",
                          EXIT_MISSING_TARGET)
    if not args.output:
        raise ConfigError("missing required argument: --output <output path>",
                          EXIT_MISSING_OUTPUT)

    input_path, target_path = expand_path(args.input), expand_path(args.target)
    output_path = expand_path(args.output)
    log.info("input:  %s", input_path)
    log.info("target: %s", target_path)
    log.info("output: %s", output_path)

    if not os.path.isfile(input_path):
        raise ConfigError(f"input file not found: {input_path}", EXIT_INPUT_NOT_FOUND)
    if not os.path.isfile(target_path):
        raise ConfigError(f"target file not found: {target_path}", EXIT_TARGET_NOT_FOUND)
    output_dir = os.path.dirname(output_path)
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"failed to create output directory {output_dir}: {exc}",
                          EXIT_OUTPUT_DIR_FAILED) from exc

    persist = args.persist.lower() in _TRUE_VALUES
    retargeter = _retargeter(args, persist=persist, persist_dir=expand_path(args.persist_dir))
    result = retargeter.retarget_pair(RetargetJob(input_path, target_path, output_path))
    if not result.ok:
        log.error("retargeting failed at %s: %s", result.stage, result.error)
        return EXIT_PAIR_FAILED
    return EXIT_OK


_COMMANDS = {"all": cmd_all, "worker": cmd_worker, "pair": cmd_pair}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except ConfigError as exc:
        _setup_logging(False)
        log.error("%s", exc)
        return exc.exit_code

    if args.command is None:
        parser.print_help()
        return EXIT_MISSING_ARGUMENT
    _setup_logging(args.verbose)
    try:
        return _COMMANDS[args.command](args)
    except ConfigError as exc:
        log.error("%s", exc)
        return exc.exit_code

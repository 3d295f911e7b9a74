"""Tests for sharding, the in-process worker loop and the process coordinator."""

import logging
import os
import sys
import zlib

import pytest

from conftest import make_clip, make_dataset, make_humanoid
from retargeter.modules.m1_dataset import SubsetFiles, scan_subset
from retargeter.modules.m3_assets import NpzAssetStore
from retargeter.modules.m4_solver import ChainTransferSolver
from retargeter.modules.m5_sharding import (
    WorkerShard,
    build_jobs,
    process_subset,
    run_coordinator,
    run_in_process,
    spawn_workers,
    subset_hash,
    validate_num_workers,
    worker_command,
    worker_seed,
)
from retargeter.modules.m5_sharding import coordinator
from retargeter.pipeline import PairRetargeter, RetargetConfig


def _retargeter(**config):
    return PairRetargeter(NpzAssetStore(), ChainTransferSolver(), RetargetConfig(**config))


def _clips(*names, num_frames=3):
    source = make_humanoid("Source")
    return {n: make_clip(source, n, num_frames=num_frames) for n in names}


class TestShardArithmetic:

    def test_subset_hash_is_crc32_of_lowercase(self):
        assert subset_hash("train") == zlib.crc32(b"train")
        assert subset_hash("TRAIN") == subset_hash("train")

    def test_worker_seed_formula(self):
        assert worker_seed("val", 2, 5) == 5 + 2 * 1000 + subset_hash("val") % 1000

    def test_worker_seeds_differ_per_worker(self):
        assert worker_seed("train", 0, 0) != worker_seed("train", 1, 0)

    @pytest.mark.parametrize("num_workers", [1, 2, 3, 5])
    @pytest.mark.parametrize("num_skeletons", [0, 1, 2, 7, 12])
    def test_shards_cover_every_index_once(self, num_skeletons, num_workers):
        owned = []
        for w in range(num_workers):
            owned.extend(WorkerShard(w, num_workers, 0).indices(num_skeletons))
        assert sorted(owned) == list(range(num_skeletons))

    def test_round_robin(self):
        assert list(WorkerShard(1, 3, 0).indices(8)) == [1, 4, 7]

    def test_skeleton_seed(self):
        shard = WorkerShard.for_subset("train", 1, 2, 10)
        assert shard.seed == worker_seed("train", 1, 10)
        assert shard.skeleton_seed(5) == shard.seed + 5

    def test_invalid_shard(self):
        with pytest.raises(ValueError):
            WorkerShard(2, 2, 0)
        with pytest.raises(ValueError):
            WorkerShard(0, 0, 0)

    def test_validate_num_workers_clamps(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert validate_num_workers(0) == 1
        assert "invalid" in caplog.text
        assert validate_num_workers(4) == 4


class TestBuildJobs:

    FILES = SubsetFiles(
        skeletons=[f"/d/Character/S{i}.npz" for i in range(3)],
        animations=[f"/d/Animation/A{i}.npz" for i in range(6)],
    )

    def test_train_is_capped_and_sampled(self):
        shard = WorkerShard.for_subset("train", 0, 1, 0)
        plan = build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=4)
        assert [idx for idx, _ in plan] == [0, 1, 2]
        assert all(len(jobs) == 4 for _, jobs in plan)

    def test_train_sampling_is_reproducible(self):
        shard = WorkerShard.for_subset("train", 0, 1, 3)
        first = build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=2)
        second = build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=2)
        assert first == second

    def test_per_skeleton_sample_is_stable(self):
        # skeleton 2 belongs to worker 0 under W=2
        shard = WorkerShard.for_subset("train", 0, 2, 0)
        plan = dict(build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=3))
        again = dict(build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=3))
        assert plan[2] == again[2]
        assert set(plan) == {0, 2}

    def test_train_under_cap_keeps_order(self):
        shard = WorkerShard.for_subset("train", 0, 1, 0)
        plan = build_jobs("train", self.FILES, "/d/Retarget", shard, "npz", max_animations=100)
        assert [j.animation_path for j in plan[0][1]] == self.FILES.animations

    def test_val_pairs_everything(self):
        shard = WorkerShard.for_subset("val", 1, 2, 0)
        plan = build_jobs("val", self.FILES, "/d/Retarget", shard, "npz", max_animations=2)
        assert [idx for idx, _ in plan] == [1]
        assert [j.animation_path for j in plan[0][1]] == self.FILES.animations

    def test_output_paths(self):
        shard = WorkerShard.for_subset("test", 0, 1, 0)
        jobs = build_jobs("test", self.FILES, "/d/Retarget", shard, "npz")[0][1]
        assert jobs[0].output_path == os.path.join("/d/Retarget", "S0__A0.npz")
        assert jobs[0].skeleton_path == "/d/Character/S0.npz"


class TestWorker:

    def test_one_skeleton_three_clips(self, tmp_path):
        make_dataset(tmp_path, "train", {"Mannequin": make_humanoid("Mannequin", scale=1.1)},
                     _clips("Walk", "Run", "Jump"))
        stats = run_in_process(str(tmp_path), 0, 1, _retargeter())

        out = tmp_path / "train" / "Retarget"
        assert sorted(os.listdir(out)) == [
            "Mannequin__Jump.npz", "Mannequin__Run.npz", "Mannequin__Walk.npz",
        ]
        assert stats[0].pairs_ok == 3
        assert stats[0].pairs_failed == 0

    def test_two_workers_round_robin(self, tmp_path):
        make_dataset(tmp_path, "train", {"A": make_humanoid("A"), "B": make_humanoid("B", scale=1.3)},
                     _clips("Walk"))
        base, retargeter = str(tmp_path), _retargeter()
        w0 = process_subset(base, "train", WorkerShard.for_subset("train", 0, 2, 0), retargeter)
        w1 = process_subset(base, "train", WorkerShard.for_subset("train", 1, 2, 0), retargeter)
        assert w0.processed == [0]
        assert w1.processed == [1]
        assert [os.path.basename(p) for p in w0.outputs] == ["A__Walk.npz"]
        assert [os.path.basename(p) for p in w1.outputs] == ["B__Walk.npz"]

    def test_single_worker_processes_in_order(self, tmp_path):
        make_dataset(tmp_path, "train", {"A": make_humanoid("A"), "B": make_humanoid("B", scale=1.3)},
                     _clips("Walk"))
        stats = process_subset(str(tmp_path), "train", WorkerShard.for_subset("train", 0, 1, 0),
                               _retargeter())
        assert stats.processed == [0, 1]
        assert [os.path.basename(p) for p in stats.outputs] == ["A__Walk.npz", "B__Walk.npz"]

    def test_output_count_independent_of_worker_count(self, tmp_path):
        make_dataset(tmp_path, "train", {f"S{i}": make_humanoid(f"S{i}") for i in range(3)},
                     _clips("A", "B", "C", "D", num_frames=2))
        out = tmp_path / "train" / "Retarget"

        run_in_process(str(tmp_path), 7, 1, _retargeter(max_animations=2))
        one = sorted(os.listdir(out))
        run_in_process(str(tmp_path), 7, 3, _retargeter(max_animations=2))
        three = sorted(os.listdir(out))
        assert len(one) == len(three) == 6
        assert set(n.split("__")[0] for n in one) == {"S0", "S1", "S2"}

    def test_sampling_cap(self, tmp_path):
        make_dataset(tmp_path, "train", {"A": make_humanoid("A")},
                     _clips("C1", "C2", "C3", "C4", num_frames=2))
        stats = run_in_process(str(tmp_path), 0, 1, _retargeter(max_animations=2))
        assert stats[0].pairs_ok == 2
        assert len(os.listdir(tmp_path / "train" / "Retarget")) == 2

    def test_val_is_not_sampled(self, tmp_path):
        make_dataset(tmp_path, "val", {"A": make_humanoid("A")},
                     _clips("C1", "C2", "C3", num_frames=2))
        stats = run_in_process(str(tmp_path), 0, 1, _retargeter(max_animations=1))
        assert stats[0].subset == "val"
        assert stats[0].pairs_ok == 3

    def test_bad_target_skeleton_is_skipped(self, tmp_path):
        spider = make_humanoid("Spider", extra=[("Tail", "Hips", (0, 0, -0.3))])
        make_dataset(tmp_path, "train", {"A": make_humanoid("A"), "Spider": spider},
                     _clips("Walk", "Run", num_frames=2))
        stats = run_in_process(str(tmp_path), 0, 1, _retargeter())[0]
        assert stats.skipped_skeletons == ["Spider"]
        assert stats.pairs_ok == 2
        assert stats.pairs_failed == 1
        assert sorted(os.listdir(tmp_path / "train" / "Retarget")) == ["A__Run.npz", "A__Walk.npz"]

    def test_corrupt_animation_skips_only_that_pair(self, tmp_path):
        subset = make_dataset(tmp_path, "test", {"A": make_humanoid("A")}, _clips("Walk", num_frames=2))
        with open(os.path.join(subset, "Animation", "Broken.npz"), "wb") as fh:
            fh.write(b"garbage")
        stats = run_in_process(str(tmp_path), 0, 1, _retargeter())[0]
        assert stats.pairs_ok == 1
        assert stats.pairs_failed == 1

    def test_previous_outputs_cleared(self, tmp_path):
        subset = make_dataset(tmp_path, "train", {"A": make_humanoid("A")}, _clips("Walk", num_frames=2))
        os.makedirs(os.path.join(subset, "Retarget"))
        open(os.path.join(subset, "Retarget", "Old__Clip.npz"), "w").close()
        run_in_process(str(tmp_path), 0, 1, _retargeter())
        assert os.listdir(os.path.join(subset, "Retarget")) == ["A__Walk.npz"]

    def test_missing_subsets_skipped(self, tmp_path):
        make_dataset(tmp_path, "test", {"A": make_humanoid("A")}, _clips("Walk", num_frames=2))
        stats = run_in_process(str(tmp_path), 0, 2, _retargeter())
        assert [s.subset for s in stats] == ["test", "test"]

    def test_empty_subset(self, tmp_path):
        make_dataset(tmp_path, "train", {"A": make_humanoid("A")}, {})
        stats = process_subset(str(tmp_path), "train", WorkerShard(0, 1, 0), _retargeter())
        assert stats.processed == []
        assert stats.pairs_total == 0

    def test_scan_matches_plan_order(self, tmp_path):
        subset = make_dataset(tmp_path, "val", {"B": make_humanoid("B"), "A": make_humanoid("A")},
                              _clips("Walk", num_frames=2))
        files = scan_subset(subset, "npz")
        assert [os.path.basename(p) for p in files.skeletons] == ["A.npz", "B.npz"]


class _FakePopen:
    launched = []
    exit_codes = {}
    fail_launch = set()

    def __init__(self, cmd, stdout=None, stderr=None, env=None):
        index = int(cmd[cmd.index("--workerindex") + 1])
        if index in self.fail_launch:
            raise OSError("no such executable")
        self.index = index
        self.env = env
        stdout.write(f"worker {index}\n")
        _FakePopen.launched.append(cmd)

    def wait(self):
        return self.exit_codes.get(self.index, 0)


class TestCoordinator:

    @pytest.fixture(autouse=True)
    def fake_popen(self, monkeypatch):
        _FakePopen.launched = []
        _FakePopen.exit_codes = {}
        _FakePopen.fail_launch = set()
        monkeypatch.setattr(coordinator.subprocess, "Popen", _FakePopen)

    def test_worker_command(self):
        shard = WorkerShard.for_subset("val", 1, 3, 9)
        cmd = worker_command("/data", "val", shard, ["--verbose"])
        assert cmd[:4] == [sys.executable, "-m", "retargeter", "worker"]
        assert cmd[cmd.index("--seed") + 1] == str(shard.seed)
        assert cmd[cmd.index("--namespace") + 1] == "tmp_val_1"
        assert cmd[-1] == "--verbose"

    def test_spawn_one_process_per_shard(self, tmp_path):
        reports = spawn_workers(str(tmp_path), "train", 3, 0, str(tmp_path / "logs"))
        assert [r.worker_index for r in reports] == [0, 1, 2]
        assert all(r.ok for r in reports)
        assert len(_FakePopen.launched) == 3
        assert (tmp_path / "logs" / "worker_train_2.log").read_text() == "worker 2\n"

    def test_failed_worker_does_not_stop_siblings(self, tmp_path):
        _FakePopen.exit_codes = {0: 3}
        reports = spawn_workers(str(tmp_path), "val", 2, 0, str(tmp_path / "logs"))
        assert [r.exit_code for r in reports] == [3, 0]
        assert not reports[0].ok and reports[1].ok

    def test_launch_failure_reported(self, tmp_path):
        _FakePopen.fail_launch = {1}
        reports = spawn_workers(str(tmp_path), "test", 3, 0, str(tmp_path / "logs"))
        assert reports[1].exit_code is None
        assert "no such executable" in reports[1].error
        assert reports[0].ok and reports[2].ok

    def test_worker_seeds_passed(self, tmp_path):
        spawn_workers(str(tmp_path), "train", 2, 100, str(tmp_path / "logs"))
        seeds = [int(c[c.index("--seed") + 1]) for c in _FakePopen.launched]
        assert seeds == [worker_seed("train", 0, 100), worker_seed("train", 1, 100)]

    def test_run_coordinator_per_existing_subset(self, tmp_path):
        for subset in ("train", "test"):
            (tmp_path / subset / "Retarget").mkdir(parents=True)
            (tmp_path / subset / "Retarget" / "stale.npz").write_bytes(b"")
        reports = run_coordinator(str(tmp_path), 0, 2, str(tmp_path / "logs"))
        assert [(r.subset, r.worker_index) for r in reports] == [
            ("train", 0), ("train", 1), ("test", 0), ("test", 1),
        ]
        assert os.listdir(tmp_path / "train" / "Retarget") == []

    def test_worker_count_clamped(self, tmp_path):
        (tmp_path / "val").mkdir()
        reports = run_coordinator(str(tmp_path), 0, 0, str(tmp_path / "logs"))
        assert len(reports) == 1


class TestCoordinatorProcesses:
    """Real ``python -m retargeter worker`` children, no Popen stand-in."""

    def test_two_workers_cover_every_skeleton(self, tmp_path):
        make_dataset(tmp_path, "val", {"A": make_humanoid("A"), "B": make_humanoid("B")},
                     _clips("Walk", num_frames=2))
        log_dir = tmp_path / "logs"
        reports = run_coordinator(str(tmp_path), 0, 2, str(log_dir), ["--verbose"])
        assert [(r.worker_index, r.exit_code) for r in reports] == [(0, 0), (1, 0)]
        assert sorted(os.listdir(tmp_path / "val" / "Retarget")) == ["A__Walk.npz", "B__Walk.npz"]
        worker_log = (log_dir / "worker_val_1.log").read_text(encoding="utf-8")
        assert "tmp_val_1/input" in worker_log

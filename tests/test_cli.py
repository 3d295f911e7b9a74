"""Tests for command-line validation and exit codes."""

import os

import numpy as np
import pytest

from conftest import make_clip, make_dataset, make_humanoid
from retargeter.cli import main
from retargeter.modules.m3_assets import load_asset, save_animation, save_skeleton


@pytest.fixture
def pair_files(tmp_path):
    source = make_humanoid("Source")
    anim, skel = str(tmp_path / "Walk.npz"), str(tmp_path / "Robot.npz")
    save_animation(anim, source, make_clip(source, "Walk", num_frames=3))
    save_skeleton(skel, make_humanoid("Robot", scale=0.8))
    return anim, skel


class TestPairCommand:

    def test_missing_input(self):
        assert main(["pair"]) == 1

    def test_missing_target(self, pair_files):
        assert main(["pair", "--input", pair_files[0]]) == 2

    def test_missing_output(self, pair_files):
        assert main(["pair", "--input", pair_files[0], "--target", pair_files[1]]) == 3

    def test_input_not_found(self, tmp_path, pair_files):
        assert main(["pair", "--input", str(tmp_path / "nope.npz"), "--target", pair_files[1],
                     "--output", str(tmp_path / "out.npz")]) == 4

    def test_target_not_found(self, tmp_path, pair_files):
        assert main(["pair", "--input", pair_files[0], "--target", str(tmp_path / "nope.npz"),
                     "--output", str(tmp_path / "out.npz")]) == 5

    def test_output_dir_cannot_be_created(self, tmp_path, pair_files):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        assert main(["pair", "--input", pair_files[0], "--target", pair_files[1],
                     "--output", str(blocker / "sub" / "out.npz")]) == 6

    def test_success(self, tmp_path, pair_files):
        out = tmp_path / "new" / "dir" / "Robot__Walk.npz"
        assert main(["pair", "--input", pair_files[0], "--target", pair_files[1],
                     "--output", str(out)]) == 0
        assert load_asset(str(out)).clip.num_frames == 3

    def test_persist_flag(self, tmp_path, pair_files):
        saved = tmp_path / "Saved"
        assert main(["pair", "--input", pair_files[0], "--target", pair_files[1],
                     "--output", str(tmp_path / "out.npz"),
                     "--persist", "true", "--persist-dir", str(saved)]) == 0
        assert (saved / "tmp" / "Walk_RTG.npz").is_file()

    def test_retarget_failure_exit_code(self, tmp_path, pair_files):
        spider = make_humanoid("Spider", extra=[("Tail", "Hips", (0, 0, -0.3))])
        skel = str(tmp_path / "Spider.npz")
        save_skeleton(skel, spider)
        assert main(["pair", "--input", pair_files[0], "--target", skel,
                     "--output", str(tmp_path / "out.npz")]) == 7

    def test_malformed_input_exit_code(self, tmp_path, pair_files):
        with np.load(pair_files[0]) as data:
            arrays = {k: data[k] for k in data.files}
        arrays["track_scales"] = arrays["track_scales"][:1]
        bad = str(tmp_path / "Broken.npz")
        np.savez(bad, **arrays)
        assert main(["pair", "--input", bad, "--target", pair_files[1],
                     "--output", str(tmp_path / "out.npz")]) == 7
        assert not (tmp_path / "out.npz").exists()


class TestBatchCommands:

    def test_all_missing_input(self):
        assert main(["all"]) == 1

    def test_all_missing_base_dir(self, tmp_path):
        assert main(["all", "--input", str(tmp_path / "nope")]) == 2

    def test_all_in_process(self, tmp_path):
        source = make_humanoid("Source")
        make_dataset(tmp_path, "train", {"A": make_humanoid("A")},
                     {"Walk": make_clip(source, "Walk", num_frames=2)})
        assert main(["all", "--input", str(tmp_path), "--workers", "2", "--in-process"]) == 0
        assert os.listdir(tmp_path / "train" / "Retarget") == ["A__Walk.npz"]

    def test_all_in_process_invalid_worker_count(self, tmp_path):
        source = make_humanoid("Source")
        make_dataset(tmp_path, "test", {"A": make_humanoid("A"), "B": make_humanoid("B")},
                     {"Walk": make_clip(source, "Walk", num_frames=2)})
        assert main(["all", "--input", str(tmp_path), "--workers", "0", "--in-process"]) == 0
        assert sorted(os.listdir(tmp_path / "test" / "Retarget")) == ["A__Walk.npz", "B__Walk.npz"]

    def test_worker_missing_arguments(self, tmp_path):
        assert main(["worker"]) == 1
        assert main(["worker", "--input", str(tmp_path)]) == 1
        assert main(["worker", "--input", str(tmp_path), "--subdir", "train"]) == 1
        assert main(["worker", "--input", str(tmp_path), "--subdir", "train",
                     "--workerindex", "0"]) == 1

    def test_worker_invalid_arguments(self, tmp_path):
        assert main(["worker", "--input", str(tmp_path), "--subdir", "holdout",
                     "--workerindex", "0", "--numworkers", "1"]) == 1
        assert main(["worker", "--input", str(tmp_path), "--subdir", "train",
                     "--workerindex", "two", "--numworkers", "1"]) == 1
        assert main(["worker", "--input", str(tmp_path), "--subdir", "train",
                     "--workerindex", "3", "--numworkers", "2"]) == 1

    def test_worker_missing_base_dir(self, tmp_path):
        assert main(["worker", "--input", str(tmp_path / "nope"), "--subdir", "train",
                     "--workerindex", "0", "--numworkers", "1"]) == 2

    def test_worker_runs_its_shard(self, tmp_path):
        source = make_humanoid("Source")
        make_dataset(tmp_path, "val", {"A": make_humanoid("A"), "B": make_humanoid("B")},
                     {"Walk": make_clip(source, "Walk", num_frames=2)})
        assert main(["worker", "--input", str(tmp_path), "--subdir", "val",
                     "--workerindex", "1", "--numworkers", "2", "--seed", "5"]) == 0
        assert os.listdir(tmp_path / "val" / "Retarget") == ["B__Walk.npz"]

    def test_no_command(self, capsys):
        assert main([]) == 1
        assert "usage: retargeter" in capsys.readouterr().out

"""
Demo Dataset Builder
====================
Writes a synthetic train/val/test dataset of npz skeletons and clips in the
layout the batch commands expect:

    <output>/<train|val|test>/Character/*.npz
    <output>/<train|val|test>/Animation/*.npz

Usage:
    python scripts/build_demo_dataset.py
    python scripts/build_demo_dataset.py --output data/demo --skeletons 4 --animations 8
    python main.py all --input data/demo --in-process
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from retargeter.modules.m3_assets.synthetic import build_demo_dataset

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
log = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Build a synthetic retargeting dataset")
    p.add_argument("--output", default="data/demo", help="dataset base directory")
    p.add_argument("--skeletons", type=int, default=3, help="skeletons per subset")
    p.add_argument("--animations", type=int, default=5, help="animations per subset")
    p.add_argument("--frames", type=int, default=30, help="frames per animation")
    p.add_argument("--seed", type=int, default=0)
    return p.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    counts = build_demo_dataset(args.output, args.skeletons, args.animations,
                                args.frames, args.seed)
    log.info("Wrote %d files → %s", sum(counts.values()), os.path.abspath(args.output))

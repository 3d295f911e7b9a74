"""
#WHERE
    Used by scripts/build_demo_dataset.py and the test suite.

#WHAT
    Synthetic humanoid skeletons and clips in the canonical bone naming,
    plus a writer for a complete train/val/test dataset of npz assets.
    Lets the batch commands run end to end without an FBX exporter.

#INPUT
    Names, proportions, seed.

#OUTPUT
    Skeleton / AnimationClip objects; <base>/<subset>/{Character,Animation}/*.npz
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

import numpy as np
from scipy.spatial.transform import Rotation as R

from retargeter.modules.m2_skeleton.models import AnimationClip, BoneTrack, Skeleton
from retargeter.shared.constants import ANIMATION_DIR, ASSET_EXTENSION, CHARACTER_DIR, SUBSETS

from .store import save_animation, save_skeleton

log = logging.getLogger(__name__)

# (bone, parent, local offset in metres); Spine_added_0 is a synthetic joint
HUMANOID_BONES: List[tuple] = [
    ("Hips", None, (0.0, 1.0, 0.0)),
    ("Spine_added_0", "Hips", (0.0, 0.05, 0.0)),
    ("Spine", "Spine_added_0", (0.0, 0.05, 0.0)),
    ("Spine1", "Spine", (0.0, 0.1, 0.0)),
    ("Spine2", "Spine1", (0.0, 0.1, 0.0)),
    ("Neck", "Spine2", (0.0, 0.1, 0.0)),
    ("Head", "Neck", (0.0, 0.1, 0.0)),
    ("HeadTop_End", "Head", (0.0, 0.15, 0.0)),
    ("LeftShoulder", "Spine2", (0.05, 0.08, 0.0)),
    ("LeftArm", "LeftShoulder", (0.1, 0.0, 0.0)),
    ("LeftForeArm", "LeftArm", (0.25, 0.0, 0.0)),
    ("LeftHand", "LeftForeArm", (0.25, 0.0, 0.0)),
    ("LeftHandTip", "LeftHand", (0.08, 0.0, 0.0)),
    ("RightShoulder", "Spine2", (-0.05, 0.08, 0.0)),
    ("RightArm", "RightShoulder", (-0.1, 0.0, 0.0)),
    ("RightForeArm", "RightArm", (-0.25, 0.0, 0.0)),
    ("RightHand", "RightForeArm", (-0.25, 0.0, 0.0)),
    ("RightHandTip", "RightHand", (-0.08, 0.0, 0.0)),
    ("LeftUpLeg", "Hips", (0.1, -0.05, 0.0)),
    ("LeftLeg", "LeftUpLeg", (0.0, -0.45, 0.0)),
    ("LeftFoot", "LeftLeg", (0.0, -0.45, 0.0)),
    ("LeftToeBase", "LeftFoot", (0.0, -0.05, 0.1)),
    ("LeftToe_End", "LeftToeBase", (0.0, 0.0, 0.05)),
    ("RightUpLeg", "Hips", (-0.1, -0.05, 0.0)),
    ("RightLeg", "RightUpLeg", (0.0, -0.45, 0.0)),
    ("RightFoot", "RightLeg", (0.0, -0.45, 0.0)),
    ("RightToeBase", "RightFoot", (0.0, -0.05, 0.1)),
    ("RightToe_End", "RightToeBase", (0.0, 0.0, 0.05)),
]


def make_humanoid(name: str = "Mannequin", scale: float = 1.0, lower: bool = False,
                  extra: Optional[List[tuple]] = None) -> Skeleton:
    """Canonical humanoid; *extra* rows are appended as-is (before scaling)."""
    rows = []
    for bone, parent, offset in HUMANOID_BONES + list(extra or []):
        if lower:
            bone, parent = bone.lower(), parent.lower() if parent else None
        rows.append((bone, parent, tuple(scale * v for v in offset)))
    return Skeleton.from_hierarchy(name, rows)


def make_walk_clip(skeleton: Skeleton, name: str = "Walk", num_frames: int = 4,
                   fps: float = 30.0, arm_angle: float = 60.0, step: float = 0.1) -> AnimationClip:
    """Every bone keyed at its reference pose; LeftArm swings about z, Hips advances along x."""
    tracks: Dict[str, BoneTrack] = {}
    for i, bone in enumerate(skeleton.bone_names):
        positions = np.repeat(skeleton.ref_translations[i][None], num_frames, axis=0)
        rotations = np.repeat(skeleton.ref_rotations[i][None], num_frames, axis=0)
        scales = np.ones((num_frames, 3))
        if bone.lower() == "leftarm":
            angles = np.linspace(0.0, arm_angle, num_frames)
            rotvecs = np.radians(angles)[:, None] * np.array([0.0, 0.0, 1.0])
            rotations = R.from_rotvec(rotvecs).as_quat().reshape(num_frames, 4)
        if bone.lower() == "hips":
            positions = positions.copy()
            positions[:, 0] += step * np.arange(num_frames)
        tracks[bone] = BoneTrack(positions, rotations, scales)
    return AnimationClip(name, skeleton.name, fps, num_frames, tracks)


def build_demo_dataset(base_dir: str, skeletons_per_subset: int = 3,
                       animations_per_subset: int = 5, num_frames: int = 30,
                       seed: int = 0) -> Dict[str, int]:
    """Write a small random dataset; returns files written per subset."""
    rng = np.random.default_rng(seed)
    source = make_humanoid("Source")
    written: Dict[str, int] = {}
    for subset in SUBSETS:
        char_dir = os.path.join(base_dir, subset, CHARACTER_DIR)
        anim_dir = os.path.join(base_dir, subset, ANIMATION_DIR)
        for k in range(skeletons_per_subset):
            name = f"{subset.capitalize()}Char_{k:02d}"
            skel = make_humanoid(name, scale=float(rng.uniform(0.7, 1.4)))
            save_skeleton(os.path.join(char_dir, f"{name}.{ASSET_EXTENSION}"), skel)
        for k in range(animations_per_subset):
            name = f"{subset.capitalize()}Anim_{k:02d}"
            clip = make_walk_clip(source, name, num_frames=num_frames,
                                  arm_angle=float(rng.uniform(-90.0, 90.0)),
                                  step=float(rng.uniform(0.0, 0.05)))
            save_animation(os.path.join(anim_dir, f"{name}.{ASSET_EXTENSION}"), source, clip)
        written[subset] = skeletons_per_subset + animations_per_subset
        log.info("[assets] %s: %d skeletons, %d animations", subset,
                 skeletons_per_subset, animations_per_subset)
    return written

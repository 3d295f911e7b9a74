"""
#WHERE
    Imported by m3_assets, m4_solver, pipeline.py and tests.

#WHAT
    Skeleton module (Module 2) — bone hierarchy / clip data model, vectorised
    transform math, and bone-chain inference for rig building.

#INPUT
    Skeleton and clip arrays.

#OUTPUT
    Skeleton, AnimationClip, Pose, BoneChain, RetargetDefinition.
"""

from .models import (
    COMPONENT,
    LOCAL,
    AnimationClip,
    BoneChain,
    BoneTrack,
    Pose,
    RetargetDefinition,
    Skeleton,
)
from .chains import CHAIN_TOKENS, build_retarget_definition, generate_retarget_chains
from .transforms import apply_uniform_scale, normalize_quats

__all__ = [
    'COMPONENT', 'LOCAL',
    'AnimationClip', 'BoneChain', 'BoneTrack', 'Pose', 'RetargetDefinition', 'Skeleton',
    'CHAIN_TOKENS', 'build_retarget_definition', 'generate_retarget_chains',
    'apply_uniform_scale', 'normalize_quats',
]

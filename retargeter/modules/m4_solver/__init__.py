"""
#WHERE
    Imported by pipeline.py, cli.py and tests.

#WHAT
    Solver module (Module 4) — retarget profile construction and the pose
    solver capability (per-pair sessions), with a chain-transfer default.

#INPUT
    RetargetDefinitions for source and target, component-space poses.

#OUTPUT
    RetargetProfile, target component-space poses.
"""

from .profile import (
    DEFAULT_OPS,
    OP_CHAIN_FK,
    OP_IK_GOALS,
    OP_ROOT_MOTION,
    OP_RUN_IK_RIG,
    RetargetProfile,
    build_retarget_profile,
)
from .solver import ChainTransferSession, ChainTransferSolver, PoseSolver, SolverSession

__all__ = [
    'DEFAULT_OPS', 'OP_CHAIN_FK', 'OP_IK_GOALS', 'OP_ROOT_MOTION', 'OP_RUN_IK_RIG',
    'RetargetProfile', 'build_retarget_profile',
    'ChainTransferSession', 'ChainTransferSolver', 'PoseSolver', 'SolverSession',
]

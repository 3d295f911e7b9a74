"""Retarget profile — pairs the source and target rig definitions for the solver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from retargeter.modules.m2_skeleton.models import RetargetDefinition

log = logging.getLogger(__name__)

# Solver stages.  Batch mode keeps direct chain-to-chain transfer and root
# motion; goal-based IK stages stay off.
OP_CHAIN_FK = "chain_fk"
OP_ROOT_MOTION = "root_motion"
OP_RUN_IK_RIG = "run_ik_rig"
OP_IK_GOALS = "ik_goals"

DEFAULT_OPS: Dict[str, bool] = {
    OP_CHAIN_FK: True,
    OP_ROOT_MOTION: True,
    OP_RUN_IK_RIG: False,
    OP_IK_GOALS: False,
}


@dataclass
class RetargetProfile:
    source: RetargetDefinition
    target: RetargetDefinition
    ops: Dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_OPS))
    source_scale: float = 1.0

    def is_enabled(self, op: str) -> bool:
        return self.ops.get(op, False)

    def set_enabled(self, op: str, enabled: bool) -> None:
        self.ops[op] = enabled

    def matched_chains(self) -> List[str]:
        """Chain names present in both rigs, sorted."""
        return sorted(set(self.source.chains) & set(self.target.chains))

    def to_dict(self) -> dict:
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "ops": dict(self.ops),
            "source_scale": self.source_scale,
        }


def build_retarget_profile(source: RetargetDefinition, target: RetargetDefinition,
                           source_scale: float = 1.0) -> RetargetProfile:
    profile = RetargetProfile(source=source, target=target, source_scale=source_scale)
    profile.set_enabled(OP_RUN_IK_RIG, False)
    profile.set_enabled(OP_IK_GOALS, False)

    unmatched = sorted(set(source.chains) ^ set(target.chains))
    if unmatched:
        log.debug("[profile] chains without a counterpart: %s", ", ".join(unmatched))
    log.info("[profile] %s -> %s: %d matched chains, ops on: %s",
             source.skeleton_name, target.skeleton_name, len(profile.matched_chains()),
             ", ".join(op for op, on in profile.ops.items() if on))
    return profile

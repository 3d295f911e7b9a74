"""
#WHERE
    Called by pipeline.py (rig build) for both the source and the target
    skeleton of every pair.

#WHAT
    Bone chain inference — derives the named limb chains used as the
    retargeting correspondence purely from the hierarchy and conventional
    bone names (case-insensitive, Mixamo style: Hips, Spine, Spine2, Neck,
    Head, LeftShoulder, LeftArm, LeftForeArm, LeftUpLeg, LeftLeg, ...).

    Requirements on the skeleton:
      * canonical names without prefix/suffix (any casing)
      * synthetic joints contain "_added" and sit between canonical joints
        (hips -> spine_added_0 -> spine); they lie on chains, never anchor one
      * Hips and Spine2 exist
      * exactly six end bones: Spine2 plus five leaves (head tip, two hand
        tips, two foot tips)

#INPUT
    Skeleton.

#OUTPUT
    Dict chain name -> BoneChain(start = canonical joint, end = tip-side bone),
    or a RetargetDefinition rooted at Hips.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from retargeter.shared.constants import (
    ADDED_BONE_TOKEN,
    EXPECTED_END_BONES,
    RETARGET_ROOT_BONE,
)
from retargeter.shared.errors import TopologyError

from .models import BoneChain, RetargetDefinition, Skeleton

log = logging.getLogger(__name__)

HIPS = "hips"
SPINE2 = "spine2"

# Joints that anchor a chain of their own (Hips/Spine2 only bound the walk).
CHAIN_TOKENS: tuple[str, ...] = (
    "spine", "neck", "head",
    "leftshoulder", "rightshoulder",
    "leftarm", "leftforearm",
    "rightarm", "rightforearm",
    "leftupleg", "leftleg",
    "rightupleg", "rightleg",
)


def canonical_index(skeleton: Skeleton) -> Dict[str, int]:
    """Lower-cased bone name -> index, skipping synthetic ``_added`` joints."""
    table: Dict[str, int] = {}
    for i, name in enumerate(skeleton.bone_names):
        lower = name.lower()
        if ADDED_BONE_TOKEN in lower:
            continue
        table[lower] = i
    return table


def find_end_bones(skeleton: Skeleton, spine2: int) -> List[int]:
    return [spine2] + skeleton.leaves()


def generate_retarget_chains(skeleton: Skeleton) -> Dict[str, BoneChain]:
    table = canonical_index(skeleton)

    missing = [t for t in (HIPS, SPINE2) if t not in table]
    if missing:
        raise TopologyError(
            f"unsupported skeleton topology in '{skeleton.name}': "
            f"required bone(s) {missing} not found", skeleton.name)
    hips, spine2 = table[HIPS], table[SPINE2]

    anchors: Dict[int, str] = {}
    for token in CHAIN_TOKENS:
        idx = table.get(token)
        if idx is None:
            log.debug("[chains] %s: '%s' not found", skeleton.name, token)
            continue
        anchors[idx] = token

    ends = find_end_bones(skeleton, spine2)
    if len(ends) != EXPECTED_END_BONES:
        raise TopologyError(
            f"unsupported skeleton topology in '{skeleton.name}': expected "
            f"{EXPECTED_END_BONES} end bones (spine2 + leaves), found {len(ends)}",
            skeleton.name)

    chains: Dict[str, BoneChain] = {}
    names = skeleton.bone_names
    for end in ends:
        current, chain_end = end, end
        while current >= 0 and current != hips:
            token = anchors.get(current)
            if token is not None:
                chains[token] = BoneChain(token, names[current], names[chain_end])
                log.debug("[chains] %s: %s = %s -> %s",
                          skeleton.name, token, names[current], names[chain_end])
                chain_end = int(skeleton.parents[current])
            current = int(skeleton.parents[current])
            if current == spine2:
                break

    log.info("[chains] %s: %d chains (%s)", skeleton.name, len(chains),
             ", ".join(sorted(chains)))
    return chains


def build_retarget_definition(skeleton: Skeleton,
                              root_bone: str = RETARGET_ROOT_BONE) -> RetargetDefinition:
    chains = generate_retarget_chains(skeleton)
    # keep the skeleton's own casing for the root ("Hips" vs "hips")
    root_idx = canonical_index(skeleton).get(root_bone.lower())
    if root_idx is not None:
        root_bone = skeleton.bone_names[root_idx]
    definition = RetargetDefinition(skeleton_name=skeleton.name, root_bone=root_bone)
    for name, chain in chains.items():
        definition.add_bone_chain(name, chain.start_bone, chain.end_bone)
    return definition

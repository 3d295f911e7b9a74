"""Seeded shuffle-and-truncate used to cap the clips paired with a skeleton."""

from __future__ import annotations

from typing import List, Sequence, TypeVar

import numpy as np

T = TypeVar("T")

_SEED_MASK = 0xFFFFFFFF


def make_rng(seed: int) -> np.random.Generator:
    """Generator bound to *seed*; negative seeds wrap to their uint32 value."""
    return np.random.default_rng(int(seed) & _SEED_MASK)


def random_subset(items: Sequence[T], count: int, seed: int) -> List[T]:
    """
    Pick *count* distinct items from *items*, reproducibly for a given seed.

    When *count* covers the whole sequence the items come back in their
    original order (no shuffle).  Otherwise a Fisher–Yates pass runs from the
    last position down to 1, each step drawing ``j`` in ``[0, i]``, and the
    shuffled list is truncated to *count*.
    """
    result = list(items)
    if count <= 0:
        return []
    if count >= len(result):
        return result

    rng = make_rng(seed)
    for i in range(len(result) - 1, 0, -1):
        j = int(rng.integers(0, i, endpoint=True))
        result[i], result[j] = result[j], result[i]
    return result[:count]

"""
#WHERE
    Called by models.py (pose evaluation), the pipeline (local re-derivation)
    and m4_solver (chain transfer).

#WHAT
    Vectorised bone-transform math.  Transforms are split into three arrays
    per bone: translation (B, 3), quaternion rotation (B, 4) in scipy
    ``[x, y, z, w]`` order, and scale (B, 3).

    Convention (same as the interchange format the dataset comes from):

        component_child = component_parent ∘ local_child
        t_c = t_p + R_p · (s_p ⊙ t_l)
        R_c = R_p · R_l
        s_c = s_p ⊙ s_l

#INPUT
    Parent index array, depth levels, per-bone transform arrays.

#OUTPUT
    Transform arrays in the other space.
"""
from __future__ import annotations

from typing import List, Tuple

import numpy as np
from scipy.spatial.transform import Rotation as R

_EPS = 1e-8

TransformArrays = Tuple[np.ndarray, np.ndarray, np.ndarray]


def identity_quats(n: int) -> np.ndarray:
    q = np.zeros((n, 4), dtype=np.float64)
    q[:, 3] = 1.0
    return q


def normalize_quats(quats: np.ndarray) -> np.ndarray:
    """Unit-length quaternions; degenerate (zero) rows become identity."""
    q = np.asarray(quats, dtype=np.float64).reshape(-1, 4)
    norms = np.linalg.norm(q, axis=1, keepdims=True)
    out = np.where(norms > _EPS, q / np.maximum(norms, _EPS), 0.0)
    out[norms[:, 0] <= _EPS, 3] = 1.0
    return out


def _safe_scale(s: np.ndarray) -> np.ndarray:
    return np.where(np.abs(s) > _EPS, s, 1.0)


def depth_levels(parents: np.ndarray) -> List[np.ndarray]:
    """Group bone indices by hierarchy depth (roots first).

    Parent indices may be larger than child indices; only acyclicity is
    assumed (checked by ``Skeleton.validate``).
    """
    n = len(parents)
    depth = np.full(n, -1, dtype=np.int64)
    for i in range(n):
        chain = []
        j = i
        while j >= 0 and depth[j] < 0:
            chain.append(j)
            j = int(parents[j])
        d = -1 if j < 0 else int(depth[j])
        for k in reversed(chain):
            d += 1
            depth[k] = d
    if n == 0:
        return []
    return [np.flatnonzero(depth == d) for d in range(int(depth.max()) + 1)]


def local_to_component(parents: np.ndarray, levels: List[np.ndarray],
                       t: np.ndarray, r: np.ndarray, s: np.ndarray) -> TransformArrays:
    """Accumulate local transforms down the hierarchy, one depth level at a time."""
    ct = np.array(t, dtype=np.float64)
    cr = normalize_quats(r)  # still local until a level is processed
    cs = np.array(s, dtype=np.float64)
    for level in levels[1:]:
        par = parents[level]
        rp = R.from_quat(cr[par])
        ct[level] = ct[par] + rp.apply(cs[par] * ct[level])
        cr[level] = (rp * R.from_quat(cr[level])).as_quat()
        cs[level] = cs[par] * cs[level]
    return ct, cr, cs


def component_to_local(parents: np.ndarray,
                       t: np.ndarray, r: np.ndarray, s: np.ndarray) -> TransformArrays:
    """Inverse of ``local_to_component``: express each bone relative to its parent."""
    ct = np.asarray(t, dtype=np.float64)
    cr = normalize_quats(r)
    cs = np.asarray(s, dtype=np.float64)
    lt, lr, ls = ct.copy(), cr.copy(), cs.copy()

    child = np.flatnonzero(parents >= 0)
    if child.size:
        par = parents[child]
        rp_inv = R.from_quat(cr[par]).inv()
        ps = _safe_scale(cs[par])
        lt[child] = rp_inv.apply(ct[child] - ct[par]) / ps
        lr[child] = (rp_inv * R.from_quat(cr[child])).as_quat()
        ls[child] = cs[child] / ps
    return lt, normalize_quats(lr), ls


def apply_uniform_scale(t: np.ndarray, s: np.ndarray,
                        scale: float) -> Tuple[np.ndarray, np.ndarray]:
    """Multiply translations by *scale* and reset scales to identity.

    Stands in for an import-time unit conversion when no importer runs.
    """
    out_t = np.asarray(t, dtype=np.float64)
    if not np.isclose(scale, 1.0):
        out_t = out_t * float(scale)
    return out_t, np.ones_like(np.asarray(s, dtype=np.float64))

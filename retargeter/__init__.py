"""
#WHERE
    Top-level package; entry points are main.py and ``python -m retargeter``.

#WHAT
    Batch skeleton animation retargeting.

        m1_dataset  → sorted skeleton / clip file sets, seeded clip sampling
        m2_skeleton → skeleton + clip model, bone-chain inference
        m3_assets   → asset store (import namespaces, export, persistence)
        m4_solver   → retarget profile, per-pair pose solver sessions
        m5_sharding → round-robin shards, worker loop, process coordinator
        pipeline    → one (animation, target skeleton) pair end to end

#INPUT
    Dataset base dir with train/ val/ test/ (Character/, Animation/).

#OUTPUT
    <subset>/Retarget/<skeleton>__<animation>.<ext>
"""

__version__ = "0.1.0"

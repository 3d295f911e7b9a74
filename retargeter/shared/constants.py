"""
#WHERE
    Imported by every retargeter module and by tests — single source of
    truth for dataset layout names, defaults and exit codes.

#WHAT
    Centralised constants used across 3+ modules.  Edit here, not in
    individual module files.

#INPUT / #OUTPUT
    Pure constants — no I/O.
"""

# ── Dataset layout ───────────────────────────────────────────────────────

SUBSETS: tuple[str, ...] = ("train", "val", "test")
TRAIN_SUBSET: str = "train"
CHARACTER_DIR: str = "Character"      # skeleton files
ANIMATION_DIR: str = "Animation"      # clip files
RETARGET_DIR: str = "Retarget"        # one output per (skeleton, animation)
PAIR_SEPARATOR: str = "__"            # <skeleton>__<animation>.<ext>

# ── Sampling / sharding ──────────────────────────────────────────────────

DEFAULT_SEED: int = 0
DEFAULT_NUM_WORKERS: int = 2
MAX_ANIMATIONS_PER_SKELETON: int = 100   # train subset sampling cap
WORKER_SEED_STRIDE: int = 1000
SUBSET_HASH_MODULO: int = 1000

# ── Rig ──────────────────────────────────────────────────────────────────

RETARGET_ROOT_BONE: str = "Hips"
ADDED_BONE_TOKEN: str = "_added"      # synthetic joints between canonical ones
EXPECTED_END_BONES: int = 6           # spine top, head tip, 2 hands, 2 feet

# ── Assets / persistence ─────────────────────────────────────────────────

ASSET_EXTENSION: str = "npz"
DEFAULT_NAMESPACE: str = "tmp"
DEFAULT_PERSIST_DIR: str = "Saved/Retargeter"
DEFAULT_LOG_DIR: str = "Saved/Logs"
OUTPUT_SUFFIX: str = "_RTG"

# ── Exit codes ───────────────────────────────────────────────────────────

EXIT_OK: int = 0

# batch / worker
EXIT_MISSING_ARGUMENT: int = 1
EXIT_BASE_DIR_MISSING: int = 2

# single pair
EXIT_MISSING_INPUT: int = 1
EXIT_MISSING_TARGET: int = 2
EXIT_MISSING_OUTPUT: int = 3
EXIT_INPUT_NOT_FOUND: int = 4
EXIT_TARGET_NOT_FOUND: int = 5
EXIT_OUTPUT_DIR_FAILED: int = 6
EXIT_PAIR_FAILED: int = 7             # arguments valid, retargeting itself failed

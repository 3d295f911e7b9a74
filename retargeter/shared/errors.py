"""Exception hierarchy shared by the retargeting modules.

Configuration errors abort an invocation before any work starts.  Topology
errors skip a skeleton, asset and solver errors skip a single pair.  None of
them are retried automatically.
"""

from __future__ import annotations

from typing import Optional


class RetargetError(Exception):
    """Base class for every error raised by the retargeter."""


class ConfigError(RetargetError):
    """Missing or invalid invocation parameter; carries the process exit code."""

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class TopologyError(RetargetError):
    """Skeleton hierarchy cannot be mapped onto the canonical bone chains."""

    def __init__(self, message: str, skeleton_name: str = "",
                 role: Optional[str] = None) -> None:
        super().__init__(message)
        self.skeleton_name = skeleton_name
        self.role = role  # "source" / "target", filled in by the pipeline


class AssetImportError(RetargetError):
    """An asset file could not be read or lacks the expected payload."""


class AssetExportError(RetargetError):
    """The retargeted clip could not be written."""


class SolverError(RetargetError):
    """The pose solver failed; the current pair is abandoned."""

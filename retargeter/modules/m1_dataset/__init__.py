"""
#WHERE
    Imported by m5_sharding, the CLI and tests.

#WHAT
    Dataset module (Module 1) — seeded clip sampling and subset scanning.

#INPUT
    Dataset base directory with train/val/test subsets.

#OUTPUT
    Sorted file lists, sampled animation subsets, output names.
"""

from .sampler import make_rng, random_subset
from .scanner import (
    SubsetFiles,
    base_name,
    expand_path,
    is_sampled_subset,
    list_asset_files,
    output_name,
    prepare_output_dir,
    retarget_dir,
    scan_subset,
)

__all__ = [
    'make_rng', 'random_subset',
    'SubsetFiles', 'base_name', 'expand_path', 'is_sampled_subset',
    'list_asset_files', 'output_name', 'prepare_output_dir', 'retarget_dir',
    'scan_subset',
]

# ============================================================================
# Beam Audit -- Size Sampler (beam_audit/core/size_sampler.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Measures how many bytes a directory tree actually occupies on disk,
#   the same number `du -s --block-size=1` prints.
#
# WHY BLOCKS AND NOT st_size:
#   A file being written over SMB can have its logical length set long
#   before data lands, or grow by a few buffered bytes that never reach a
#   full block. st_blocks only moves when the filesystem really allocates
#   space, so two samples a few seconds apart only differ when data is
#   truly arriving. st_blocks is always in 512-byte units on Linux,
#   whatever the filesystem block size.
#
# CONCURRENT MUTATION:
#   The tree is being written while we walk it. Files may appear, grow or
#   vanish between os.walk() listing them and os.lstat() reading them.
#   Any per-file error is skipped: a slightly stale total is fine because
#   the number is only ever compared with another sample.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
import stat
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .models import SizeSample

_BLOCK_UNIT = 512


def _allocated_bytes(st: os.stat_result) -> int:
    blocks = getattr(st, "st_blocks", None)
    if blocks is None:
        # Platforms without st_blocks (Windows) only expose logical size
        return st.st_size
    return blocks * _BLOCK_UNIT


def get_total_bytes(path) -> Optional[int]:
    """
    Total block-allocated bytes of every regular file under path.

    Returns None if path does not exist or is not a directory; the
    caller treats that as "line unavailable" and skips the cycle.
    Symlinks are not followed.
    """
    root = Path(path)
    if not root.is_dir():
        return None

    total = 0
    for dirpath, _dirnames, filenames in os.walk(str(root)):
        for filename in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, filename))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += _allocated_bytes(st)
    return total


def take_sample(
    path, clock: Callable[[], datetime] = datetime.now,
) -> Optional[SizeSample]:
    """One SizeSample of path, or None if the directory is missing."""
    total = get_total_bytes(path)
    if total is None:
        return None
    return SizeSample(byte_total=total, timestamp=clock())

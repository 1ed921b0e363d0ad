# ============================================================================
# Beam Audit -- Statistics (beam_audit/core/stats.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Turns the scanner's list of ArchiveFiles into:
#     - per-group integrity statistics (counts, min/max/median/stddev)
#     - a grand summary row across all groups
#     - day-folder size anomalies ("this day is 40% of a normal day")
#     - the list of bad archives, grouped by day folder
#
# PLACEHOLDERS:
#   Archives smaller than the tiny threshold (1000 bytes by default) are
#   stubs created before the real data lands. They are counted in
#   placeholder_count but excluded from every size statistic, otherwise a
#   handful of 0-byte stubs would drag every median toward zero.
#
# GRAND MEDIAN / STDDEV:
#   The grand median is the median of the per-group medians (same for
#   stddev), NOT the median of every raw size. A device producing 10x
#   more files than the rest cannot then dictate the overall figure.
#
# "NO DATA" IS NOT ZERO:
#   A group with no non-placeholder files gets None for min/max/median/
#   stddev. median([]) raises IndeterminateComputationError instead of
#   returning 0.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import statistics
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .exceptions import IndeterminateComputationError
from .models import (
    AnomalyReport,
    ArchiveFile,
    BadFile,
    BadFilesReport,
    BadFolder,
    DayDirectory,
    GroupStats,
    IntegrityReport,
    SizeAnomaly,
)

DEFAULT_TINY_THRESHOLD = 1000
TOO_SMALL = "too small"
TOO_LARGE = "too large"


def median(values: Sequence[float]) -> float:
    """
    Odd count: middle element. Even count: mean of the two middle ones.

    median([10]) == 10, median([10, 20]) == 15, median([5, 10, 20]) == 10
    """
    if not values:
        raise IndeterminateComputationError("median of an empty sequence")
    return statistics.median(values)


def population_stddev(values: Sequence[float]) -> float:
    if not values:
        raise IndeterminateComputationError("stddev of an empty sequence")
    return statistics.pstdev(values)


def compute_group_stats(
    group_key: str,
    files: Sequence[ArchiveFile],
    tiny_threshold: int = DEFAULT_TINY_THRESHOLD,
) -> GroupStats:
    """Counts and size statistics for one group of archives."""
    sizes = [f.size_bytes for f in files if f.size_bytes >= tiny_threshold]
    placeholders = len(files) - len(sizes)
    invalid = sum(1 for f in files if not f.is_structurally_valid)

    if not sizes:
        return GroupStats(
            group_key=group_key,
            total_count=len(files),
            placeholder_count=placeholders,
            invalid_count=invalid,
        )

    return GroupStats(
        group_key=group_key,
        total_count=len(files),
        placeholder_count=placeholders,
        invalid_count=invalid,
        min_size=min(sizes),
        max_size=max(sizes),
        median=median(sizes),
        stddev=population_stddev(sizes),
    )


def aggregate_integrity(
    files: Iterable[ArchiveFile],
    tiny_threshold: int = DEFAULT_TINY_THRESHOLD,
) -> Optional[IntegrityReport]:
    """
    Per-group statistics plus grand totals. None when there are no
    archives at all.
    """
    groups: Dict[str, List[ArchiveFile]] = defaultdict(list)
    for f in files:
        groups[f.group_key].append(f)
    if not groups:
        return None

    rows = [
        compute_group_stats(key, groups[key], tiny_threshold)
        for key in sorted(groups)
    ]
    with_data = [r for r in rows if r.has_data]

    return IntegrityReport(
        groups=rows,
        grand_total=sum(r.total_count for r in rows),
        grand_placeholders=sum(r.placeholder_count for r in rows),
        grand_invalid=sum(r.invalid_count for r in rows),
        grand_min=min(r.min_size for r in with_data) if with_data else None,
        grand_max=max(r.max_size for r in with_data) if with_data else None,
        grand_median=median([r.median for r in with_data]) if with_data else None,
        grand_stddev=median([r.stddev for r in with_data]) if with_data else None,
    )


def detect_size_anomalies(
    directories: Iterable[DayDirectory],
    exclude_date: Optional[date] = None,
    low_ratio: float = 0.8,
    high_ratio: float = 1.2,
) -> AnomalyReport:
    """
    Flag day folders far from the median day size.

    The folder for exclude_date (the day being copied right now) is left
    out: it is partial by definition. Sizes at exactly low_ratio or
    high_ratio of the median are not flagged.
    """
    completed = sorted(
        (d for d in directories if d.date != exclude_date),
        key=lambda d: d.name,
    )
    if not completed:
        return AnomalyReport(median=None)

    mid = median([d.byte_total for d in completed])
    anomalies: List[SizeAnomaly] = []
    for d in completed:
        if mid <= 0:
            if d.byte_total > 0:
                anomalies.append(SizeAnomaly(d.name, d.byte_total, TOO_LARGE))
            continue
        ratio = d.byte_total / mid
        if ratio < low_ratio:
            anomalies.append(SizeAnomaly(d.name, d.byte_total, TOO_SMALL))
        elif ratio > high_ratio:
            anomalies.append(SizeAnomaly(d.name, d.byte_total, TOO_LARGE))

    return AnomalyReport(
        median=mid, anomalies=anomalies, directories_checked=len(completed),
    )


def collect_bad_files(
    files: Iterable[ArchiveFile],
    line_id: str,
    max_per_folder: int = 10,
) -> Optional[BadFilesReport]:
    """
    Invalid archives grouped by day folder, folders and files sorted,
    each folder truncated to max_per_folder entries. None when every
    archive is valid.
    """
    by_folder: Dict[str, List[BadFile]] = defaultdict(list)
    for f in files:
        if f.is_structurally_valid:
            continue
        by_folder[f.parent_day].append(BadFile(
            relative_path=f"Line {line_id}/{f.parent_day}/{f.name}",
            size_bytes=f.size_bytes,
            reason=f.invalid_reason or "Unknown error",
        ))
    if not by_folder:
        return None

    folders = []
    for folder in sorted(by_folder):
        entries = sorted(by_folder[folder], key=lambda b: b.relative_path)
        folders.append(BadFolder(
            folder=folder,
            files=entries[:max_per_folder],
            total_in_folder=len(entries),
        ))

    return BadFilesReport(
        total_count=sum(f.total_in_folder for f in folders),
        folders=folders,
    )

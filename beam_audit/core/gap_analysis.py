# ============================================================================
# Beam Audit -- Gap Analysis (beam_audit/core/gap_analysis.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Every weekday of the beam campaign produces one folder on each line,
#   named like "Archive_Beam_B_2026-01-05". This module finds the dated
#   folders that exist and reports the weekdays in between that do not.
#
# THE WALK:
#   Dates from the earliest folder up to, but not including, the latest
#   folder (the latest exists by definition). A missing Monday-Friday is
#   a critical gap; a missing Saturday or Sunday is expected and only
#   counted.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import ArchiveFile, DayDirectory, GapRecord, GapReport
from .size_sampler import get_total_bytes


def extract_day_date(name: str, prefix: str) -> Optional[date]:
    """
    "Archive_Beam_B_2026-01-05" -> date(2026, 1, 5). Anything after the
    ten date characters ("..._2026-01-05_retry") is ignored.
    """
    if not name.startswith(prefix):
        return None
    stamp = name[len(prefix):len(prefix) + 10]
    try:
        return datetime.strptime(stamp, "%Y-%m-%d").date()
    except ValueError:
        return None


def collect_day_directories(
    root, files: Iterable[ArchiveFile], prefix: str,
) -> Dict[str, DayDirectory]:
    """
    Dated day folders of one line, keyed by folder name.

    Folders come from two places: direct children of root whose names
    carry a date (so an empty folder still counts as existing), and the
    parent folder of every scanned archive. byte_total is the
    block-allocated size of the folder (the same measure as the line
    total), falling back to the summed archive sizes if the folder
    vanished between the scan and the walk.
    """
    root = Path(root)
    totals: Dict[str, int] = defaultdict(int)
    counts: Dict[str, int] = defaultdict(int)

    for f in files:
        folder = f.parent_day
        if f.path is not None:
            try:
                folder = f.path.relative_to(root).parts[0]
            except (ValueError, IndexError):
                pass
        totals[folder] += f.size_bytes
        counts[folder] += 1

    names = set(totals)
    if root.is_dir():
        names.update(child.name for child in root.iterdir() if child.is_dir())

    result: Dict[str, DayDirectory] = {}
    for name in sorted(names):
        day = extract_day_date(name, prefix)
        if day is None:
            continue
        allocated = get_total_bytes(root / name)
        result[name] = DayDirectory(
            date=day,
            name=name,
            byte_total=totals[name] if allocated is None else allocated,
            archive_count=counts[name],
        )
    return result


def find_gaps(dates: Iterable[date]) -> GapReport:
    """Walk [min(dates), max(dates)) and record every missing day."""
    existing = set(dates)
    if not existing:
        return GapReport(skipped=True)

    start, end = min(existing), max(existing)
    gaps: List[GapRecord] = []
    current = start
    while current < end:
        if current not in existing:
            gaps.append(GapRecord(date=current, is_weekday=current.weekday() < 5))
        current += timedelta(days=1)

    return GapReport(range_start=start, range_end=end, gaps=gaps)

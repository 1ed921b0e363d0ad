# ============================================================================
# Beam Audit -- Completion Estimates (beam_audit/core/estimates.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Answers three operator questions for a line:
#     1. How far through the campaign is the copy? (weekdays done / total)
#     2. Will the rest fit on the disk? (remaining bytes vs free bytes)
#     3. When will it finish at the current speed? (ETA in hours)
#
# THE MATH:
#   avg_bytes_per_day  = bytes stored / number of day folders
#   weekdays_remaining = weekdays in (current copy date, end date]
#   remaining_bytes    = weekdays_remaining * avg_bytes_per_day
#   disk_ok            = free_bytes > remaining_bytes  (None if free unknown)
#   eta_hours          = remaining_bytes / throughput / 3600  (throughput > 0)
#
#   With zero day folders there is no daily average, so everything
#   derived from it is None ("indeterminate"), never a divide-by-zero and
#   never a made-up 0.
#
# WHICH DAY IS BEING COPIED?
#   The dated folder of the most recently written archive (within the
#   last 5 minutes). Failing that, the newest dated folder. Failing
#   that, the campaign start (0% progress).
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

import psutil

from .gap_analysis import extract_day_date
from .models import ArchiveFile, DayDirectory, EstimateResult

logger = logging.getLogger(__name__)


def count_weekdays(first: date, last: date) -> int:
    """Monday-Friday dates in [first, last]; 0 when last < first."""
    if last < first:
        return 0
    total_days = (last - first).days + 1
    full_weeks, extra = divmod(total_days, 7)
    count = full_weeks * 5
    start_dow = first.weekday()
    for offset in range(extra):
        if (start_dow + offset) % 7 < 5:
            count += 1
    return count


def infer_current_copy_date(
    files: Iterable[ArchiveFile],
    day_directories: Iterable[DayDirectory],
    prefix: str,
    now: Optional[datetime] = None,
    recent_minutes: int = 5,
) -> Optional[date]:
    now = now or datetime.now()
    cutoff = now - timedelta(minutes=recent_minutes)

    recent = [
        f for f in files
        if f.modified is not None and f.modified > cutoff
        and extract_day_date(f.parent_day, prefix) is not None
    ]
    if recent:
        newest = max(recent, key=lambda f: f.modified)
        return extract_day_date(newest.parent_day, prefix)

    dates = [d.date for d in day_directories]
    if dates:
        return max(dates)
    return None


def free_bytes(path) -> Optional[int]:
    """Free bytes on the filesystem holding path, None if unreadable."""
    try:
        return int(psutil.disk_usage(str(path)).free)
    except OSError as e:
        logger.warning("Cannot read free space for %s: %s", path, e)
        return None


def calculate_estimates(
    total_bytes: int,
    day_count: int,
    start_date: date,
    end_date: date,
    current_copy_date: Optional[date],
    free: Optional[int],
    throughput_bps: float,
) -> EstimateResult:
    """Pure projection; see the module header for the formulas."""
    current = current_copy_date or start_date

    weekdays_remaining = count_weekdays(current + timedelta(days=1), end_date)
    weekdays_completed = count_weekdays(start_date, current - timedelta(days=1))
    total_weekdays = count_weekdays(start_date, end_date)

    if day_count <= 0:
        return EstimateResult(
            avg_bytes_per_day=None,
            weekdays_remaining=weekdays_remaining,
            remaining_bytes=None,
            free_bytes=free,
            eta_hours=None,
            disk_ok=None,
            current_copy_date=current,
            weekdays_completed=weekdays_completed,
            total_weekdays=total_weekdays,
        )

    avg = total_bytes / day_count
    remaining = weekdays_remaining * avg
    eta_hours = None
    if throughput_bps > 0:
        eta_hours = remaining / throughput_bps / 3600

    return EstimateResult(
        avg_bytes_per_day=avg,
        weekdays_remaining=weekdays_remaining,
        remaining_bytes=remaining,
        free_bytes=free,
        eta_hours=eta_hours,
        disk_ok=None if free is None else free > remaining,
        current_copy_date=current,
        weekdays_completed=weekdays_completed,
        total_weekdays=total_weekdays,
    )

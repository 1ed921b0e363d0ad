# ============================================================================
# Beam Audit -- Monthly Health Ranking (beam_audit/core/ranking.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Scores every month of the campaign 0-100 for one line, names the best
#   and worst month, and merges the two lines into one combined ranking
#   for the dashboard.
#
# THE SCORE:
#   penalty     = missing_days * 10    (a whole day of data lost)
#               + invalid_files * 3    (archive present but corrupt)
#               + anomaly_count * 2    (day folder far from normal size)
#               + empty_files * 1      (placeholder that never filled)
#   max_penalty = expected_weekdays * 10
#   score       = 100 * (1 - penalty / max_penalty), clamped to [0, 100]
#
#   A month loses all its points only when every expected day is missing
#   (or the smaller problems add up to the same weight).
#
# EXPECTED WEEKDAYS:
#   Monday-Friday of the month, clamped to the campaign dates and to
#   today. Months with nothing due yet are left out entirely.
#
# "ALWAYS EMPTY" FILES:
#   Some devices never produce data and write a stub every day. A file
#   name that is under the tiny threshold in EVERY archive is that kind
#   of device, not a fault, and is not counted as an empty file.
#
# BEST / WORST:
#   Chosen among complete (past) months when there are any, so a month
#   half-way through does not win just because it is short.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import calendar
from collections import Counter, defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .estimates import count_weekdays
from .gap_analysis import extract_day_date
from .models import (
    AnomalyReport,
    ArchiveFile,
    CombinedMonthlyMetrics,
    CombinedRankingReport,
    GapReport,
    MonthlyMetrics,
    MonthlyRankingReport,
)

MISSING_DAY_WEIGHT = 10
INVALID_FILE_WEIGHT = 3
ANOMALY_WEIGHT = 2
EMPTY_FILE_WEIGHT = 1

Month = Tuple[int, int]


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def count_expected_weekdays_in_month(
    year: int, month: int, range_start: date, range_end: date, today: date,
) -> int:
    """Weekdays of the month inside [range_start, min(range_end, today)]."""
    first = max(date(year, month, 1), range_start)
    last = min(month_end(year, month), range_end, today)
    return count_weekdays(first, last)


def find_always_empty_files(
    files: Iterable[ArchiveFile], tiny_threshold: int,
) -> Set[str]:
    """File names that are below tiny_threshold in every archive they appear in."""
    totals: Counter = Counter()
    empties: Counter = Counter()
    for f in files:
        totals[f.group_key] += 1
        if f.size_bytes < tiny_threshold:
            empties[f.group_key] += 1
    return {name for name, total in totals.items() if empties[name] == total}


def calculate_health_score(
    missing_days: int,
    invalid_files: int,
    anomaly_count: int,
    empty_files: int,
    expected_weekdays: int,
) -> float:
    if expected_weekdays <= 0:
        return 0.0
    penalty = (
        missing_days * MISSING_DAY_WEIGHT
        + invalid_files * INVALID_FILE_WEIGHT
        + anomaly_count * ANOMALY_WEIGHT
        + empty_files * EMPTY_FILE_WEIGHT
    )
    max_penalty = expected_weekdays * MISSING_DAY_WEIGHT
    return max(0.0, min(100.0, 100.0 * (1.0 - penalty / max_penalty)))


def _best_first(months: List, score) -> List:
    # ties broken chronologically so the order never depends on dict order
    return sorted(months, key=lambda m: (-score(m), m.year, m.month))


def calculate_monthly_rankings(
    files: Sequence[ArchiveFile],
    gaps: Optional[GapReport],
    anomalies: Optional[AnomalyReport],
    line_id: str,
    prefix: str,
    start_date: date,
    end_date: date,
    tiny_threshold: int = 1000,
    today: Optional[date] = None,
) -> MonthlyRankingReport:
    """
    Per-month health of one line.

    files      -- every scanned archive of the line
    gaps       -- only weekday gaps are counted as missing days
    anomalies  -- anomaly names are day-folder names, dated via prefix
    """
    today = today or date.today()
    always_empty = find_always_empty_files(files, tiny_threshold)

    files_by_month: Dict[Month, List[ArchiveFile]] = defaultdict(list)
    days_by_month: Dict[Month, Set[date]] = defaultdict(set)
    for f in files:
        day = extract_day_date(f.parent_day, prefix)
        if day is None:
            continue
        files_by_month[(day.year, day.month)].append(f)
        days_by_month[(day.year, day.month)].add(day)

    missing_by_month: Counter = Counter()
    if gaps is not None:
        for g in gaps.weekday_gaps:
            missing_by_month[(g.date.year, g.date.month)] += 1

    anomalies_by_month: Counter = Counter()
    if anomalies is not None:
        for a in anomalies.anomalies:
            day = extract_day_date(a.name, prefix)
            if day is not None:
                anomalies_by_month[(day.year, day.month)] += 1

    months: List[MonthlyMetrics] = []
    for year, month in set(files_by_month) | set(missing_by_month):
        expected = count_expected_weekdays_in_month(year, month, start_date, end_date, today)
        if expected == 0:
            continue

        in_month = files_by_month.get((year, month), [])
        invalid = sum(1 for f in in_month if not f.is_structurally_valid)
        empty = sum(
            1 for f in in_month
            if f.size_bytes < tiny_threshold and f.group_key not in always_empty
        )
        missing = missing_by_month[(year, month)]
        anomaly_count = anomalies_by_month[(year, month)]

        months.append(MonthlyMetrics(
            year=year,
            month=month,
            missing_days=missing,
            anomaly_count=anomaly_count,
            invalid_files=invalid,
            empty_files=empty,
            expected_weekdays=expected,
            actual_archives=len(days_by_month.get((year, month), ())),
            health_score=calculate_health_score(
                missing, invalid, anomaly_count, empty, expected,
            ),
            is_complete=today > month_end(year, month),
        ))

    months = _best_first(months, lambda m: m.health_score)
    if not months:
        return MonthlyRankingReport(line_id=line_id)

    candidates = [m for m in months if m.is_complete] or months
    return MonthlyRankingReport(
        line_id=line_id,
        months=months,
        best_month=candidates[0],
        worst_month=candidates[-1],
        average_score=sum(m.health_score for m in months) / len(months),
    )


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def combine_rankings(
    line_a: MonthlyRankingReport, line_b: MonthlyRankingReport,
) -> CombinedRankingReport:
    """
    Month-by-month merge of both lines. A month's combined score is the
    mean of the line scores it has; best/worst prefer months scored on
    both lines.
    """
    a_months = {(m.year, m.month): m for m in line_a.months}
    b_months = {(m.year, m.month): m for m in line_b.months}

    merged = []
    for key in set(a_months) | set(b_months):
        a, b = a_months.get(key), b_months.get(key)
        merged.append(CombinedMonthlyMetrics(
            year=key[0],
            month=key[1],
            combined_score=_mean([
                a.health_score if a else None, b.health_score if b else None,
            ]),
            line_a=a,
            line_b=b,
        ))

    merged = _best_first(merged, lambda m: m.combined_score)
    both = [m for m in merged if m.line_a is not None and m.line_b is not None]
    candidates = both or merged

    return CombinedRankingReport(
        months=merged,
        best_month=candidates[0] if candidates else None,
        worst_month=candidates[-1] if candidates else None,
        line_a_average=line_a.average_score,
        line_b_average=line_b.average_score,
        combined_average=_mean([line_a.average_score, line_b.average_score]),
    )

# ============================================================================
# test_stats.py -- Integrity statistics, size anomalies, bad-file listing
# ============================================================================
#
# COVERS:
#   Tests 01-03: median / population stddev
#   Tests 04-07: per-group stats and the grand summary row
#   Tests 08-12: day-folder size anomalies
#   Tests 13-14: bad archives grouped by folder
#
# RUN:
#   python -m pytest tests/test_stats.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

from datetime import date

import pytest

from beam_audit.core.exceptions import IndeterminateComputationError
from beam_audit.core.models import ArchiveFile, DayDirectory
from beam_audit.core.stats import (
    TOO_LARGE,
    TOO_SMALL,
    aggregate_integrity,
    collect_bad_files,
    compute_group_stats,
    detect_size_anomalies,
    median,
    population_stddev,
)


def _archive(name, size, day="Archive_Beam_B_2026-01-05", valid=True, reason=None):
    return ArchiveFile(
        name=name, size_bytes=size, group_key=name,
        is_structurally_valid=valid, parent_day=day, invalid_reason=reason,
    )


def _day(day: date, size: int) -> DayDirectory:
    return DayDirectory(
        date=day, name=f"Archive_Beam_B_{day.isoformat()}",
        byte_total=size, archive_count=1,
    )


class TestBasicStats:

    # ------------------------------------------------------------------
    # TEST 01: odd / even / single-element medians
    # ------------------------------------------------------------------
    @pytest.mark.parametrize("values,expected", [
        ([10], 10), ([10, 20], 15), ([5, 10, 20], 10), ([20, 5, 10], 10),
    ])
    def test_01_median(self, values, expected):
        assert median(values) == expected

    # ------------------------------------------------------------------
    # TEST 02: empty input has no median, not a zero median
    # ------------------------------------------------------------------
    def test_02_median_empty_raises(self):
        with pytest.raises(IndeterminateComputationError):
            median([])
        with pytest.raises(IndeterminateComputationError):
            population_stddev([])

    # ------------------------------------------------------------------
    # TEST 03: population (not sample) standard deviation
    # ------------------------------------------------------------------
    def test_03_population_stddev(self):
        assert population_stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert population_stddev([42]) == 0


class TestIntegrity:

    # ------------------------------------------------------------------
    # TEST 04: placeholders counted but kept out of size statistics
    # ------------------------------------------------------------------
    def test_04_placeholders_excluded(self):
        files = [
            _archive("dev00.zip", 0),
            _archive("dev00.zip", 500),
            _archive("dev00.zip", 4000),
            _archive("dev00.zip", 6000),
        ]
        g = compute_group_stats("dev00.zip", files, tiny_threshold=1000)
        assert g.total_count == 4
        assert g.placeholder_count == 2
        assert g.valid_count == 2
        assert (g.min_size, g.max_size, g.median) == (4000, 6000, 5000)
        assert g.stddev == pytest.approx(1000.0)

    # ------------------------------------------------------------------
    # TEST 05: a group of only placeholders has "no data", not zeros
    # ------------------------------------------------------------------
    def test_05_group_without_data(self):
        g = compute_group_stats("dev01.zip", [_archive("dev01.zip", 10)])
        assert not g.has_data
        assert g.min_size is None and g.median is None and g.stddev is None

    # ------------------------------------------------------------------
    # TEST 06: grand median is the median of the group medians
    # ------------------------------------------------------------------
    def test_06_grand_row(self):
        files = (
            [_archive("a.zip", s) for s in (1000, 1000, 1000, 1000, 1000)]
            + [_archive("b.zip", s) for s in (3000,)]
            + [_archive("c.zip", s) for s in (5000, 7000)]
            + [_archive("d.zip", 0, valid=False, reason="File too small")]
        )
        report = aggregate_integrity(files, tiny_threshold=1000)

        assert [g.group_key for g in report.groups] == ["a.zip", "b.zip", "c.zip", "d.zip"]
        assert report.grand_total == 9
        assert report.grand_placeholders == 1
        assert report.grand_invalid == 1
        assert report.grand_min == 1000
        assert report.grand_max == 7000
        # group medians 1000, 3000, 6000 -> 3000 (d.zip has no data)
        assert report.grand_median == 3000
        # group stddevs 0, 0, 1000 -> 0
        assert report.grand_stddev == 0

    # ------------------------------------------------------------------
    # TEST 07: no archives at all -> no report
    # ------------------------------------------------------------------
    def test_07_no_archives(self):
        assert aggregate_integrity([]) is None


class TestAnomalies:

    # ------------------------------------------------------------------
    # TEST 08: [100, 100, 100, 40] -> the 40 is too small
    # ------------------------------------------------------------------
    def test_08_small_day_flagged(self):
        days = [
            _day(date(2026, 1, 5), 100), _day(date(2026, 1, 6), 100),
            _day(date(2026, 1, 7), 100), _day(date(2026, 1, 8), 40),
        ]
        report = detect_size_anomalies(days)
        assert report.median == 100
        assert report.directories_checked == 4
        assert len(report.anomalies) == 1
        assert report.anomalies[0].name == "Archive_Beam_B_2026-01-08"
        assert report.anomalies[0].category == TOO_SMALL

    # ------------------------------------------------------------------
    # TEST 09: exactly 80% and 120% of the median are not anomalies
    # ------------------------------------------------------------------
    def test_09_boundaries_not_flagged(self):
        days = [
            _day(date(2026, 1, 5), 80), _day(date(2026, 1, 6), 100),
            _day(date(2026, 1, 7), 120),
        ]
        report = detect_size_anomalies(days)
        assert report.median == 100
        assert report.anomalies == []

    # ------------------------------------------------------------------
    # TEST 10: oversized day flagged as too large
    # ------------------------------------------------------------------
    def test_10_large_day_flagged(self):
        days = [
            _day(date(2026, 1, 5), 100), _day(date(2026, 1, 6), 100),
            _day(date(2026, 1, 7), 121),
        ]
        report = detect_size_anomalies(days)
        assert [(a.name, a.category) for a in report.anomalies] == [
            ("Archive_Beam_B_2026-01-07", TOO_LARGE),
        ]

    # ------------------------------------------------------------------
    # TEST 11: the day being copied is left out of the comparison
    # ------------------------------------------------------------------
    def test_11_current_day_excluded(self):
        days = [
            _day(date(2026, 1, 5), 100), _day(date(2026, 1, 6), 100),
            _day(date(2026, 1, 7), 5),
        ]
        report = detect_size_anomalies(days, exclude_date=date(2026, 1, 7))
        assert report.directories_checked == 2
        assert report.anomalies == []

    # ------------------------------------------------------------------
    # TEST 12: nothing completed -> "no data", never a zero median
    # ------------------------------------------------------------------
    def test_12_no_completed_directories(self):
        only = [_day(date(2026, 1, 5), 100)]
        report = detect_size_anomalies(only, exclude_date=date(2026, 1, 5))
        assert not report.has_data
        assert report.median is None
        assert not detect_size_anomalies([]).has_data


class TestBadFiles:

    # ------------------------------------------------------------------
    # TEST 13: grouped by folder, sorted, with Line-relative paths
    # ------------------------------------------------------------------
    def test_13_grouped_and_sorted(self):
        files = [
            _archive("b.zip", 10, day="Archive_Beam_B_2026-01-06", valid=False, reason="cut"),
            _archive("a.zip", 10, day="Archive_Beam_B_2026-01-06", valid=False, reason="cut"),
            _archive("ok.zip", 5000, day="Archive_Beam_B_2026-01-06"),
            _archive("z.zip", 10, day="Archive_Beam_B_2026-01-05", valid=False),
        ]
        report = collect_bad_files(files, "B")

        assert report.total_count == 3
        assert [f.folder for f in report.folders] == [
            "Archive_Beam_B_2026-01-05", "Archive_Beam_B_2026-01-06",
        ]
        second = report.folders[1]
        assert [b.relative_path for b in second.files] == [
            "Line B/Archive_Beam_B_2026-01-06/a.zip",
            "Line B/Archive_Beam_B_2026-01-06/b.zip",
        ]
        assert report.folders[0].files[0].reason == "Unknown error"

    # ------------------------------------------------------------------
    # TEST 14: long folders are truncated; all-valid lines give None
    # ------------------------------------------------------------------
    def test_14_truncation_and_none(self):
        files = [_archive(f"dev{i:02d}.zip", 1, valid=False, reason="x") for i in range(15)]
        report = collect_bad_files(files, "A", max_per_folder=10)
        assert report.total_count == 15
        assert len(report.folders[0].files) == 10
        assert report.folders[0].total_in_folder == 15

        assert collect_bad_files([_archive("ok.zip", 5000)], "A") is None

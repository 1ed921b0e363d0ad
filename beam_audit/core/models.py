# ============================================================================
# Beam Audit -- Data Model (beam_audit/core/models.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Defines the typed records every audit component passes around:
#   samples, transfer states, pending transitions, archive files, group
#   statistics, day directories, gaps, estimates and monthly rankings.
#
# WHY DATACLASSES:
#   Each record has a fixed, named shape. config.paths.base_dir style
#   attribute access catches typos immediately, where a dict keyed by
#   strings would silently return None and break three modules later.
#
# MUTABILITY:
#   Records produced by scanning (ArchiveFile, DayDirectory, GapRecord)
#   are frozen. LineState is the only mutable record: it is what the
#   StateStore loads, the debouncer edits, and the StateStore saves.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class TransferState(str, Enum):
    """Confirmed or observed activity of one transfer line."""
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"

    @classmethod
    def parse(cls, raw: str, default: Optional["TransferState"] = None) -> "TransferState":
        """Parse a persisted state value, tolerating whitespace and case."""
        value = (raw or "").strip().upper()
        try:
            return cls(value)
        except ValueError:
            if default is None:
                raise
            return default


@dataclass(frozen=True)
class LineSpec:
    """
    Identity and on-disk layout of one transfer line.

    A line owns its root directory ("<base_dir>/Line B") and the
    folder-name prefix of its daily archive directories
    ("Archive_Beam_B_2026-01-05").
    """
    line_id: str
    base_dir: Path

    @property
    def root(self) -> Path:
        return self.base_dir / f"Line {self.line_id}"

    @property
    def folder_prefix(self) -> str:
        return f"Archive_Beam_{self.line_id}_"

    @property
    def other_line_id(self) -> str:
        return "B" if self.line_id == "A" else "A"


@dataclass(frozen=True)
class SizeSample:
    """Point-in-time block-allocated byte total of a directory tree."""
    byte_total: int
    timestamp: datetime


@dataclass(frozen=True)
class TransferReading:
    """Result of comparing two SizeSamples of the same directory."""
    state: TransferState
    delta_bytes: int
    throughput_bps: float
    interval_seconds: float
    sampled_at: datetime
    byte_total: int = 0

    @property
    def throughput_mib(self) -> float:
        return self.throughput_bps / 1024 / 1024


@dataclass(frozen=True)
class PendingTransition:
    """A newly observed state waiting to be sustained long enough."""
    candidate_state: TransferState
    first_observed_at: datetime


@dataclass(frozen=True)
class StateTransitionEvent:
    """One confirmed transition, as written to the interruption log."""
    timestamp: datetime
    from_state: TransferState
    to_state: TransferState
    duration_in_previous_state_seconds: float

    @property
    def duration_minutes(self) -> float:
        return self.duration_in_previous_state_seconds / 60.0


@dataclass
class LineState:
    """
    Everything persisted for one line between invocations.

    confirmed -- the last confirmed TransferState (IDLE on first run)
    since     -- when the confirmed state began
    pending   -- a not-yet-confirmed candidate, or None
    """
    confirmed: TransferState = TransferState.IDLE
    since: Optional[datetime] = None
    pending: Optional[PendingTransition] = None


@dataclass(frozen=True)
class ArchiveFile:
    """One archive found under a line's directory tree."""
    name: str
    size_bytes: int
    group_key: str
    is_structurally_valid: bool
    parent_day: str
    path: Optional[Path] = None
    modified: Optional[datetime] = None
    invalid_reason: Optional[str] = None


@dataclass(frozen=True)
class RecentFile:
    """A file under a line root written within the recent window."""
    display_path: str
    size_bytes: int
    modified: datetime


@dataclass(frozen=True)
class GroupStats:
    """
    Per-group counts and size statistics.

    min/max/median/stddev are None when the group has no
    non-placeholder files ("no data", never a fabricated zero).
    """
    group_key: str
    total_count: int
    placeholder_count: int
    invalid_count: int
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    median: Optional[float] = None
    stddev: Optional[float] = None

    @property
    def valid_count(self) -> int:
        return self.total_count - self.placeholder_count

    @property
    def has_data(self) -> bool:
        return self.valid_count > 0


@dataclass(frozen=True)
class IntegrityReport:
    """All GroupStats of a line plus the grand-total summary row."""
    groups: List[GroupStats]
    grand_total: int
    grand_placeholders: int
    grand_invalid: int
    grand_min: Optional[int] = None
    grand_max: Optional[int] = None
    grand_median: Optional[float] = None
    grand_stddev: Optional[float] = None


@dataclass(frozen=True)
class DayDirectory:
    """One dated archive folder and its allocated size."""
    date: date
    name: str
    byte_total: int
    archive_count: int


@dataclass(frozen=True)
class GapRecord:
    date: date
    is_weekday: bool


@dataclass(frozen=True)
class GapReport:
    """
    Outcome of the calendar walk. skipped=True when the line has no
    dated directories at all (nothing to compare).
    """
    range_start: Optional[date] = None
    range_end: Optional[date] = None
    gaps: List[GapRecord] = field(default_factory=list)
    skipped: bool = False

    @property
    def weekday_gaps(self) -> List[GapRecord]:
        return [g for g in self.gaps if g.is_weekday]

    @property
    def weekend_gaps(self) -> int:
        return sum(1 for g in self.gaps if not g.is_weekday)


@dataclass(frozen=True)
class SizeAnomaly:
    name: str
    byte_total: int
    category: str  # "too small" or "too large"


@dataclass(frozen=True)
class AnomalyReport:
    """median is None when there were no completed directories."""
    median: Optional[float]
    anomalies: List[SizeAnomaly] = field(default_factory=list)
    directories_checked: int = 0

    @property
    def has_data(self) -> bool:
        return self.median is not None


@dataclass(frozen=True)
class EstimateResult:
    """
    Completion projection. Fields that cannot be computed (no day
    directories, no throughput, free space unreadable) are None rather
    than zero.
    """
    avg_bytes_per_day: Optional[float]
    weekdays_remaining: int
    remaining_bytes: Optional[float]
    free_bytes: Optional[int]
    eta_hours: Optional[float]
    disk_ok: Optional[bool]
    current_copy_date: Optional[date] = None
    weekdays_completed: int = 0
    total_weekdays: int = 0

    @property
    def eta_days(self) -> Optional[float]:
        if self.eta_hours is None:
            return None
        return self.eta_hours / 24.0

    @property
    def progress_pct(self) -> int:
        if self.total_weekdays <= 0:
            return 0
        return int(min(100.0, self.weekdays_completed / self.total_weekdays * 100.0))


@dataclass(frozen=True)
class BadFile:
    relative_path: str
    size_bytes: int
    reason: str


@dataclass(frozen=True)
class BadFolder:
    """Invalid archives of one day folder; files may be truncated."""
    folder: str
    files: List[BadFile]
    total_in_folder: int


@dataclass(frozen=True)
class BadFilesReport:
    total_count: int
    folders: List[BadFolder]


@dataclass(frozen=True)
class RedundancyReading:
    """System-wide activity classification from the redundancy probe."""
    classification: str  # "IDLE", "DISK" or "NET"
    throughput_bps: float
    attributed_to_line: Optional[str] = None


@dataclass(frozen=True)
class MonthlyMetrics:
    """
    Health of one calendar month of one line.

    expected_weekdays is clamped to the campaign and to today, so a
    month still in progress is judged only on the days already due.
    """
    year: int
    month: int
    missing_days: int
    anomaly_count: int
    invalid_files: int
    empty_files: int
    expected_weekdays: int
    actual_archives: int
    health_score: float
    is_complete: bool

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class MonthlyRankingReport:
    """Months best first. average_score is None when no month qualified."""
    line_id: str
    months: List[MonthlyMetrics] = field(default_factory=list)
    best_month: Optional[MonthlyMetrics] = None
    worst_month: Optional[MonthlyMetrics] = None
    average_score: Optional[float] = None


@dataclass(frozen=True)
class CombinedMonthlyMetrics:
    year: int
    month: int
    combined_score: float
    line_a: Optional[MonthlyMetrics] = None
    line_b: Optional[MonthlyMetrics] = None

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def line_a_score(self) -> Optional[float]:
        return self.line_a.health_score if self.line_a else None

    @property
    def line_b_score(self) -> Optional[float]:
        return self.line_b.health_score if self.line_b else None


@dataclass(frozen=True)
class CombinedRankingReport:
    """Both lines month by month, best combined score first."""
    months: List[CombinedMonthlyMetrics] = field(default_factory=list)
    best_month: Optional[CombinedMonthlyMetrics] = None
    worst_month: Optional[CombinedMonthlyMetrics] = None
    line_a_average: Optional[float] = None
    line_b_average: Optional[float] = None
    combined_average: Optional[float] = None


@dataclass
class LineReport:
    """
    Everything one audit cycle produced for one line.

    skipped_reason is set when the cycle could not run at all (line
    directory missing, lock held); every other field is then empty.
    """
    line_id: str
    generated_at: datetime
    skipped_reason: Optional[str] = None
    total_bytes: int = 0
    total_archives: int = 0
    reading: Optional[TransferReading] = None
    confirmed_state: Optional[TransferState] = None
    since: Optional[datetime] = None
    pending: Optional[PendingTransition] = None
    alert_sent: bool = False
    recent_files: List[RecentFile] = field(default_factory=list)
    redundancy: Optional[RedundancyReading] = None
    integrity: Optional[IntegrityReport] = None
    gaps: Optional[GapReport] = None
    anomalies: Optional[AnomalyReport] = None
    estimates: Optional[EstimateResult] = None
    bad_files: Optional[BadFilesReport] = None
    ranking: Optional[MonthlyRankingReport] = None
    day_directories: Dict[str, DayDirectory] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

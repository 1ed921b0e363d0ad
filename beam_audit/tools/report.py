# ============================================================================
# Beam Audit -- Text Report (beam_audit/tools/report.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Renders LineReports as plain text: one report per line for the
#   terminal, and a combined report of every line for --dashboard.
#
# NON-PROGRAMMER NOTE:
#   Nothing in here computes anything. If a number looks wrong in the
#   report, the bug is in beam_audit/core/, not here.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from beam_audit.core.models import (
    AnomalyReport,
    BadFilesReport,
    CombinedRankingReport,
    EstimateResult,
    GapReport,
    IntegrityReport,
    LineReport,
    MonthlyRankingReport,
    RedundancyReading,
)

WIDTH = 72
RECENT_SHOWN = 3


def _fmt_size(b) -> str:
    """Format bytes as human-readable string (KB, MB, GB, TB)."""
    b = float(b)
    if b < 1024:
        return f"{b:.0f} B"
    elif b < 1024**2:
        return f"{b / 1024:.1f} KB"
    elif b < 1024**3:
        return f"{b / 1024**2:.1f} MB"
    elif b < 1024**4:
        return f"{b / 1024**3:.2f} GB"
    return f"{b / 1024**4:.2f} TB"


def _fmt_dur(s: float) -> str:
    """Format seconds as human-readable duration (e.g., '2m 30s', '3d 4h')."""
    if s < 60:
        return f"{s:.1f}s"
    elif s < 3600:
        m, sec = divmod(s, 60)
        return f"{int(m)}m {int(sec)}s"
    elif s < 86400:
        h, rem = divmod(s, 3600)
        return f"{int(h)}h {int(rem // 60)}m"
    d, rem = divmod(s, 86400)
    return f"{int(d)}d {int(rem // 3600)}h"


def _opt_size(b) -> str:
    return "no data" if b is None else _fmt_size(b)


def _heading(title: str) -> List[str]:
    return ["", f"  --- {title} ---"]


# ----------------------------------------------------------------------------
# Sections
# ----------------------------------------------------------------------------

def _status_section(r: LineReport) -> List[str]:
    reading = r.reading
    lines = [
        f"  Archive Status:    {_fmt_size(r.total_bytes)} across {r.total_archives:,} zip files",
    ]
    if reading is not None:
        lines.append(
            f"  Current Speed:     {reading.throughput_mib:.1f} MiB/s "
            f"(+{_fmt_size(reading.delta_bytes)} in {reading.interval_seconds:g}s, "
            f"raw {reading.state.value})"
        )
    if r.confirmed_state is not None:
        since = r.since.strftime("%Y-%m-%d %H:%M") if r.since else "unknown"
        lines.append(f"  Transfer State:    {r.confirmed_state.value} since {since}")
    if r.pending is not None:
        lines.append(
            f"  Pending Change:    {r.pending.candidate_state.value} first seen "
            f"{r.pending.first_observed_at.strftime('%Y-%m-%d %H:%M')}"
        )
    if r.alert_sent:
        lines.append("  Alert:             sent this cycle")
    return lines


def _recent_section(r: LineReport) -> List[str]:
    lines = _heading("Active/Recent File Writes")
    if not r.recent_files:
        lines.append("  No files modified in the last few minutes.")
        return lines
    for f in r.recent_files[:RECENT_SHOWN]:
        lines.append(
            f"  - {f.display_path} ({_fmt_size(f.size_bytes)}) "
            f"at {f.modified.strftime('%Y-%m-%d %H:%M')}"
        )
    if len(r.recent_files) > RECENT_SHOWN:
        lines.append(f"  ... and {len(r.recent_files) - RECENT_SHOWN} more files.")
    return lines


def _redundancy_section(red: RedundancyReading) -> List[str]:
    lines = _heading("Redundancy Check (System-Wide Activity)")
    mib = red.throughput_bps / 1024 / 1024
    if red.classification == "IDLE":
        lines.append("  CONFIRMED IDLE: no significant system-wide disk or network activity.")
    elif red.attributed_to_line:
        kind = "Disk" if red.classification == "DISK" else "Network"
        lines.append(f"  INFO: High {kind} Activity ({mib:.1f} MiB/s) detected.")
        lines.append(f"  Activity attributed to concurrent transfer on Line {red.attributed_to_line}.")
    elif red.classification == "DISK":
        lines.append(f"  WARNING: High system-wide disk activity ({mib:.1f} MiB/s).")
        lines.append("  The transfer might be active but buffering, or another process is writing.")
    else:
        lines.append(f"  WARNING: High network activity ({mib:.1f} MiB/s).")
        lines.append("  Data is being received, but not yet written to the target folder.")
    return lines


def _integrity_section(stats: Optional[IntegrityReport]) -> List[str]:
    lines = _heading("Integrity")
    if stats is None:
        lines.append("  No zip files found.")
        return lines
    header = (
        f"  {'Filename':<28} {'Total':>6} {'Empty':>6} {'Bad':>5} "
        f"{'Min':>9} {'Max':>9} {'Median':>9} {'StdDev':>9}"
    )
    lines.extend([header, "  " + "-" * (WIDTH - 2)])
    for g in stats.groups:
        lines.append(
            f"  {g.group_key[:28]:<28} {g.total_count:>6} {g.placeholder_count:>6} "
            f"{g.invalid_count:>5} {_opt_size(g.min_size):>9} {_opt_size(g.max_size):>9} "
            f"{_opt_size(g.median):>9} {_opt_size(g.stddev):>9}"
        )
    lines.append("  " + "-" * (WIDTH - 2))
    lines.append(
        f"  {'TOTALS / SUMMARY':<28} {stats.grand_total:>6} {stats.grand_placeholders:>6} "
        f"{stats.grand_invalid:>5} {_opt_size(stats.grand_min):>9} "
        f"{_opt_size(stats.grand_max):>9} {_opt_size(stats.grand_median):>9} "
        f"{_opt_size(stats.grand_stddev):>9}"
    )
    return lines


def _bad_files_section(bad: Optional[BadFilesReport], threshold: int) -> List[str]:
    if bad is None:
        return []
    lines = _heading("Bad ZIP Files")
    lines.append(
        f"  Found {bad.total_count} bad ZIP files across {len(bad.folders)} folders "
        f"(showing folders with >{threshold} bad files):"
    )
    for folder in bad.folders:
        if folder.total_in_folder <= threshold:
            continue
        if folder.total_in_folder > len(folder.files):
            lines.append(
                f"  {folder.folder} ({folder.total_in_folder} bad files, "
                f"showing first {len(folder.files)})"
            )
        else:
            lines.append(f"  {folder.folder} ({folder.total_in_folder} bad files)")
        for f in folder.files:
            lines.append(f"    ! {f.relative_path}")
            lines.append(f"      Size: {_fmt_size(f.size_bytes)}")
            lines.append(f"      Reason: {f.reason}")
        hidden = folder.total_in_folder - len(folder.files)
        if hidden > 0:
            lines.append(f"    ... {hidden} more bad files in this folder")
    return lines


def _gap_section(gaps: Optional[GapReport]) -> List[str]:
    lines = _heading("Gap Analysis")
    if gaps is None or gaps.skipped:
        lines.append("  No dated folders found for gap analysis.")
        return lines
    for g in gaps.weekday_gaps:
        lines.append(f"  ! {g.date.isoformat()} ({g.date.strftime('%A')}) - Archive not found")
    lines.append(f"  Range checked: {gaps.range_start} to {gaps.range_end}")
    if not gaps.weekday_gaps:
        lines.append(f"  No weekday gaps found. ({gaps.weekend_gaps} weekend days skipped)")
    return lines


def _anomaly_section(anomalies: Optional[AnomalyReport]) -> List[str]:
    lines = _heading("Size Anomalies")
    if anomalies is None or not anomalies.has_data:
        lines.append("  No completed directories.")
        return lines
    lines.append(f"  Median Size: {_fmt_size(anomalies.median)} "
                 f"({anomalies.directories_checked} folders)")
    if not anomalies.anomalies:
        lines.append("  No significant size anomalies found.")
    for a in anomalies.anomalies:
        lines.append(f"  ! {a.name:<35} | {_fmt_size(a.byte_total):>10} | ({a.category})")
    return lines


def _estimate_section(est: Optional[EstimateResult]) -> List[str]:
    lines = _heading("Transfer Estimates")
    if est is None:
        lines.append("  Campaign dates unknown (set campaign.start_date/end_date or Transfer.ps1).")
        return lines
    filled = est.progress_pct * 20 // 100
    lines.append(f"  Transfer Progress: [{'#' * filled}{'.' * (20 - filled)}] {est.progress_pct}%")
    if est.current_copy_date:
        lines.append(f"  Current Progress:  Copying {est.current_copy_date.isoformat()}")
    lines.append(
        f"  Weekdays:          {est.weekdays_completed} done, "
        f"{est.weekdays_remaining} remaining of {est.total_weekdays}"
    )
    if est.avg_bytes_per_day is None:
        lines.append("  Est. Data Left:    indeterminate (no day folders yet)")
        return lines
    lines.append(f"  Daily Average:     {_fmt_size(est.avg_bytes_per_day)}")
    free = "unknown" if est.free_bytes is None else _fmt_size(est.free_bytes)
    lines.append(
        f"  Est. Data Left:    {_fmt_size(est.remaining_bytes)} (Free: {free})"
    )
    if est.disk_ok is None:
        status = "unknown (free space could not be read)"
    elif est.disk_ok:
        status = "OK"
    else:
        status = "CRITICAL - Insufficient Space!"
    lines.append(f"  Disk Status:       {status}")
    if est.eta_hours is not None:
        lines.append(
            f"  Time to Complete:  ~{_fmt_dur(est.eta_hours * 3600)} at current speed"
        )
    return lines


def _pct(score: Optional[float]) -> str:
    return "-" if score is None else f"{score:.1f}%"


def _ranking_section(ranking: Optional[MonthlyRankingReport]) -> List[str]:
    if ranking is None:
        return []
    lines = _heading("Monthly Health Ranking")
    if not ranking.months:
        lines.append("  No monthly data available for ranking.")
        return lines
    if ranking.best_month:
        lines.append(f"  Best Month:    {ranking.best_month.label} "
                     f"(Score: {_pct(ranking.best_month.health_score)})")
    if ranking.worst_month:
        lines.append(f"  Worst Month:   {ranking.worst_month.label} "
                     f"(Score: {_pct(ranking.worst_month.health_score)})")
    lines.append(f"  Average Score: {_pct(ranking.average_score)}")
    lines.append(
        f"  {'Month':<8} {'Score':>7} {'Missing':>8} {'Anomalies':>10} "
        f"{'Invalid':>8} {'Empty':>6} {'Archives':>9}  Status"
    )
    for m in ranking.months:
        archives = f"{m.actual_archives}/{m.expected_weekdays}"
        lines.append(
            f"  {m.label:<8} {_pct(m.health_score):>7} {m.missing_days:>8} "
            f"{m.anomaly_count:>10} {m.invalid_files:>8} {m.empty_files:>6} "
            f"{archives:>9}  {'Complete' if m.is_complete else 'Partial'}"
        )
    return lines


def _combined_ranking_section(combined: CombinedRankingReport) -> List[str]:
    lines = _heading("Combined Monthly Ranking (Line A + B)")
    if not combined.months:
        lines.append("  No monthly data available for combined ranking.")
        return lines
    lines.append(f"  Line A Average:   {_pct(combined.line_a_average)}")
    lines.append(f"  Line B Average:   {_pct(combined.line_b_average)}")
    lines.append(f"  Combined Average: {_pct(combined.combined_average)}")
    if combined.best_month:
        lines.append(f"  Best Month (Combined):  {combined.best_month.label} "
                     f"(Score: {_pct(combined.best_month.combined_score)})")
    if combined.worst_month:
        lines.append(f"  Worst Month (Combined): {combined.worst_month.label} "
                     f"(Score: {_pct(combined.worst_month.combined_score)})")
    lines.append(
        f"  {'Month':<8} {'Combined':>9} {'Line A':>7} {'Line B':>7} "
        f"{'A Invalid':>10} {'B Invalid':>10} {'A Missing':>10} {'B Missing':>10}"
    )

    def _count(metrics, attr):
        return "-" if metrics is None else str(getattr(metrics, attr))

    for m in combined.months:
        lines.append(
            f"  {m.label:<8} {_pct(m.combined_score):>9} {_pct(m.line_a_score):>7} "
            f"{_pct(m.line_b_score):>7} {_count(m.line_a, 'invalid_files'):>10} "
            f"{_count(m.line_b, 'invalid_files'):>10} "
            f"{_count(m.line_a, 'missing_days'):>10} {_count(m.line_b, 'missing_days'):>10}"
        )
    return lines


# ----------------------------------------------------------------------------
# Public renderers
# ----------------------------------------------------------------------------

def render_line_report(r: LineReport, bad_folder_threshold: int = 0) -> str:
    """Full text report for one line."""
    lines = [
        "=" * WIDTH,
        f"  AUDIT REPORT -- LINE {r.line_id} -- {r.generated_at.strftime('%Y-%m-%d %H:%M')}",
        "=" * WIDTH,
    ]
    if r.skipped:
        lines.extend([f"  SKIPPED: {r.skipped_reason}", "=" * WIDTH])
        return "\n".join(lines)

    lines.extend(_status_section(r))
    lines.extend(_recent_section(r))
    if r.redundancy is not None:
        lines.extend(_redundancy_section(r.redundancy))
    lines.extend(_integrity_section(r.integrity))
    lines.extend(_bad_files_section(r.bad_files, bad_folder_threshold))
    lines.extend(_gap_section(r.gaps))
    lines.extend(_anomaly_section(r.anomalies))
    lines.extend(_estimate_section(r.estimates))
    lines.extend(_ranking_section(r.ranking))
    lines.extend(["", "=" * WIDTH])
    return "\n".join(lines)


def render_dashboard(
    reports: Iterable[LineReport],
    generated_at: Optional[datetime] = None,
    bad_folder_threshold: int = 0,
    combined: Optional[CombinedRankingReport] = None,
) -> str:
    """
    Summary table of every line, the combined monthly ranking when both
    lines produced one, then each full line report.
    """
    reports = list(reports)
    generated_at = generated_at or datetime.now()
    lines = [
        "#" * WIDTH,
        f"  BEAM TRANSFER DASHBOARD -- {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        "#" * WIDTH,
        f"  {'Line':<6} {'State':<8} {'Speed':>12} {'Archives':>9} {'Bad':>5} {'Gaps':>5}",
    ]
    for r in reports:
        if r.skipped:
            lines.append(f"  {r.line_id:<6} SKIPPED  {r.skipped_reason}")
            continue
        state = r.confirmed_state.value if r.confirmed_state else "-"
        speed = f"{r.reading.throughput_mib:.1f} MiB/s" if r.reading else "-"
        bad = r.integrity.grand_invalid if r.integrity else 0
        gaps = len(r.gaps.weekday_gaps) if r.gaps else 0
        lines.append(
            f"  {r.line_id:<6} {state:<8} {speed:>12} {r.total_archives:>9,} {bad:>5} {gaps:>5}"
        )
    if combined is not None:
        lines.extend(_combined_ranking_section(combined))
    for r in reports:
        lines.extend(["", render_line_report(r, bad_folder_threshold)])
    return "\n".join(lines) + "\n"

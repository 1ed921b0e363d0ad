# ============================================================================
# Beam Audit -- Line Auditor (beam_audit/core/line_auditor.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Runs one complete audit cycle for a line, and runs several lines
#   side by side for the dashboard.
#
# ONE CYCLE, IN ORDER:
#   1. Take the line's lock (skip the line if another run holds it)
#   2. Two size samples `interval_seconds` apart -> ACTIVE / IDLE
#   3. Scan and validate every archive
#   4. Integrity stats, day folders, gaps, anomalies, bad files,
#      estimates and monthly ranking (campaign dates known), recent
#      writes, and (IDLE only) the redundancy probe
#   5. Debounce the raw state: save state, log a confirmed transition,
#      send at most one alert
#
#   State is written in step 5 only, after everything else has been
#   computed. An interrupted cycle leaves the previous state untouched.
#
# FAILURES:
#   Every BeamAuditError, and any OSError from the share or the state
#   directory, is caught at the line boundary and becomes
#   LineReport.skipped_reason. One missing, locked or unreadable line
#   never stops the other.
#
# CONCURRENCY:
#   audit_lines() gives each line its own worker thread. The 10-second
#   sampling wait is a plain time.sleep() in that worker, so two lines
#   take ~10 s total instead of ~20 s. Lines share no mutable state.
#
# INTERNET ACCESS: NONE (the notifier it calls may use SMTP)
# ============================================================================

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from ..monitoring.logger import (
    CycleLogEntry,
    TransitionLogEntry,
    get_app_logger,
    get_audit_logger,
    get_error_logger,
)
from .archive_scanner import recent_files, scan_archives
from .config import Config, resolve_campaign_dates
from .debouncer import AlertDebouncer, Notifier
from .estimates import calculate_estimates, free_bytes, infer_current_copy_date
from .exceptions import BeamAuditError, ConcurrencyConflictError, MissingResourceError
from .gap_analysis import collect_day_directories, find_gaps
from .models import LineReport, LineSpec, TransferState
from .ranking import calculate_monthly_rankings
from .state_store import StateStore
from .stats import aggregate_integrity, collect_bad_files, detect_size_anomalies
from .transfer_detector import sample_pair


class LineAuditor:
    """
    Runs audit cycles against one base directory.

    Usage:
        auditor = LineAuditor(config, FileStateStore(state_dir), notifier)
        report = auditor.run_cycle("B")
        reports = auditor.audit_lines(["A", "B"])

    notifier and probe are optional collaborators: without a notifier
    confirmations are still logged; without a probe the redundancy
    section is simply absent.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore,
        notifier: Optional[Notifier] = None,
        probe=None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.probe = probe
        self.clock = clock
        self.sleep = sleep
        self.debouncer = AlertDebouncer(
            store,
            notifier if config.alerts.enabled else None,
            threshold_minutes=config.alerts.threshold_minutes,
            subject_prefix=config.alerts.subject_prefix,
        )
        self.logger = get_app_logger("line_auditor")
        self.audit_logger = get_audit_logger("transitions")
        self.error_logger = get_error_logger("line_auditor_errors")

    def line_spec(self, line_id: str) -> LineSpec:
        return LineSpec(line_id, Path(self.config.paths.base_dir))

    # ------------------------------------------------------------------
    # One line
    # ------------------------------------------------------------------

    def run_cycle(self, line_id: str) -> LineReport:
        """Audit one line. Never raises a BeamAuditError or OSError."""
        started = time.monotonic()
        report = LineReport(line_id=line_id, generated_at=self.clock())
        try:
            with self.store.lock(line_id):
                self._audit(self.line_spec(line_id), report)
        except ConcurrencyConflictError as e:
            report.skipped_reason = str(e)
            self.logger.debug("line_skipped", line=line_id, **e.to_dict())
        except BeamAuditError as e:
            report.skipped_reason = str(e)
            self.logger.warning("line_skipped", line=line_id, **e.to_dict())
        except OSError as e:
            report.skipped_reason = f"I/O error: {e}"
            self.error_logger.error(
                "line_io_failed", line=line_id,
                error_type=type(e).__name__, error=str(e),
            )

        invalid = report.integrity.grand_invalid if report.integrity else 0
        self.logger.info("cycle_complete", **CycleLogEntry.build(
            line_id=line_id,
            raw_state=report.reading.state.value if report.reading else None,
            confirmed_state=report.confirmed_state.value if report.confirmed_state else None,
            throughput_bps=report.reading.throughput_bps if report.reading else 0.0,
            total_archives=report.total_archives,
            invalid_archives=invalid,
            weekday_gaps=len(report.gaps.weekday_gaps) if report.gaps else 0,
            elapsed_seconds=time.monotonic() - started,
            skipped_reason=report.skipped_reason,
        ))
        return report

    def _audit(self, line: LineSpec, report: LineReport) -> None:
        cfg = self.config
        if not line.root.is_dir():
            raise MissingResourceError(path=line.root)

        reading = sample_pair(
            line.root, cfg.sampling.interval_seconds, sleep=self.sleep, clock=self.clock,
        )
        if reading is None:
            raise MissingResourceError(path=line.root)
        report.reading = reading
        report.total_bytes = reading.byte_total

        files = scan_archives(line.root, cfg.integrity.archive_extension)
        now = self.clock()
        report.total_archives = len(files)
        report.integrity = aggregate_integrity(files, cfg.integrity.tiny_threshold)
        report.bad_files = collect_bad_files(
            files, line.line_id, cfg.integrity.max_bad_per_folder,
        )
        report.recent_files = recent_files(line.root, cfg.sampling.recent_minutes, now)

        day_dirs = collect_day_directories(line.root, files, line.folder_prefix)
        report.day_directories = day_dirs
        report.gaps = find_gaps(d.date for d in day_dirs.values())

        current_day = infer_current_copy_date(
            files, day_dirs.values(), line.folder_prefix, now, cfg.sampling.recent_minutes,
        )
        report.anomalies = detect_size_anomalies(
            day_dirs.values(),
            exclude_date=current_day,
            low_ratio=cfg.anomaly.low_ratio,
            high_ratio=cfg.anomaly.high_ratio,
        )

        campaign = resolve_campaign_dates(cfg)
        if campaign is not None:
            report.estimates = calculate_estimates(
                total_bytes=reading.byte_total,
                day_count=len(day_dirs),
                start_date=campaign[0],
                end_date=campaign[1],
                current_copy_date=current_day,
                free=free_bytes(line.root),
                throughput_bps=reading.throughput_bps,
            )
            report.ranking = calculate_monthly_rankings(
                files,
                report.gaps,
                report.anomalies,
                line_id=line.line_id,
                prefix=line.folder_prefix,
                start_date=campaign[0],
                end_date=campaign[1],
                tiny_threshold=cfg.integrity.tiny_threshold,
                today=now.date(),
            )

        if reading.state == TransferState.IDLE and self.probe is not None:
            report.redundancy = self.probe.probe(line)

        outcome = self.debouncer.evaluate(line.line_id, reading, self.clock())
        report.confirmed_state = outcome.state.confirmed
        report.since = outcome.state.since
        report.pending = outcome.state.pending
        report.alert_sent = outcome.alert_sent

        if outcome.event is not None:
            self.audit_logger.info("state_transition_confirmed", **TransitionLogEntry.build(
                line_id=line.line_id,
                from_state=outcome.event.from_state.value,
                to_state=outcome.event.to_state.value,
                minutes_in_previous=outcome.event.duration_minutes,
                throughput_bps=reading.throughput_bps,
                alert_sent=outcome.alert_sent,
            ))
        if outcome.alert_error:
            self.error_logger.error(
                "alert_failed", line=line.line_id, error=outcome.alert_error,
            )

    # ------------------------------------------------------------------
    # Several lines
    # ------------------------------------------------------------------

    def audit_lines(self, line_ids: Iterable[str]) -> Dict[str, LineReport]:
        """
        Run every line concurrently, one worker each, and wait for all.
        Results keep the order of line_ids.
        """
        ids = list(line_ids)
        if not ids:
            return {}
        with ThreadPoolExecutor(max_workers=len(ids), thread_name_prefix="line") as pool:
            futures = {line_id: pool.submit(self.run_cycle, line_id) for line_id in ids}
            return {line_id: futures[line_id].result() for line_id in ids}

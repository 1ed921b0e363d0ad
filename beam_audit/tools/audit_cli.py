# ============================================================================
# Beam Audit -- Command Line (beam_audit/tools/audit_cli.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The `beam-audit` command. Typically run from cron every 5 minutes:
#
#     beam-audit B                          audit Line B, print the report
#     beam-audit --dashboard /srv/www/beam.txt
#                                           audit every line concurrently,
#                                           write the combined report
#     beam-audit --test-email               send one test message and exit
#
#   Options:
#     --base-dir PATH        folder holding "Line A" / "Line B"
#     --alert-threshold MIN  minutes a new state must hold before alerting
#     --project-dir PATH     folder holding config/default_config.yaml
#
# EXIT CODES:
#   0  report produced (or test email sent)
#   1  line skipped, or test email failed
#   2  bad configuration
#
# INTERNET ACCESS: outbound SMTP only, and only when an alert fires
# ============================================================================

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from beam_audit.core.config import Config, VALID_LINES, load_config, validate_config
from beam_audit.core.exceptions import ConcurrencyConflictError, ConfigError
from beam_audit.core.line_auditor import LineAuditor
from beam_audit.core.models import CombinedRankingReport, LineReport
from beam_audit.core.ranking import combine_rankings
from beam_audit.core.state_store import FileStateStore, exclusive_lock
from beam_audit.monitoring.logger import get_app_logger, initialize_logging
from beam_audit.monitoring.redundancy_probe import RedundancyProbe
from beam_audit.security.credentials import resolve_email_credentials
from beam_audit.tools.notifier import EmailNotifier
from beam_audit.tools.report import render_dashboard, render_line_report

DASHBOARD_LOCK_NAME = ".dashboard_lock"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="beam-audit",
        description="Beam transfer audit -- transfer state, archive integrity, "
                    "gaps and completion estimates for each line",
    )
    p.add_argument(
        "line", nargs="?", default="B", type=str.upper,
        help="Line to audit: A or B (default: B)",
    )
    p.add_argument(
        "--dashboard", metavar="PATH",
        help="Audit every configured line concurrently and write the combined report to PATH",
    )
    p.add_argument("--base-dir", metavar="PATH",
                   help="Folder holding 'Line A' and 'Line B' (overrides config)")
    p.add_argument("--alert-threshold", type=float, metavar="MIN",
                   help="Minutes a new state must persist before alerting (default: 20)")
    p.add_argument("--test-email", action="store_true",
                   help="Send a test email with the configured credentials and exit")
    p.add_argument("--project-dir", default=".", metavar="PATH",
                   help="Folder containing config/default_config.yaml (default: .)")
    return p


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """CLI flags win over env vars and YAML."""
    if args.base_dir:
        config.paths.base_dir = os.path.normpath(args.base_dir)
    if args.alert_threshold is not None:
        config.alerts.threshold_minutes = args.alert_threshold
    return config


def build_notifier(config: Config) -> Optional[EmailNotifier]:
    creds = resolve_email_credentials(
        config_path=Path(config.paths.base_dir) / config.paths.email_config,
    )
    if not creds.is_ready:
        return None
    return EmailNotifier(creds, config.alerts.smtp_host, config.alerts.smtp_port)


def build_auditor(config: Config, notifier: Optional[EmailNotifier]) -> LineAuditor:
    probe = None
    if config.redundancy.enabled:
        probe = RedundancyProbe(
            busy_threshold_bps=config.redundancy.busy_threshold_bps,
            sample_seconds=config.redundancy.sample_seconds,
            other_line_minutes=config.sampling.other_line_minutes,
        )
    return LineAuditor(
        config,
        FileStateStore(config.paths.resolved_state_dir),
        notifier=notifier,
        probe=probe,
    )


def _write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def combined_ranking(reports: Dict[str, LineReport]) -> Optional[CombinedRankingReport]:
    """A+B monthly ranking, or None unless both lines were ranked."""
    a, b = reports.get("A"), reports.get("B")
    if a is None or b is None or a.ranking is None or b.ranking is None:
        return None
    return combine_rankings(a.ranking, b.ranking)


def run_dashboard(auditor: LineAuditor, config: Config, output: Path) -> int:
    """Audit every line, write the combined report. Skips if already running."""
    logger = get_app_logger("audit_cli")
    state_dir = Path(config.paths.resolved_state_dir)
    state_dir.mkdir(parents=True, exist_ok=True)
    try:
        with exclusive_lock(state_dir / DASHBOARD_LOCK_NAME):
            reports = auditor.audit_lines(config.lines)
            _write_atomic(output, render_dashboard(
                reports.values(),
                bad_folder_threshold=config.integrity.bad_folder_display_threshold,
                combined=combined_ranking(reports),
            ))
    except ConcurrencyConflictError:
        logger.debug("dashboard_skipped", reason="already running")
        print("Dashboard generation already in progress; skipping.")
        return 0
    logger.info("dashboard_written", path=str(output), lines=list(reports))
    print(f"Dashboard written to {output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the `beam-audit` console script.

    NON-PROGRAMMER NOTE:
      Run `beam-audit --help` to see every option.
    """
    args = build_parser().parse_args(argv)

    try:
        config = apply_cli_overrides(load_config(args.project_dir), args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    errors = validate_config(config)
    if args.line not in VALID_LINES:
        errors.append(f"Invalid Line ID '{args.line}'. Use 'A' or 'B'.")
    if errors:
        for err in errors:
            print(f"Error: {err}", file=sys.stderr)
        return 2

    initialize_logging(config.paths.log_dir)
    notifier = build_notifier(config)

    if args.test_email:
        if notifier is None:
            print("Email is not configured: set SMTP_USER, SMTP_PASS and "
                  "RECIPIENT_EMAIL in " + str(Path(config.paths.base_dir) / config.paths.email_config))
            return 1
        ok = notifier.send_test_email(config.paths.base_dir)
        print("Test email sent." if ok else "Test email FAILED -- see the error log.")
        return 0 if ok else 1

    if notifier is None:
        get_app_logger("audit_cli").info("alerting_disabled", reason="no email credentials")

    auditor = build_auditor(config, notifier)

    if args.dashboard:
        return run_dashboard(auditor, config, Path(args.dashboard))

    report = auditor.run_cycle(args.line)
    print(render_line_report(report, config.integrity.bad_folder_display_threshold))
    return 1 if report.skipped else 0


if __name__ == "__main__":
    sys.exit(main())

# ============================================================================
# Beam Audit -- Structured Logger (beam_audit/monitoring/logger.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Sets up logging for the audit tool. Every important event (cycle
#   started, line skipped, state transition confirmed, alert failed) is
#   recorded as one JSON object per line in a dated log file.
#
# WHY "STRUCTURED" LOGGING?
#   Normal logging: "Line B went IDLE after 42 minutes"
#   Structured logging: {"event": "state_transition_confirmed",
#                        "line": "B", "to_state": "IDLE", "minutes": 42}
#
#   The audit runs every 5 minutes for months. Structured logs can be
#   filtered with jq or loaded into pandas to answer "how often did Line A
#   stall last week?" without regex archaeology.
#
# LOG FILE TYPES:
#   - app_YYYY-MM-DD.log:   cycle events (sampling, scan sizes, skips)
#   - error_YYYY-MM-DD.log: failures (notifier errors, unreadable state)
#   - audit_YYYY-MM-DD.log: confirmed state transitions and alerts sent
#
# HOW TO USE (from other code):
#   from beam_audit.monitoring.logger import get_app_logger
#   logger = get_app_logger("line_auditor")
#   logger.info("cycle_started", line="B", interval_seconds=10)
#
# DEPENDENCIES:
#   - structlog: structured logging that renders JSON
#   - Python's built-in logging module (structlog builds on top of it)
# ============================================================================

import sys
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

class LoggerSetup:
    """Initialize and configure structlog for the audit tool"""

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._configured = False
        self._file_handlers: Dict[str, logging.Handler] = {}

    def setup(self) -> None:
        """Configure structlog with timestamped log files"""
        if self._configured:
            return

        # Third-party and engine-module loggers: warnings and above to console
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stderr,
            level=logging.WARNING,
        )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._configured = True

    def get_logger(self, name: str) -> structlog.BoundLogger:
        """Get a named logger (console only)"""
        self.setup()
        return structlog.get_logger(name)

    def get_file_logger(self, name: str, log_type: str = "app") -> structlog.BoundLogger:
        """
        Get a logger that writes to a specific log file.
        log_type: "app", "error", "audit"

        Handlers are attached once per logger name; asking for the same
        logger from both line threads does not duplicate every line.
        """
        self.setup()
        logger = structlog.get_logger(name)

        log_file = self.log_dir / f"{log_type}_{self._get_date_str()}.log"
        key = f"{name}:{log_file}"
        if key not in self._file_handlers:
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(message)s"))

            py_logger = logging.getLogger(name)
            py_logger.addHandler(handler)
            py_logger.setLevel(logging.DEBUG)
            py_logger.propagate = False
            self._file_handlers[key] = handler

        return logger

    @staticmethod
    def _get_date_str() -> str:
        """Get current date as YYYY-MM-DD string"""
        return datetime.now().strftime("%Y-%m-%d")


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_logger_setup: Optional[LoggerSetup] = None


def initialize_logging(log_dir: str = "logs") -> LoggerSetup:
    """Initialize logging (call once at startup)"""
    global _logger_setup
    if _logger_setup is None:
        _logger_setup = LoggerSetup(log_dir)
        _logger_setup.setup()
    return _logger_setup


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger (auto-initializes if needed)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_logger(name)


def get_app_logger(name: str = "app") -> structlog.BoundLogger:
    """Get app logger (writes to app_YYYY-MM-DD.log)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "app")


def get_error_logger(name: str = "error") -> structlog.BoundLogger:
    """Get error logger (writes to error_YYYY-MM-DD.log)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "error")


def get_audit_logger(name: str = "audit") -> structlog.BoundLogger:
    """Get audit logger (writes to audit_YYYY-MM-DD.log)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "audit")


# ============================================================================
# LOG ENTRY BUILDERS (for consistent structured data)
# ============================================================================

class TransitionLogEntry:
    """Builder for structured state-transition entries"""

    @staticmethod
    def build(
        line_id: str,
        from_state: str,
        to_state: str,
        minutes_in_previous: float,
        throughput_bps: float,
        alert_sent: bool,
    ) -> Dict[str, Any]:
        return {
            "line": line_id,
            "from_state": from_state,
            "to_state": to_state,
            "minutes_in_previous": round(minutes_in_previous, 1),
            "throughput_mib": round(throughput_bps / 1024 / 1024, 2),
            "alert_sent": alert_sent,
            "timestamp": datetime.now().isoformat(),
        }


class CycleLogEntry:
    """Builder for the one-per-cycle summary entry"""

    @staticmethod
    def build(
        line_id: str,
        raw_state: Optional[str],
        confirmed_state: Optional[str],
        throughput_bps: float,
        total_archives: int,
        invalid_archives: int,
        weekday_gaps: int,
        elapsed_seconds: float,
        skipped_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "line": line_id,
            "raw_state": raw_state,
            "confirmed_state": confirmed_state,
            "throughput_mib": round(throughput_bps / 1024 / 1024, 2),
            "total_archives": total_archives,
            "invalid_archives": invalid_archives,
            "weekday_gaps": weekday_gaps,
            "elapsed_seconds": round(elapsed_seconds, 2),
            "skipped_reason": skipped_reason,
            "timestamp": datetime.now().isoformat(),
        }

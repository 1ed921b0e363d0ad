# ===========================================================================
# Beam Audit -- TYPED EXCEPTIONS
# ===========================================================================
# FILE: beam_audit/core/exceptions.py
#
# WHAT THIS IS:
#   Custom error types for the audit engine. Each one names exactly what
#   failed and how to fix it, so the per-line auditor can turn it into a
#   readable "skipped" line in the report instead of a traceback.
#
# TAXONOMY:
#   FS-xxx    MissingResource        line directory absent, skip the line
#   ZIP-xxx   ValidationFailure      one archive failed the structure check
#   CALC-xxx  IndeterminateComputation  no data to compute a statistic
#   LOCK-xxx  ConcurrencyConflict    another invocation owns the line
#   MAIL-xxx  NotificationFailure    alert could not be delivered
#   CONF-xxx  Configuration          bad or missing settings
#
# DESIGN DECISION:
#   Everything inherits from BeamAuditError, so the auditor can catch
#   "except BeamAuditError" at the line boundary. None of these is fatal
#   to the whole run: the worst outcome is a partial report for one line.
# ===========================================================================

from __future__ import annotations


class BeamAuditError(Exception):
    """
    Base class for all audit engine errors.

    Attributes:
        fix_suggestion (str | None): Human-readable fix instruction.
        error_code (str | None): Machine-readable code like "FS-001"
            for structured logs.
    """

    def __init__(self, message, fix_suggestion=None, error_code=None):
        self.fix_suggestion = fix_suggestion
        self.error_code = error_code
        super().__init__(message)

    def to_dict(self):
        """Convert to dictionary for JSON logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": str(self),
            "fix_suggestion": self.fix_suggestion,
        }


# ---------------------------------------------------------------------------
# FILESYSTEM ERRORS (FS-xxx)
# ---------------------------------------------------------------------------

class MissingResourceError(BeamAuditError):
    """
    A line directory (or another required path) does not exist.

    WHEN YOU'LL SEE THIS:
      - The share is not mounted yet
      - --base-dir points at the wrong folder
      - The transfer for this line has not started
    """
    def __init__(self, message=None, path=None):
        detail = f" Path: {path}" if path else ""
        super().__init__(
            message or f"Required directory does not exist.{detail}",
            fix_suggestion=(
                "Check that the network share is mounted and that "
                "--base-dir points at the folder holding 'Line A' and 'Line B'."
            ),
            error_code="FS-001",
        )


# ---------------------------------------------------------------------------
# ARCHIVE ERRORS (ZIP-xxx)
# ---------------------------------------------------------------------------

class ArchiveValidationError(BeamAuditError):
    """
    One archive failed the structural check.

    Never propagates out of the scanner: the reason is recorded on the
    ArchiveFile and the file counts toward invalid_count.
    """
    def __init__(self, message=None, path=None):
        detail = f" File: {path}" if path else ""
        super().__init__(
            message or f"Archive is not a well-formed ZIP container.{detail}",
            fix_suggestion=(
                "The file is probably still being written or the copy was "
                "interrupted. Re-check after the transfer finishes."
            ),
            error_code="ZIP-001",
        )


# ---------------------------------------------------------------------------
# COMPUTATION ERRORS (CALC-xxx)
# ---------------------------------------------------------------------------

class IndeterminateComputationError(BeamAuditError):
    """A statistic was requested over an empty input."""
    def __init__(self, message=None):
        super().__init__(
            message or "Not enough data to compute this statistic.",
            fix_suggestion="Wait until at least one complete archive has landed.",
            error_code="CALC-001",
        )


# ---------------------------------------------------------------------------
# CONCURRENCY ERRORS (LOCK-xxx)
# ---------------------------------------------------------------------------

class ConcurrencyConflictError(BeamAuditError):
    """
    Another invocation already holds the line's lock.

    This is expected when a slow cycle overlaps the next scheduled run.
    The cycle is skipped; the next invocation retries.
    """
    def __init__(self, message=None, line_id=None):
        detail = f" Line: {line_id}" if line_id else ""
        super().__init__(
            message or f"Audit already running for this line.{detail}",
            fix_suggestion="No action needed; the next scheduled run will retry.",
            error_code="LOCK-001",
        )


# ---------------------------------------------------------------------------
# NOTIFICATION ERRORS (MAIL-xxx)
# ---------------------------------------------------------------------------

class NotificationError(BeamAuditError):
    """An alert email could not be built or delivered."""
    def __init__(self, message=None):
        super().__init__(
            message or "Failed to deliver alert email.",
            fix_suggestion=(
                "Run 'beam-audit --test-email' and check SMTP_USER, "
                "SMTP_PASS and RECIPIENT_EMAIL in .email_config."
            ),
            error_code="MAIL-001",
        )


# ---------------------------------------------------------------------------
# CONFIGURATION ERRORS (CONF-xxx)
# ---------------------------------------------------------------------------

class ConfigError(BeamAuditError):
    """Settings are present but unusable."""
    def __init__(self, message=None):
        super().__init__(
            message or "Audit configuration is invalid.",
            fix_suggestion="Check config/default_config.yaml and BEAM_AUDIT_* env vars.",
            error_code="CONF-001",
        )

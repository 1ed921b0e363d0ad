# ============================================================================
# Beam Audit -- State Store (beam_audit/core/state_store.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Persists each line's confirmed TransferState, the time it began, any
#   pending (not yet confirmed) transition, and the append-only
#   interruption log, between invocations of the audit.
#
# WHY AN INTERFACE:
#   The debouncer only needs load/save/append/lock. Today those are small
#   flat files next to the line folders (easy to cat, easy to fix by
#   hand); StateStore keeps the engine free of that choice.
#
# FILES (per line, in the state directory):
#   .transfer_state_<id>          IDLE or ACTIVE
#   .transfer_since_<id>          2026-01-05 14:30:00
#   .transfer_pending_<id>        {"candidate_state": ..., "first_observed_at": ...}
#   .transfer_interruptions_<id>  CSV, one row per confirmed transition
#   .transfer_lock_<id>           flock target, never holds data
#
# CRASH SAFETY:
#   Every rewrite goes to a .tmp file first and is moved into place with
#   os.replace(), which is atomic on POSIX. An interrupted cycle leaves
#   either the old file or the new one, never half of each.
#
# LOCKING:
#   lock() takes a NON-blocking exclusive flock. If another invocation
#   already owns the line, ConcurrencyConflictError is raised at once
#   and the caller skips the cycle; the next scheduled run retries.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import csv
import fcntl
import json
import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .exceptions import ConcurrencyConflictError
from .models import LineState, PendingTransition, StateTransitionEvent, TransferState

logger = logging.getLogger(__name__)

SINCE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_HEADER = [
    "timestamp", "from_state", "to_state", "duration_in_previous_state_minutes",
]


class StateStore(ABC):
    """Persistence seam for the per-line debounce state machine."""

    @abstractmethod
    def load(self, line_id: str) -> LineState:
        """Return the persisted state, or a fresh IDLE state."""

    @abstractmethod
    def save(self, line_id: str, state: LineState) -> None:
        """Replace the persisted state."""

    @abstractmethod
    def append_event(self, line_id: str, event: StateTransitionEvent) -> None:
        """Append one confirmed transition to the interruption log."""

    @abstractmethod
    def read_events(self, line_id: str) -> List[StateTransitionEvent]:
        """All logged transitions, oldest first."""

    @contextmanager
    def lock(self, line_id: str) -> Iterator[None]:
        """Exclusive access to one line; default is no locking."""
        yield


class FileStateStore(StateStore):
    """
    Flat-file StateStore rooted at state_dir.

    NON-PROGRAMMER NOTE:
      These dot-files sit in the share's root folder by default. An
      operator can read them with cat and reset a line by deleting its
      .transfer_pending_ file.
    """

    def __init__(self, state_dir) -> None:
        self.state_dir = Path(state_dir)

    # -- paths ---------------------------------------------------------

    def state_path(self, line_id: str) -> Path:
        return self.state_dir / f".transfer_state_{line_id}"

    def since_path(self, line_id: str) -> Path:
        return self.state_dir / f".transfer_since_{line_id}"

    def pending_path(self, line_id: str) -> Path:
        return self.state_dir / f".transfer_pending_{line_id}"

    def log_path(self, line_id: str) -> Path:
        return self.state_dir / f".transfer_interruptions_{line_id}"

    def lock_path(self, line_id: str) -> Path:
        return self.state_dir / f".transfer_lock_{line_id}"

    # -- load / save ---------------------------------------------------

    def load(self, line_id: str) -> LineState:
        state = LineState()

        raw_state = _read_text(self.state_path(line_id))
        if raw_state is not None:
            parsed = TransferState.parse(raw_state, default=TransferState.IDLE)
            if parsed.value != raw_state.strip().upper():
                logger.warning(
                    "Unreadable state for line %s: %r (assuming IDLE)",
                    line_id, raw_state,
                )
            state.confirmed = parsed

        raw_since = _read_text(self.since_path(line_id))
        if raw_since:
            state.since = _parse_since(raw_since)

        raw_pending = _read_text(self.pending_path(line_id))
        if raw_pending:
            state.pending = _parse_pending(raw_pending, line_id)

        return state

    def save(self, line_id: str, state: LineState) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.state_path(line_id), state.confirmed.value + "\n")
        if state.since is not None:
            _atomic_write(
                self.since_path(line_id), state.since.strftime(SINCE_FORMAT) + "\n",
            )

        pending_file = self.pending_path(line_id)
        if state.pending is None:
            try:
                pending_file.unlink()
            except FileNotFoundError:
                pass
        else:
            _atomic_write(pending_file, json.dumps({
                "candidate_state": state.pending.candidate_state.value,
                "first_observed_at": state.pending.first_observed_at.isoformat(),
            }) + "\n")

    # -- interruption log ----------------------------------------------

    def append_event(self, line_id: str, event: StateTransitionEvent) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.log_path(line_id)
        write_header = not path.exists() or path.stat().st_size == 0
        with open(path, "a", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            if write_header:
                writer.writerow(LOG_HEADER)
            writer.writerow([
                event.timestamp.strftime(SINCE_FORMAT),
                event.from_state.value,
                event.to_state.value,
                f"{event.duration_minutes:.2f}",
            ])

    def read_events(self, line_id: str) -> List[StateTransitionEvent]:
        path = self.log_path(line_id)
        if not path.exists():
            return []

        events: List[StateTransitionEvent] = []
        with open(path, "r", encoding="utf-8", newline="") as f:
            for row in csv.reader(f):
                if len(row) < 4 or row[0] == LOG_HEADER[0]:
                    continue
                try:
                    events.append(StateTransitionEvent(
                        timestamp=datetime.strptime(row[0], SINCE_FORMAT),
                        from_state=TransferState.parse(row[1]),
                        to_state=TransferState.parse(row[2]),
                        duration_in_previous_state_seconds=float(row[3]) * 60.0,
                    ))
                except ValueError:
                    logger.debug("Skipping malformed log row for line %s: %r", line_id, row)
        return events

    # -- locking -------------------------------------------------------

    def lock(self, line_id: str):
        self.state_dir.mkdir(parents=True, exist_ok=True)
        return exclusive_lock(self.lock_path(line_id), line_id=line_id)


# ============================================================================
# Helpers
# ============================================================================

def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _atomic_write(path: Path, content: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def _parse_since(raw: str) -> Optional[datetime]:
    """
    Accept the current format plus two older ones
    ("2026-01-05 14:30" and `date`'s "Mon Jan 05 14:30:00 2026").
    """
    text = raw.strip()
    for fmt in (SINCE_FORMAT, "%Y-%m-%d %H:%M", "%a %b %d %H:%M:%S %Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    logger.warning("Unreadable since timestamp: %r", raw)
    return None


def _parse_pending(raw: str, line_id: str) -> Optional[PendingTransition]:
    try:
        data = json.loads(raw)
        return PendingTransition(
            candidate_state=TransferState.parse(data["candidate_state"]),
            first_observed_at=datetime.fromisoformat(data["first_observed_at"]),
        )
    except (ValueError, KeyError, TypeError):
        logger.warning("Discarding unreadable pending record for line %s", line_id)
        return None


@contextmanager
def exclusive_lock(path, line_id: Optional[str] = None) -> Iterator[None]:
    """
    Non-blocking exclusive flock on path, held for the with-block.

    Raises ConcurrencyConflictError immediately if another process (or
    another open of the same file in this process) holds it. The lock
    file itself is left in place; it never carries data.
    """
    fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise ConcurrencyConflictError(line_id=line_id)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)

# ============================================================================
# Beam Audit -- Alert Debouncer (beam_audit/core/debouncer.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Turns the noisy per-cycle ACTIVE/IDLE reading into a confirmed state
#   and sends an email only when a change has held for a while.
#
# THE STATE MACHINE (per line, two levels):
#
#   raw == confirmed ............ clear any pending candidate, done
#   raw != confirmed, no pending  start PendingTransition(raw, now)
#     (or pending for the other
#      candidate)
#   pending matches raw and has
#   held >= threshold ........... CONFIRM: confirmed = raw, since =
#                                 first_observed_at, append ONE log row,
#                                 send ONE alert
#   raw reverts before threshold  pending discarded: no row, no alert
#
#   A 30-second SMB hiccup therefore never pages anyone; a line that has
#   really stopped for 20 minutes pages exactly once.
#
# ORDER OF SIDE EFFECTS:
#   state saved -> log row appended -> alert sent.
#   A failed alert never rolls back the state or the row; the next cycle
#   sees raw == confirmed and stays quiet.
#
# INTERNET ACCESS: NONE (the notifier it calls may use SMTP)
# ============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Protocol

from .models import (
    LineState,
    PendingTransition,
    StateTransitionEvent,
    TransferReading,
    TransferState,
)
from .state_store import StateStore

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_MINUTES = 20.0

# Actions reported back to the caller (and into the cycle log)
STEADY = "steady"
PENDING_STARTED = "pending_started"
PENDING_HELD = "pending_held"
CONFIRMED = "confirmed"
REVERTED = "reverted"


class Notifier(Protocol):
    def send_alert(self, line_id: str, subject: str, body: str) -> bool:
        ...


@dataclass(frozen=True)
class DebounceOutcome:
    """What one evaluate() call decided."""
    action: str
    state: LineState
    event: Optional[StateTransitionEvent] = None
    alert_sent: bool = False
    alert_error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.action == CONFIRMED


def transition(
    state: LineState,
    raw: TransferState,
    now: datetime,
    threshold: timedelta,
) -> DebounceOutcome:
    """
    Pure state-machine step: no I/O, no alert.

    Returns a new LineState; the input is not modified. A pending
    candidate whose elapsed time already meets the threshold confirms
    in the same step, so a zero threshold confirms immediately.
    """
    since = state.since or now

    if raw == state.confirmed:
        action = REVERTED if state.pending is not None else STEADY
        return DebounceOutcome(
            action=action,
            state=LineState(confirmed=state.confirmed, since=since, pending=None),
        )

    pending = state.pending
    if pending is None or pending.candidate_state != raw:
        pending = PendingTransition(candidate_state=raw, first_observed_at=now)
        action = PENDING_STARTED
    else:
        action = PENDING_HELD

    if now - pending.first_observed_at < threshold:
        return DebounceOutcome(
            action=action,
            state=LineState(confirmed=state.confirmed, since=since, pending=pending),
        )

    duration = max(0.0, (pending.first_observed_at - since).total_seconds())
    event = StateTransitionEvent(
        timestamp=now,
        from_state=state.confirmed,
        to_state=raw,
        duration_in_previous_state_seconds=duration,
    )
    return DebounceOutcome(
        action=CONFIRMED,
        state=LineState(confirmed=raw, since=pending.first_observed_at, pending=None),
        event=event,
    )


def build_alert(
    line_id: str,
    event: StateTransitionEvent,
    reading: TransferReading,
    held_since: datetime,
    subject_prefix: str = "[Beam Alert]",
):
    """(subject, body) for a confirmed transition."""
    resumed = event.to_state == TransferState.ACTIVE
    subject = "%s Transfer %s on Line %s" % (
        subject_prefix, "RESUMED" if resumed else "STOPPED", line_id,
    )
    held_minutes = int((event.timestamp - held_since).total_seconds() // 60)
    body = (
        f"The transfer on Line {line_id} has {'resumed' if resumed else 'stopped'}.\n"
        f"\n"
        f"New State: {event.to_state.value}\n"
        f"Current Speed: {reading.throughput_mib:.1f} MiB/s\n"
        f"State persisted for: {held_minutes} minutes\n"
        f"Previous state lasted: {event.duration_minutes:.0f} minutes\n"
        f"Time: {event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n"
    )
    return subject, body


class AlertDebouncer:
    """
    Applies transition() to a line's persisted state and performs the
    side effects (save, append, alert).

    Usage:
        debouncer = AlertDebouncer(store, notifier, threshold_minutes=20)
        outcome = debouncer.evaluate("B", reading, datetime.now())

    The caller must hold store.lock(line_id) around evaluate().
    notifier may be None (alerting disabled); confirmations are then
    still persisted and logged.
    """

    def __init__(
        self,
        store: StateStore,
        notifier: Optional[Notifier] = None,
        threshold_minutes: float = DEFAULT_THRESHOLD_MINUTES,
        subject_prefix: str = "[Beam Alert]",
    ) -> None:
        if threshold_minutes < 0:
            raise ValueError("threshold_minutes must be >= 0")
        self.store = store
        self.notifier = notifier
        self.threshold = timedelta(minutes=threshold_minutes)
        self.subject_prefix = subject_prefix

    def evaluate(
        self, line_id: str, reading: TransferReading, now: datetime,
    ) -> DebounceOutcome:
        previous = self.store.load(line_id)
        outcome = transition(previous, reading.state, now, self.threshold)

        self.store.save(line_id, outcome.state)
        if outcome.event is None:
            logger.debug("Line %s: %s (raw=%s)", line_id, outcome.action, reading.state.value)
            return outcome

        self.store.append_event(line_id, outcome.event)
        logger.info(
            "Line %s confirmed %s -> %s",
            line_id, outcome.event.from_state.value, outcome.event.to_state.value,
        )

        if self.notifier is None:
            return outcome

        subject, body = build_alert(
            line_id, outcome.event, reading, outcome.state.since, self.subject_prefix,
        )
        try:
            sent = self.notifier.send_alert(line_id, subject, body)
        except Exception as e:
            logger.error("Alert for line %s failed: %s", line_id, e)
            return replace(outcome, alert_error=f"{type(e).__name__}: {e}")

        if not sent:
            return replace(outcome, alert_error="notifier reported failure")
        return replace(outcome, alert_sent=True)

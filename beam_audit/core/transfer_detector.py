# ============================================================================
# Beam Audit -- Transfer State Detector (beam_audit/core/transfer_detector.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Decides whether a line is ACTIVE (data landing right now) or IDLE,
#   using nothing but two size samples of its directory.
#
# WHY TWO SAMPLES:
#   We have no connection to the sending machine. A single size reading
#   says nothing about activity (a 40 TB folder is 40 TB whether or not
#   anything is writing to it). Two readings a fixed interval apart give
#   a growth rate, and any growth at all means a writer is active. The
#   same rate doubles as the throughput figure used for the ETA.
#
# NEGATIVE DELTAS:
#   Files can be deleted or rotated between samples. A shrinking tree is
#   never "negative throughput": the delta is clamped to zero (IDLE).
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

from .models import SizeSample, TransferReading, TransferState
from .size_sampler import take_sample


def classify(
    first: SizeSample, second: SizeSample, interval_seconds: float,
) -> TransferReading:
    """
    Compare two samples taken interval_seconds apart.

    delta = max(0, second - first); throughput = delta / interval;
    ACTIVE iff throughput > 0.
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be > 0")

    delta = max(0, second.byte_total - first.byte_total)
    throughput = delta / interval_seconds
    state = TransferState.ACTIVE if throughput > 0 else TransferState.IDLE
    return TransferReading(
        state=state,
        delta_bytes=delta,
        throughput_bps=throughput,
        interval_seconds=interval_seconds,
        sampled_at=second.timestamp,
        byte_total=second.byte_total,
    )


def sample_pair(
    path,
    interval_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = datetime.now,
) -> Optional[TransferReading]:
    """
    Sample path, wait interval_seconds, sample again, classify.

    The wait blocks only the calling thread; each line runs its own
    cycle on its own worker. Returns None if the directory is missing
    at either sample.
    """
    first = take_sample(path, clock)
    if first is None:
        return None
    sleep(interval_seconds)
    second = take_sample(path, clock)
    if second is None:
        return None
    return classify(first, second, interval_seconds)

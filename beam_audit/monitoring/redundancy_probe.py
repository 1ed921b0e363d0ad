# ============================================================================
# Beam Audit -- Redundancy Probe (beam_audit/monitoring/redundancy_probe.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   When a line looks IDLE (its folder did not grow), checks whether the
#   machine as a whole is still busy. A sender that buffers heavily can
#   receive data for minutes before anything reaches the line folder, so
#   "folder not growing" and "nothing happening" are different things.
#
# HOW:
#   Two psutil snapshots of system-wide disk-write and network-receive
#   counters, sample_seconds apart. Above busy_threshold_bps (1 MiB/s):
#     DISK  disk writes are high
#     NET   network receive is high (disk quiet)
#     IDLE  neither
#   If the other line has a file modified within the last minute, the
#   activity is attributed to that line's transfer instead.
#
# This is informational only. It never changes the line's TransferState.
#
# DEPENDENCIES:
#   - psutil: cross-platform disk and network I/O counters
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

import psutil

from beam_audit.core.archive_scanner import has_recent_activity
from beam_audit.core.models import LineSpec, RedundancyReading

logger = logging.getLogger(__name__)

IDLE = "IDLE"
DISK = "DISK"
NET = "NET"


def _io_snapshot() -> Tuple[int, int]:
    """(disk bytes written, network bytes received) since boot."""
    disk = psutil.disk_io_counters()
    net = psutil.net_io_counters()
    disk_written = disk.write_bytes if disk is not None else 0
    net_received = net.bytes_recv if net is not None else 0
    return disk_written, net_received


class RedundancyProbe:
    """System-wide activity check, consulted only for IDLE lines."""

    def __init__(
        self,
        busy_threshold_bps: float = 1024 * 1024,
        sample_seconds: float = 5.0,
        other_line_minutes: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        snapshot: Callable[[], Tuple[int, int]] = _io_snapshot,
    ) -> None:
        self.busy_threshold_bps = busy_threshold_bps
        self.sample_seconds = sample_seconds
        self.other_line_minutes = other_line_minutes
        self._sleep = sleep
        self._snapshot = snapshot

    def probe(self, line: Optional[LineSpec] = None) -> RedundancyReading:
        disk1, net1 = self._snapshot()
        self._sleep(self.sample_seconds)
        disk2, net2 = self._snapshot()

        disk_bps = max(0, disk2 - disk1) / self.sample_seconds
        net_bps = max(0, net2 - net1) / self.sample_seconds

        if disk_bps > self.busy_threshold_bps:
            classification, bps = DISK, disk_bps
        elif net_bps > self.busy_threshold_bps:
            classification, bps = NET, net_bps
        else:
            return RedundancyReading(classification=IDLE, throughput_bps=max(disk_bps, net_bps))

        attributed = None
        if line is not None:
            other = LineSpec(line.other_line_id, line.base_dir)
            if has_recent_activity(other.root, self.other_line_minutes):
                attributed = other.line_id

        logger.debug(
            "System activity %s at %.0f B/s (attributed to %s)",
            classification, bps, attributed,
        )
        return RedundancyReading(
            classification=classification,
            throughput_bps=bps,
            attributed_to_line=attributed,
        )

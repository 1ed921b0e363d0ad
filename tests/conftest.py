# ============================================================================
# conftest.py -- Shared Test Fixtures for the Beam Audit Test Suite
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Pytest automatically loads this file before any test runs.
#   It provides:
#     1. sys.path setup so "from beam_audit.core.X import Y" works
#     2. Logging pointed at a temp folder (no logs/ left in the repo)
#     3. Fakes: FakeClock, RecordingNotifier, MemoryStateStore
#     4. Builders for real ZIP archives and "Line X" folder trees
#
# WHY REAL FILES:
#   The scanner, sampler and state store are all about what is actually
#   on disk (block allocation, EOCD records, flock). tmp_path gives each
#   test its own throwaway folder, so faking the filesystem buys nothing.
#
# INTERNET ACCESS: NONE
# ============================================================================

import os
import sys
import zipfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# -- sys.path setup --
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from beam_audit.core.config import Config, PathsConfig, SamplingConfig, RedundancyConfig
from beam_audit.core.models import LineState
from beam_audit.core.state_store import StateStore
from beam_audit.monitoring.logger import initialize_logging


ENV_VARS = [
    "BEAM_AUDIT_BASE_DIR", "BEAM_AUDIT_STATE_DIR", "BEAM_AUDIT_ALERT_THRESHOLD",
    "BEAM_AUDIT_START_DATE", "BEAM_AUDIT_END_DATE",
    "BEAM_AUDIT_SMTP_USER", "SMTP_USER", "BEAM_AUDIT_SMTP_PASS", "SMTP_PASS",
    "BEAM_AUDIT_RECIPIENT_EMAIL", "RECIPIENT_EMAIL",
]


@pytest.fixture(scope="session", autouse=True)
def _test_logging(tmp_path_factory):
    """Route every structured log file into a session temp folder."""
    initialize_logging(str(tmp_path_factory.mktemp("logs")))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """No BEAM_AUDIT_* / SMTP_* from the developer's shell leaks into a test."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# SECTION 1: FAKES
# ============================================================================

class FakeClock:
    """
    Deterministic stand-in for datetime.now and time.sleep.

    Calling the clock returns the current fake time; sleep() advances it
    (and runs on_sleep first, so a test can make files grow "during" the
    sampling wait).
    """

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now().replace(microsecond=0)
        self.sleeps: List[float] = []
        self.on_sleep = None

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self.now += timedelta(seconds=seconds, minutes=minutes)
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()
        self.advance(seconds=seconds)


@dataclass
class SentAlert:
    line_id: str
    subject: str
    body: str


class RecordingNotifier:
    """Notifier that remembers every alert. result/raises control the outcome."""

    def __init__(self, result: bool = True, raises: Optional[Exception] = None):
        self.sent: List[SentAlert] = []
        self.result = result
        self.raises = raises

    def send_alert(self, line_id: str, subject: str, body: str) -> bool:
        self.sent.append(SentAlert(line_id, subject, body))
        if self.raises is not None:
            raise self.raises
        return self.result


class MemoryStateStore(StateStore):
    """StateStore kept in dicts -- proves the engine does not need files."""

    def __init__(self):
        self.states: Dict[str, LineState] = {}
        self.events: Dict[str, list] = {}
        self.saves = 0

    def load(self, line_id):
        s = self.states.get(line_id)
        if s is None:
            return LineState()
        return LineState(confirmed=s.confirmed, since=s.since, pending=s.pending)

    def save(self, line_id, state):
        self.saves += 1
        self.states[line_id] = LineState(
            confirmed=state.confirmed, since=state.since, pending=state.pending,
        )

    def append_event(self, line_id, event):
        self.events.setdefault(line_id, []).append(event)

    def read_events(self, line_id):
        return list(self.events.get(line_id, []))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def memory_store():
    return MemoryStateStore()


# ============================================================================
# SECTION 2: ARCHIVE AND FOLDER BUILDERS
# ============================================================================

def make_zip(path: Path, payload_size: int = 4096, mtime: Optional[datetime] = None) -> Path:
    """
    Write a real, complete ZIP holding one stored (uncompressed) member
    of payload_size bytes. The file ends up slightly larger than
    payload_size because of headers.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr("data.bin", b"\x01" * payload_size)
    if mtime is not None:
        ts = mtime.timestamp()
        os.utime(path, (ts, ts))
    return path


def make_truncated_zip(path: Path, payload_size: int = 4096) -> Path:
    """A ZIP cut off mid-transfer: valid local header, no central directory."""
    make_zip(path, payload_size)
    data = Path(path).read_bytes()
    Path(path).write_bytes(data[: payload_size // 2])
    return Path(path)


def set_mtime(path: Path, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(path, (ts, ts))


def write_growth(path: Path, size: int = 256 * 1024) -> None:
    """Append real data and fsync so the filesystem allocates blocks now."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "ab") as f:
        f.write(os.urandom(size))
        f.flush()
        os.fsync(f.fileno())


def build_line(base: Path, line_id: str, days: Dict[str, List[int]], old: bool = True) -> Path:
    """
    Create "<base>/Line <id>/Archive_Beam_<id>_<day>/devNN.zip" for each
    day and payload size. With old=True every archive gets an mtime one
    day in the past so nothing counts as a recent write.
    """
    root = Path(base) / f"Line {line_id}"
    root.mkdir(parents=True, exist_ok=True)
    past = datetime.now() - timedelta(days=1)
    for day, sizes in days.items():
        folder = root / f"Archive_Beam_{line_id}_{day}"
        for i, size in enumerate(sizes):
            make_zip(folder / f"dev{i:02d}.zip", size, mtime=past if old else None)
    return root


@pytest.fixture
def make_config(tmp_path):
    """
    Factory for a real Config rooted at tmp_path with fast sampling and
    no redundancy probe. Keyword arguments override PathsConfig fields.
    """
    def _make(**paths_overrides) -> Config:
        paths = PathsConfig(base_dir=str(tmp_path), log_dir=str(tmp_path / "logs"))
        for k, v in paths_overrides.items():
            setattr(paths, k, v)
        return Config(
            paths=paths,
            sampling=SamplingConfig(interval_seconds=10.0),
            redundancy=RedundancyConfig(enabled=False),
        )
    return _make

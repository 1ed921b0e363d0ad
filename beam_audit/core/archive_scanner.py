# ============================================================================
# Beam Audit -- Archive Scanner (beam_audit/core/archive_scanner.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Walks a line's directory tree, finds every .zip archive, and checks
#   each one is a structurally complete ZIP container. Also answers
#   "what was written in the last few minutes?" for the report and the
#   cross-line check.
#
# HOW THE ZIP CHECK WORKS (no extraction):
#   1. File must be at least 22 bytes (size of the end-of-central-
#      directory record, the smallest legal ZIP).
#   2. First 4 bytes must be a ZIP signature ("PK\x03\x04", or
#      "PK\x05\x06" for an empty archive).
#   3. zipfile.is_zipfile() must find and parse the EOCD record in the
#      trailing 64 KB.
#   A transfer that was cut off mid-file has a valid header but no EOCD,
#   which is exactly the failure this is meant to catch. A fully written
#   archive with a corrupted member passes; decompressing every archive
#   every 5 minutes would take hours.
#
# ONE BAD FILE NEVER ABORTS THE SCAN:
#   Each failure becomes an ArchiveFile with is_structurally_valid=False
#   and a readable invalid_reason.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import logging
import os
import zipfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .exceptions import ArchiveValidationError
from .models import ArchiveFile, RecentFile

logger = logging.getLogger(__name__)

_EOCD_SIZE = 22
_ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")


def validate_archive(path) -> None:
    """Raise ArchiveValidationError with a readable reason if path is not a complete ZIP."""
    p = Path(path)
    try:
        size = p.stat().st_size
    except OSError:
        raise ArchiveValidationError("Cannot read file metadata", path=p)

    if size < _EOCD_SIZE:
        raise ArchiveValidationError(
            f"File too small ({size} bytes, minimum {_EOCD_SIZE} bytes required)",
            path=p,
        )

    try:
        with open(p, "rb") as f:
            head = f.read(4)
    except OSError:
        raise ArchiveValidationError("Cannot open file", path=p)

    if head not in _ZIP_MAGIC:
        raise ArchiveValidationError("Missing ZIP header (not a ZIP archive)", path=p)

    if not zipfile.is_zipfile(p):
        raise ArchiveValidationError(
            "Missing ZIP signature (corrupted or incomplete transfer)", path=p,
        )


def check_archive(path) -> Tuple[bool, Optional[str]]:
    """(is_valid, reason) form of validate_archive()."""
    try:
        validate_archive(path)
    except ArchiveValidationError as e:
        return False, str(e)
    return True, None


def _is_archive(filename: str, extension: str) -> bool:
    return filename.lower().endswith(extension.lower())


def scan_archives(root, extension: str = ".zip") -> List[ArchiveFile]:
    """
    Every archive under root, validated.

    group_key is the archive file name: each source device writes the
    same file name into every day folder, so grouping by name compares
    one device's output across days.
    """
    root = Path(root)
    results: List[ArchiveFile] = []
    for dirpath, _dirnames, filenames in os.walk(str(root)):
        for filename in filenames:
            if not _is_archive(filename, extension):
                continue
            full = Path(dirpath) / filename
            try:
                st = full.stat()
            except OSError:
                # vanished between listing and stat
                continue
            if not full.is_file():
                continue

            is_valid, reason = check_archive(full)
            results.append(ArchiveFile(
                name=filename,
                size_bytes=st.st_size,
                group_key=filename,
                is_structurally_valid=is_valid,
                parent_day=full.parent.name,
                path=full,
                modified=datetime.fromtimestamp(st.st_mtime),
                invalid_reason=reason,
            ))

    invalid = sum(1 for a in results if not a.is_structurally_valid)
    logger.debug("Scanned %s: %d archives, %d invalid", root, len(results), invalid)
    return results


def _display_path(full: Path) -> str:
    """Path from the "Line X" component on, as operators know it."""
    text = str(full)
    idx = text.find("Line ")
    return text[idx:] if idx >= 0 else text


def recent_files(
    root,
    minutes: int = 5,
    now: Optional[datetime] = None,
) -> List[RecentFile]:
    """Files (any type) under root modified within the last `minutes`, newest first."""
    now = now or datetime.now()
    cutoff = now - timedelta(minutes=minutes)
    found: List[RecentFile] = []
    for dirpath, _dirnames, filenames in os.walk(str(root)):
        for filename in filenames:
            full = Path(dirpath) / filename
            try:
                st = full.stat()
            except OSError:
                continue
            modified = datetime.fromtimestamp(st.st_mtime)
            if modified > cutoff:
                found.append(RecentFile(
                    display_path=_display_path(full),
                    size_bytes=st.st_size,
                    modified=modified,
                ))
    found.sort(key=lambda r: r.modified, reverse=True)
    return found


def has_recent_activity(
    root,
    minutes: int = 1,
    clock: Callable[[], datetime] = datetime.now,
) -> bool:
    """True as soon as one file under root was modified within `minutes`."""
    cutoff = (clock() - timedelta(minutes=minutes)).timestamp()
    for dirpath, _dirnames, filenames in os.walk(str(root)):
        for filename in filenames:
            try:
                if os.stat(os.path.join(dirpath, filename)).st_mtime > cutoff:
                    return True
            except OSError:
                continue
    return False

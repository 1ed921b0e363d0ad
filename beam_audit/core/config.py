# ============================================================================
# Beam Audit -- Configuration (beam_audit/core/config.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The single source of truth for every audit setting: where the lines
#   live, how long to sample, how long a new state must persist before an
#   alert goes out, the placeholder threshold, anomaly bounds and the
#   campaign date range.
#
# HOW IT WORKS:
#   1. Dataclasses define every setting with a sensible default
#   2. A YAML file (config/default_config.yaml) can override those defaults
#   3. Environment variables can override YAML (machine-specific paths)
#
#   Priority: env vars > YAML file > hardcoded defaults
#
#   CLI flags (--base-dir, --alert-threshold) are applied on top by
#   beam_audit/tools/audit_cli.py after load_config() returns.
#
# CAMPAIGN DATES:
#   The transfer itself is driven by a PowerShell script (Transfer.ps1)
#   on the sending side, which declares $startDate and $endDate. If the
#   YAML leaves campaign dates empty, parse_campaign_dates() reads them
#   from that script in the base directory.
#
# USAGE:
#   from beam_audit.core.config import load_config
#   config = load_config(".")
#   print(config.paths.base_dir)
#   print(config.alerts.threshold_minutes)
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = "/data/storage/samba_share_cluster"
VALID_LINES = ("A", "B")


# -------------------------------------------------------------------
# Sub-configs: each one maps to a section in the YAML file
# -------------------------------------------------------------------

@dataclass
class PathsConfig:
    """
    Where the audited lines and the persisted state live.

    base_dir holds "Line A/", "Line B/", the .transfer_* state files,
    .email_config and Transfer.ps1. state_dir defaults to base_dir.
    """
    base_dir: str = DEFAULT_BASE_DIR
    state_dir: str = ""
    log_dir: str = "logs"
    transfer_script: str = "Transfer.ps1"
    email_config: str = ".email_config"

    def __post_init__(self) -> None:
        env_base = os.getenv("BEAM_AUDIT_BASE_DIR")
        if env_base:
            self.base_dir = env_base.strip()
        env_state = os.getenv("BEAM_AUDIT_STATE_DIR")
        if env_state:
            self.state_dir = env_state.strip()

        self.base_dir = os.path.normpath(os.path.expandvars(self.base_dir))
        if self.state_dir:
            self.state_dir = os.path.normpath(os.path.expandvars(self.state_dir))

    @property
    def resolved_state_dir(self) -> str:
        return self.state_dir or self.base_dir


@dataclass
class SamplingConfig:
    """
    Differential sampling settings.

    10 seconds is long enough for a steady SMB writer to allocate at
    least one new block, and short enough that a 5-minute cron cycle
    for two lines finishes well before the next one starts.
    """
    interval_seconds: float = 10.0
    recent_minutes: int = 5          # "Active/Recent File Writes" window
    other_line_minutes: int = 1      # cross-line attribution window


@dataclass
class AlertConfig:
    """Debounced alerting. A new state must persist this long to alert."""
    threshold_minutes: float = 20.0
    enabled: bool = True
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    subject_prefix: str = "[Beam Alert]"

    def __post_init__(self) -> None:
        env_threshold = os.getenv("BEAM_AUDIT_ALERT_THRESHOLD")
        if env_threshold:
            try:
                self.threshold_minutes = float(env_threshold)
            except ValueError:
                raise ConfigError(
                    "BEAM_AUDIT_ALERT_THRESHOLD must be a number of minutes, got '"
                    + env_threshold + "'"
                )


@dataclass
class IntegrityConfig:
    """
    Archive scanning settings.

    Files under tiny_threshold bytes are placeholders (stubs written
    before the real archive arrives). They are counted but kept out of
    the size statistics.
    """
    archive_extension: str = ".zip"
    tiny_threshold: int = 1000
    max_bad_per_folder: int = 10
    bad_folder_display_threshold: int = 0


@dataclass
class AnomalyConfig:
    low_ratio: float = 0.8
    high_ratio: float = 1.2


@dataclass
class RedundancyConfig:
    """System-wide activity check run when a line looks IDLE."""
    enabled: bool = True
    sample_seconds: float = 5.0
    busy_threshold_bps: float = 1024 * 1024


@dataclass
class CampaignConfig:
    """
    The transfer campaign's date range ("YYYY-MM-DD" strings).

    Empty = read from the transfer script in base_dir.
    """
    start_date: str = ""
    end_date: str = ""

    def __post_init__(self) -> None:
        env_start = os.getenv("BEAM_AUDIT_START_DATE")
        if env_start:
            self.start_date = env_start.strip()
        env_end = os.getenv("BEAM_AUDIT_END_DATE")
        if env_end:
            self.end_date = env_end.strip()


# -------------------------------------------------------------------
# Master Config -- the one object that holds everything
# -------------------------------------------------------------------

@dataclass
class Config:
    """
    Master configuration object for the audit engine.

    Example:
        config = load_config(".")
        print(config.sampling.interval_seconds)   # 10.0
        print(config.alerts.threshold_minutes)    # 20.0
    """
    lines: List[str] = field(default_factory=lambda: list(VALID_LINES))

    paths: PathsConfig = field(default_factory=PathsConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    integrity: IntegrityConfig = field(default_factory=IntegrityConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    redundancy: RedundancyConfig = field(default_factory=RedundancyConfig)
    campaign: CampaignConfig = field(default_factory=CampaignConfig)


# -------------------------------------------------------------------
# Helper: YAML dict -> dataclass (with safety net)
# -------------------------------------------------------------------

def _dict_to_dataclass(cls, data: dict):
    """
    Build a dataclass from a dictionary, ignoring unknown keys.

    Unknown keys are logged as warnings with a suggestion when one field
    name contains the other ("threshold" vs "threshold_minutes"), so a
    typo in the YAML never silently falls back to the default.
    """
    known_fields = {f.name for f in dataclasses.fields(cls)}

    filtered = {}
    for k, v in (data or {}).items():
        if k in known_fields:
            filtered[k] = v
            continue
        suggestion = ""
        for field_name in sorted(known_fields):
            if k in field_name or field_name in k:
                suggestion = " Did you mean '" + field_name + "'?"
                break
        logger.warning(
            "config/%s: YAML key '%s' is not a recognized setting -- IGNORED.%s",
            cls.__name__, k, suggestion,
        )

    return cls(**filtered)


# -------------------------------------------------------------------
# Main entry point: load_config()
# -------------------------------------------------------------------

def load_config(
    project_dir: str = ".",
    config_filename: str = "default_config.yaml",
) -> Config:
    """
    Load configuration from YAML file, with defaults and env var overrides.

    Parameters
    ----------
    project_dir : str
        Folder containing the config/ subfolder.

    config_filename : str
        Name of the YAML config file inside config/.

    Returns
    -------
    Config
        Fully resolved configuration object.
    """
    config_path = Path(project_dir) / "config" / config_filename

    yaml_data: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {config_path}: {e}")
        if isinstance(raw, dict):
            yaml_data = raw

    lines = yaml_data.get("lines") or list(VALID_LINES)

    return Config(
        lines=[str(x).upper() for x in lines],
        paths=_dict_to_dataclass(PathsConfig, yaml_data.get("paths", {})),
        sampling=_dict_to_dataclass(SamplingConfig, yaml_data.get("sampling", {})),
        alerts=_dict_to_dataclass(AlertConfig, yaml_data.get("alerts", {})),
        integrity=_dict_to_dataclass(IntegrityConfig, yaml_data.get("integrity", {})),
        anomaly=_dict_to_dataclass(AnomalyConfig, yaml_data.get("anomaly", {})),
        redundancy=_dict_to_dataclass(RedundancyConfig, yaml_data.get("redundancy", {})),
        campaign=_dict_to_dataclass(CampaignConfig, yaml_data.get("campaign", {})),
    )


def validate_config(config: Config) -> List[str]:
    """
    Check a Config object for problems. Returns a list of error messages.
    Empty list = everything is valid.
    """
    errors: List[str] = []

    for line_id in config.lines:
        if line_id not in VALID_LINES:
            errors.append(
                "Invalid line '" + line_id + "'. Use 'A' or 'B'."
            )

    if config.sampling.interval_seconds <= 0:
        errors.append(
            "sampling.interval_seconds must be > 0, got "
            + str(config.sampling.interval_seconds)
        )

    if config.alerts.threshold_minutes < 0:
        errors.append(
            "alerts.threshold_minutes must be >= 0, got "
            + str(config.alerts.threshold_minutes)
        )

    if config.integrity.tiny_threshold < 0:
        errors.append("integrity.tiny_threshold must be >= 0")

    if not 0 < config.anomaly.low_ratio < 1 < config.anomaly.high_ratio:
        errors.append(
            "anomaly ratios must satisfy 0 < low_ratio < 1 < high_ratio"
        )

    for label, raw in (("campaign.start_date", config.campaign.start_date),
                       ("campaign.end_date", config.campaign.end_date)):
        if raw and _parse_iso_date(raw) is None:
            errors.append(label + " is not a YYYY-MM-DD date: '" + raw + "'")

    return errors


# -------------------------------------------------------------------
# Campaign dates
# -------------------------------------------------------------------

def _parse_iso_date(raw: str) -> Optional[date]:
    try:
        return datetime.strptime(raw.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def _extract_quoted_date(line: str) -> Optional[date]:
    """
    Pull a date out of a PowerShell assignment like:
        $startDate = "2024-07-29"
        $endDate = Get-Date "2024-09-10"
    """
    parts = line.split('"')
    if len(parts) < 3:
        return None
    return _parse_iso_date(parts[1])


def parse_campaign_dates(script_path: Path) -> Optional[Tuple[date, date]]:
    """
    Read ($startDate, $endDate) from the transfer script.

    Returns None if the script is missing or either date is absent or
    unparseable. The first assignment of each variable wins.
    """
    try:
        content = Path(script_path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None

    start: Optional[date] = None
    end: Optional[date] = None
    for line in content.splitlines():
        if start is None and "$startDate" in line:
            start = _extract_quoted_date(line)
        elif end is None and "$endDate" in line:
            end = _extract_quoted_date(line)

    if start is None or end is None:
        return None
    return start, end


def resolve_campaign_dates(config: Config) -> Optional[Tuple[date, date]]:
    """
    Campaign (start, end): YAML/env first, transfer script second.

    A YAML end date without a start date is still usable; the start
    then falls back to the script, or to the end date itself.
    """
    start = _parse_iso_date(config.campaign.start_date) if config.campaign.start_date else None
    end = _parse_iso_date(config.campaign.end_date) if config.campaign.end_date else None
    if start and end:
        return start, end

    script = Path(config.paths.base_dir) / config.paths.transfer_script
    from_script = parse_campaign_dates(script)
    if from_script:
        return (start or from_script[0], end or from_script[1])

    if end:
        return (start or end, end)
    return None

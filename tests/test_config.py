# ============================================================================
# test_config.py -- YAML config, env overrides, validation, campaign dates
# ============================================================================
#
# COVERS:
#   Tests 01-05: load_config() defaults, YAML, unknown keys, env vars
#   Tests 06-07: validate_config()
#   Tests 08-11: campaign dates from YAML or the transfer script
#
# RUN:
#   python -m pytest tests/test_config.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

import logging
import os
from datetime import date

import pytest

from beam_audit.core.config import (
    Config,
    DEFAULT_BASE_DIR,
    load_config,
    parse_campaign_dates,
    resolve_campaign_dates,
    validate_config,
)
from beam_audit.core.exceptions import ConfigError

TRANSFER_SCRIPT = """\
# Transfer.ps1 -- copies one day folder per weekday
$startDate = "2026-01-05"
$endDate = Get-Date "2026-02-27"
$currentDate = $startDate
"""


def _write_yaml(project_dir, text):
    cfg = project_dir / "config"
    cfg.mkdir(parents=True, exist_ok=True)
    (cfg / "default_config.yaml").write_text(text, encoding="utf-8")


class TestLoadConfig:

    # ------------------------------------------------------------------
    # TEST 01: no YAML file -> built-in defaults
    # ------------------------------------------------------------------
    def test_01_defaults(self, tmp_path):
        config = load_config(str(tmp_path))
        assert config.lines == ["A", "B"]
        assert config.paths.base_dir == os.path.normpath(DEFAULT_BASE_DIR)
        assert config.paths.resolved_state_dir == config.paths.base_dir
        assert config.sampling.interval_seconds == 10.0
        assert config.alerts.threshold_minutes == 20.0
        assert config.integrity.tiny_threshold == 1000
        assert (config.anomaly.low_ratio, config.anomaly.high_ratio) == (0.8, 1.2)

    # ------------------------------------------------------------------
    # TEST 02: YAML overrides defaults section by section
    # ------------------------------------------------------------------
    def test_02_yaml_overrides(self, tmp_path):
        _write_yaml(tmp_path, (
            "lines: [b]\n"
            "paths:\n"
            f"  base_dir: {tmp_path / 'share'}\n"
            f"  state_dir: {tmp_path / 'state'}\n"
            "sampling:\n"
            "  interval_seconds: 2\n"
            "alerts:\n"
            "  threshold_minutes: 45\n"
        ))
        config = load_config(str(tmp_path))
        assert config.lines == ["B"]
        assert config.paths.base_dir == str(tmp_path / "share")
        assert config.paths.resolved_state_dir == str(tmp_path / "state")
        assert config.sampling.interval_seconds == 2
        assert config.alerts.threshold_minutes == 45

    # ------------------------------------------------------------------
    # TEST 03: unknown keys are ignored with a helpful warning
    # ------------------------------------------------------------------
    def test_03_unknown_key_warns(self, tmp_path, caplog):
        _write_yaml(tmp_path, "alerts:\n  threshold: 5\n")
        with caplog.at_level(logging.WARNING, logger="beam_audit.core.config"):
            config = load_config(str(tmp_path))
        assert config.alerts.threshold_minutes == 20.0
        assert "threshold" in caplog.text
        assert "Did you mean 'threshold_minutes'?" in caplog.text

    # ------------------------------------------------------------------
    # TEST 04: env vars win over YAML
    # ------------------------------------------------------------------
    def test_04_env_overrides(self, tmp_path, monkeypatch):
        _write_yaml(tmp_path, (
            "paths:\n  base_dir: /from/yaml\n"
            "alerts:\n  threshold_minutes: 45\n"
            "campaign:\n  start_date: '2025-01-01'\n"
        ))
        monkeypatch.setenv("BEAM_AUDIT_BASE_DIR", str(tmp_path / "env"))
        monkeypatch.setenv("BEAM_AUDIT_ALERT_THRESHOLD", "7.5")
        monkeypatch.setenv("BEAM_AUDIT_START_DATE", "2026-01-05")

        config = load_config(str(tmp_path))
        assert config.paths.base_dir == str(tmp_path / "env")
        assert config.alerts.threshold_minutes == 7.5
        assert config.campaign.start_date == "2026-01-05"

    # ------------------------------------------------------------------
    # TEST 05: unusable YAML or env value -> ConfigError
    # ------------------------------------------------------------------
    def test_05_config_errors(self, tmp_path, monkeypatch):
        _write_yaml(tmp_path, "alerts: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(tmp_path))

        _write_yaml(tmp_path, "lines: [A]\n")
        monkeypatch.setenv("BEAM_AUDIT_ALERT_THRESHOLD", "soon")
        with pytest.raises(ConfigError) as exc:
            load_config(str(tmp_path))
        assert exc.value.error_code == "CONF-001"


class TestValidateConfig:

    # ------------------------------------------------------------------
    # TEST 06: the defaults are valid
    # ------------------------------------------------------------------
    def test_06_defaults_valid(self):
        assert validate_config(Config()) == []

    # ------------------------------------------------------------------
    # TEST 07: every bad field is reported, not just the first
    # ------------------------------------------------------------------
    def test_07_errors_collected(self):
        config = Config(lines=["A", "C"])
        config.sampling.interval_seconds = 0
        config.alerts.threshold_minutes = -1
        config.anomaly.low_ratio = 1.5
        config.campaign.end_date = "next week"

        errors = validate_config(config)
        assert len(errors) == 5
        assert any("Invalid line 'C'" in e for e in errors)
        assert any("interval_seconds" in e for e in errors)
        assert any("threshold_minutes" in e for e in errors)
        assert any("low_ratio" in e for e in errors)
        assert any("campaign.end_date" in e for e in errors)


class TestCampaignDates:

    # ------------------------------------------------------------------
    # TEST 08: dates read from the transfer script
    # ------------------------------------------------------------------
    def test_08_parse_script(self, tmp_path):
        script = tmp_path / "Transfer.ps1"
        script.write_text(TRANSFER_SCRIPT)
        assert parse_campaign_dates(script) == (date(2026, 1, 5), date(2026, 2, 27))

    # ------------------------------------------------------------------
    # TEST 09: missing script or missing date -> None
    # ------------------------------------------------------------------
    def test_09_script_unusable(self, tmp_path):
        assert parse_campaign_dates(tmp_path / "Transfer.ps1") is None
        script = tmp_path / "Transfer.ps1"
        script.write_text('$startDate = "2026-01-05"\n')
        assert parse_campaign_dates(script) is None

    # ------------------------------------------------------------------
    # TEST 10: YAML dates win over the script
    # ------------------------------------------------------------------
    def test_10_yaml_first(self, make_config, tmp_path):
        (tmp_path / "Transfer.ps1").write_text(TRANSFER_SCRIPT)
        config = make_config()
        config.campaign.start_date = "2026-03-02"
        config.campaign.end_date = "2026-03-31"
        assert resolve_campaign_dates(config) == (date(2026, 3, 2), date(2026, 3, 31))

        config.campaign.start_date = ""
        assert resolve_campaign_dates(config) == (date(2026, 1, 5), date(2026, 3, 31))

    # ------------------------------------------------------------------
    # TEST 11: no YAML and no script -> unknown
    # ------------------------------------------------------------------
    def test_11_unknown(self, make_config):
        assert resolve_campaign_dates(make_config()) is None

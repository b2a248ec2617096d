"""Tests for config loading and validation."""

import json
from pathlib import Path

import pytest

from classping.config.loader import camel_to_snake, load_config, save_config, snake_to_camel
from classping.config.schema import Config
from classping.errors import ConfigError


def write_config(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "config.json")

        assert config.schedule.timezone == "America/Bogota"
        assert config.schedule.lead_minutes == 5
        assert config.channel.kind == "whatsapp"
        assert config.recipients.targets == []

    def test_camel_case_keys(self, tmp_path):
        path = write_config(tmp_path / "config.json", {
            "workspace": str(tmp_path / "ws"),
            "schedule": {"timezone": "America/New_York", "leadMinutes": 10, "sendDelayS": 0},
            "recipients": {"targets": ["a@g.us"]},
            "channel": {"kind": "console", "whatsapp": {"bridgeUrl": "ws://bridge:9000"}},
        })

        config = load_config(path)

        assert config.schedule.timezone == "America/New_York"
        assert config.schedule.lead_minutes == 10
        assert config.schedule.send_delay_s == 0
        assert config.channel.whatsapp.bridge_url == "ws://bridge:9000"
        assert config.catalog_path == tmp_path / "ws" / "schedule.json"
        assert config.ledger_path == tmp_path / "ws" / "sent_log.json"

    @pytest.mark.parametrize("lead", [0, 61, -5])
    def test_lead_out_of_range_is_fatal(self, tmp_path, lead):
        path = write_config(tmp_path / "config.json", {"schedule": {"leadMinutes": lead}})

        with pytest.raises(ConfigError):
            load_config(path)

    def test_unknown_timezone_is_fatal(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"schedule": {"timezone": "Nowhere/Land"}})

        with pytest.raises(ConfigError, match="timezone"):
            load_config(path)

    def test_unknown_channel_kind_is_fatal(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"channel": {"kind": "sms"}})

        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_json_is_fatal(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_object_is_fatal(self, tmp_path):
        path = write_config(tmp_path / "config.json", ["a"])

        with pytest.raises(ConfigError):
            load_config(path)

    def test_env_fills_missing_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLASSPING_SCHEDULE__LEAD_MINUTES", "15")

        config = load_config(tmp_path / "config.json")

        assert config.schedule.lead_minutes == 15

    def test_explicit_paths_override_workspace(self, tmp_path):
        path = write_config(tmp_path / "config.json", {
            "schedule": {"catalogPath": str(tmp_path / "t.json"), "ledgerPath": str(tmp_path / "l.json")},
        })

        config = load_config(path)

        assert config.catalog_path == tmp_path / "t.json"
        assert config.ledger_path == tmp_path / "l.json"


class TestRecipients:
    def test_comma_separated_string(self):
        config = Config(recipients={"targets": " a@g.us, b@g.us ,,a@g.us"})

        assert config.recipients.targets == ["a@g.us", "b@g.us"]

    def test_list_deduplicated_in_order(self):
        config = Config(recipients={"targets": ["b@g.us", "a@g.us", "b@g.us"]})

        assert config.recipients.targets == ["b@g.us", "a@g.us"]


class TestSaveConfig:
    def test_saved_file_is_camel_case_and_loads_back(self, tmp_path):
        path = tmp_path / "config.json"
        config = Config(schedule={"lead_minutes": 7}, recipients={"targets": ["a@g.us"]})

        save_config(config, path)

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["schedule"]["leadMinutes"] == 7
        assert "lead_minutes" not in raw["schedule"]
        assert load_config(path).schedule.lead_minutes == 7


def test_key_case_helpers():
    assert camel_to_snake("leadMinutes") == "lead_minutes"
    assert camel_to_snake("sendDelayS") == "send_delay_s"
    assert snake_to_camel("status_interval_minutes") == "statusIntervalMinutes"

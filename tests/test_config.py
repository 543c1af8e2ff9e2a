"""Tests for configuration loading."""

import logging
from pathlib import Path

import pytest

from cmdgate.config import (
    DEFAULT_OVERRIDE_PHRASE,
    ConfigError,
    load_config,
    load_config_or_default,
    parse_config,
)
from cmdgate.gate import Gate, Outcome

CONFIG_CONTENT = """\
override_phrase: "I ACCEPT THE RISK"
enforce_modes: [bypassPermissions]
log_level: debug
rules:
  - pattern: '\\bterraform\\s+destroy\\b'
    label: terraform destroy
    severity: high
"""


class TestParseConfig:
    def test_empty_document(self):
        assert parse_config("") == {}

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            parse_config("rules: [broken")

    def test_non_mapping(self):
        with pytest.raises(ConfigError, match="must be a YAML mapping"):
            parse_config("- just\n- a list\n")


class TestLoadConfig:
    def test_defaults_without_file(self, state_dir):
        config = load_config()
        assert config.disabled is False
        assert config.override_phrase == DEFAULT_OVERRIDE_PHRASE
        assert config.enforce_modes == []
        assert config.rules == []
        assert config.file_path == ""
        # CMDGATE_STATE_DIR is set by the test fixture
        assert config.state_dir == state_dir

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_CONTENT)
        config = load_config(path)
        assert config.override_phrase == "I ACCEPT THE RISK"
        assert config.enforce_modes == ["bypassPermissions"]
        assert config.log_level == "debug"
        assert config.rules[0]["label"] == "terraform destroy"
        assert config.file_path == str(path)

    def test_config_env_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("disabled: true\n")
        monkeypatch.setenv("CMDGATE_CONFIG", str(path))
        assert load_config().disabled is True

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(f"state_dir: {tmp_path / 'from-file'}\n")
        monkeypatch.setenv("CMDGATE_DISABLE", "1")
        monkeypatch.setenv("CMDGATE_STATE_DIR", str(tmp_path / "from-env"))
        config = load_config(path)
        assert config.disabled is True
        assert config.state_dir == Path(tmp_path / "from-env")

    def test_rules_must_be_a_list(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("rules: {pattern: x}\n")
        assert load_config(path).rules == []

    def test_broken_file_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("rules: [broken")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_broken_file_falls_back_to_defaults(self, tmp_path, state_dir):
        path = tmp_path / "config.yaml"
        path.write_text("rules: [broken")
        config = load_config_or_default(path)
        assert config.override_phrase == DEFAULT_OVERRIDE_PHRASE
        assert config.state_dir == state_dir

    def test_scalar_enforce_modes_is_ignored(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text("enforce_modes: bypassPermissions\n")
        with caplog.at_level(logging.WARNING, logger="cmdgate.config"):
            config = load_config(path)
        assert config.enforce_modes == []
        assert "enforce_modes" in caplog.text

    @pytest.mark.parametrize("value", ["'false'", "'no'", "0", "yes please"])
    def test_non_boolean_disabled_is_ignored(self, tmp_path, value):
        path = tmp_path / "config.yaml"
        path.write_text(f"disabled: {value}\n")
        assert load_config(path).disabled is False

    def test_malformed_values_keep_gate_enforced(self, tmp_path, workdir):
        path = tmp_path / "config.yaml"
        path.write_text("disabled: 'false'\nenforce_modes: bypassPermissions\n")
        gate = Gate(load_config(path))
        result = gate.evaluate("rm -rf /", workdir, "bypassPermissions")
        assert result.outcome is Outcome.BLOCK

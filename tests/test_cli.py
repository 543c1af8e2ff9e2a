"""Tests for CLI commands: check, prompt, status, classify."""

from __future__ import annotations

import json

from click.testing import CliRunner

from cmdgate.cli import main
from cmdgate.state import BlockedStateRecorder, BypassTokenStore, session_key


def _hook_input(command: str, cwd: str) -> str:
    return json.dumps({"tool_name": "Bash", "tool_input": {"command": command}, "cwd": cwd})


# ─── check command ───────────────────────────────────────────────────────


class TestCheckCommand:
    def test_block(self, workdir):
        runner = CliRunner()
        result = runner.invoke(main, ["check"], input=_hook_input("rm -rf /tmp/x", workdir))
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["decision"] == "block"
        assert "recursive force delete" in data["message"]

    def test_allow(self, workdir):
        runner = CliRunner()
        result = runner.invoke(main, ["check"], input=_hook_input("git status", workdir))
        assert result.exit_code == 0
        assert json.loads(result.output) == {"decision": "allow"}

    def test_single_json_line(self, workdir):
        runner = CliRunner()
        result = runner.invoke(main, ["check"], input=_hook_input("git push -f", workdir))
        assert len(result.output.strip().splitlines()) == 1

    def test_malformed_input_allows(self):
        runner = CliRunner()
        result = runner.invoke(main, ["check"], input="{{{")
        assert result.exit_code == 0
        assert json.loads(result.output) == {"decision": "allow"}

    def test_broken_config_still_gates(self, tmp_path, workdir, monkeypatch):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("rules: [broken")
        monkeypatch.setenv("CMDGATE_CONFIG", str(config_path))
        runner = CliRunner()
        result = runner.invoke(main, ["check"], input=_hook_input("rm -rf /tmp/x", workdir))
        assert result.exit_code == 0
        assert json.loads(result.output)["decision"] == "block"

    def test_writes_log_file(self, workdir, state_dir):
        runner = CliRunner()
        runner.invoke(main, ["check"], input=_hook_input("rm -rf /tmp/x", workdir))
        log_text = (state_dir / "cmdgate.log").read_text()
        assert "recursive force delete" in log_text


# ─── prompt command ──────────────────────────────────────────────────────


class TestPromptCommand:
    def test_override_phrase_arms_bypass(self, workdir, state_dir):
        runner = CliRunner()
        payload = json.dumps({"prompt": "BYPASS GATE yes really", "cwd": workdir})
        result = runner.invoke(main, ["prompt"], input=payload)
        assert result.exit_code == 0
        assert "bypass armed" in result.output
        assert BypassTokenStore(state_dir).path_for(session_key(workdir)).exists()

        result = runner.invoke(main, ["check"], input=_hook_input("rm -rf /tmp/x", workdir))
        assert json.loads(result.output) == {"decision": "allow"}

    def test_ordinary_prompt_is_silent(self, workdir):
        runner = CliRunner()
        result = runner.invoke(main, ["prompt"], input=json.dumps({"prompt": "hi", "cwd": workdir}))
        assert result.exit_code == 0
        assert result.output == ""


# ─── status command ──────────────────────────────────────────────────────


class TestStatusCommand:
    def test_shows_current_block(self, workdir):
        runner = CliRunner()
        runner.invoke(main, ["check"], input=_hook_input("rm -rf /tmp/x", workdir))
        result = runner.invoke(main, ["status", "--cwd", workdir])
        assert result.exit_code == 0
        assert "HIGH: recursive force delete" in result.output

    def test_silent_when_not_blocked(self, workdir):
        runner = CliRunner()
        result = runner.invoke(main, ["status", "--cwd", workdir])
        assert result.exit_code == 0
        assert result.output == ""

    def test_json(self, workdir, state_dir):
        BlockedStateRecorder(state_dir).record(session_key(workdir), "MEDIUM", "force delete", "rm -f x")
        runner = CliRunner()
        result = runner.invoke(main, ["status", "--cwd", workdir, "--format", "json"])
        data = json.loads(result.output)
        assert data["blocked"]["label"] == "force delete"


# ─── classify command ────────────────────────────────────────────────────


class TestClassifyCommand:
    def test_text_output(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "git push --force"])
        assert result.exit_code == 0
        assert "[HIGH]" in result.output
        assert "git force push" in result.output

    def test_clean_command(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "git status", "--fail-on", "medium"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_exempt_command(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "docker exec -it c bash", "--format", "json"])
        data = json.loads(result.output)
        assert data["exempt"] is True
        assert data["match"] is None

    def test_fail_on_threshold(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "rm -f x", "--fail-on", "high"])
        assert result.exit_code == 0
        result = runner.invoke(main, ["classify", "rm -f x", "--fail-on", "medium"])
        assert result.exit_code == 1

    def test_json_reports_escape_vector(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "docker run --privileged alpine", "--format", "json"])
        data = json.loads(result.output)
        assert data["escape_vector"] == "privileged container"
        assert data["match"] == {"severity": "MEDIUM", "label": "privileged container"}

    def test_custom_rules_from_config(self, tmp_path):
        config_path = tmp_path / "rules.yaml"
        config_path.write_text(
            "rules:\n"
            "  - pattern: '\\bterraform\\s+destroy\\b'\n"
            "    label: terraform destroy\n"
            "    severity: high\n"
        )
        runner = CliRunner()
        result = runner.invoke(
            main, ["classify", "terraform destroy", "--config", str(config_path), "--fail-on", "high"]
        )
        assert result.exit_code == 1
        assert "terraform destroy" in result.output

    def test_invalid_config(self, tmp_path):
        config_path = tmp_path / "rules.yaml"
        config_path.write_text("- not\n- a mapping\n")
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "ls", "--config", str(config_path)])
        assert result.exit_code == 1
        assert "Config error" in result.output


class TestVersion:
    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "cmdgate" in result.output

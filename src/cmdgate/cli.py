"""cmdgate CLI: hook entry points and inspection commands."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from . import __version__
from .config import ConfigError, GateConfig, load_config, load_config_or_default
from .exemptions import escape_vector, is_exempt
from .gate import run_hook
from .override import run_prompt_hook
from .reporter import report_json, report_status, report_text
from .rules import Severity, build_rules, classify
from .state import BlockedStateRecorder, session_key

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ALLOW_LINE = json.dumps({"decision": "allow"})


def setup_logging(config: GateConfig) -> None:
    """Send package logs to ``<state_dir>/cmdgate.log``.

    stdout belongs to the hook protocol, so nothing is logged there.
    """
    logger = logging.getLogger("cmdgate")
    if logger.handlers:
        return
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    logger.propagate = False
    try:
        config.state_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(config.state_dir / "cmdgate.log", encoding="utf-8")
    except OSError:
        logger.addHandler(logging.NullHandler())
        return
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)


def _fail_open_excepthook(exc_type, exc, tb) -> None:
    """Last resort for the gate hook: report allow and exit cleanly."""
    logging.getLogger("cmdgate").error("Uncaught error in gate", exc_info=(exc_type, exc, tb))
    sys.stdout.write(ALLOW_LINE + "\n")
    sys.stdout.flush()
    os._exit(0)


def _read_stdin() -> str:
    try:
        return click.get_text_stream("stdin").read()
    except (OSError, ValueError):
        return ""


@click.group()
@click.version_option(version=__version__, prog_name="cmdgate")
def main():
    """cmdgate: a safety gate for shell commands proposed by coding agents.

    Blocks destructive commands before they run, and lets a human authorize
    a single blocked command with an override phrase.
    """
    pass


@main.command()
def check():
    """PreToolUse hook: read the tool payload on stdin, print a decision.

    Always prints exactly one JSON line and exits 0.
    """
    sys.excepthook = _fail_open_excepthook
    try:
        config = load_config_or_default()
        setup_logging(config)
        result = run_hook(_read_stdin(), config)
        line = report_json(result)
    except Exception:
        logging.getLogger("cmdgate").exception("Gate hook failed; allowing command")
        line = ALLOW_LINE
    click.echo(line)


@main.command()
def prompt():
    """UserPromptSubmit hook: arm a bypass token on the override phrase."""
    try:
        config = load_config_or_default()
        setup_logging(config)
        text = run_prompt_hook(_read_stdin(), config)
    except Exception:
        logging.getLogger("cmdgate").exception("Prompt hook failed")
        text = ""
    if text:
        click.echo(text)


@main.command()
@click.option("--cwd", "cwd", type=click.Path(), default=None,
              help="Working directory to report on (default: current).")
@click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text",
              help="Output format.")
def status(cwd: str | None, fmt: str):
    """Show the most recent block for this directory, if still current.

    Prints nothing when no command is currently blocked, which keeps
    status-line integrations quiet.
    """
    config = load_config_or_default()
    key = session_key(cwd or os.environ.get("CLAUDE_PROJECT_DIR") or Path.cwd())
    entry = BlockedStateRecorder(config.state_dir).current(key)

    if fmt == "json":
        click.echo(json.dumps({"blocked": entry}))
    elif entry:
        click.echo(report_status(entry))


@main.command(name="classify")
@click.argument("command")
@click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text",
              help="Output format.")
@click.option("--fail-on", type=click.Choice(["high", "medium"]), default=None,
              help="Exit with error on this severity or above.")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None,
              help="Config file with custom rules.")
def classify_cmd(command: str, fmt: str, fail_on: str | None, config_path: str | None):
    """Classify COMMAND without touching any state.

    Useful for checking custom rules before installing them.
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)

    exempt = is_exempt(command)
    match = None if exempt else classify(command, build_rules(config.rules))

    if fmt == "json":
        click.echo(json.dumps({
            "command": command,
            "exempt": exempt,
            "escape_vector": escape_vector(command),
            "match": match.to_dict() if match else None,
        }, indent=2))
    else:
        click.echo(report_text(command, match, exempt=exempt))

    if fail_on and _should_fail(match, fail_on):
        sys.exit(1)


def _should_fail(match, fail_on: str) -> bool:
    """Determine if the CLI should exit with error."""
    if match is None:
        return False
    severity_levels = {Severity.MEDIUM: 1, Severity.HIGH: 2}
    threshold = {"medium": 1, "high": 2}.get(fail_on, 2)
    return severity_levels.get(match.severity, 0) >= threshold


if __name__ == "__main__":
    main()

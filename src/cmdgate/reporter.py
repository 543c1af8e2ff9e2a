"""Output formatting for gate decisions and classification results."""

from __future__ import annotations

import json
from typing import TextIO

from .rules import RuleMatch
from .state import BYPASS_TTL_SECONDS


def block_message(match: RuleMatch, command: str, override_phrase: str) -> str:
    """Build the message shown to the agent when a command is blocked.

    Names the severity, the matched rule, the command, and the exact phrase
    the user must type to authorize one retry.
    """
    return (
        f"[{match.severity.value}] Blocked: {match.label}\n"
        f"Command: {command}\n"
        f"This command was not run. If the user wants it anyway, ask them to reply "
        f"with a message starting with \"{override_phrase}\", then retry the same command "
        f"within {BYPASS_TTL_SECONDS} seconds. Do not retry without that approval."
    )


def report_json(result: dict, stream: TextIO | None = None) -> str:
    """Render a hook output object as a single JSON line.

    Args:
        result: Output object, e.g. from ``GateResult.to_dict()``.
        stream: Optional stream to write to.

    Returns:
        JSON string without a trailing newline.
    """
    text = json.dumps(result)
    if stream:
        stream.write(text + "\n")
    return text


def report_status(entry: dict | None) -> str:
    """Render the blocked state as a short status-line segment.

    Returns:
        An empty string when nothing is currently blocked.
    """
    if not entry:
        return ""
    severity = str(entry.get("severity", "")).upper()
    label = entry.get("label", "")
    return f"{_severity_icon(severity)} {severity}: {label}"


def report_text(command: str, match: RuleMatch | None, exempt: bool = False) -> str:
    """Generate a human-readable classification report."""
    lines: list[str] = []

    lines.append("")
    lines.append(f"  Command: {command}")
    lines.append("  " + "─" * 60)

    if exempt:
        lines.append("  EXEMPT  Runs inside a confined container.")
    elif match is None:
        lines.append("  PASS  No rule matched.")
    else:
        icon = _severity_icon(match.severity.value)
        tag = f"[{match.severity.value}]"
        lines.append(f"  {icon} {tag:8s} {match.label}")

    lines.append("")
    return "\n".join(lines)


def _severity_icon(severity: str) -> str:
    """Return a text icon for severity level."""
    icons = {
        "HIGH": "BLOCK",
        "MEDIUM": "WARN",
    }
    return icons.get(severity, "    ")

"""Gate decision: allow, block, or allow through a user bypass.

Fail-open contract: the gate must never stop the calling agent because of
its own failure. Any unexpected error while evaluating a command results in
an allow decision.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum

from .config import GateConfig, env_flag, load_config_or_default
from .exemptions import is_exempt
from .reporter import block_message
from .rules import Rule, RuleMatch, build_rules, classify
from .state import BlockedStateRecorder, BypassTokenStore, session_key

logger = logging.getLogger(__name__)

GATED_TOOLS = {"Bash"}


class Outcome(str, Enum):
    """Terminal outcome of one gate evaluation."""

    ALLOW = "allow"
    BLOCK = "block"
    ALLOW_VIA_BYPASS = "allow_via_bypass"


@dataclass(frozen=True)
class GateResult:
    """Result of evaluating one command."""

    outcome: Outcome
    match: RuleMatch | None = None
    message: str = ""

    @property
    def decision(self) -> str:
        return "block" if self.outcome is Outcome.BLOCK else "allow"

    def to_dict(self) -> dict:
        out = {"decision": self.decision}
        if self.outcome is Outcome.BLOCK:
            out["message"] = self.message
        return out


ALLOW = GateResult(Outcome.ALLOW)


class Gate:
    """Evaluate commands against the exemption filter, rules and bypass tokens."""

    def __init__(
        self,
        config: GateConfig,
        tokens: BypassTokenStore | None = None,
        blocked: BlockedStateRecorder | None = None,
        rules: list[Rule] | None = None,
    ):
        self.config = config
        self.blocked = blocked or BlockedStateRecorder(config.state_dir)
        self.tokens = tokens or BypassTokenStore(config.state_dir, blocked=self.blocked)
        self.rules = rules if rules is not None else build_rules(config.rules)

    def is_disabled(self, permission_mode: str | None = None) -> bool:
        """Check whether the gate should stand aside for this invocation."""
        if self.config.disabled or env_flag("CMDGATE_DISABLE"):
            return True
        # Remote sessions run in disposable environments
        if env_flag("CLAUDE_CODE_REMOTE"):
            return True
        if self.config.enforce_modes and permission_mode:
            return permission_mode not in self.config.enforce_modes
        return False

    def evaluate(self, command: str, cwd: str, permission_mode: str | None = None) -> GateResult:
        """Decide whether a command may run.

        Args:
            command: Command text proposed by the agent.
            cwd: Working directory; scopes bypass tokens and blocked state.
            permission_mode: Agent permission mode, if reported.

        Returns:
            GateResult with the outcome and, for blocks, the message.
        """
        if self.is_disabled(permission_mode):
            return ALLOW
        if is_exempt(command):
            return ALLOW

        match = classify(command, self.rules)
        if match is None:
            return ALLOW

        key = session_key(cwd)
        if self.tokens.try_consume(key):
            logger.info("Allowed via bypass [%s] %s: %s", match.severity.value, match.label, command[:200])
            return GateResult(Outcome.ALLOW_VIA_BYPASS, match=match)

        self.blocked.record(key, match.severity, match.label, command)
        logger.info("Blocked [%s] %s: %s", match.severity.value, match.label, command[:200])
        return GateResult(
            Outcome.BLOCK,
            match=match,
            message=block_message(match, command, self.config.override_phrase),
        )


def parse_hook_input(raw: str) -> dict:
    """Parse the hook payload; anything unusable becomes an empty payload."""
    try:
        data = json.loads(raw) if raw and raw.strip() else {}
    except ValueError:
        logger.debug("Ignoring malformed hook input")
        return {}
    return data if isinstance(data, dict) else {}


def _extract_command(payload: dict) -> str:
    tool_input = payload.get("tool_input")
    if isinstance(tool_input, dict) and isinstance(tool_input.get("command"), str):
        return tool_input["command"]
    command = payload.get("command")
    return command if isinstance(command, str) else ""


def resolve_cwd(payload: dict) -> str:
    cwd = payload.get("cwd")
    if isinstance(cwd, str) and cwd:
        return cwd
    return os.environ.get("CLAUDE_PROJECT_DIR") or os.getcwd()


def run_hook(raw: str, config: GateConfig | None = None) -> dict:
    """Evaluate a hook payload and return the output object.

    Never raises: every failure path returns ``{"decision": "allow"}``.
    """
    try:
        payload = parse_hook_input(raw)
        tool_name = payload.get("tool_name")
        if tool_name and tool_name not in GATED_TOOLS:
            return ALLOW.to_dict()

        command = _extract_command(payload)
        if not command.strip():
            return ALLOW.to_dict()

        gate = Gate(config or load_config_or_default())
        mode = payload.get("permission_mode")
        result = gate.evaluate(command, resolve_cwd(payload), mode if isinstance(mode, str) else None)
        return result.to_dict()
    except Exception:
        logger.exception("Gate failed; allowing command")
        return ALLOW.to_dict()

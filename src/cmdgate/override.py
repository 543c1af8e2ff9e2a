"""Turn an explicit user override phrase into a bypass token."""

from __future__ import annotations

import logging

from .config import GateConfig, load_config_or_default
from .gate import parse_hook_input, resolve_cwd
from .state import BlockedStateRecorder, BypassTokenStore, session_key

logger = logging.getLogger(__name__)


def starts_with_override(prompt: str, phrase: str) -> bool:
    """Check whether a user message opens with the override phrase.

    Leading whitespace and letter case are ignored. The phrase must be
    followed by the end of the message or a non-word character, so
    "BYPASS GATEWAY" does not count.
    """
    if not prompt or not phrase:
        return False
    text = prompt.lstrip()
    if not text.lower().startswith(phrase.lower()):
        return False
    rest = text[len(phrase):]
    return not rest or not (rest[0].isalnum() or rest[0] == "_")


def run_prompt_hook(raw: str, config: GateConfig | None = None) -> str:
    """Handle a user-prompt payload.

    Returns:
        Confirmation text when a token was created, else an empty string.
    """
    try:
        payload = parse_hook_input(raw)
        prompt = payload.get("prompt")
        if not isinstance(prompt, str):
            return ""

        config = config or load_config_or_default()
        if not starts_with_override(prompt, config.override_phrase):
            return ""

        blocked = BlockedStateRecorder(config.state_dir)
        tokens = BypassTokenStore(config.state_dir, blocked=blocked)
        if not tokens.create(session_key(resolve_cwd(payload))):
            return ""
        return (
            f"cmdgate: bypass armed. The next blocked command in this directory "
            f"may run once within {int(tokens.ttl)} seconds."
        )
    except Exception:
        logger.exception("Prompt hook failed")
        return ""

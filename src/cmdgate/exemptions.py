"""Container exemption: commands that run inside a container skip the rules.

A container invocation is only exempt when it cannot reach the host, so
any escape vector (privileged mode, host root mount, dangerous
capabilities, disabled confinement) cancels the exemption.
"""

from __future__ import annotations

import re

CONTAINER_RUNTIMES = r"(?:docker(?:\s+compose|-compose)?|podman(?:\s+compose|-compose)?|nerdctl|finch)"

# Unanchored form, used by the rule set to classify escape vectors
CONTAINER_PREFIX = rf"\b{CONTAINER_RUNTIMES}\s+(?:-\S+\s+)*(?:exec|run|create)\b"

# (pattern, label)
ESCAPE_VECTORS = [
    (r"--privileged\b", "privileged container"),
    (
        r"(?:(?<!\S)(?:-v|--volume)(?:\s+|=)[\"']?/(?::|\s|$)"
        r"|--mount(?:\s+|=)\S*\b(?:source|src)=/(?:,|\s|$))",
        "host root filesystem mounted into container",
    ),
    (
        r"--cap-add(?:\s+|=)[\"']?(?:CAP_)?"
        r"(?:ALL|SYS_ADMIN|SYS_MODULE|SYS_PTRACE|SYS_RAWIO|DAC_READ_SEARCH|NET_ADMIN)\b",
        "dangerous container capability",
    ),
    (
        r"--security-opt(?:\s+|=)[\"']?"
        r"(?:seccomp[=:]unconfined|apparmor[=:]unconfined|label[=:]disable|no-new-privileges[=:]false)",
        "container confinement disabled",
    ),
]

_INVOCATION_RE = re.compile(
    rf"^\s*(?:sudo\s+)?{CONTAINER_RUNTIMES}\s+(?:-\S+\s+)*(?:exec|run)\b",
    re.IGNORECASE,
)
_ESCAPE_RES = [(re.compile(p, re.IGNORECASE), label) for p, label in ESCAPE_VECTORS]
# Separators, background jobs, pipes, redirections and process substitution
_HOST_SYNTAX_RE = re.compile(r"[;&|<>\n]")
_SUBSTITUTION_RE = re.compile(r"`|\$\(")


def escape_vector(command: str) -> str | None:
    """Return the label of the first escape vector in the command, if any."""
    for pattern, label in _ESCAPE_RES:
        if pattern.search(command):
            return label
    return None


def _host_visible(command: str) -> tuple[str, str]:
    """Split out the parts of a command the host shell interprets.

    Returns:
        The text outside any quotes, and the text outside single quotes.
        The host shell still expands ``$(...)`` and backticks in the latter.
    """
    unquoted: list[str] = []
    expanded: list[str] = []
    quote = None
    i = 0
    while i < len(command):
        ch = command[i]
        if quote == "'":
            if ch == "'":
                quote = None
        elif ch == "\\":
            # Escaped character is literal
            i += 2
            continue
        elif quote == '"':
            if ch == '"':
                quote = None
            else:
                expanded.append(ch)
        elif ch in "'\"":
            quote = ch
        else:
            unquoted.append(ch)
            expanded.append(ch)
        i += 1
    return "".join(unquoted), "".join(expanded)


def _chains_host_commands(command: str) -> bool:
    """Check for anything the host shell would run or redirect itself."""
    unquoted, expanded = _host_visible(command)
    return bool(_HOST_SYNTAX_RE.search(unquoted) or _SUBSTITUTION_RE.search(expanded))


def is_exempt(command: str) -> bool:
    """Check whether a command runs entirely inside a confined container.

    Args:
        command: Raw command text.

    Returns:
        True if the command is a container ``exec``/``run`` with no escape
        vector and no host commands chained onto it.
    """
    if not command or not _INVOCATION_RE.search(command):
        return False
    if _chains_host_commands(command):
        return False
    return escape_vector(command) is None

"""Ordered severity-tiered rules for classifying shell commands."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from .exemptions import CONTAINER_PREFIX, ESCAPE_VECTORS

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Severity tier of a rule."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


@dataclass(frozen=True)
class Rule:
    """A single classification rule."""

    pattern: re.Pattern
    label: str
    severity: Severity


@dataclass(frozen=True)
class RuleMatch:
    """The first rule that matched a command."""

    severity: Severity
    label: str

    def to_dict(self) -> dict:
        return {"severity": self.severity.value, "label": self.label}


# Shell interpreters that execute whatever they read
_SHELLS = r"(?:ba|z|k|da|fi)?sh"
_INTERPRETERS = rf"(?:{_SHELLS}|python[0-9.]*|perl|ruby|node|php)"
# Any arguments up to the next command separator
_ARGS = r"(?:[^\s;&|]+\s+)*?"
# One or more pipe stages ending in an interpreter, by name or by path
_PIPED_TO_INTERPRETER = (
    rf"(?:[^\n|]*\|)+\s*(?:sudo\s+(?:-\S+\s+)*)?(?:\S*/)?(?:env\s+)?(?:\S*/)?{_INTERPRETERS}\b"
)
_DECODE = r"(?:\bbase64\b[^|;&\n]*\s(?:-d|--decode)\b|\bxxd\b[^|;&\n]*\s-[a-z]*r)"

# (pattern, label)
HIGH_PATTERNS = [
    (
        r"\brm\s+(?:-\S+\s+)*(?:-[a-z]*(?:r[a-z]*f|f[a-z]*r)"
        r"|(?:-[a-z]*r[a-z]*|--recursive)\s+(?:-\S+\s+)*(?:-[a-z]*f[a-z]*|--force)\b"
        r"|(?:-[a-z]*f[a-z]*|--force)\s+(?:-\S+\s+)*(?:-[a-z]*r[a-z]*|--recursive)\b)",
        "recursive force delete",
    ),
    (
        r"\bchmod\s+(?:-\S+\s+)*(?:0?777\b|[ugo]*[ao][ugo]*\+[rxXst]*w)",
        "world-writable permissions",
    ),
    (
        rf"\bch(?:mod|own|grp)\s+{_ARGS}(?:--recursive\b|-[a-z]*(?-i:R))",
        "recursive permission change",
    ),
    (
        r"\bchmod\s+(?:-\S+\s+)*(?:[ugoa]*\+[rwxX]*s|[2467][0-7]{3}\b)",
        "setuid/setgid bit",
    ),
    (
        rf"\b(?:curl|wget|fetch)\b{_PIPED_TO_INTERPRETER}",
        "remote script piped to interpreter",
    ),
    (
        rf"(?:\b{_SHELLS}|\bsource|(?:^|[;&|]\s*)\.)\s+(?:-\S+\s+)*<\(|<\(\s*(?:curl|wget)\b",
        "shell process substitution",
    ),
    (
        rf"\b{_SHELLS}\s+(?:-\S+\s+)*-[a-z]*c\b.*\b(?:curl|wget)\b",
        "shell -c wrapping remote fetch",
    ),
    (
        rf"{_DECODE}{_PIPED_TO_INTERPRETER}"
        rf"|\b{_SHELLS}\s+(?:-\S+\s+)*-[a-z]*c\b.*{_DECODE}"
        rf"|\beval\b.*{_DECODE}",
        "encoded payload execution",
    ),
    (
        r"\bdd\b.*\bof=/dev/(?!null\b|zero\b|stdout\b|stderr\b)"
        r"|>\s*/dev/(?:sd|hd|vd|xvd|nvme|disk|mmcblk)",
        "raw disk write",
    ),
    (r"\bmkfs(?:\.\w+)?\b", "filesystem format"),
    (r"\b(?:fdisk|sfdisk|sgdisk|parted|wipefs)\b(?!\s+(?:-l|--list)\b)", "partition table edit"),
    (
        r"\bgit\b.*\bpush\b.*(?:\s--force(?![\w-])|\s-[a-z]*f\b|\s\+[\w./-]+)",
        "git force push",
    ),
    (r"\bgit\s+(?:-\S+\s+)*filter-(?:branch|repo)\b", "git history rewrite"),
    (r"\bdrop\s+(?:table|database|schema)\b", "SQL DROP"),
    (r"\btruncate\s+table\b", "SQL TRUNCATE"),
    (r"\bdelete\s+from\s+\S+(?![\s\S]*\bwhere\b)", "SQL DELETE without WHERE"),
    (r"\bfind\b.*(?:\s-delete\b|-exec(?:dir)?\s+rm\b)", "bulk delete via find"),
    (rf"\bxargs\s+{_ARGS}(?:sudo\s+)?rm\b", "bulk delete via xargs"),
    (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "fork bomb"),
]

MEDIUM_PATTERNS = [
    (r"\brm\s+(?:-\S+\s+)*(?:-[a-z]*f[a-z]*|--force)\b", "force delete"),
    (r"\bgit\b.*\bpush\b.*--force-with-lease\b", "git force push with lease"),
    (r"\bgit\s+(?:-\S+\s+)*reset\b.*\s--hard\b", "git hard reset"),
    (r"\bgit\s+(?:-\S+\s+)*clean\s+(?:-\S+\s+)*-[a-z]*f", "git clean force"),
    (rf"\bgit\s+(?:-\S+\s+)*branch\s+{_ARGS}(?:-(?-i:D)\b|--delete\s+--force\b)", "git branch force delete"),
    (
        r"\b(?:npm|pnpm|yarn|cargo|poetry|uv|flit|hatch)\s+publish\b"
        r"|\btwine\s+upload\b|\bgem\s+push\b",
        "package publish",
    ),
    *[(CONTAINER_PREFIX + r".*" + pattern, label) for pattern, label in ESCAPE_VECTORS],
    (r"(?:^\s*|[;&|(`]\s*)eval\s", "dynamic code evaluation"),
    (
        r"\bsudo\s+(?:-\S+\s+)*(?:rm|dd|mv|chmod|chown|kill(?:all)?|pkill|shutdown|reboot"
        r"|systemctl\s+(?:stop|disable|mask))\b",
        "sudo destructive command",
    ),
]


def _compile(patterns: list[tuple[str, str]], severity: Severity) -> list[Rule]:
    return [Rule(re.compile(p, re.IGNORECASE), label, severity) for p, label in patterns]


HIGH_RULES = _compile(HIGH_PATTERNS, Severity.HIGH)
MEDIUM_RULES = _compile(MEDIUM_PATTERNS, Severity.MEDIUM)
DEFAULT_RULES = HIGH_RULES + MEDIUM_RULES


def build_rules(custom_rules: list[dict] | None = None) -> list[Rule]:
    """Combine the built-in rules with user-defined rules.

    User rules are plain records with ``pattern``, ``label`` and
    ``severity`` keys. Each one lands after the built-in rules of its tier.
    A rule whose pattern does not compile, or whose severity is unknown,
    is logged and skipped.

    Args:
        custom_rules: Rule records from the config file.

    Returns:
        Ordered rule list, HIGH tier first.
    """
    high = list(HIGH_RULES)
    medium = list(MEDIUM_RULES)

    for index, record in enumerate(custom_rules or []):
        if not isinstance(record, dict):
            logger.warning("Ignoring custom rule #%d: not a mapping", index)
            continue
        label = str(record.get("label") or f"custom rule #{index}")
        try:
            severity = Severity(str(record.get("severity", "high")).upper())
        except ValueError:
            logger.warning("Ignoring custom rule %r: unknown severity %r", label, record.get("severity"))
            continue
        try:
            pattern = re.compile(str(record.get("pattern", "")), re.IGNORECASE)
        except re.error as e:
            logger.warning("Ignoring custom rule %r: invalid pattern: %s", label, e)
            continue
        if not pattern.pattern:
            logger.warning("Ignoring custom rule %r: empty pattern", label)
            continue

        rule = Rule(pattern, label, severity)
        (high if severity is Severity.HIGH else medium).append(rule)

    return high + medium


def classify(command: str, rules: list[Rule] | None = None) -> RuleMatch | None:
    """Return the first rule matching anywhere in the command.

    HIGH rules are always tried before MEDIUM rules, regardless of the
    order of the list passed in.
    """
    if not command:
        return None
    rules = DEFAULT_RULES if rules is None else rules

    for severity in (Severity.HIGH, Severity.MEDIUM):
        for rule in rules:
            if rule.severity is not severity:
                continue
            if rule.pattern.search(command):
                return RuleMatch(severity=rule.severity, label=rule.label)
    return None

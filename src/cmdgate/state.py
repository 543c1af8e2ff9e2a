"""Per-session state shared between gate invocations.

Two small artifacts live in the state directory for each session key:

- ``bypass-<key>.token``: a single-use override created by the user.
- ``blocked-<key>.json``: the most recent block, read by the status display.

Gate processes are short-lived and may run concurrently, so token
consumption is arbitrated by a single atomic rename. Blocked state is
advisory and written without locking.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import time
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

BYPASS_TTL_SECONDS = 30
BLOCKED_TTL_SECONDS = 30
COMMAND_SNIPPET_MAX_CHARS = 100


def session_key(cwd: str | Path) -> str:
    """Derive a stable key for a working directory.

    The same directory always maps to the same key; different worktrees of
    one repository map to different keys.
    """
    try:
        resolved = str(Path(cwd).expanduser().resolve())
    except (OSError, RuntimeError):
        resolved = str(cwd)
    return hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]


def _atomic_write(path: Path, text: str) -> None:
    """Write text so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


class BlockedStateRecorder:
    """Best-effort record of the last blocked command per session."""

    def __init__(self, state_dir: str | Path, ttl: float = BLOCKED_TTL_SECONDS):
        self.state_dir = Path(state_dir)
        self.ttl = ttl

    def path_for(self, key: str) -> Path:
        return self.state_dir / f"blocked-{key}.json"

    def record(self, key: str, severity: str, label: str, command: str) -> None:
        """Persist a snapshot of a block event. Failures are ignored."""
        entry = {
            "severity": str(getattr(severity, "value", severity)),
            "label": label,
            "command": command[:COMMAND_SNIPPET_MAX_CHARS],
            "timestamp": time.time(),
        }
        try:
            _atomic_write(self.path_for(key), json.dumps(entry))
        except (OSError, TypeError, ValueError) as e:
            logger.debug("Could not record blocked state for %s: %s", key, e)

    def clear(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Could not clear blocked state for %s: %s", key, e)

    def current(self, key: str, now: float | None = None) -> dict | None:
        """Return the last block if it is still within the display window."""
        try:
            entry = json.loads(self.path_for(key).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(entry, dict):
            return None

        try:
            age = (time.time() if now is None else now) - float(entry.get("timestamp", 0))
        except (TypeError, ValueError):
            return None
        if age < 0 or age > self.ttl:
            return None
        return entry


class BypassTokenStore:
    """Single-use, short-lived override tokens keyed by session.

    ``try_consume`` renames the token to a claim file unique to the caller.
    Only one concurrent caller can win that rename; every other caller sees
    the token as already gone. The winner then checks the token's age and
    removes the claim file whether or not the token was still valid.
    """

    def __init__(
        self,
        state_dir: str | Path,
        blocked: BlockedStateRecorder | None = None,
        ttl: float = BYPASS_TTL_SECONDS,
    ):
        self.state_dir = Path(state_dir)
        self.blocked = blocked
        self.ttl = ttl

    def path_for(self, key: str) -> Path:
        return self.state_dir / f"bypass-{key}.token"

    def create(self, key: str, now: float | None = None) -> bool:
        """Create a fresh token, replacing any existing one.

        Returns:
            True if the token was written.
        """
        created = time.time() if now is None else now
        try:
            _atomic_write(self.path_for(key), repr(created))
        except OSError as e:
            logger.warning("Could not create bypass token for %s: %s", key, e)
            return False
        logger.info("Bypass token created for session %s", key)
        return True

    def try_consume(self, key: str, now: float | None = None) -> bool:
        """Consume the session's token if it exists and is fresh.

        Returns:
            True for exactly one caller per valid token, False otherwise.
        """
        token_path = self.path_for(key)
        claim_path = token_path.with_name(
            f"{token_path.name}.{os.getpid()}.{uuid.uuid4().hex}.claimed"
        )

        try:
            os.rename(token_path, claim_path)
        except OSError:
            return False

        try:
            valid = self._is_fresh(claim_path, time.time() if now is None else now)
        finally:
            with contextlib.suppress(OSError):
                claim_path.unlink()

        if not valid:
            logger.info("Rejected expired bypass token for session %s", key)
            return False

        logger.info("Bypass token consumed for session %s", key)
        if self.blocked is not None:
            self.blocked.clear(key)
        return True

    def _is_fresh(self, claim_path: Path, now: float) -> bool:
        try:
            created = float(claim_path.read_text(encoding="utf-8").strip())
        except ValueError:
            # Unreadable content: fall back to the file's own timestamp
            try:
                created = claim_path.stat().st_mtime
            except OSError:
                return False
        except OSError:
            return False

        age = now - created
        return 0 <= age <= self.ttl

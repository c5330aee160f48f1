from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .models import OrchestratorState

logger = logging.getLogger(__name__)

CONTENT_HASH_LENGTH = 16


class StateStoreError(ValueError):
    """Raised when the persisted state file exists but cannot be read back."""


def content_hash(content: str | bytes) -> str:
    """Return the short SHA-256 digest used to detect document changes.

    ``str`` input is encoded as UTF-8 first, so hashing text and hashing the bytes it
    was read from give the same digest.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.sha256(data).hexdigest()[:CONTENT_HASH_LENGTH]


def _atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* so readers see either the old state or the new one.

    The sibling ``.<name>.*.tmp`` file is fsynced before ``os.replace`` swaps it in;
    a crash at any point leaves *path* as it was after the previous save.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        # No stray .tmp siblings survive a failed save.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class StateStore:
    """Durable record of processed documents and the last fully processed revision.

    The state lives in a single JSON file.  Every ``save`` replaces the file in one
    rename, so a reader observes either the previous complete state or the new one.
    There is no locking: one orchestrator process owns the file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @staticmethod
    def hash(content: str | bytes) -> str:
        return content_hash(content)

    def load(self) -> OrchestratorState:
        """Read the persisted state.

        Returns:
            The stored state, or an empty state when no file exists yet.

        Raises:
            StateStoreError: If the file is empty, not JSON, or fails validation.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No state file at %s, starting empty", self.path)
            return OrchestratorState()
        except UnicodeDecodeError as exc:
            raise StateStoreError(f"state file at {self.path} contains invalid UTF-8 data") from exc

        if not text.strip():
            raise StateStoreError(f"state file at {self.path} is empty")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"state file at {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise StateStoreError(f"state file at {self.path} must contain a JSON object")
        try:
            return OrchestratorState.model_validate(payload)
        except ValidationError as exc:
            raise StateStoreError(f"state file at {self.path} failed validation: {exc}") from exc

    def save(self, state: OrchestratorState) -> None:
        _atomic_write_text(self.path, state.to_json())
        logger.debug(
            "Saved state to %s",
            self.path,
            extra={"lastProcessedCommit": state.last_processed_commit, "records": len(state.processed_prds)},
        )

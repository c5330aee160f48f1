from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from .git_ops import VersionControlPort
from .models import OrchestratorState, SpecDocument
from .state_store import content_hash

logger = logging.getLogger(__name__)

TEMPLATE_MARKER = "TEMPLATE"


def is_template_path(path: str) -> bool:
    return TEMPLATE_MARKER in PurePosixPath(path).name


def detect_changes(
    *,
    git: VersionControlPort,
    working_dir: Path,
    from_revision: str | None,
    to_revision: str,
    path_glob: str,
    prior_state: OrchestratorState,
) -> list[SpecDocument]:
    """Return the specification documents that are new or changed since *prior_state*.

    With no ``from_revision`` every tracked file matching ``path_glob`` is a candidate;
    otherwise only files added or modified in ``from_revision..to_revision``.  Template
    files and files missing from the working tree are skipped, and a candidate is only
    emitted when its content hash differs from the one recorded for its path.

    Errors raised by ``git`` propagate to the caller.
    """
    if from_revision is None:
        candidates = git.list_tracked_files(path_glob)
        logger.debug("First run: %d tracked candidate(s) for %s", len(candidates), path_glob)
    else:
        candidates = git.diff_added_or_modified(from_revision, to_revision, path_glob)
        logger.debug(
            "%d candidate(s) changed in %s..%s",
            len(candidates),
            from_revision[:12],
            to_revision[:12],
        )

    changes: list[SpecDocument] = []
    for path in candidates:
        if is_template_path(path):
            continue
        full_path = working_dir / path
        if not full_path.is_file():
            logger.warning("Skipping %s: not present in working tree", path)
            continue

        raw = full_path.read_bytes()
        digest = content_hash(raw)
        existing = prior_state.record_for(path)
        if existing is not None and existing.content_hash == digest:
            continue
        changes.append(SpecDocument(path=path, content=raw.decode("utf-8", errors="replace"), content_hash=digest))
    return changes

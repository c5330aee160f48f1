"""Git adapter for the orchestrator's single working tree.

``GitClient`` shells out to ``git`` via ``subprocess``; each public method maps to one
git command (two for ``discard_changes``) so callers can reason about side effects.
Failures raise ``GitError`` carrying the argv, return code and stderr; deciding
whether a failure aborts the cycle or only the current document is the caller's job.

Path globs are passed to git as ``:(glob)`` pathspecs, so ``docs/prd/**/*.md``
matches at any depth below ``docs/prd`` and ``*`` does not cross directories.  Path
listings use ``-z`` so names with non-ASCII bytes come back unquoted.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    def __init__(self, args: Sequence[str], returncode: int, stderr: str) -> None:
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"git {' '.join(self.git_args)} exited with {returncode}{detail}")


class VersionControlPort(Protocol):
    def fetch(self, remote: str = "origin") -> None: ...

    def resolve_revision(self, ref: str) -> str: ...

    def diff_added_or_modified(self, from_rev: str, to_rev: str, path_glob: str | None) -> list[str]: ...

    def list_tracked_files(self, path_glob: str) -> list[str]: ...

    def create_branch(self, name: str, start_point: str = "HEAD") -> None: ...

    def branch_exists(self, name: str) -> bool: ...

    def checkout(self, ref: str) -> None: ...

    def fast_forward(self, ref: str) -> None: ...

    def stage_all(self) -> None: ...

    def stage_paths(self, paths: Sequence[str]) -> None: ...

    def commit(self, message: str, author: str | None = None) -> None: ...

    def push(self, remote: str, branch: str) -> None: ...

    def branch_exists_on_remote(self, remote: str, branch: str) -> bool: ...

    def read_file_at_revision(self, ref: str, path: str) -> str: ...

    def current_branch(self) -> str: ...

    def status_summary(self) -> list[str]: ...

    def staged_diff(self) -> str: ...

    def discard_changes(self) -> None: ...

    def remote_url(self, remote: str = "origin") -> str | None: ...


def _glob_pathspec(path_glob: str) -> str:
    return f":(glob){path_glob}"


def _nul_fields(output: str) -> list[str]:
    return [field for field in output.split("\0") if field]


def parse_porcelain_paths(output: str) -> list[str]:
    """Extract paths from ``git status --porcelain -z`` output.

    Entries are NUL-terminated and never quoted.  A rename or copy entry is followed
    by a field holding the original path, which is skipped so only the new path is
    reported.
    """
    paths: list[str] = []
    fields = output.split("\0")
    index = 0
    while index < len(fields):
        entry = fields[index]
        index += 1
        if len(entry) < 4:
            continue
        paths.append(entry[3:])
        if "R" in entry[:2] or "C" in entry[:2]:
            index += 1
    return paths


class GitClient:
    def __init__(self, *, repo_root: Path) -> None:
        self.repo_root = repo_root

    def fetch(self, remote: str = "origin") -> None:
        self._git(["fetch", remote])

    def resolve_revision(self, ref: str) -> str:
        return self._git(["rev-parse", ref]).strip()

    def diff_added_or_modified(self, from_rev: str, to_rev: str, path_glob: str | None) -> list[str]:
        args = ["diff", "--name-only", "-z", "--diff-filter=AM", f"{from_rev}..{to_rev}"]
        if path_glob:
            args.extend(["--", _glob_pathspec(path_glob)])
        return _nul_fields(self._git(args))

    def list_tracked_files(self, path_glob: str) -> list[str]:
        return _nul_fields(self._git(["ls-files", "-z", "--", _glob_pathspec(path_glob)]))

    def create_branch(self, name: str, start_point: str = "HEAD") -> None:
        self._git(["checkout", "-b", name, start_point])

    def branch_exists(self, name: str) -> bool:
        p = self._run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"])
        return p.returncode == 0

    def checkout(self, ref: str) -> None:
        self._git(["checkout", ref])

    def fast_forward(self, ref: str) -> None:
        self._git(["merge", "--ff-only", ref])

    def stage_all(self) -> None:
        self._git(["add", "-A"])

    def stage_paths(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        self._git(["add", "--", *paths])

    def commit(self, message: str, author: str | None = None) -> None:
        args = ["commit", "-m", message]
        if author:
            args.extend(["--author", author])
        self._git(args)

    def push(self, remote: str, branch: str) -> None:
        self._git(["push", "-u", remote, branch])

    def branch_exists_on_remote(self, remote: str, branch: str) -> bool:
        args = ["ls-remote", "--exit-code", "--heads", remote, branch]
        p = self._run(args)
        if p.returncode == 0:
            return True
        # ls-remote --exit-code returns 2 when no matching ref exists.
        if p.returncode == 2:
            return False
        raise GitError(args, p.returncode, p.stderr)

    def read_file_at_revision(self, ref: str, path: str) -> str:
        return self._git(["show", f"{ref}:{path}"])

    def current_branch(self) -> str:
        return self._git(["rev-parse", "--abbrev-ref", "HEAD"]).strip()

    def status_summary(self) -> list[str]:
        return parse_porcelain_paths(self._git(["status", "--porcelain", "-z", "--untracked-files=all"]))

    def staged_diff(self) -> str:
        return self._git(["diff", "--cached"])

    def discard_changes(self) -> None:
        """Drop uncommitted edits and untracked files (ignored files are kept)."""
        self._git(["reset", "--hard", "HEAD"])
        self._git(["clean", "-fd"])

    def remote_url(self, remote: str = "origin") -> str | None:
        p = self._run(["remote", "get-url", remote])
        if p.returncode != 0:
            return None
        return p.stdout.strip() or None

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        logger.debug("git %s", " ".join(args), extra={"cwd": str(self.repo_root)})
        return subprocess.run(
            ["git", *args],
            cwd=self.repo_root,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            check=False,
        )

    def _git(self, args: list[str]) -> str:
        p = self._run(args)
        if p.returncode != 0:
            raise GitError(args, p.returncode, p.stderr)
        return p.stdout


def ensure_excluded(repo_root: Path, entries: Sequence[str]) -> list[str]:
    """Append *entries* to ``.git/info/exclude`` unless already listed.

    Keeps orchestrator-owned files (state, logs) out of ``git add -A`` without editing
    the tracked ``.gitignore``.  Returns the entries that were added.
    """
    git_dir = repo_root / ".git"
    if not git_dir.is_dir():
        logger.warning("No .git directory under %s; cannot register excludes", repo_root)
        return []
    exclude_path = git_dir / "info" / "exclude"
    exclude_path.parent.mkdir(parents=True, exist_ok=True)
    existing = exclude_path.read_text(encoding="utf-8") if exclude_path.is_file() else ""
    present = {line.strip() for line in existing.splitlines()}
    added = [entry for entry in entries if entry not in present]
    if added:
        prefix = "" if not existing or existing.endswith("\n") else "\n"
        with exclude_path.open("a", encoding="utf-8") as handle:
            handle.write(prefix + "".join(f"{entry}\n" for entry in added))
    return added

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest


def run_git(args: list[str], cwd: Path) -> str:
    completed = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return completed.stdout.strip()


def write_file(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def commit_all(repo: Path, message: str) -> str:
    run_git(["add", "-A"], repo)
    run_git(["commit", "-m", message], repo)
    return run_git(["rev-parse", "HEAD"], repo)


@pytest.fixture(autouse=True)
def _isolated_git_identity(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of the developer's git configuration."""
    empty_config = tmp_path_factory.mktemp("gitconfig") / "config"
    empty_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(empty_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@test.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@test.com")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A standalone repository on ``main`` with one initial commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(["init", "-b", "main"], repo)
    write_file(repo, "README.md", "# Test Repo\n")
    commit_all(repo, "init")
    return repo


@dataclass(frozen=True)
class RemoteRepos:
    origin: Path
    upstream: Path
    work: Path

    def publish(self, rel_path: str, content: str, message: str = "update prd") -> str:
        """Commit a file in the upstream clone and push it to origin/main."""
        write_file(self.upstream, rel_path, content)
        sha = commit_all(self.upstream, message)
        run_git(["push", "origin", "main"], self.upstream)
        return sha


@pytest.fixture
def remote_repos(tmp_path: Path) -> RemoteRepos:
    """A bare ``origin``, an ``upstream`` clone that authors PRDs, and a ``work`` clone for the orchestrator."""
    origin = tmp_path / "origin.git"
    run_git(["init", "--bare", "-b", "main", str(origin)], tmp_path)

    upstream = tmp_path / "upstream"
    run_git(["clone", str(origin), str(upstream)], tmp_path)
    run_git(["symbolic-ref", "HEAD", "refs/heads/main"], upstream)
    write_file(upstream, "README.md", "# Target Repo\n")
    commit_all(upstream, "init")
    run_git(["push", "-u", "origin", "main"], upstream)

    work = tmp_path / "work"
    run_git(["clone", str(origin), str(work)], tmp_path)
    return RemoteRepos(origin=origin, upstream=upstream, work=work)

"""Coding-agent backends behind a fixed contract.

An agent receives an ``AgentRequest`` (working tree, instructions, branch, timeout) and
must leave its edits uncommitted in that working tree.  It reports which files changed
and its combined output; it never commits or pushes.

Backends form a closed set keyed by ``AgentKind``.  ``AgentRegistry`` maps each kind to
a factory and is built once and injected into the orchestrator, which only ever sees
the single resolved ``AgentPort``.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

from .git_ops import GitClient, GitError
from .models import AgentRequest, AgentResult

logger = logging.getLogger(__name__)

NO_COMMIT_NOTICE = "When done, make sure all changes are saved. Do not commit; Scarlet will handle that."


class AgentKind(str, Enum):
    MOCK = "mock"
    OPENCODE = "opencode"
    CLAUDE = "claude"


class AgentError(ValueError):
    """Raised when an agent kind cannot be resolved."""


class AgentPort(Protocol):
    def execute(self, request: AgentRequest) -> AgentResult: ...


# ---------------------------------------------------------------------------
# Bounded subprocess execution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandCompleted:
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class CommandTimedOut:
    timeout: float
    stdout: str
    stderr: str


CommandOutcome = CommandCompleted | CommandTimedOut


def run_bounded(argv: Sequence[str], *, cwd: Path, timeout: float) -> CommandOutcome:
    """Run *argv* to completion or until *timeout* seconds elapse.

    On timeout the process is killed and reaped before ``CommandTimedOut`` is returned,
    carrying whatever output was produced.  A missing executable raises ``OSError``.
    """
    proc = subprocess.Popen(
        list(argv),
        cwd=str(cwd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        stdout, stderr = proc.communicate()
        return CommandTimedOut(timeout=timeout, stdout=stdout or "", stderr=stderr or "")
    return CommandCompleted(returncode=proc.returncode, stdout=stdout or "", stderr=stderr or "")


def _combine_output(stdout: str, stderr: str) -> str:
    if stderr:
        return f"{stdout}\n{stderr}" if stdout else stderr
    return stdout


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class MockAgent:
    """Writes ``<branch_name>.md`` containing the instructions.  Used for demos and tests."""

    def execute(self, request: AgentRequest) -> AgentResult:
        target = request.working_directory / f"{request.branch_name}.md"
        target.write_text(f"# {request.branch_name}\n\n{request.instructions}\n", encoding="utf-8")
        return AgentResult(
            success=True,
            files_changed=(target.name,),
            logs=f"mock agent wrote {target.name}",
        )


class CliAgent:
    """Base for agents driven through an external command-line tool."""

    default_command = ""

    def __init__(self, command: str | None = None) -> None:
        self.command = command or self.default_command

    def build_argv(self, command: str, prompt: str) -> list[str]:
        raise NotImplementedError

    def execute(self, request: AgentRequest) -> AgentResult:
        command = request.command or self.command
        prompt = f"{request.instructions}\n\n{NO_COMMIT_NOTICE}"
        argv = self.build_argv(command, prompt)
        logger.info(
            "Running %s agent",
            command,
            extra={"branch": request.branch_name, "timeout": request.timeout},
        )
        try:
            outcome = run_bounded(argv, cwd=request.working_directory, timeout=request.timeout)
        except OSError as exc:
            return AgentResult(success=False, logs=f"Agent error: {exc}")

        if isinstance(outcome, CommandTimedOut):
            logs = _combine_output(outcome.stdout, outcome.stderr)
            return AgentResult(
                success=False,
                logs=f"Agent error: timed out after {outcome.timeout}s\n{logs}".rstrip(),
            )

        logs = _combine_output(outcome.stdout, outcome.stderr)
        if outcome.returncode != 0:
            return AgentResult(
                success=False,
                logs=f"Agent error: {command} exited with {outcome.returncode}\n{logs}".rstrip(),
            )

        try:
            files_changed = tuple(GitClient(repo_root=request.working_directory).status_summary())
        except GitError as exc:
            return AgentResult(success=False, logs=f"{logs}\nAgent error: {exc}".lstrip())
        return AgentResult(success=bool(files_changed), files_changed=files_changed, logs=logs)


class OpenCodeAgent(CliAgent):
    default_command = "opencode"

    def build_argv(self, command: str, prompt: str) -> list[str]:
        return [command, "--prompt", prompt]


class ClaudeCodeAgent(CliAgent):
    default_command = "claude"

    def build_argv(self, command: str, prompt: str) -> list[str]:
        return [command, "-p", prompt, "--dangerously-skip-permissions"]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

AgentFactory = Callable[[str | None], AgentPort]


class AgentRegistry:
    """Static mapping from ``AgentKind`` to a backend factory."""

    def __init__(self, factories: Mapping[AgentKind, AgentFactory]) -> None:
        self._factories = dict(factories)

    def kinds(self) -> list[AgentKind]:
        return sorted(self._factories, key=lambda kind: kind.value)

    def resolve(self, kind: AgentKind | str, *, command: str | None = None) -> AgentPort:
        try:
            agent_kind = AgentKind(kind)
        except ValueError as exc:
            raise AgentError(f"Unknown agent type: {kind!r}") from exc
        factory = self._factories.get(agent_kind)
        if factory is None:
            available = ", ".join(k.value for k in self.kinds())
            raise AgentError(f"Agent type {agent_kind.value!r} is not registered (available: {available})")
        return factory(command)


def default_registry() -> AgentRegistry:
    return AgentRegistry(
        {
            AgentKind.MOCK: lambda _command: MockAgent(),
            AgentKind.OPENCODE: OpenCodeAgent,
            AgentKind.CLAUDE: ClaudeCodeAgent,
        }
    )

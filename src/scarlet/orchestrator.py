from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .agents import AgentPort, AgentRegistry, default_registry
from .detector import detect_changes
from .git_ops import GitClient, GitError, VersionControlPort, ensure_excluded
from .github import GitHubClient, PullRequestError, PullRequestPort, parse_remote_url
from .models import (
    AgentRequest,
    AgentResult,
    CycleOutcome,
    CycleReport,
    DocumentOutcome,
    OrchestratorState,
    Plan,
    ProcessingRecord,
    ProcessingStatus,
    SpecDocument,
)
from .planner import plan_from_document
from .redaction import sanitize_report
from .settings import ScarletConfig
from .state_store import StateStore

logger = logging.getLogger(__name__)

# Each document costs two graph steps (dispatch + process).
DEFAULT_RECURSION_LIMIT = 10_000

COMMIT_MESSAGE_TEMPLATE = "feat: implement {title}"
PR_TITLE_TEMPLATE = "feat: {title}"
PR_BODY_TEMPLATE = "Implements PRD: `{path}`\n\nGenerated by Scarlet."


class PollCycleState(TypedDict, total=False):
    remote_head: str | None
    state: OrchestratorState
    pending: list[SpecDocument]
    current: SpecDocument | None
    documents: list[DocumentOutcome]
    outcome: str | None
    reason: str | None


class ScarletOrchestrator:
    """Poll-cycle state machine implemented as a LangGraph StateGraph.

    One ``run_cycle`` call walks sync -> detect -> (dispatch -> process)* -> advance
    against a single working tree.  Documents are processed strictly one at a time;
    each finished document is persisted before the next starts so a crash only ever
    repeats the document that was in flight.
    """

    def __init__(
        self,
        config: ScarletConfig,
        *,
        git: VersionControlPort | None = None,
        agent: AgentPort | None = None,
        agent_registry: AgentRegistry | None = None,
        pull_requests: PullRequestPort | None = None,
        state_store: StateStore | None = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> None:
        self.config = config
        self.git = git if git is not None else GitClient(repo_root=config.repo_root)
        if agent is None:
            registry = agent_registry if agent_registry is not None else default_registry()
            agent = registry.resolve(config.agent.type, command=config.agent.command)
        self.agent = agent
        if pull_requests is None and config.pull_requests_enabled:
            pull_requests = GitHubClient(config.git.github_token or "")
        self.pull_requests = pull_requests
        self.state_store = state_store if state_store is not None else StateStore(config.state_path)
        self.recursion_limit = recursion_limit
        self._excludes_registered = False
        self.graph = self._build_graph().compile()

    @property
    def remote(self) -> str:
        return self.config.target_repo.remote

    @property
    def main_branch(self) -> str:
        return self.config.target_repo.main_branch

    @property
    def remote_main(self) -> str:
        return f"{self.remote}/{self.main_branch}"

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(PollCycleState)
        graph.add_node("sync", self._sync_node)
        graph.add_node("detect", self._detect_node)
        graph.add_node("dispatch", self._dispatch_node)
        graph.add_node("process", self._process_node)
        graph.add_node("advance", self._advance_node)

        graph.add_edge(START, "sync")
        graph.add_conditional_edges("sync", self._continue_route, {"continue": "detect", "end": END})
        graph.add_conditional_edges("detect", self._continue_route, {"continue": "dispatch", "end": END})
        graph.add_conditional_edges(
            "dispatch",
            self._dispatch_route,
            {
                "process": "process",
                "advance": "advance",
            },
        )
        graph.add_edge("process", "dispatch")
        graph.add_edge("advance", END)
        return graph

    def _sync_node(self, _state: PollCycleState) -> dict[str, Any]:
        try:
            self.git.fetch(self.remote)
        except (GitError, OSError) as exc:
            logger.warning("Fetch failed, skipping cycle", extra={"error": str(exc)})
            return {"outcome": CycleOutcome.ABORTED.value, "reason": f"fetch failed: {exc}"}

        try:
            remote_head = self.git.resolve_revision(self.remote_main)
        except (GitError, OSError) as exc:
            logger.error("Failed to resolve remote HEAD", extra={"ref": self.remote_main, "error": str(exc)})
            return {"outcome": CycleOutcome.ABORTED.value, "reason": f"resolve {self.remote_main} failed: {exc}"}

        orchestrator_state = self.state_store.load()
        if orchestrator_state.last_processed_commit == remote_head:
            logger.info("No new commits", extra={"remoteHead": remote_head})
            return {"remote_head": remote_head, "state": orchestrator_state, "outcome": CycleOutcome.UP_TO_DATE.value}

        # Detection reads documents from the working tree, so main must be at the remote head.
        try:
            self.git.checkout(self.main_branch)
            self.git.fast_forward(self.remote_main)
        except (GitError, OSError) as exc:
            logger.error("Failed to update main", extra={"ref": self.remote_main, "error": str(exc)})
            return {"outcome": CycleOutcome.ABORTED.value, "reason": f"update {self.main_branch} failed: {exc}"}
        return {"remote_head": remote_head, "state": orchestrator_state}

    def _detect_node(self, state: PollCycleState) -> dict[str, Any]:
        orchestrator_state = state["state"]
        try:
            changes = detect_changes(
                git=self.git,
                working_dir=self.config.repo_root,
                from_revision=orchestrator_state.last_processed_commit,
                to_revision=state["remote_head"],
                path_glob=self.config.target_repo.prd_glob,
                prior_state=orchestrator_state,
            )
        except (GitError, OSError) as exc:
            logger.error("Detection failed", extra={"error": str(exc)})
            return {"outcome": CycleOutcome.ABORTED.value, "reason": f"detection failed: {exc}"}

        if changes:
            logger.info("Found %d PRD change(s)", len(changes))
        else:
            logger.info("No PRD changes detected")
        return {"pending": changes, "documents": []}

    @staticmethod
    def _continue_route(state: PollCycleState) -> str:
        return "end" if state.get("outcome") else "continue"

    def _dispatch_node(self, state: PollCycleState) -> dict[str, Any]:
        pending = list(state.get("pending") or [])
        if not pending:
            return {"current": None, "pending": []}
        return {"current": pending[0], "pending": pending[1:]}

    @staticmethod
    def _dispatch_route(state: PollCycleState) -> str:
        return "process" if state.get("current") is not None else "advance"

    def _process_node(self, state: PollCycleState) -> dict[str, Any]:
        document = state["current"]
        outcome = self.process_document(state["state"], document)
        return {"current": None, "documents": [*state.get("documents", []), outcome]}

    def _advance_node(self, state: PollCycleState) -> dict[str, Any]:
        orchestrator_state = state["state"]
        orchestrator_state.last_processed_commit = state["remote_head"]
        self.state_store.save(orchestrator_state)
        logger.info("Advanced last processed commit", extra={"remoteHead": state["remote_head"]})
        return {"outcome": CycleOutcome.ADVANCED.value}

    # ------------------------------------------------------------------
    # Per-document lifecycle
    # ------------------------------------------------------------------

    def process_document(self, orchestrator_state: OrchestratorState, document: SpecDocument) -> DocumentOutcome:
        """Branch, run the agent, commit, push and publish one document.

        Every failure is contained here: the document ends up with a ``failed`` or
        ``completed`` record, the state is saved, and the working tree is back on main.
        """
        plan = plan_from_document(document.content, document.path)
        branch = f"{self.config.git.branch_prefix}{plan.branch_name}"
        logger.info("Processing PRD", extra={"prd": document.path, "branch": branch})

        try:
            self._enter_branch(branch)
            result = self._run_agent(plan, branch)
            if not result.success or not result.files_changed:
                reason = result.logs if not result.success else f"Agent reported success but changed no files\n{result.logs}"
                logger.error("Agent failed", extra={"prd": document.path, "logs": sanitize_report(reason)})
                return self._record_failure(orchestrator_state, document, branch, reason)

            self.git.stage_all()
            self.git.commit(COMMIT_MESSAGE_TEMPLATE.format(title=plan.title), self.config.git.commit_author)
        except Exception as exc:  # noqa: BLE001 - isolate any failure to this document.
            logger.exception("Failed processing PRD", extra={"prd": document.path})
            return self._record_failure(orchestrator_state, document, branch, str(exc))

        self._push(branch, document)
        pr_url = self._publish_pull_request(plan, branch, document)

        orchestrator_state.processed_prds[document.path] = ProcessingRecord(
            status=ProcessingStatus.COMPLETED,
            branch_name=branch,
            content_hash=document.content_hash,
            pr_url=pr_url,
        )
        self.state_store.save(orchestrator_state)
        self._return_to_main(discard=False)
        logger.info("Completed PRD", extra={"prd": document.path, "branch": branch, "prUrl": pr_url})
        return DocumentOutcome(path=document.path, status=ProcessingStatus.COMPLETED, branch_name=branch, pr_url=pr_url)

    def _enter_branch(self, branch: str) -> None:
        self.git.checkout(self.main_branch)
        try:
            self.git.fast_forward(self.remote_main)
        except GitError as exc:
            logger.warning("Could not fast-forward main", extra={"ref": self.remote_main, "error": str(exc)})

        try:
            self.git.create_branch(branch, self.remote_main)
        except GitError:
            if not self.git.branch_exists(branch):
                raise
            logger.info("Branch already exists, resuming on it", extra={"branch": branch})
            self.git.checkout(branch)

    def _run_agent(self, plan: Plan, branch: str) -> AgentResult:
        request = AgentRequest(
            working_directory=self.config.repo_root,
            instructions=plan.instructions,
            branch_name=plan.branch_name,
            timeout=self.config.agent.timeout,
            command=self.config.agent.command,
        )
        try:
            return self.agent.execute(request)
        except Exception as exc:  # noqa: BLE001 - a raising agent is a failed agent.
            logger.exception("Agent raised", extra={"branch": branch})
            return AgentResult(success=False, logs=f"Agent error: {exc}")

    def _record_failure(
        self,
        orchestrator_state: OrchestratorState,
        document: SpecDocument,
        branch: str,
        error: str,
    ) -> DocumentOutcome:
        orchestrator_state.processed_prds[document.path] = ProcessingRecord(
            status=ProcessingStatus.FAILED,
            branch_name=branch,
            content_hash=document.content_hash,
            error=sanitize_report(error) or "unknown error",
        )
        self.state_store.save(orchestrator_state)
        self._return_to_main(discard=True)
        return DocumentOutcome(path=document.path, status=ProcessingStatus.FAILED, branch_name=branch)

    def _return_to_main(self, *, discard: bool) -> None:
        try:
            if discard:
                self.git.discard_changes()
            self.git.checkout(self.main_branch)
        except (GitError, OSError) as exc:
            logger.error("Could not return to main", extra={"branch": self.main_branch, "error": str(exc)})

    def _push(self, branch: str, document: SpecDocument) -> None:
        # A failed push leaves a local-only commit; the record is still completed.
        try:
            self.git.push(self.remote, branch)
        except Exception as exc:  # noqa: BLE001 - a failed push never fails the document.
            logger.error("Push failed", extra={"prd": document.path, "branch": branch, "error": str(exc)})

    def _publish_pull_request(self, plan: Plan, branch: str, document: SpecDocument) -> str | None:
        if not self.config.pull_requests_enabled or self.pull_requests is None:
            return None
        try:
            remote_url = self.config.target_repo.remote_url or self.git.remote_url(self.remote)
            parsed = parse_remote_url(remote_url)
            if parsed is None:
                logger.warning("Cannot derive owner/repo from remote URL", extra={"remoteUrl": remote_url})
                return None
            owner, repo = parsed
            title = PR_TITLE_TEMPLATE.format(title=plan.title)
            body = PR_BODY_TEMPLATE.format(path=document.path)
            existing = self.pull_requests.find_open_pull_request(
                owner=owner, repo=repo, head=branch, base=self.main_branch
            )
            if existing is not None:
                pr = self.pull_requests.update_pull_request(
                    owner=owner, repo=repo, number=existing.number, title=title, body=body
                )
                logger.info("PR updated", extra={"prd": document.path, "prUrl": pr.url})
            else:
                pr = self.pull_requests.create_pull_request(
                    owner=owner, repo=repo, head=branch, base=self.main_branch, title=title, body=body
                )
                logger.info("PR created", extra={"prd": document.path, "prUrl": pr.url})
            return pr.url
        except PullRequestError as exc:
            logger.error("PR creation failed", extra={"prd": document.path, "error": str(exc)})
            return None
        except Exception as exc:  # noqa: BLE001 - PR publication never aborts the cycle.
            logger.exception("PR creation failed unexpectedly", extra={"prd": document.path, "error": str(exc)})
            return None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def prepare_workspace(self) -> OrchestratorState:
        """Startup checks: keep orchestrator files out of commits, verify the state file.

        Raises:
            StateStoreError: If the existing state file cannot be read.
        """
        self._register_excludes()
        return self.state_store.load()

    def _register_excludes(self) -> None:
        # State and log files inside the working tree must never be staged by ``add -A``
        # or removed by ``clean -fd``.
        repo_root = self.config.repo_root
        entries: list[str] = []
        for path in (self.config.state_path, self.config.log_file_path):
            entry = _exclude_entry(repo_root, path)
            if entry is not None and entry not in entries:
                entries.append(entry)
        if entries:
            added = ensure_excluded(repo_root, entries)
            if added:
                logger.info("Registered git excludes", extra={"entries": added})
        self._excludes_registered = True

    def run_cycle(self) -> CycleReport:
        if not self._excludes_registered:
            self._register_excludes()
        logger.info("Starting poll cycle")
        final = self.graph.invoke(
            {"pending": [], "current": None, "documents": []},
            config={"recursion_limit": self.recursion_limit},
        )
        return CycleReport(
            outcome=CycleOutcome(final.get("outcome") or CycleOutcome.ABORTED.value),
            remote_head=final.get("remote_head"),
            documents=tuple(final.get("documents") or ()),
            reason=final.get("reason"),
        )

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run cycles until *stop_event* is set; an in-flight cycle always finishes."""
        interval = self.config.polling.interval_seconds
        while not stop_event.is_set():
            try:
                report = self.run_cycle()
                logger.info(
                    "Poll cycle finished",
                    extra={"outcome": report.outcome.value, "documents": len(report.documents)},
                )
            except Exception:  # noqa: BLE001 - keep the daemon alive across transient failures.
                logger.exception("Unexpected error in poll cycle")
            stop_event.wait(interval)


def _exclude_entry(repo_root: Path, path: Path | None) -> str | None:
    if path is None:
        return None
    try:
        relative = path.resolve().relative_to(repo_root.resolve())
    except ValueError:
        return None
    if len(relative.parts) > 1:
        return f"{relative.parts[0]}/"
    return relative.as_posix()

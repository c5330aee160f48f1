from importlib.metadata import version

from .agents import AgentKind, AgentPort, AgentRegistry, default_registry
from .detector import detect_changes, is_template_path
from .git_ops import GitClient, GitError, VersionControlPort
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
    PullRequest,
    SpecDocument,
)
from .orchestrator import ScarletOrchestrator
from .planner import plan_from_document, slugify_name
from .settings import ConfigError, ScarletConfig, load_config
from .state_store import StateStore, StateStoreError, content_hash


def get_version() -> str:
    try:
        return version(__name__)
    except Exception:
        return "0.0.0"


__all__ = [
    "AgentKind",
    "AgentPort",
    "AgentRegistry",
    "AgentRequest",
    "AgentResult",
    "ConfigError",
    "CycleOutcome",
    "CycleReport",
    "DocumentOutcome",
    "GitClient",
    "GitError",
    "GitHubClient",
    "OrchestratorState",
    "Plan",
    "ProcessingRecord",
    "ProcessingStatus",
    "PullRequest",
    "PullRequestError",
    "PullRequestPort",
    "ScarletConfig",
    "ScarletOrchestrator",
    "SpecDocument",
    "StateStore",
    "StateStoreError",
    "VersionControlPort",
    "content_hash",
    "default_registry",
    "detect_changes",
    "get_version",
    "is_template_path",
    "load_config",
    "parse_remote_url",
    "plan_from_document",
    "slugify_name",
]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ProcessingStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class CycleOutcome(str, Enum):
    ABORTED = "aborted"
    UP_TO_DATE = "up_to_date"
    ADVANCED = "advanced"


def utc_now() -> datetime:
    return datetime.now(UTC)


class _CamelModel(BaseModel):
    """Base for persisted models: snake_case attributes, camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessingRecord(_CamelModel):
    """Outcome of processing one specification document, keyed by its path."""

    status: ProcessingStatus
    branch_name: str
    content_hash: str
    pr_url: str | None = None
    processed_at: datetime = Field(default_factory=utc_now)
    error: str | None = None

    @model_validator(mode="after")
    def _error_only_when_failed(self) -> "ProcessingRecord":
        if self.status == ProcessingStatus.COMPLETED and self.error is not None:
            raise ValueError("a completed processing record cannot carry an error")
        return self


class OrchestratorState(_CamelModel):
    """Root persisted object: last fully processed upstream revision plus per-document records."""

    last_processed_commit: str | None = None
    processed_prds: dict[str, ProcessingRecord] = Field(default_factory=dict)

    def record_for(self, path: str) -> ProcessingRecord | None:
        return self.processed_prds.get(path)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2) + "\n"


@dataclass(frozen=True)
class SpecDocument:
    path: str
    content: str
    content_hash: str


@dataclass(frozen=True)
class Plan:
    title: str
    branch_name: str
    instructions: str


@dataclass(frozen=True)
class AgentRequest:
    working_directory: Path
    instructions: str
    branch_name: str
    timeout: int
    command: str | None = None


@dataclass(frozen=True)
class AgentResult:
    success: bool
    files_changed: tuple[str, ...] = ()
    logs: str = ""


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str


@dataclass(frozen=True)
class DocumentOutcome:
    path: str
    status: ProcessingStatus
    branch_name: str
    pr_url: str | None = None


@dataclass(frozen=True)
class CycleReport:
    """Summary of one poll cycle, returned by ``ScarletOrchestrator.run_cycle``."""

    outcome: CycleOutcome
    remote_head: str | None = None
    documents: tuple[DocumentOutcome, ...] = field(default_factory=tuple)
    reason: str | None = None

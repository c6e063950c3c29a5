"""Typed views over the JSON records kept by the brain."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = 1


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


class ScopeKind(str, Enum):
    """Object namespaces inside the brain."""

    THREADS = "threads"
    REPOS = "repos"


class RecordModel(BaseModel):
    """Base model tolerant of keys written by newer or older releases."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ErrorSlot(RecordModel):
    """Diagnostics describing the last failed job of a thread."""

    message: Optional[str] = Field(default=None, alias="lastError")
    at: Optional[str] = Field(default=None, alias="lastErrorAt")
    job_id: Optional[str] = Field(default=None, alias="lastErrorJobId")
    context: Optional[str] = Field(default=None, alias="lastErrorContext")
    logs: Optional[str] = Field(default=None, alias="lastErrorLogs")
    raw_snippet: Optional[str] = Field(default=None, alias="lastModelRawSnippet")

    @property
    def present(self) -> bool:
        return bool(self.message)


class ThreadState(RecordModel):
    """Per-conversation memory."""

    last_repo: Optional[str] = Field(default=None, alias="lastRepo")
    last_task: Optional[str] = Field(default=None, alias="lastTask")
    last_plan: Optional[Dict[str, Any]] = Field(default=None, alias="lastPlan")
    last_pr_url: Optional[str] = Field(default=None, alias="lastPrUrl")
    last_branch: Optional[str] = Field(default=None, alias="lastBranch")
    last_job_id: Optional[str] = Field(default=None, alias="lastJobId")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    version: int = SCHEMA_VERSION

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "ThreadState":
        return cls.model_validate(record or {})

    def error(self) -> ErrorSlot:
        extra = self.model_extra or {}
        return ErrorSlot.model_validate(extra)


class RepoState(RecordModel):
    """Per-repository memory."""

    last_touched_at: Optional[str] = Field(default=None, alias="lastTouchedAt")
    last_pr_url: Optional[str] = Field(default=None, alias="lastPrUrl")
    last_branch: Optional[str] = Field(default=None, alias="lastBranch")
    preferences: Dict[str, Any] = Field(default_factory=dict)
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    version: int = SCHEMA_VERSION

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "RepoState":
        return cls.model_validate(record or {})


ERROR_FIELDS: tuple[str, ...] = (
    "lastError",
    "lastErrorAt",
    "lastErrorJobId",
    "lastErrorContext",
    "lastErrorLogs",
    "lastModelRawSnippet",
)

THREAD_FIELDS: tuple[str, ...] = (
    "lastRepo",
    "lastTask",
    "lastPrUrl",
    "lastBranch",
    "lastJobId",
    "lastPlan",
)

"""Job record and its strictly sequential phase machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from ..planning.schemas import Plan
from ..tools.proc import make_job_id

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class JobPhase(str, Enum):
    """Phases of one job, in execution order."""

    CREATED = "created"
    CLONED = "cloned"
    CONFIGURED = "configured"
    BRANCHED = "branched"
    PLANNED = "planned"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    CHANGE_CHECKED = "change-checked"
    COMMITTED = "committed"
    PUSHED = "pushed"
    SUBMITTED = "submitted"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = list(JobPhase)


class PhaseTransitionError(RuntimeError):
    """Raised when code attempts to move a job backwards."""


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def branch_name(job_id: str, created_at: datetime, *, prefix: str = "shipyard/sandbox") -> str:
    """Branch embedding the creation time (base-36 milliseconds) and job id."""
    millis = int(created_at.timestamp() * 1000)
    return f"{prefix.rstrip('/')}-{_base36(millis)}-{job_id}"


@dataclass(slots=True)
class Job:
    """One end-to-end attempt to turn a task into a change request."""

    owner: str
    repo: str
    task: str
    thread_key: Optional[str] = None
    job_id: str = field(default_factory=make_job_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    branch_prefix: str = "shipyard/sandbox"
    workspace_path: Optional[Path] = None
    plan: Optional[Plan] = None
    phase: JobPhase = JobPhase.CREATED

    @property
    def branch(self) -> str:
        return branch_name(self.job_id, self.created_at, prefix=self.branch_prefix)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def advance(self, phase: JobPhase) -> None:
        """Move forward to ``phase``; optional phases may be skipped."""
        if phase.order <= self.phase.order:
            raise PhaseTransitionError(f"Job {self.job_id} cannot move from {self.phase.value} to {phase.value}")
        self.phase = phase


__all__ = ["Job", "JobPhase", "PhaseTransitionError", "branch_name"]

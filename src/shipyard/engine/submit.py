"""Open the change request for a pushed job branch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from ..brain.store import StateStore
from ..errors import ShipyardError
from ..planning.schemas import Plan
from .job import Job, JobPhase
from .progress import ProgressEmitter
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)

TITLE_LIMIT = 180


class ChangeHost(Protocol):
    def create_pull_request(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        head: str,
        base: str,
        body: str,
    ) -> object: ...


@dataclass(slots=True)
class SubmittedChange:
    url: str
    branch: str


def _bullets(items: list[str], placeholder: str) -> str:
    rendered = "\n".join(f"- {item}" for item in items if str(item).strip())
    return rendered or f"- {placeholder}"


def build_change_body(task: str, plan: Plan) -> str:
    """Compose the change-request description for ``plan``."""
    body = f"{(plan.body or '').strip()}\n\n---\n"
    body += f"## Task\n{task}\n\n"
    body += f"## What I did\n{_bullets(plan.summary_bullets, '(no summary)')}\n\n"
    body += f"## Suggested test plan\n{_bullets(plan.test_plan_bullets, '(none)')}\n"
    if plan.verify.failed:
        body += f"\n\n> **Warning: verification failed** (logs):\n```\n{plan.verify.logs or ''}\n```\n"
    return body.strip() + "\n"


def change_title(plan: Plan, task: str) -> str:
    title = (plan.title or "").strip() or f"Shipyard: {task}"
    return title[:TITLE_LIMIT]


class ChangeSubmitter:
    """Creates the change request and clears the thread's stale error slot."""

    def __init__(
        self,
        host: ChangeHost,
        *,
        store: Optional[StateStore] = None,
        emitter: Optional[ProgressEmitter] = None,
    ) -> None:
        self._host = host
        self._store = store or StateStore.disabled()
        self._emitter = emitter or ProgressEmitter()

    def submit(
        self,
        owner: str,
        repo: str,
        workspace: Workspace,
        plan: Plan,
        task: str,
        *,
        job: Optional[Job] = None,
    ) -> SubmittedChange:
        job_id = job.job_id if job else ""
        thread = job.thread_key if job else None
        self._emitter.publish(job_id, JobPhase.SUBMITTED.value, "Opening PR...")
        try:
            created = self._host.create_pull_request(
                owner,
                repo,
                title=change_title(plan, task),
                head=workspace.branch,
                base=workspace.default_branch,
                body=build_change_body(task, plan),
            )
        except ShipyardError as error:
            self._store.record_error(thread, error.to_state_patch(job_id))
            raise
        url = str(getattr(created, "url", None) or (created.get("url") if isinstance(created, dict) else ""))
        if job is not None:
            job.advance(JobPhase.SUBMITTED)
        self._store.clear_error(thread)
        LOGGER.info("Opened change request %s for branch %s", url, workspace.branch)
        return SubmittedChange(url=url, branch=workspace.branch)


__all__ = ["ChangeHost", "ChangeSubmitter", "SubmittedChange", "build_change_body", "change_title"]

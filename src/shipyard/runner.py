"""End-to-end job orchestration: task in, change request out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from .brain.schema import utc_now_iso
from .brain.store import StateStore, sanitize_plan_for_storage
from .config import Settings
from .engine.executor import ExecutionEngine
from .engine.job import Job, JobPhase
from .engine.progress import ProgressEmitter, logging_subscriber
from .engine.submit import ChangeSubmitter
from .engine.workspace import GitIdentity, UrlFactory, WorkspaceManager
from .errors import RateLimitedError, ShipyardError
from .github import GitHubClient
from .models.anthropic import AnthropicClient
from .models.llm_client import LLMClient
from .planning.context import PlanTarget, RepoContext
from .planning.generator import PlanGenerator
from .planning.schemas import Plan
from .ratelimit import RateLimiter
from .tools.commands import CommandValidator
from .tools.job_logs import write_job_log
from .tools.proc import CommandRunner, https_repo_url, run_command
from .utils.parse import parse_owner_repo

LOGGER = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 800
TASK_CONTEXT = "sandbox:task"
REPO_PREFERENCES = {"fastPRs": True, "testsSecondary": True}


class CodeHost(Protocol):
    def get_default_branch(self, owner: str, repo: str) -> str: ...

    def repo_context(self, owner: str, repo: str) -> Optional[RepoContext]: ...

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
class JobResult:
    url: str
    branch: str
    job_id: str
    plan: Plan


class JobRunner:
    """Runs one job at a time through workspace, plan, execute and submit."""

    def __init__(
        self,
        *,
        host: CodeHost,
        planner: PlanGenerator,
        workspaces: WorkspaceManager,
        engine: ExecutionEngine,
        submitter: ChangeSubmitter,
        store: Optional[StateStore] = None,
        limiter: Optional[RateLimiter] = None,
        emitter: Optional[ProgressEmitter] = None,
        logs_root: Path | str | None = None,
        keep_workspaces: bool = False,
        branch_prefix: str = "shipyard/sandbox",
    ) -> None:
        self._host = host
        self._planner = planner
        self._workspaces = workspaces
        self._engine = engine
        self._submitter = submitter
        self._store = store or StateStore.disabled()
        self._limiter = limiter
        self._emitter = emitter or ProgressEmitter()
        self._logs_root = Path(logs_root) if logs_root else None
        self._keep_workspaces = keep_workspaces
        self._branch_prefix = branch_prefix

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        llm_client: Optional[LLMClient] = None,
        host: Optional[CodeHost] = None,
        command_runner: CommandRunner = run_command,
        emitter: Optional[ProgressEmitter] = None,
        url_factory: Optional[UrlFactory] = None,
    ) -> "JobRunner":
        """Wire production collaborators; injected ones replace their defaults."""
        if llm_client is None or host is None:
            settings.require_credentials()
        emitter = emitter or ProgressEmitter()
        emitter.subscribe(logging_subscriber)
        store = settings.open_store()
        if not store.enabled:
            LOGGER.warning("Brain storage disabled; thread and repo state will not persist")

        client = llm_client or AnthropicClient(
            api_key=settings.anthropic_api_key,
            base_url=settings.model_base_url,
            model=settings.planner_model,
            timeout=settings.model_timeout,
        )
        code_host = host or GitHubClient(settings.github_token, api_url=settings.github_api_url)
        token = settings.github_token or ""

        def _default_url(owner: str, repo: str) -> str:
            return https_repo_url(owner, repo, token, host=settings.github_host)

        workspaces = WorkspaceManager(
            settings.workdir,
            url_factory=url_factory or _default_url,
            store=store,
            identity=GitIdentity(name=settings.identity_name, email=settings.identity_email),
            emitter=emitter,
            secrets=(token,) if token else (),
            timeout=settings.command_timeout,
        )
        engine = ExecutionEngine(
            validator=CommandValidator(),
            runner=command_runner,
            store=store,
            emitter=emitter,
            run_verification=settings.run_verification,
            timeout=settings.command_timeout,
        )
        return cls(
            host=code_host,
            planner=PlanGenerator(client, store=store, model=settings.planner_model, max_tokens=settings.max_tokens),
            workspaces=workspaces,
            engine=engine,
            submitter=ChangeSubmitter(code_host, store=store, emitter=emitter),
            store=store,
            limiter=RateLimiter(window_seconds=settings.rate_limit_window, max_requests=settings.rate_limit_max),
            emitter=emitter,
            logs_root=settings.logs_root,
            keep_workspaces=settings.keep_workspaces,
            branch_prefix=settings.branch_prefix,
        )

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def emitter(self) -> ProgressEmitter:
        return self._emitter

    def resolve_target(self, repo: Optional[str], thread_state: Optional[Mapping[str, Any]]) -> tuple[str, str]:
        """Pick the explicit ``owner/repo`` or fall back to the thread's last repository."""
        candidate = repo or (thread_state or {}).get("lastRepo")
        ref = parse_owner_repo(str(candidate)) if candidate else None
        if ref is None:
            raise ShipyardError(
                "No repository given and this thread has no previous repository. Use owner/repo.",
                context=TASK_CONTEXT,
            )
        return ref.owner, ref.repo

    def run(
        self,
        task: str,
        *,
        repo: Optional[str] = None,
        thread_key: Optional[str] = None,
        requester: Optional[str] = None,
    ) -> JobResult:
        """Run ``task`` against ``repo`` (or the thread's last repository)."""
        task = (task or "").strip()
        if not task:
            raise ShipyardError("Task must not be empty.", context=TASK_CONTEXT)
        limit_key = requester or thread_key or "anonymous"
        if self._limiter is not None and not self._limiter.allow(limit_key):
            raise RateLimitedError("Rate limited. Try again in a bit.")

        thread_state = self._store.load_thread(thread_key) if thread_key else None
        owner, name = self.resolve_target(repo, thread_state)
        job = Job(owner=owner, repo=name, task=task, thread_key=thread_key, branch_prefix=self._branch_prefix)
        self._emitter.publish(job.job_id, JobPhase.CREATED.value, f"Starting job for {job.full_name}...")

        result: Optional[JobResult] = None
        failure: Optional[BaseException] = None
        try:
            result = self._run(job, thread_state)
            return result
        except Exception as error:
            failure = error
            self._record_failure(job, error)
            raise
        finally:
            self._workspaces.teardown(job, keep=self._keep_workspaces)
            if self._logs_root is not None:
                write_job_log(
                    self._logs_root,
                    job_id=job.job_id,
                    target=job.full_name,
                    task=task,
                    phase=job.phase.value,
                    plan=job.plan,
                    steps=self._engine.last_records if job.phase.order >= JobPhase.EXECUTING.order else (),
                    result={"url": result.url, "branch": result.branch} if result else None,
                    error=failure,
                )

    def _run(self, job: Job, thread_state: Optional[Dict[str, Any]]) -> JobResult:
        default_branch = self._host.get_default_branch(job.owner, job.repo)
        repo_context = self._host.repo_context(job.owner, job.repo)
        repo_state = self._store.load_repo(job.owner, job.repo)

        workspace = self._workspaces.prepare(job, default_branch)

        self._emitter.publish(job.job_id, JobPhase.PLANNED.value, "Planning changes...")
        plan = self._planner.generate(
            job.task,
            PlanTarget(owner=job.owner, repo=job.repo, default_branch=default_branch),
            thread_state=thread_state,
            repo_state=repo_state,
            repo_context=repo_context,
            job_id=job.job_id,
            thread_key=job.thread_key,
        )
        job.plan = plan
        job.advance(JobPhase.PLANNED)

        self._engine.run(workspace, plan, job)
        change = self._submitter.submit(job.owner, job.repo, workspace, plan, job.task, job=job)

        self._remember_success(job, plan, change.url, change.branch)
        self._emitter.publish(job.job_id, JobPhase.SUBMITTED.value, f"PR created: {change.url}")
        return JobResult(url=change.url, branch=change.branch, job_id=job.job_id, plan=plan)

    def _remember_success(self, job: Job, plan: Plan, url: str, branch: str) -> None:
        try:
            if job.thread_key:
                self._store.save_thread(
                    job.thread_key,
                    {
                        "lastRepo": job.full_name,
                        "lastTask": job.task,
                        "lastPlan": sanitize_plan_for_storage(plan),
                        "lastPrUrl": url,
                        "lastBranch": branch,
                        "lastJobId": job.job_id,
                    },
                )
            self._store.save_repo(
                job.owner,
                job.repo,
                {
                    "lastTouchedAt": utc_now_iso(),
                    "lastPrUrl": url,
                    "lastBranch": branch,
                    "preferences": dict(REPO_PREFERENCES),
                },
            )
        except (OSError, ValueError) as error:
            LOGGER.warning("Change request %s opened but brain update failed: %s", url, error)

    def _record_failure(self, job: Job, error: BaseException) -> None:
        """Record failures no stage has already written for this job.

        Errors tagged with their own phase keep that context; anything
        generic is filed under ``sandbox:task``.
        """
        if not job.thread_key:
            return
        context = TASK_CONTEXT
        if isinstance(error, ShipyardError):
            current = self._store.load_thread(job.thread_key) or {}
            if current.get("lastErrorJobId") == job.job_id and current.get("lastErrorContext") == error.context:
                return
            patch = error.to_state_patch(job.job_id)
            if error.context and error.context != ShipyardError.default_context:
                context = error.context
        else:
            patch = {"lastErrorJobId": job.job_id, "lastErrorLogs": None}
        patch["lastError"] = str(error)[:ERROR_MESSAGE_LIMIT] or "unknown error"
        patch["lastErrorContext"] = context
        self._store.record_error(job.thread_key, patch)


__all__ = ["CodeHost", "JobResult", "JobRunner"]

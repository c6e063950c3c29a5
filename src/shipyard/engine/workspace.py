"""Ephemeral per-job checkouts."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from ..brain.store import StateStore
from ..errors import GitError
from ..tools.proc import safe_log_chunk, strip_credentials
from ..tools.vcs import GitRepository
from ..utils.slug import slugify
from .job import Job, JobPhase
from .progress import ProgressEmitter

LOGGER = logging.getLogger(__name__)

UrlFactory = Callable[[str, str], str]

ORIGIN = "origin"


@dataclass(slots=True, frozen=True)
class GitIdentity:
    name: str = "Shipyard Bot"
    email: str = "shipyard@bot.local"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "GitIdentity":
        source = os.environ if env is None else env
        default = cls()
        return cls(
            name=source.get("GIT_AUTHOR_NAME") or default.name,
            email=source.get("GIT_AUTHOR_EMAIL") or default.email,
        )

    def environment(self, base: Mapping[str, str] | None = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update(
            {
                "GIT_AUTHOR_NAME": self.name,
                "GIT_AUTHOR_EMAIL": self.email,
                "GIT_COMMITTER_NAME": self.name,
                "GIT_COMMITTER_EMAIL": self.email,
                "GIT_TERMINAL_PROMPT": "0",
            }
        )
        return env


@dataclass(slots=True)
class Workspace:
    """Checkout and branch exclusively owned by one job.

    ``push_url`` carries the authenticated remote when the checkout's own
    ``origin`` was rewritten without credentials; ``secrets`` are masked in
    anything captured from commands run here.
    """

    path: Path
    branch: str
    default_branch: str
    repo: GitRepository
    env: Dict[str, str] = field(default_factory=dict)
    push_url: Optional[str] = None
    secrets: tuple[str, ...] = ()
    empty_remote: bool = False

    @property
    def push_target(self) -> str:
        return self.push_url or ORIGIN


class WorkspaceManager:
    """Clones, configures and branches a fresh checkout for each job."""

    def __init__(
        self,
        root: Path | str,
        *,
        url_factory: UrlFactory,
        store: Optional[StateStore] = None,
        identity: Optional[GitIdentity] = None,
        emitter: Optional[ProgressEmitter] = None,
        secrets: tuple[str, ...] = (),
        timeout: float | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self._url_factory = url_factory
        self._store = store or StateStore.disabled()
        self._identity = identity or GitIdentity()
        self._emitter = emitter or ProgressEmitter()
        self._secrets = tuple(secret for secret in secrets if secret)
        self._timeout = timeout
        self._base_env = base_env

    def path_for(self, job: Job) -> Path:
        name = slugify(f"{job.owner}-{job.repo}", fallback="repo", max_length=60)
        return self.root / f"{name}-{job.job_id}"

    def prepare(self, job: Job, default_branch: str) -> Workspace:
        """Clone ``job``'s repository and check out its branch.

        A remote without any branches is cloned as-is and the job branch
        starts from the unborn HEAD. Any git failure is recorded in the
        thread's error slot under a ``git:*`` context and re-raised.
        """
        path = self.path_for(job)
        if path.exists():
            raise GitError(f"Workspace path already in use: {path}", context="git:clone")
        job.workspace_path = path
        try:
            return self._prepare(job, path, default_branch)
        except GitError as error:
            self._store.record_error(
                job.thread_key,
                {
                    "lastError": error.message[:800],
                    "lastErrorJobId": job.job_id,
                    "lastErrorContext": error.context,
                    "lastErrorLogs": safe_log_chunk(error.logs, 6000)[:6000],
                },
            )
            raise

    def _prepare(self, job: Job, path: Path, default_branch: str) -> Workspace:
        base_env = dict(os.environ if self._base_env is None else self._base_env)
        base_env["GIT_TERMINAL_PROMPT"] = "0"
        clone_url = self._url_factory(job.owner, job.repo)

        self._emitter.publish(job.job_id, JobPhase.CLONED.value, "Cloning repo into sandbox...")
        self.root.mkdir(parents=True, exist_ok=True)
        heads = GitRepository.remote_heads(
            clone_url,
            cwd=self.root,
            env=base_env,
            secrets=self._secrets,
            timeout=self._timeout,
        )
        empty_remote = not heads
        if empty_remote:
            LOGGER.info("Remote for %s has no branches; starting from an empty history", job.full_name)
        repo = GitRepository.clone(
            clone_url,
            path,
            branch=None if empty_remote else default_branch,
            depth=1,
            env=base_env,
            secrets=self._secrets,
            timeout=self._timeout,
        )
        push_url: Optional[str] = None
        public_url = strip_credentials(clone_url)
        if public_url != clone_url:
            repo.set_remote_url(ORIGIN, public_url)
            push_url = clone_url
        job.advance(JobPhase.CLONED)

        identity = self._identity
        self._emitter.publish(
            job.job_id,
            JobPhase.CONFIGURED.value,
            f"Configuring git identity ({identity.name} <{identity.email}>)...",
        )
        repo.configure_identity(identity.name, identity.email)
        configured = repo.config_get("user.email")
        if configured != identity.email:
            LOGGER.warning(
                "Git identity verification mismatch for job %s (expected %s, got %s)",
                job.job_id,
                identity.email,
                configured,
            )
            self._emitter.publish(
                job.job_id,
                JobPhase.CONFIGURED.value,
                f"Warning: git config verification failed (expected: {identity.email}, got: {configured})",
            )
        job.advance(JobPhase.CONFIGURED)

        env = identity.environment(base_env)
        repo.env = env
        branch = job.branch
        self._emitter.publish(job.job_id, JobPhase.BRANCHED.value, f"Creating branch {branch}...")
        repo.checkout_new_branch(branch)
        job.advance(JobPhase.BRANCHED)

        return Workspace(
            path=path,
            branch=branch,
            default_branch=default_branch,
            repo=repo,
            env=env,
            push_url=push_url,
            secrets=self._secrets,
            empty_remote=empty_remote,
        )

    def teardown(self, job: Job, *, keep: bool = False) -> None:
        path = job.workspace_path
        if path is None or keep:
            return
        shutil.rmtree(path, ignore_errors=True)
        LOGGER.debug("Removed workspace %s", path)


__all__ = ["GitIdentity", "UrlFactory", "Workspace", "WorkspaceManager"]

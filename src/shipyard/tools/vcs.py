"""Minimal git helpers for job workspaces.

The wrapper covers just what a job needs: shallow clone, workspace-scoped
identity, branch creation, status inspection, commit and push. Every failure
surfaces as :class:`GitError` with the captured git output attached and any
embedded credentials redacted.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Mapping, Sequence, Set

import subprocess

from ..errors import GitError
from .proc import redact

__all__ = ["GitError", "GitRepository"]


def _decode(payload: bytes | None) -> str:
    return payload.decode("utf-8", errors="replace") if payload else ""


def _run(
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None,
    secrets: Iterable[str],
    context: str,
    timeout: float | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    secrets = tuple(secrets)
    command = ["git", *args]
    redacted = [redact(part, secrets) for part in command]
    try:
        process = subprocess.run(
            command,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            stdin=subprocess.DEVNULL,
            text=False,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as error:
        output = redact(_decode(error.stderr) or _decode(error.stdout), secrets)
        raise GitError(
            f"{' '.join(redacted[:2])} timed out",
            context=context,
            logs=output,
            command=redacted,
        ) from error
    stdout = redact(_decode(process.stdout), secrets)
    stderr = redact(_decode(process.stderr), secrets)
    result = subprocess.CompletedProcess(redacted, process.returncode, stdout, stderr)
    if check and result.returncode != 0:
        message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
        raise GitError(
            f"{' '.join(redacted[:2])} failed: {message.splitlines()[-1]}",
            context=context,
            logs=message,
            command=redacted,
        )
    return result


class GitRepository:
    """Lightweight wrapper around ``git`` commands run inside one checkout."""

    def __init__(
        self,
        root: Path | str,
        *,
        env: Mapping[str, str] | None = None,
        secrets: Sequence[str] = (),
        timeout: float | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}", context="git:open")
        self.env = dict(env) if env is not None else None
        self._secrets = tuple(secret for secret in secrets if secret)
        self._timeout = timeout

    @staticmethod
    def remote_heads(
        url: str,
        *,
        cwd: Path | str,
        env: Mapping[str, str] | None = None,
        secrets: Sequence[str] = (),
        timeout: float | None = None,
    ) -> List[str]:
        """Return the branch names published by ``url``; empty for a repository without commits."""

        result = _run(
            ["ls-remote", "--heads", url],
            cwd=Path(cwd),
            env=env,
            secrets=secrets,
            context="git:clone",
            timeout=timeout,
        )
        heads: List[str] = []
        for line in result.stdout.splitlines():
            _, _, ref = line.partition("\t")
            if ref.startswith("refs/heads/"):
                heads.append(ref[len("refs/heads/"):])
        return heads

    @classmethod
    def clone(
        cls,
        url: str,
        destination: Path | str,
        *,
        branch: str | None = None,
        depth: int | None = 1,
        env: Mapping[str, str] | None = None,
        secrets: Sequence[str] = (),
        timeout: float | None = None,
    ) -> "GitRepository":
        """Clone ``url`` into ``destination`` and return the wrapped checkout.

        ``branch=None`` clones whatever the remote's HEAD points at, which is
        the only option for a remote that has no branches yet.
        """

        path = Path(destination).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        args: List[str] = ["clone"]
        if depth:
            args.append(f"--depth={depth}")
        if branch:
            args.extend(["--branch", branch])
        args.extend([url, path.as_posix()])
        _run(
            args,
            cwd=path.parent,
            env=env,
            secrets=secrets,
            context="git:clone",
            timeout=timeout,
        )
        return cls(path, env=env, secrets=secrets, timeout=timeout)

    # ------------------------------------------------------------------ git IO
    def git(self, *args: str, check: bool = True, context: str | None = None) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        label = context or (f"git:{args[0]}" if args else "git")
        return _run(
            list(args),
            cwd=self.root,
            env=self.env,
            secrets=self._secrets,
            context=label,
            timeout=self._timeout,
            check=check,
        )

    # ---------------------------------------------------------------- identity
    def configure_identity(self, name: str, email: str) -> None:
        """Set the commit identity in this checkout's local config only."""

        self.git("config", "user.email", email, context="git:config:email")
        self.git("config", "user.name", name, context="git:config:name")

    def config_get(self, key: str) -> str | None:
        result = self.git("config", "--get", key, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set_remote_url(self, remote: str, url: str) -> None:
        self.git("remote", "set-url", remote, url, context="git:remote")

    # -------------------------------------------------------------- branches
    def checkout_new_branch(self, branch: str) -> None:
        """Create ``branch`` from HEAD; on an unborn HEAD the branch starts empty."""

        self.git("checkout", "-b", branch, context="git:checkout")

    # ------------------------------------------------------------- repo status
    def status_porcelain(self) -> str:
        return self.git("status", "--porcelain", context="git:status").stdout

    def _status_entries(self) -> List[tuple[str, Path]]:
        entries: List[tuple[str, Path]] = []
        for line in self.status_porcelain().splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            status_clean = status.strip() or status
            entries.append((status_clean, Path(raw_path.strip().strip('"'))))
        return entries

    def working_tree_changes(self) -> List[Path]:
        """Return the paths with pending modifications, untracked files included."""

        paths: Set[Path] = {path for _, path in self._status_entries()}
        return sorted(paths, key=lambda item: item.as_posix())

    def has_changes(self) -> bool:
        return bool(self.working_tree_changes())

    def head(self) -> str | None:
        result = self.git("rev-parse", "--verify", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    # -------------------------------------------------------------- commits
    def commit_all(self, message: str) -> str:
        """Stage everything and commit, returning the new commit SHA."""

        self.git("add", "-A", context="git:add")
        self.git("commit", "-m", message, context="git:commit")
        sha = self.head()
        if sha is None:
            raise GitError("git commit produced no HEAD", context="git:commit")
        return sha

    # -------------------------------------------------------------- remotes
    def push(self, remote: str, branch: str) -> None:
        """Push ``branch`` to ``remote`` (a remote name or a URL)."""

        self.git("push", remote, f"{branch}:{branch}", context="git:push")

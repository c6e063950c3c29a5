from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from shipyard.models.llm_client import LLMClient  # noqa: E402
from shipyard.tools.proc import CommandResult, run_command  # noqa: E402


def run_git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


@dataclass(slots=True)
class RemoteRepo:
    """Bare repository standing in for the hosted remote."""

    path: Path
    default_branch: str = "main"

    def url_factory(self, owner: str, repo: str) -> str:
        return str(self.path)

    def branches(self) -> List[str]:
        output = run_git(self.path, "for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def show(self, ref: str, path: str) -> str:
        return run_git(self.path, "show", f"{ref}:{path}")

    def log_subject(self, ref: str) -> str:
        return run_git(self.path, "log", "-1", "--format=%s", ref).strip()

    def author(self, ref: str) -> str:
        return run_git(self.path, "log", "-1", "--format=%an <%ae>", ref).strip()


@pytest.fixture()
def remote_repo(tmp_path: Path) -> RemoteRepo:
    """Create a bare remote whose ``main`` branch holds a single README commit."""
    seed = tmp_path / "seed"
    seed.mkdir()
    run_git(seed, "init")
    run_git(seed, "checkout", "-b", "main")
    run_git(seed, "config", "user.email", "seed@example.com")
    run_git(seed, "config", "user.name", "Seed Author")
    run_git(seed, "config", "commit.gpgsign", "false")
    (seed / "README.md").write_text("# demo\n", encoding="utf-8")
    run_git(seed, "add", ".")
    run_git(seed, "commit", "-m", "Initial commit")

    bare = tmp_path / "remote.git"
    run_git(tmp_path, "clone", "--bare", str(seed), str(bare))
    return RemoteRepo(path=bare)


@pytest.fixture()
def empty_remote(tmp_path: Path) -> RemoteRepo:
    """Create a bare remote with no commits whose HEAD names ``main``."""
    bare = tmp_path / "empty.git"
    bare.mkdir()
    run_git(bare, "init", "--bare")
    run_git(bare, "symbolic-ref", "HEAD", "refs/heads/main")
    return RemoteRepo(path=bare)


class ScriptedLLMClient(LLMClient):
    """Returns canned responses in order and records every payload."""

    def __init__(self, responses: Sequence[str], model: str = "test-model") -> None:
        super().__init__(model=model)
        self._responses = list(responses)
        self.payloads: List[Dict[str, Any]] = []

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        if not self._responses:
            raise AssertionError("ScriptedLLMClient ran out of responses")
        return self._responses.pop(0)


@dataclass(slots=True)
class RecordingRunner:
    """Command runner that fakes ``node``/``npm`` and runs ``git`` for real.

    ``node`` writes the file named by its first argument, with the rest of the
    arguments as content; ``npm`` succeeds without touching anything unless a
    failure is scripted for it.
    """

    calls: List[List[str]] = field(default_factory=list)
    failures: Dict[str, CommandResult] = field(default_factory=dict)

    def __call__(
        self,
        program: str,
        args: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = [program, *args]
        self.calls.append(argv)
        scripted = self.failures.get(" ".join(argv))
        if scripted is not None:
            return scripted
        if program == "node":
            target = Path(cwd or ".") / args[0]
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(" ".join(args[1:]) + "\n", encoding="utf-8")
            return CommandResult(argv=tuple(argv), returncode=0, stdout=f"wrote {args[0]}")
        if program == "npm":
            return CommandResult(argv=tuple(argv), returncode=0, stdout="up to date")
        return run_command(program, args, cwd=cwd, env=env, timeout=timeout)


@pytest.fixture()
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@dataclass(slots=True)
class FakeCodeHost:
    """In-memory stand-in for the GitHub client."""

    default_branch: str = "main"
    context: Any = None
    pulls: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Exception] = None
    url_template: str = "https://github.example/{owner}/{repo}/pull/{number}"

    def get_default_branch(self, owner: str, repo: str) -> str:
        return self.default_branch

    def repo_context(self, owner: str, repo: str) -> Any:
        return self.context

    def create_pull_request(self, owner: str, repo: str, *, title: str, head: str, base: str, body: str) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        number = len(self.pulls) + 1
        self.pulls.append({"owner": owner, "repo": repo, "title": title, "head": head, "base": base, "body": body})
        return {"url": self.url_template.format(owner=owner, repo=repo, number=number)}


@pytest.fixture()
def fake_host() -> FakeCodeHost:
    return FakeCodeHost()

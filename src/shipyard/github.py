"""GitHub REST client covering the few calls a job needs."""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from urllib.parse import quote
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ConfigError, ShipyardError
from .planning.context import RepoContext

__all__ = ["GitHubClient", "GitHubError", "HttpRequest", "PullRequest"]

LOGGER = logging.getLogger(__name__)

README_FALLBACK = "(README not found or not accessible)"
REPOSITORY_CACHE_SECONDS = 60.0


class GitHubError(ShipyardError):
    """A GitHub API call failed."""

    default_context = "github"

    def __init__(self, message: str, *, status: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status = status


@dataclass(slots=True)
class HttpRequest:
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None


@dataclass(slots=True)
class PullRequest:
    url: str
    number: int


Transport = Callable[[HttpRequest], Any]


class GitHubClient:
    """Minimal REST wrapper; the transport returns decoded JSON."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: str = "https://api.github.com",
        transport: Optional[Transport] = None,
        timeout: float = 30.0,
        cache_seconds: float = REPOSITORY_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token = token or os.getenv("GITHUB_TOKEN")
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport or self._http_transport
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._repositories: Dict[Tuple[str, str], Tuple[float, Dict[str, Any]]] = {}
        if transport is None and not self.token:
            raise ConfigError("GITHUB_TOKEN missing", context="config:github")

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return self._transport(HttpRequest(method=method, path=path, body=body))

    # ------------------------------------------------------------- repository
    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Fetch repository metadata, reusing a lookup made within ``cache_seconds``."""
        key = (owner, repo)
        now = self._clock()
        cached = self._repositories.get(key)
        if cached is not None and now - cached[0] < self._cache_seconds:
            return cached[1]
        data = self._call("GET", f"/repos/{owner}/{repo}")
        if not isinstance(data, dict):
            raise GitHubError(f"Unexpected repository payload for {owner}/{repo}")
        self._repositories[key] = (now, data)
        return data

    def get_default_branch(self, owner: str, repo: str) -> str:
        branch = self.get_repository(owner, repo).get("default_branch")
        if not branch:
            raise GitHubError(f"Repository {owner}/{repo} has no default branch")
        return str(branch)

    def get_readme(self, owner: str, repo: str) -> str:
        try:
            data = self._call("GET", f"/repos/{owner}/{repo}/readme")
        except GitHubError:
            return README_FALLBACK
        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            return README_FALLBACK
        try:
            return base64.b64decode(content).decode("utf-8", errors="replace")
        except ValueError:
            return README_FALLBACK

    def list_root_paths(self, owner: str, repo: str, ref: str) -> List[str]:
        try:
            data = self._call("GET", f"/repos/{owner}/{repo}/contents/?ref={quote(ref, safe='')}")
        except GitHubError:
            return []
        if not isinstance(data, list):
            return []
        return [str(item.get("path")) for item in data if isinstance(item, dict) and item.get("path")]

    def repo_context(self, owner: str, repo: str) -> Optional[RepoContext]:
        """Gather planner context; ``None`` when the repository is unreachable."""
        try:
            data = self.get_repository(owner, repo)
        except GitHubError as error:
            LOGGER.warning("Unable to load repo context for %s/%s: %s", owner, repo, error)
            return None
        readme = self.get_readme(owner, repo)
        ref = str(data.get("default_branch") or "main")
        return RepoContext(
            root_paths=self.list_root_paths(owner, repo, ref),
            description=str(data.get("description") or ""),
            readme_snippet=readme[:4000],
        )

    # ---------------------------------------------------------------- pulls
    def create_pull_request(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        head: str,
        base: str,
        body: str,
    ) -> PullRequest:
        data = self._call(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            {"title": title, "head": head, "base": base, "body": body},
        )
        if not isinstance(data, dict) or not data.get("html_url"):
            raise GitHubError("Pull request creation returned no URL", context="github:pulls")
        return PullRequest(url=str(data["html_url"]), number=int(data.get("number") or 0))

    # ------------------------------------------------------------ transport
    def _http_transport(self, request: HttpRequest) -> Any:
        """Default HTTP transport using the standard library."""
        import urllib.error
        import urllib.request

        data = json.dumps(request.body).encode("utf-8") if request.body is not None else None
        http_request = urllib.request.Request(
            f"{self._api_url}{request.path}",
            data=data,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "shipyard/0.1",
            },
            method=request.method,
        )
        try:
            with urllib.request.urlopen(http_request, timeout=self._timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise GitHubError(
                f"GitHub {request.method} {request.path} failed: HTTP {error.code}",
                status=error.code,
                logs=message[:2000],
            ) from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise GitHubError(f"Failed to reach GitHub: {error.reason}") from error
        if not raw:
            return None
        return json.loads(raw.decode("utf-8"))

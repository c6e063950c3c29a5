from __future__ import annotations

import base64

import pytest

from shipyard.errors import ConfigError
from shipyard.github import README_FALLBACK, GitHubClient, GitHubError, HttpRequest


class FakeApi:
    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.requests: list[HttpRequest] = []

    def __call__(self, request: HttpRequest):
        self.requests.append(request)
        key = (request.method, request.path)
        if key not in self.routes:
            raise GitHubError(f"GitHub {request.method} {request.path} failed: HTTP 404", status=404)
        return self.routes[key]


def test_repo_context_collects_listing_and_readme() -> None:
    api = FakeApi(
        {
            ("GET", "/repos/acme/api"): {"default_branch": "trunk", "description": "Demo API"},
            ("GET", "/repos/acme/api/readme"): {"content": base64.b64encode(b"# Demo\nHello").decode()},
            ("GET", "/repos/acme/api/contents/?ref=trunk"): [
                {"path": "package.json", "type": "file"},
                {"path": "src", "type": "dir"},
            ],
        }
    )
    client = GitHubClient(transport=api)

    assert client.get_default_branch("acme", "api") == "trunk"
    context = client.repo_context("acme", "api")

    assert context is not None
    assert context.root_paths == ["package.json", "src"]
    assert context.description == "Demo API"
    assert context.readme_snippet == "# Demo\nHello"


def test_missing_readme_and_empty_repo_degrade_gracefully() -> None:
    api = FakeApi({("GET", "/repos/acme/empty"): {"default_branch": "main", "description": None}})
    context = GitHubClient(transport=api).repo_context("acme", "empty")
    assert context is not None
    assert context.root_paths == []
    assert context.readme_snippet == README_FALLBACK
    assert context.description == ""


def test_unreachable_repository_has_no_context() -> None:
    client = GitHubClient(transport=FakeApi({}))
    assert client.repo_context("acme", "gone") is None
    with pytest.raises(GitHubError):
        client.get_default_branch("acme", "gone")


def test_create_pull_request_posts_head_and_base() -> None:
    api = FakeApi({("POST", "/repos/acme/api/pulls"): {"html_url": "https://github.com/acme/api/pull/7", "number": 7}})
    pull = GitHubClient(transport=api).create_pull_request(
        "acme", "api", title="Add x", head="shipyard/sandbox-1-abc", base="main", body="body"
    )
    assert pull.url == "https://github.com/acme/api/pull/7"
    assert pull.number == 7
    assert api.requests[-1].body == {"title": "Add x", "head": "shipyard/sandbox-1-abc", "base": "main", "body": "body"}


def test_pull_request_without_url_is_an_error() -> None:
    api = FakeApi({("POST", "/repos/acme/api/pulls"): {"message": "Validation Failed"}})
    with pytest.raises(GitHubError) as excinfo:
        GitHubClient(transport=api).create_pull_request("acme", "api", title="t", head="h", base="main", body="b")
    assert excinfo.value.context == "github:pulls"


def test_missing_token_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    with pytest.raises(ConfigError, match="GITHUB_TOKEN"):
        GitHubClient()


def test_repository_lookup_is_shared_between_branch_and_context() -> None:
    now = [100.0]
    api = FakeApi(
        {
            ("GET", "/repos/acme/api"): {"default_branch": "release/2.x", "description": "Demo API"},
            ("GET", "/repos/acme/api/contents/?ref=release%2F2.x"): [{"path": "README.md"}],
        }
    )
    client = GitHubClient(transport=api, clock=lambda: now[0])

    assert client.get_default_branch("acme", "api") == "release/2.x"
    context = client.repo_context("acme", "api")

    assert context is not None
    assert context.root_paths == ["README.md"]
    repo_calls = [request for request in api.requests if request.path == "/repos/acme/api"]
    assert len(repo_calls) == 1

    now[0] += 120.0
    client.get_default_branch("acme", "api")
    assert len([request for request in api.requests if request.path == "/repos/acme/api"]) == 2

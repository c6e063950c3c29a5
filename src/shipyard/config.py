"""Runtime settings resolved from ``config.yaml`` and the environment."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from google.auth.exceptions import GoogleAuthError

from .brain.store import DEFAULT_NAMESPACE, StateStore
from .errors import ConfigError
from .models.anthropic import DEFAULT_MODEL

DEFAULT_CONFIG_NAME = "config.yaml"
DEFAULT_COMMAND_TIMEOUT = 900

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "models": {
        "planner": DEFAULT_MODEL,
        "max_tokens": 4096,
        "timeout": 120,
        "base_url": "https://api.anthropic.com/v1/messages",
    },
    "github": {
        "api_url": "https://api.github.com",
        "host": "github.com",
    },
    "brain": {
        "root": "data/brain",
        "bucket": "",
        "project": "",
        "namespace": DEFAULT_NAMESPACE,
    },
    "jobs": {
        "workdir": "data/work",
        "run_verification": False,
        "keep_workspaces": False,
        "command_timeout": DEFAULT_COMMAND_TIMEOUT,
        "branch_prefix": "shipyard/sandbox",
    },
    "identity": {
        "name": "Shipyard Bot",
        "email": "shipyard@bot.local",
    },
    "rate_limit": {
        "window_seconds": 30,
        "max_requests": 6,
    },
    "paths": {
        "data": "data",
        "logs": "data/logs",
    },
}

_TRUTHY = {"1", "true", "yes", "on"}


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def read_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration; a missing file yields the defaults."""
    if not config_path.exists():
        return copy_config_template()
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return data


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    if value is None:
        return DEFAULT_CONFIG_TEMPLATE.get(name, {})
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    return {**DEFAULT_CONFIG_TEMPLATE.get(name, {}), **value}


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _number(section: str, key: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"Config value {section}.{key} must be a number, got {value!r}.") from error
    if number <= 0:
        raise ConfigError(f"Config value {section}.{key} must be positive.")
    return number


def _path(value: Any, base: Path) -> Path:
    candidate = Path(str(value)).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()


@dataclass(slots=True)
class Settings:
    """Everything a job needs, with credentials taken from the environment."""

    anthropic_api_key: Optional[str] = None
    github_token: Optional[str] = None
    planner_model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    model_timeout: float = 120.0
    model_base_url: str = "https://api.anthropic.com/v1/messages"
    github_api_url: str = "https://api.github.com"
    github_host: str = "github.com"
    brain_root: Optional[Path] = None
    brain_namespace: str = DEFAULT_NAMESPACE
    brain_bucket: Optional[str] = None
    brain_project: Optional[str] = None
    workdir: Path = field(default_factory=lambda: Path("data/work").resolve())
    logs_root: Path = field(default_factory=lambda: Path("data/logs").resolve())
    run_verification: bool = False
    keep_workspaces: bool = False
    command_timeout: float = float(DEFAULT_COMMAND_TIMEOUT)
    branch_prefix: str = "shipyard/sandbox"
    identity_name: str = "Shipyard Bot"
    identity_email: str = "shipyard@bot.local"
    rate_limit_window: float = 30.0
    rate_limit_max: int = 6

    @classmethod
    def from_mapping(
        cls,
        config: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
        *,
        base_dir: Path | str | None = None,
    ) -> "Settings":
        """Resolve settings; environment overrides win over the file."""
        config = config or {}
        env = os.environ if env is None else env
        base = Path(base_dir or ".").resolve()

        models = _section(config, "models")
        github = _section(config, "github")
        brain = _section(config, "brain")
        jobs = _section(config, "jobs")
        identity = _section(config, "identity")
        rate_limit = _section(config, "rate_limit")
        paths = _section(config, "paths")

        brain_root_value = env.get("SHIPYARD_BRAIN_ROOT") or brain.get("root")
        workdir_value = env.get("SHIPYARD_WORKDIR") or jobs.get("workdir")
        run_verification = jobs.get("run_verification", False)
        if env.get("SHIPYARD_RUN_VERIFICATION") is not None:
            run_verification = env.get("SHIPYARD_RUN_VERIFICATION") == "1"

        branch_prefix = str(jobs.get("branch_prefix") or "shipyard/sandbox").strip().rstrip("/")
        if not branch_prefix:
            raise ConfigError("Config value jobs.branch_prefix must not be empty.")

        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
            planner_model=str(models.get("planner") or DEFAULT_MODEL),
            max_tokens=int(_number("models", "max_tokens", models.get("max_tokens"))),
            model_timeout=_number("models", "timeout", models.get("timeout")),
            model_base_url=str(models.get("base_url")),
            github_api_url=str(github.get("api_url")),
            github_host=str(github.get("host") or "github.com"),
            brain_root=_path(brain_root_value, base) if brain_root_value else None,
            brain_namespace=str(env.get("SHIPYARD_BRAIN_NAMESPACE") or brain.get("namespace") or DEFAULT_NAMESPACE),
            brain_bucket=str(env.get("SHIPYARD_BRAIN_BUCKET") or brain.get("bucket") or "") or None,
            brain_project=str(env.get("GOOGLE_CLOUD_PROJECT") or brain.get("project") or "") or None,
            workdir=_path(workdir_value, base),
            logs_root=_path(paths.get("logs") or "data/logs", base),
            run_verification=_flag(run_verification),
            keep_workspaces=_flag(jobs.get("keep_workspaces", False)),
            command_timeout=_number("jobs", "command_timeout", jobs.get("command_timeout")),
            branch_prefix=branch_prefix,
            identity_name=env.get("GIT_AUTHOR_NAME") or str(identity.get("name")),
            identity_email=env.get("GIT_AUTHOR_EMAIL") or str(identity.get("email")),
            rate_limit_window=_number("rate_limit", "window_seconds", rate_limit.get("window_seconds")),
            rate_limit_max=int(_number("rate_limit", "max_requests", rate_limit.get("max_requests"))),
        )

    def require_credentials(self) -> None:
        """Fail fast before any workspace is touched."""
        missing = [
            name
            for name, value in (("ANTHROPIC_API_KEY", self.anthropic_api_key), ("GITHUB_TOKEN", self.github_token))
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

    def open_store(self, *, client: Any = None) -> StateStore:
        """Build the brain: the GCS bucket when configured, else ``brain_root``."""
        try:
            return StateStore.from_config(
                bucket=self.brain_bucket,
                root=self.brain_root,
                namespace=self.brain_namespace,
                project=self.brain_project,
                client=client,
            )
        except GoogleAuthError as error:
            raise ConfigError(f"Google Cloud credentials unavailable for the brain bucket: {error}") from error
        except ValueError as error:
            raise ConfigError(f"Invalid brain configuration: {error}") from error


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "Settings",
    "copy_config_template",
    "read_config",
    "write_config",
]

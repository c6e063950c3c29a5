"""CLI commands for running sandboxed change jobs and inspecting the brain."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .brain.schema import RepoState, ThreadState
from .brain.store import StateStore
from .config import (
    DEFAULT_CONFIG_NAME,
    Settings,
    copy_config_template,
    read_config,
    write_config,
)
from .errors import ConfigError, ShipyardError
from .runner import JobRunner
from .tools.commands import BLOCKED_SUBSTRINGS, CommandValidator, Program
from .utils.parse import parse_owner_repo, parse_task_block, strip_mentions

APP_HELP = "Shipyard CLI: turn a task into a reviewed pull request."

app = typer.Typer(help=APP_HELP)
brain_app = typer.Typer(help="Inspect and reset persisted thread and repository state.")
app.add_typer(brain_app, name="brain")

CONFIG_OPTION_HELP = "Path to the Shipyard configuration file."


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_settings(config_path: Path) -> Settings:
    """Load YAML configuration from disk and resolve it against the environment."""
    try:
        data = read_config(config_path)
        return Settings.from_mapping(data, base_dir=config_path.parent)
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}", err=True)
        raise typer.Exit(code=2) from error


def _open_store(settings: Settings) -> StateStore:
    try:
        store = settings.open_store()
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}", err=True)
        raise typer.Exit(code=2) from error
    if not store.enabled:
        typer.echo("Brain storage is not configured (brain.root / brain.bucket).", err=True)
        raise typer.Exit(code=2)
    return store


def _dump(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str))


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_config(config_path, copy_config_template())
    typer.echo(f"Wrote default configuration to {config_path}")


@app.command()
def run(
    task: List[str] = typer.Argument(None, help="Task description for the agent."),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Target repository as owner/repo."),
    thread: Optional[str] = typer.Option(None, "--thread", "-t", help="Conversation thread key."),
    message: Optional[str] = typer.Option(
        None,
        "--message",
        "-m",
        help="Raw message containing 'repo: owner/name' and 'task: ...' lines.",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Clone the repository, apply a planned change and open a pull request."""
    task_text = " ".join(task or []).strip()
    if message:
        block = parse_task_block(strip_mentions(message))
        if block is None:
            typer.echo("Message must contain a 'task:' line.", err=True)
            raise typer.Exit(code=1)
        task_text = task_text or block.task
        if repo is None and block.repo is not None:
            repo = block.repo.full_name
    if not task_text:
        typer.echo("A task is required.", err=True)
        raise typer.Exit(code=1)

    settings = load_settings(Path(config))
    try:
        runner = JobRunner.from_settings(settings)
        runner.emitter.subscribe(lambda event: typer.echo(event.render()))
        result = runner.run(task_text, repo=repo, thread_key=thread)
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}", err=True)
        raise typer.Exit(code=2) from error
    except ShipyardError as error:
        typer.echo(f"Job failed: {error}", err=True)
        raise typer.Exit(code=1) from error

    typer.echo(f"PR created: {result.url}")
    typer.echo(f"Branch: {result.branch}")
    typer.echo(f"Job: {result.job_id}")


@app.command()
def validate(
    program: str = typer.Argument(..., help="Program a plan step would run."),
    args: List[str] = typer.Argument(None, help="Arguments of the step."),
) -> None:
    """Check a command against the execution allowlist without running it."""
    arguments = list(args or [])
    rendered = " ".join([program, *arguments])
    if CommandValidator().allowed(program, arguments):
        typer.echo(f"allowed: {rendered}")
        return
    if Program.parse(program) is None:
        allowed_programs = ", ".join(item.value for item in Program)
        typer.echo(f"blocked: {rendered} (program not in allowlist: {allowed_programs})")
    else:
        typer.echo(f"blocked: {rendered} (matches a blocked pattern: {', '.join(BLOCKED_SUBSTRINGS)})")
    raise typer.Exit(code=1)


@brain_app.command("status")
def brain_status(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation thread key."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Summarise what the brain remembers for a thread."""
    store = _open_store(load_settings(Path(config)))
    record = store.load_thread(thread)
    if record is None:
        typer.echo(f"No state stored for thread {thread}.")
        return
    state = ThreadState.from_record(record)
    typer.echo(f"Thread: {thread}")
    typer.echo(f"Last repo: {state.last_repo or '-'}")
    typer.echo(f"Last task: {state.last_task or '-'}")
    typer.echo(f"Last PR: {state.last_pr_url or '-'}")
    typer.echo(f"Last branch: {state.last_branch or '-'}")
    typer.echo(f"Last job: {state.last_job_id or '-'}")
    error = state.error()
    if error.present:
        typer.echo(f"Last error ({error.context or 'unknown'}): {error.message}")


@brain_app.command("show")
def brain_show(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation thread key."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Print the raw thread record as JSON."""
    store = _open_store(load_settings(Path(config)))
    _dump(store.load_thread(thread) or {})


@brain_app.command("last-error")
def brain_last_error(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation thread key."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Show the most recent failure recorded for a thread."""
    store = _open_store(load_settings(Path(config)))
    error = ThreadState.from_record(store.load_thread(thread) or {}).error()
    if not error.present:
        typer.echo("No error recorded for this thread.")
        return
    payload: Dict[str, Any] = error.model_dump(by_alias=True)
    _dump(payload)


@brain_app.command("reset")
def brain_reset(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation thread key."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Forget the thread's remembered repository, task, plan and error."""
    store = _open_store(load_settings(Path(config)))
    store.reset_thread(thread)
    typer.echo(f"Cleared state for thread {thread}.")


@brain_app.command("repo")
def brain_repo(
    target: str = typer.Argument(..., help="Repository as owner/repo."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Summarise what the brain remembers for a repository."""
    ref = parse_owner_repo(target)
    if ref is None:
        typer.echo(f"Expected owner/repo, got {target!r}.", err=True)
        raise typer.Exit(code=1)
    store = _open_store(load_settings(Path(config)))
    record = store.load_repo(ref.owner, ref.repo)
    if record is None:
        typer.echo(f"No state stored for {ref.full_name}.")
        return
    state = RepoState.from_record(record)
    typer.echo(f"Repository: {ref.full_name}")
    typer.echo(f"Last PR: {state.last_pr_url or '-'}")
    typer.echo(f"Last branch: {state.last_branch or '-'}")
    typer.echo(f"Last touched: {state.last_touched_at or '-'}")
    if state.preferences:
        rendered = ", ".join(f"{key}={value}" for key, value in sorted(state.preferences.items()))
        typer.echo(f"Preferences: {rendered}")


if __name__ == "__main__":
    app()

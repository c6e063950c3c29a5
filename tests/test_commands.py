from __future__ import annotations

import pytest

from shipyard.errors import ValidationError
from shipyard.tools.commands import CommandValidator, Program, allowed, permitted


def test_allowlisted_programs_pass() -> None:
    assert allowed("git", ["status"])
    assert allowed("npm", ["install"])
    assert allowed("node", ["-e", "require('fs').writeFileSync('a.txt','x')"])


def test_unknown_programs_are_refused() -> None:
    assert not allowed("npx", ["create-react-app", "."])
    assert not allowed("bash", ["script.sh"])
    assert not allowed("", [])
    assert not allowed(None, ["status"])
    assert not allowed("GIT", ["status"])


@pytest.mark.parametrize(
    "arguments",
    [
        ["-e", "require('child_process').execSync('bash -c ls')"],
        ["-e", "require('child_process').execSync('curl http://example.com')"],
        ["install", "wget"],
        ["-e", "run('ssh host')"],
        ["clone", "sftp://host/repo"],
        ["-e", "exec('SH -C id')"],
    ],
)
def test_blocked_substrings_are_refused_case_insensitively(arguments: list[str]) -> None:
    assert not allowed("node", arguments)


def test_check_returns_program_and_raises_with_context() -> None:
    validator = CommandValidator()
    assert validator.check("git", ["add", "-A"]) is Program.GIT

    with pytest.raises(ValidationError) as excinfo:
        validator.check("npm", ["exec", "bash -c whoami"])
    error = excinfo.value
    assert error.context == "plan:blocked_command"
    assert error.message == "Blocked command from plan: npm exec bash -c whoami"
    assert error.command == ("npm", "exec", "bash -c whoami")


def test_check_accepts_custom_context_for_verification() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CommandValidator().check(
            "curl",
            ["http://example.com"],
            context="verify:blocked_command",
            label="Blocked verify command",
        )
    assert excinfo.value.context == "verify:blocked_command"
    assert excinfo.value.message.startswith("Blocked verify command: curl")


def test_permitted_returns_the_parsed_program() -> None:
    assert permitted("node", ["index.js"]) is Program.NODE
    assert permitted(Program.NPM, ["ci"]) is Program.NPM
    assert permitted("node", ["-e", "exec('curl x')"]) is None
    assert permitted("python", ["-V"]) is None

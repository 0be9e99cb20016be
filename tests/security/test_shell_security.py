"""
Security tests for command execution.

These tests verify that run_command never interprets shell syntax and that
the default rules block unlisted executables and destructive command lines.

Attack vectors tested:
- Shell metacharacters in arguments (;, &&, |, $(...), backticks)
- Destructive tokens hidden behind an allowed prefix
- Case tricks on destructive tokens
- Executables outside the whitelist
- Read-only command prefixes carrying writing flags, env or an outside cwd
"""

import sys
from pathlib import Path

import pytest

from toolgate.config import GateConfig
from toolgate.errors import ArgumentValidationError
from toolgate.policy import PolicyEngine
from toolgate.schema import Decision, ToolCallState
from toolgate.tools import RunCommandTool, ToolContext

ECHO_ARGV1 = ["-c", "import sys; print(sys.argv[1])"]


@pytest.fixture
def engine(temp_dir: Path) -> PolicyEngine:
    return PolicyEngine(GateConfig().policy_rules(), working_dir=temp_dir)


@pytest.fixture
def context(temp_dir: Path) -> ToolContext:
    return ToolContext(working_dir=str(temp_dir), command_timeout_seconds=30)


def evaluate(engine: PolicyEngine, command: str, *args: str):
    return engine.evaluate("run_command", {"command": command, "args": list(args)})


class TestShellInjectionPrevention:
    """Tests that metacharacters reach the program as literal text."""

    @pytest.mark.parametrize(
        "payload",
        [
            "hello; rm -rf /",
            "hello && touch pwned",
            "hello | cat /etc/passwd",
            "$(touch pwned)",
            "`touch pwned`",
        ],
    )
    def test_payload_is_one_argument(
        self, payload: str, context: ToolContext, temp_dir: Path
    ) -> None:
        tool = RunCommandTool()
        args = tool.validate_args({"command": sys.executable, "args": [*ECHO_ARGV1, payload]})
        output = tool.execute(args, context)

        assert output.success
        assert output.data["stdout"].strip() == payload
        assert not (temp_dir / "pwned").exists()

    def test_string_args_rejected(self) -> None:
        """Test that a single command-line string cannot be passed as args."""
        with pytest.raises(ArgumentValidationError):
            RunCommandTool().validate_args({"command": "echo", "args": "hello; rm -rf /"})


class TestExecutableWhitelist:
    """Tests for the command_not_whitelisted rule."""

    @pytest.mark.parametrize("command", ["rm", "curl", "bash", "sh", "powershell"])
    def test_unlisted_denied(self, engine: PolicyEngine, command: str) -> None:
        decision = evaluate(engine, command)
        assert decision.decision == Decision.DENY
        assert decision.rule_matched == "command_not_whitelisted"

    def test_full_path_to_listed_executable(self, engine: PolicyEngine) -> None:
        decision = evaluate(engine, "/usr/bin/git", "commit", "-m", "x")
        assert decision.decision == Decision.REQUIRE_APPROVAL

    def test_custom_whitelist(self, temp_dir: Path) -> None:
        config = GateConfig(whitelisted_commands=["make"])
        engine = PolicyEngine(config.policy_rules(), working_dir=temp_dir)
        assert evaluate(engine, "make", "build").decision == Decision.REQUIRE_APPROVAL
        assert evaluate(engine, "git", "status").decision == Decision.DENY


class TestDestructiveTokens:
    """Tests for the destructive_command rule."""

    @pytest.mark.parametrize(
        ("args", "denied"),
        [
            (["status"], False),
            (["push", "origin", "main"], False),
            (["push", "--force"], True),
            (["reset", "--hard", "HEAD~1"], True),
            (["RESET", "--HARD"], True),
            (["log", "--grep", "reboot"], True),
        ],
    )
    def test_git_command_lines(
        self, engine: PolicyEngine, args: list[str], denied: bool
    ) -> None:
        decision = evaluate(engine, "git", *args)
        assert decision.denied is denied

    def test_destructive_after_read_only_prefix(self, engine: PolicyEngine) -> None:
        """Test that an auto-approved prefix cannot smuggle a destructive tail."""
        decision = evaluate(engine, "git", "status;", "rm", "-rf", "/")
        assert decision.decision == Decision.DENY
        assert decision.rule_matched == "destructive_command"

    def test_token_inside_word_not_matched(self, engine: PolicyEngine) -> None:
        decision = evaluate(engine, "npm", "run", "shutdownhooks")
        assert not decision.denied


class TestReadOnlyCommands:
    """Tests that only plainly read-only command lines skip review."""

    @pytest.mark.parametrize(
        ("command", "args"),
        [
            ("git", ["status", "--short"]),
            ("git", ["log", "--oneline", "-n", "5"]),
            ("git", ["diff", "--stat", "HEAD~1", "--", "src"]),
            ("npm", ["list", "--depth=0"]),
        ],
    )
    def test_plain_reads_auto_approved(
        self, engine: PolicyEngine, command: str, args: list[str]
    ) -> None:
        decision = evaluate(engine, command, *args)
        assert decision.decision == Decision.AUTO_APPROVE
        assert decision.rule_matched == "read_only_commands"

    @pytest.mark.parametrize(
        "args",
        [
            ["diff", "--no-index", "--output=victim.txt", "a", "b"],
            ["diff", "--ext-diff", "a", "b"],
            ["log", "--output", "victim.txt"],
            ["-c", "core.pager=sh", "log"],
            ["status", "--upload-pack=evil"],
            ["log", "--exec-path=/tmp"],
            ["diff", "--no-index", "a", "b"],
        ],
    )
    def test_unlisted_flags_need_review(self, engine: PolicyEngine, args: list[str]) -> None:
        decision = evaluate(engine, "git", *args)
        assert decision.decision == Decision.REQUIRE_APPROVAL

    def test_environment_needs_review(self, engine: PolicyEngine) -> None:
        decision = engine.evaluate(
            "run_command",
            {"command": "git", "args": ["diff"], "env": {"GIT_EXTERNAL_DIFF": "./evil.sh"}},
        )
        assert decision.decision == Decision.REQUIRE_APPROVAL

    def test_cwd_inside_working_dir_allowed(self, engine: PolicyEngine, temp_dir: Path) -> None:
        (temp_dir / "sub").mkdir()
        decision = engine.evaluate(
            "run_command", {"command": "git", "args": ["status"], "cwd": "sub"}
        )
        assert decision.decision == Decision.AUTO_APPROVE

    def test_cwd_outside_working_dir_denied(self, engine: PolicyEngine) -> None:
        decision = engine.evaluate(
            "run_command", {"command": "git", "args": ["status"], "cwd": "/"}
        )
        assert decision.decision == Decision.DENY
        assert decision.rule_matched == "outside_allowed_paths[cwd]"

    def test_full_path_executable_needs_review(self, engine: PolicyEngine) -> None:
        decision = evaluate(engine, "/usr/bin/git", "status")
        assert decision.decision == Decision.REQUIRE_APPROVAL

    def test_output_flag_never_runs_unapproved(self, coordinator, temp_dir: Path) -> None:
        """Test that a diff writing over a file waits for a human."""
        victim = temp_dir / "victim.txt"
        victim.write_text("precious")
        (temp_dir / "a").write_text("a")
        (temp_dir / "b").write_text("b")

        call_id = coordinator.propose(
            "run_command",
            {"command": "git", "args": ["diff", "--no-index", f"--output={victim}", "a", "b"]},
        )
        assert coordinator.get(call_id).state == ToolCallState.PENDING_APPROVAL
        assert victim.read_text() == "precious"

    def test_external_diff_never_runs_unapproved(self, coordinator, temp_dir: Path) -> None:
        """Test that an env-supplied diff program waits for a human."""
        marker = temp_dir / "marker"
        script = temp_dir / "evil.sh"
        script.write_text(f"#!/bin/sh\ntouch {marker}\n")
        script.chmod(0o755)

        call_id = coordinator.propose(
            "run_command",
            {
                "command": "git",
                "args": ["diff", "--no-index", "--ext-diff", "a", "b"],
                "env": {"GIT_EXTERNAL_DIFF": str(script)},
            },
        )
        assert coordinator.get(call_id).state == ToolCallState.PENDING_APPROVAL
        assert not marker.exists()

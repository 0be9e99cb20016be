"""
Command execution tool for Toolgate.

This module provides:
- run_command: Execute a program with an argument list

Security Note:
    Which executables may run is a policy concern (the default rules deny
    anything outside the configured whitelist and any destructive token).
    By the time execute() is called the call has been approved.

    CRITICAL SECURITY MEASURES:
    - The program and its arguments are passed as a list (NO shell=True)
    - Shell metacharacters in arguments are passed through literally
    - Timeout enforcement to prevent runaway processes
    - Output size limits to prevent memory exhaustion
"""

import os
import subprocess
from pathlib import Path

from pydantic import Field, field_validator

from toolgate.schema import PredictedEffects
from toolgate.tools.base import Tool, ToolArguments, ToolContext, ToolOutput


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")


def _truncate(stdout: bytes, stderr: bytes, limit: int) -> tuple[bytes, bytes, bool]:
    """Split the output budget between the two streams."""
    if len(stdout) + len(stderr) <= limit:
        return stdout, stderr, False

    marker = f"\n... [truncated, exceeded {limit} bytes]".encode()
    half = max(limit // 2 - len(marker), 0)
    if len(stdout) > limit // 2:
        stdout = stdout[:half] + marker
    if len(stderr) > limit // 2:
        stderr = stderr[:half] + marker
    return stdout, stderr, True


# Known side effects by executable and first argument
COMMAND_EFFECTS: dict[str, dict[str, list[str]]] = {
    "npm": {
        "install": [
            "create/update node_modules",
            "may update package-lock.json",
        ],
    },
    "pnpm": {
        "install": ["create/update node_modules", "may update pnpm-lock.yaml"],
    },
    "yarn": {
        "install": ["create/update node_modules", "may update yarn.lock"],
    },
    "git": {
        "commit": ["create a new commit"],
        "push": ["push commits to the remote repository"],
        "pull": ["fetch and merge changes from the remote"],
        "checkout": ["switch branches or restore working tree files"],
    },
    "cargo": {
        "build": ["compile the Rust project", "create/update target/"],
    },
    "docker": {
        "build": ["build a Docker image"],
        "run": ["start a Docker container"],
        "stop": ["stop running container(s)"],
    },
}

SCRIPT_RUNNERS = ("npm", "pnpm", "yarn")


def predict_effects(command: str, args: list[str]) -> list[str]:
    """Best-effort list of what a command line will change."""
    executable = Path(command).name
    subcommand = args[0] if args else ""

    if executable in SCRIPT_RUNNERS and subcommand == "run":
        script = args[1] if len(args) > 1 else ""
        return [f"run {executable} script: {script}"]

    known = COMMAND_EFFECTS.get(executable)
    if known is None:
        return [f"execute: {' '.join([command, *args])}"]
    return list(known.get(subcommand, []))


class RunCommandTool(Tool):
    """
    Execute a program safely.

    Arguments:
        command (str): Executable name or path (required)
        args (list): Arguments passed to the executable, default []
        cwd (str): Working directory, default the context's working directory
        env (dict): Extra environment variables merged over the current ones
        timeout (float): Timeout in seconds, default from configuration

    Returns:
        On success (the process ran): Dict with return_code, stdout, stderr.
        A non-zero exit code is reported as a failure carrying the same dict.

    Why arguments must be a list:
        With a shell, "echo hello; rm -rf /" runs two commands. Here
        {"command": "echo", "args": ["hello; rm -rf /"]} prints one string.
    """

    name = "run_command"
    description = "Run a program with an argument list (never through a shell)"
    mutates = True
    # Side effects of arbitrary programs can't be enumerated up front
    snapshot = False

    class Arguments(ToolArguments):
        command: str = Field(..., min_length=1)
        args: list[str] = Field(default_factory=list)
        cwd: str | None = None
        env: dict[str, str] = Field(default_factory=dict)
        timeout: float | None = Field(default=None, gt=0)

        @field_validator("command")
        @classmethod
        def not_blank(cls, v: str) -> str:
            if not v.strip():
                msg = "command cannot be empty"
                raise ValueError(msg)
            return v

    @staticmethod
    def command_line(args: Arguments) -> str:
        return " ".join([args.command, *args.args])

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        cwd = args.cwd or context.working_dir
        effects = predict_effects(args.command, args.args)
        effects.append(f"working directory: {cwd}")
        if args.env:
            effects.append(f"environment overrides: {', '.join(sorted(args.env))}")
        return PredictedEffects(
            summary=f"Would run: {self.command_line(args)}",
            effects=effects,
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        argv = [args.command, *args.args]
        timeout_seconds = args.timeout or context.command_timeout_seconds

        cwd_path = context.resolve(args.cwd or ".")
        if not cwd_path.is_dir():
            return ToolOutput.fail(
                f"Working directory does not exist: {args.cwd or context.working_dir}",
                cwd=str(cwd_path),
            )

        env = os.environ.copy()
        env.update(args.env)

        try:
            result = subprocess.run(
                argv,
                cwd=str(cwd_path),
                env=env,
                capture_output=True,
                timeout=timeout_seconds,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            return ToolOutput.fail(
                f"Command timed out after {timeout_seconds} seconds",
                cmd=argv,
                timeout=timeout_seconds,
            )
        except FileNotFoundError:
            return ToolOutput.fail(f"Executable not found: {args.command}", executable=args.command)
        except PermissionError:
            return ToolOutput.fail(
                f"Permission denied executing: {args.command}",
                executable=args.command,
            )
        except OSError as e:
            return ToolOutput.fail(
                f"OS error executing command: {e}",
                cmd=argv,
                error_type=type(e).__name__,
            )

        stdout, stderr, truncated = _truncate(
            result.stdout, result.stderr, context.max_output_bytes
        )
        data = {
            "return_code": result.returncode,
            "stdout": _decode(stdout),
            "stderr": _decode(stderr),
        }
        metadata = {
            "cmd": argv,
            "cwd": str(cwd_path),
            "return_code": result.returncode,
            "truncated": truncated,
        }

        if result.returncode != 0:
            return ToolOutput(
                success=False,
                data=data,
                error=f"Command exited with status {result.returncode}",
                metadata=metadata,
            )
        return ToolOutput.ok(data, **metadata)

"""
Git tools for Toolgate.

This module provides repository tools backed by the ``git`` binary:
- git_status: Branch plus modified, staged and untracked files
- git_log: Recent commits
- git_diff: Working tree or staged diff
- git_commit: Stage files and commit (mutating)
- git_create_branch: Create a branch at HEAD without switching (mutating)

Every tool takes a ``repo`` argument (default ".") resolved against the
working directory. Git is always invoked with an argument list.
"""

import subprocess
from pathlib import Path

from pydantic import Field, field_validator

from toolgate.schema import PredictedEffects
from toolgate.tools.base import Tool, ToolArguments, ToolContext, ToolOutput

LOG_FORMAT = "%H%x1f%an%x1f%aI%x1f%s"
FIELD_SEPARATOR = "\x1f"


class RepoArguments(ToolArguments):
    repo: str = "."


def run_git(argv: list[str], repo: Path, context: ToolContext) -> ToolOutput:
    """
    Run ``git -C repo <argv>`` and capture the result.

    A non-zero exit status is returned as a failure whose error is git's
    stderr.
    """
    if not repo.is_dir():
        return ToolOutput.fail(f"Repository directory does not exist: {repo}", repo=str(repo))

    cmd = ["git", "-C", str(repo), *argv]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            timeout=context.command_timeout_seconds,
            shell=False,
        )
    except subprocess.TimeoutExpired:
        return ToolOutput.fail(
            f"git timed out after {context.command_timeout_seconds} seconds",
            cmd=cmd,
        )
    except FileNotFoundError:
        return ToolOutput.fail("Executable not found: git", executable="git")
    except OSError as e:
        return ToolOutput.fail(f"OS error executing git: {e}", cmd=cmd)

    stdout = result.stdout.decode("utf-8", errors="replace")
    stderr = result.stderr.decode("utf-8", errors="replace")
    if result.returncode != 0:
        return ToolOutput.fail(
            stderr.strip() or f"git exited with status {result.returncode}",
            cmd=cmd,
            return_code=result.returncode,
        )
    return ToolOutput.ok(stdout, cmd=cmd, repo=str(repo))


def parse_status(porcelain: str) -> dict[str, object]:
    """Parse ``git status --porcelain=v1 --branch`` output."""
    branch = "HEAD"
    modified: list[str] = []
    staged: list[str] = []
    untracked: list[str] = []

    for line in porcelain.splitlines():
        if line.startswith("## "):
            header = line[3:]
            if header.startswith("No commits yet on "):
                branch = header[len("No commits yet on "):]
            else:
                branch = header.split("...", 1)[0].split(" ", 1)[0]
            continue
        if len(line) < 4:
            continue
        index_status, tree_status, path = line[0], line[1], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if index_status == "?" and tree_status == "?":
            untracked.append(path)
            continue
        if index_status in "MADRC":
            staged.append(path)
        if tree_status in "MD":
            modified.append(path)

    return {
        "branch": branch,
        "modified": modified,
        "staged": staged,
        "untracked": untracked,
    }


class GitStatusTool(Tool):
    name = "git_status"
    description = "Show the branch and changed files of a repository"

    class Arguments(RepoArguments):
        pass

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary=f"Read git status of {args.repo}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        output = run_git(["status", "--porcelain=v1", "--branch"], context.resolve(args.repo), context)
        if not output.success:
            return output
        return ToolOutput.ok(parse_status(output.data), **output.metadata)


class GitLogTool(Tool):
    """Returns a list of ``{"hash", "author", "date", "subject"}`` dicts, newest first."""

    name = "git_log"
    description = "List recent commits of a repository"

    class Arguments(RepoArguments):
        max_count: int = Field(default=10, gt=0, le=1000)

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary=f"Read last {args.max_count} commits of {args.repo}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        output = run_git(
            ["log", f"--max-count={args.max_count}", f"--pretty=format:{LOG_FORMAT}"],
            context.resolve(args.repo),
            context,
        )
        if not output.success:
            return output

        commits = []
        for line in output.data.splitlines():
            parts = line.split(FIELD_SEPARATOR)
            if len(parts) != 4:
                continue
            commit_hash, author, date, subject = parts
            commits.append({"hash": commit_hash, "author": author, "date": date, "subject": subject})
        return ToolOutput.ok(commits, **output.metadata)


class GitDiffTool(Tool):
    name = "git_diff"
    description = "Show the working tree or staged diff of a repository"

    class Arguments(RepoArguments):
        staged: bool = False
        paths: list[str] = Field(default_factory=list)

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        which = "staged" if args.staged else "working tree"
        return PredictedEffects(summary=f"Read {which} diff of {args.repo}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        argv = ["diff"]
        if args.staged:
            argv.append("--cached")
        if args.paths:
            argv.extend(["--", *args.paths])
        return run_git(argv, context.resolve(args.repo), context)


class GitCommitTool(Tool):
    """
    Stage the given files (or everything already staged) and commit.

    Returns ``{"commit_hash", "files"}``.
    """

    name = "git_commit"
    description = "Stage files and create a commit"
    mutates = True
    # Commits are reversible through git itself
    snapshot = False

    class Arguments(RepoArguments):
        message: str = Field(..., min_length=1)
        files: list[str] = Field(default_factory=list)

        @field_validator("message")
        @classmethod
        def not_blank(cls, v: str) -> str:
            if not v.strip():
                msg = "commit message cannot be empty"
                raise ValueError(msg)
            return v

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        effects = [f"stage {f}" for f in args.files]
        effects.append(f"commit in {args.repo}: {args.message.splitlines()[0]}")
        return PredictedEffects(summary=f"Would commit to {args.repo}", effects=effects)

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        repo = context.resolve(args.repo)
        if args.files:
            staged = run_git(["add", "--", *args.files], repo, context)
            if not staged.success:
                return staged

        committed = run_git(["commit", "-m", args.message], repo, context)
        if not committed.success:
            return committed

        head = run_git(["rev-parse", "HEAD"], repo, context)
        if not head.success:
            return head
        return ToolOutput.ok(
            {"commit_hash": head.data.strip(), "files": list(args.files)},
            repo=str(repo),
        )


class GitCreateBranchTool(Tool):
    name = "git_create_branch"
    description = "Create a branch at HEAD without switching to it"
    mutates = True
    snapshot = False

    class Arguments(RepoArguments):
        branch_name: str = Field(..., min_length=1)

        @field_validator("branch_name")
        @classmethod
        def no_option_like_names(cls, v: str) -> str:
            if v.startswith("-") or any(ch.isspace() for ch in v):
                msg = "branch name must not start with '-' or contain whitespace"
                raise ValueError(msg)
            return v

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(
            summary=f"Would create branch {args.branch_name}",
            effects=[f"create ref refs/heads/{args.branch_name} in {args.repo}"],
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        output = run_git(["branch", args.branch_name], context.resolve(args.repo), context)
        if not output.success:
            return output
        return ToolOutput.ok({"branch_name": args.branch_name}, **output.metadata)


GIT_TOOLS: tuple[type[Tool], ...] = (
    GitStatusTool,
    GitLogTool,
    GitDiffTool,
    GitCommitTool,
    GitCreateBranchTool,
)

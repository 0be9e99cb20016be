"""
Default rule set.

Read-only operations run without confirmation, anything that changes state
waits for a human, and a short list of destructive operations is refused
outright. User rules from the configuration are evaluated alongside these.
"""

from toolgate.schema import ArgumentPredicate, Decision, PolicyRule

READ_ONLY_TOOLS = (
    "read_file",
    "list_directory",
    "stat",
    "git_status",
    "git_log",
    "git_diff",
    "get_system_info",
)

READ_ONLY_COMMAND_PREFIXES = [
    "git status",
    "git log",
    "git diff",
    "npm list",
]

READ_ONLY_EXECUTABLES = ["git", "npm"]

# Flags that only change what is printed. Anything else (--output,
# --ext-diff, -c, --exec-path, --upload-pack, ...) goes to a human.
READ_ONLY_COMMAND_FLAGS = [
    "--",
    "-p",
    "--patch",
    "--stat",
    "--shortstat",
    "--numstat",
    "--name-only",
    "--name-status",
    "--cached",
    "--staged",
    "--oneline",
    "--graph",
    "--decorate",
    "--reverse",
    "--all",
    "--no-color",
    "-n",
    "--max-count=",
    "--since=",
    "--until=",
    "--author=",
    "--format=",
    "--pretty=",
    "-s",
    "--short",
    "-b",
    "--branch",
    "--porcelain",
    "--json",
    "--long",
    "--parseable",
    "--depth=",
]

DESTRUCTIVE_TOKENS = [
    "rm -rf",
    "mkfs",
    "shutdown",
    "reboot",
    "del /s",
    "push --force",
    "reset --hard",
]

SYSTEM_DIRECTORIES = [
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "C:\\Windows",
]

FILE_WRITE_TOOLS = ("create_file", "write_file", "delete_file", "move_file")

# Tools that write to a second path besides the one in `path`
DESTINATION_TOOLS = ("move_file", "copy_file")

COMMAND_LINE = ["command", "args"]


def default_rules(
    whitelisted_commands: list[str],
    allowed_paths: list[str] | None = None,
) -> list[PolicyRule]:
    """
    Build the default rules.

    Args:
        whitelisted_commands: Executables run_command may start
        allowed_paths: Roots that path arguments must stay under; the
                       working directory when empty
    """
    rules = [
        PolicyRule(
            name=f"read_only[{tool}]",
            tool=tool,
            decision=Decision.AUTO_APPROVE,
        )
        for tool in READ_ONLY_TOOLS
    ]

    rules.append(
        PolicyRule(
            name="read_only_commands",
            tool="run_command",
            when=[
                ArgumentPredicate(
                    kind="one_of",
                    args=["command"],
                    values=READ_ONLY_EXECUTABLES,
                ),
                ArgumentPredicate(
                    kind="prefix",
                    args=COMMAND_LINE,
                    values=READ_ONLY_COMMAND_PREFIXES,
                ),
                ArgumentPredicate(
                    kind="flags_within",
                    args=["args"],
                    values=READ_ONLY_COMMAND_FLAGS,
                ),
                ArgumentPredicate(kind="empty", args=["env"]),
                ArgumentPredicate(
                    kind="path_prefix",
                    args=["cwd"],
                    values=["."],
                    optional=True,
                ),
            ],
            decision=Decision.AUTO_APPROVE,
        )
    )
    rules.append(
        PolicyRule(
            name="command_not_whitelisted",
            tool="run_command",
            when=[
                ArgumentPredicate(
                    kind="executable",
                    args=["command"],
                    values=list(whitelisted_commands),
                    negate=True,
                )
            ],
            decision=Decision.DENY,
        )
    )
    rules.append(
        PolicyRule(
            name="destructive_command",
            tool="run_command",
            when=[
                ArgumentPredicate(
                    kind="contains_token",
                    args=COMMAND_LINE,
                    values=DESTRUCTIVE_TOKENS,
                )
            ],
            decision=Decision.DENY,
        )
    )

    for tool in FILE_WRITE_TOOLS:
        rules.append(
            PolicyRule(
                name=f"system_directory[{tool}]",
                tool=tool,
                when=[
                    ArgumentPredicate(
                        kind="path_prefix",
                        args=["path"],
                        values=SYSTEM_DIRECTORIES,
                    )
                ],
                decision=Decision.DENY,
            )
        )
    for tool in DESTINATION_TOOLS:
        rules.append(
            PolicyRule(
                name=f"system_directory[{tool}.destination]",
                tool=tool,
                when=[
                    ArgumentPredicate(
                        kind="path_prefix",
                        args=["destination"],
                        values=SYSTEM_DIRECTORIES,
                    )
                ],
                decision=Decision.DENY,
            )
        )

    # "." resolves against the engine's working directory
    roots = list(allowed_paths) if allowed_paths else ["."]
    for arg in ("path", "destination", "repo", "cwd"):
        rules.append(
            PolicyRule(
                name=f"outside_allowed_paths[{arg}]",
                tool="*",
                when=[
                    ArgumentPredicate(
                        kind="path_prefix",
                        args=[arg],
                        values=roots,
                        negate=True,
                    )
                ],
                decision=Decision.DENY,
            )
        )

    return rules

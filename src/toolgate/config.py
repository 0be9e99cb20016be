"""
Configuration for Toolgate.

A single GateConfig carries every tunable of a session: token lifetime,
persistence locations, execution limits and the policy rule set. It is
loaded from YAML and validated strictly (unknown keys are errors).

Example gate.yaml:

    token_ttl_seconds: 120
    audit_db_path: ./audit.db
    allowed_paths:
      - ~/projects
    rules:
      - name: trust-formatter
        tool: run_command
        when:
          - kind: prefix
            args: [command, args]
            values: ["npx prettier"]
        decision: auto_approve
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from toolgate.errors import ConfigError
from toolgate.policy.defaults import default_rules
from toolgate.schema import PolicyRule

DEFAULT_TOKEN_TTL_SECONDS = 300
DEFAULT_PENDING_TIMEOUT_SECONDS = 3600

DEFAULT_WHITELISTED_COMMANDS = [
    "git",
    "npm",
    "pnpm",
    "yarn",
    "node",
    "python",
    "python3",
    "cargo",
    "rustc",
    "dotnet",
    "code",
    "docker",
]


class GateConfig(BaseModel):
    """
    Complete session configuration.

    Attributes:
        token_ttl_seconds: Lifetime of an approval token
        pending_timeout_seconds: Age after which the sweeper expires a call
                                 still waiting for approval (None disables)
        auto_execute: Run auto-approved calls immediately on propose
        audit_db_path: SQLite file holding the audit log
        snapshot_dir: Directory holding snapshot copies and index
        working_dir: Base for relative paths passed to tools
        hash_chain: Chain audit entries with SHA-256
        recent_activity_size: Capacity of the in-memory recent-activity view
        allowed_paths: Roots that path arguments must stay under (the
                       working directory when empty)
        whitelisted_commands: Executables run_command may start
        command_timeout_seconds: Default run_command timeout
        max_output_bytes: Cap on captured command output
        max_file_size: Largest file read_file will return
        use_default_rules: Include the built-in rule set
        rules: Additional policy rules
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token_ttl_seconds: int = Field(default=DEFAULT_TOKEN_TTL_SECONDS, gt=0)
    pending_timeout_seconds: int | None = Field(
        default=DEFAULT_PENDING_TIMEOUT_SECONDS, gt=0
    )
    auto_execute: bool = True
    audit_db_path: Path = Path("toolgate.db")
    snapshot_dir: Path = Path(".toolgate/snapshots")
    working_dir: Path = Path(".")
    hash_chain: bool = True
    recent_activity_size: int = Field(default=100, gt=0)
    allowed_paths: list[str] = Field(default_factory=list)
    whitelisted_commands: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WHITELISTED_COMMANDS)
    )
    command_timeout_seconds: int = Field(default=60, gt=0, le=3600)
    max_output_bytes: int = Field(default=1024 * 1024, gt=0)
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    use_default_rules: bool = True
    rules: list[PolicyRule] = Field(default_factory=list)

    @field_validator("allowed_paths")
    @classmethod
    def expand_home(cls, v: list[str]) -> list[str]:
        """Expand ~ so rules compare against real paths."""
        return [str(Path(p).expanduser()) for p in v]

    def policy_rules(self) -> list[PolicyRule]:
        """User rules followed by the defaults (if enabled)."""
        rules = list(self.rules)
        if self.use_default_rules:
            rules.extend(default_rules(self.whitelisted_commands, self.allowed_paths))
        return rules


def load_config(path: Path | str) -> GateConfig:
    """
    Load a configuration from a YAML file.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(path=str(path), message=f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(path=str(path), message=f"Invalid YAML in {path}: {e}") from e

    return _validate(data or {}, str(path))


def load_config_from_string(content: str) -> GateConfig:
    """Load a configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(path="<string>", message=f"Invalid YAML: {e}") from e
    return _validate(data or {}, "<string>")


def _validate(data: object, source: str) -> GateConfig:
    try:
        return GateConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            path=source,
            message=f"Invalid configuration in {source}: {e.error_count()} error(s)",
            context={"errors": [err["msg"] for err in e.errors()]},
        ) from e

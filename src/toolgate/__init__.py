"""
Toolgate - approval and audit pipeline for agent tool calls.

Toolgate sits between an AI agent and a locally privileged execution
surface. It provides:
- Declarative policy (auto-approve, require approval, deny)
- Advisory dry runs before anything executes
- Single-use, time-boxed approval tokens
- Snapshots before mutating actions, with restore
- A hash-chained, append-only audit log in SQLite

Example usage:
    $ toolgate run requests.yaml --config gate.yaml
    $ toolgate audit --tool create_file
    $ toolgate verify
"""

__version__ = "0.1.0"
__author__ = "Toolgate Contributors"

__all__ = [
    "__version__",
    "__author__",
]

"""Adapters — bindings for sandboxes and host tools.

Public re-exports for convenient access.
"""

from docbuilder.adapters.base import CommandError, CommandOutput, Mount, Sandbox, SandboxCommand
from docbuilder.adapters.mock import MockSandbox

__all__ = [
    "CommandError",
    "CommandOutput",
    "MockSandbox",
    "Mount",
    "Sandbox",
    "SandboxCommand",
]

"""Command execution: serialized dispatch, sessions and generated scripts."""

from .script_writer import ScriptWriter
from .session import ContainerSession, ExecutionSession, LocalSession
from .shell import CommandResult, SessionError, dispatch

__all__ = [
    "ScriptWriter",
    "ContainerSession",
    "ExecutionSession",
    "LocalSession",
    "CommandResult",
    "SessionError",
    "dispatch",
]

"""Device command execution."""

from hearth.commands.executor import (
    CommandOutcome,
    CommandStatus,
    DeviceCommandExecutor,
    user_message,
)

__all__ = [
    "CommandOutcome",
    "CommandStatus",
    "DeviceCommandExecutor",
    "user_message",
]

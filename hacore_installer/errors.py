from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .lib.command import CmdResult


class InstallerError(RuntimeError):
    """Base class for failures that abort the run with exit code 1."""


class ConfigError(InstallerError):
    pass


class PreconditionError(InstallerError):
    pass


class MissingCommandError(PreconditionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Missing command: {name}")
        self.name = name


class CommandError(InstallerError):
    def __init__(self, message: str, result: Optional["CmdResult"] = None) -> None:
        super().__init__(message)
        self.result = result

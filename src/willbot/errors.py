"""Error taxonomy for command dispatch.

Hierarchy
---------
WillbotError
├── CommandError                 (user errors, rendered to the caller)
│   ├── NotFound
│   ├── NotExecutable
│   ├── PermissionDenied
│   ├── ArgumentError
│   ├── UnknownNamedArgument
│   ├── TooManyArguments
│   ├── TooFewArguments
│   ├── UnmatchedQuote
│   └── InternalError
├── EmptyReply
├── HandledError                 (returned or raised by handlers)
├── RuleError                    (load time)
├── PluginError                  (load time)
└── ConfigError
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .commands.rules import ArgumentRule


class WillbotError(Exception):
    """Base exception for all willbot errors."""


class CommandError(WillbotError):
    """A failure the caller caused; ``str(exc)`` is the text shown to them."""


class NotFound(CommandError):
    def __init__(self) -> None:
        super().__init__("not found")


class NotExecutable(CommandError):
    def __init__(self) -> None:
        super().__init__("not executable")


class PermissionDenied(CommandError):
    """Raised when the caller level is below what a command or argument needs."""

    def __init__(self, level: int | float, reason: str | None = None) -> None:
        self.level = level
        self.reason = reason
        why = f" for {reason}" if reason else ""
        super().__init__(f"permission denied{why} (Require {level})")


class ArgumentError(CommandError):
    def __init__(self, rule: ArgumentRule, detail: str) -> None:
        self.argument = rule.name
        self.detail = detail
        super().__init__(f"{rule.label}: {detail}")


class UnknownNamedArgument(CommandError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"{', '.join(self.names)}: unknown named arg")


class TooManyArguments(CommandError):
    def __init__(self) -> None:
        super().__init__("too many args")


class TooFewArguments(CommandError):
    def __init__(self) -> None:
        super().__init__("too few args")


class UnmatchedQuote(CommandError):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"unmatched {kind}")


class InternalError(CommandError):
    """Wraps an unexpected failure raised while invoking a handler."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        text = str(cause) or type(cause).__name__
        super().__init__(f"{text} (internal error)")


class EmptyReply(WillbotError):
    def __init__(self) -> None:
        super().__init__("Empty reply")


class HandledError(WillbotError):
    """A user-facing failure signalled by a handler.

    Handlers may either return or raise it. It is never treated as an
    internal fault; ``log=True`` additionally records it in the log.
    """

    def __init__(self, message: str, *, log: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.log = log


class RuleError(WillbotError, ValueError):
    """Raised at load time for an argument rule that cannot be normalized."""


class PluginError(WillbotError):
    """Raised at load time when a plugin module or its command spec is malformed."""


class ConfigError(WillbotError):
    """Raised when the configuration file is missing or malformed."""

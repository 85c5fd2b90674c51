"""Bind tokens and named options to a command's argument rules."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import (
    ArgumentError,
    PermissionDenied,
    TooFewArguments,
    TooManyArguments,
    UnknownNamedArgument,
)
from .rules import ArgType, ArgumentRule, coerce_value
from .tokenize import NamedValue, QuoteFlags

if TYPE_CHECKING:
    from ..types import CallerId, IncomingMessage
    from .registry import CommandNode


@dataclass(frozen=True, slots=True)
class BindContext:
    """Ambient values handed to context-typed arguments."""

    message: IncomingMessage | None
    caller_id: CallerId
    flags: QuoteFlags
    tokens: tuple[str, ...]
    node: CommandNode | None
    permission: int | float

    def check_permission(self, level: int, why: str | None = None) -> None:
        if self.permission < level:
            raise PermissionDenied(level, why)


def _context_value(rule: ArgumentRule, context: BindContext) -> Any:
    if rule.type is ArgType.MESSAGE:
        return context.message
    if rule.type is ArgType.CALLER:
        return context.caller_id
    if rule.type is ArgType.FLAGS:
        return context.flags
    if rule.type is ArgType.TOKENS:
        return context.tokens
    if rule.type is ArgType.SELF:
        return context.node
    if rule.type is ArgType.CHECK_PERM:
        return context.check_permission
    raise AssertionError(f"{rule.type} is not a context type")


def bind_arguments(
    rules: Sequence[ArgumentRule],
    positional: Sequence[str],
    named: Mapping[str, NamedValue],
    context: BindContext,
) -> list[Any]:
    """Produce the handler's argument list in rule declaration order.

    Raises a ``CommandError`` subclass on the first rule that cannot be
    satisfied, then for leftover named options, then for leftover tokens.
    """
    queue = list(positional)
    remaining = dict(named)
    bound: list[Any] = []

    for rule in rules:
        if rule.permission and context.permission < rule.permission:
            raise PermissionDenied(rule.permission, rule.label)

        if rule.type.is_context:
            bound.append(_context_value(rule, context))
            continue

        if rule.type is ArgType.TEXT:
            bound.append(" ".join(queue))
            queue.clear()
            continue

        if rule.name in remaining:
            raw = remaining.pop(rule.name)
            if rule.positional_only:
                raise ArgumentError(rule, "forbidden named arg")
        elif rule.named_only:
            bound.append(None)
            continue
        elif queue:
            raw = queue.pop(0)
        elif rule.optional:
            bound.append(None)
            continue
        else:
            raise TooFewArguments()

        bound.append(coerce_value(rule, raw))

    if remaining:
        raise UnknownNamedArgument(remaining)
    if queue:
        raise TooManyArguments()
    return bound

"""Resolve a raw line to a command, run it and render the outcome."""

from __future__ import annotations

import inspect
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import (
    CommandError,
    EmptyReply,
    HandledError,
    InternalError,
    NotExecutable,
    NotFound,
    PermissionDenied,
    UnmatchedQuote,
)
from ..logging import get_logger
from .binder import BindContext, bind_arguments
from .registry import HELP_NAME, CommandNode, find_command_with_scope
from .tokenize import NamedValue, QuoteFlags, split_named, tokenize

if TYPE_CHECKING:
    from ..bot import Bot
    from ..types import CallerId, IncomingMessage

logger = get_logger(__name__)


@dataclass(slots=True)
class DispatchRequest:
    """State of one invocation; never shared between invocations."""

    text: str
    caller_id: CallerId
    tokens: tuple[str, ...] = ()
    flags: QuoteFlags = field(default_factory=QuoteFlags)
    command_name: str = ""
    positional: list[str] = field(default_factory=list)
    named: dict[str, NamedValue] = field(default_factory=dict)
    node: CommandNode | None = None
    arguments: list[Any] = field(default_factory=list)


async def user_env(bot: Bot, caller_id: CallerId) -> dict[str, str]:
    """Return the caller's environment, loading it from the store once."""
    key = str(caller_id)
    env = bot.user_env.get(key)
    if env is None:
        env = await bot.store.get_env(caller_id) or {}
        bot.user_env[key] = env
    return env


async def user_permission(bot: Bot, caller_id: CallerId) -> int | float:
    if bot.config.is_superuser(caller_id):
        return math.inf
    level = await bot.store.get_permission(caller_id)
    return level if level is not None else 0


async def _reply_error(bot: Bot, msg: IncomingMessage, text: str) -> None:
    await bot.transport.reply(msg, f"{bot.config.error_prefix}{text}")


def _segments(reply: Any) -> list[Any]:
    """Flatten a handler result into the truthy segments to deliver."""
    if isinstance(reply, list | tuple):
        return [part for segment in reply for part in _segments(segment)]
    return [reply] if reply else []


async def _deliver(bot: Bot, msg: IncomingMessage, segment: Any) -> None:
    if isinstance(segment, bytes | bytearray):
        await bot.transport.reply_media(msg, bytes(segment))
        return
    await bot.transport.reply(
        msg, segment if isinstance(segment, str) else str(segment)
    )


async def _invoke(node: CommandNode, arguments: list[Any]) -> Any:
    assert node.handler is not None
    result = node.handler(*arguments)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _resolve_alias(bot: Bot, caller_id: CallerId, command_name: str) -> str:
    head, sep, tail = command_name.partition(".")
    replacement = await bot.store.get_alias(caller_id, head)
    if replacement is None:
        return command_name
    return f"{replacement}{sep}{tail}"


async def _report_handled(
    bot: Bot, msg: IncomingMessage, req: DispatchRequest, exc: HandledError
) -> None:
    if exc.log:
        logger.warning(
            "commands.handled_error",
            command=req.command_name,
            caller_id=req.caller_id,
            error=exc.message,
        )
    await _reply_error(bot, msg, exc.message)


def _log_internal(req: DispatchRequest, exc: BaseException) -> None:
    logger.exception(
        "commands.internal_error",
        command=req.command_name,
        caller_id=req.caller_id,
        error=str(exc) or type(exc).__name__,
    )


async def _dispatch(bot: Bot, msg: IncomingMessage, req: DispatchRequest) -> None:
    env = await user_env(bot, req.caller_id)
    permission = await user_permission(bot, req.caller_id)

    tokenized = tokenize(req.text, env)
    req.tokens = tokenized.tokens or (HELP_NAME,)
    req.flags = tokenized.flags
    if req.flags.dangling_double:
        raise UnmatchedQuote('"')
    if req.flags.dangling_single:
        raise UnmatchedQuote("'")

    requested, *args = req.tokens
    req.command_name = requested
    req.positional, req.named = split_named(args)
    req.command_name = await _resolve_alias(bot, req.caller_id, requested)

    req.node = await find_command_with_scope(
        bot.root, req.command_name, req.caller_id, bot.store
    )
    if req.node is None:
        raise NotFound()
    if not req.node.executable:
        raise NotExecutable()
    if permission < req.node.permission:
        raise PermissionDenied(req.node.permission)

    req.arguments = bind_arguments(
        req.node.rules,
        req.positional,
        req.named,
        BindContext(
            message=msg,
            caller_id=req.caller_id,
            flags=req.flags,
            tokens=req.tokens,
            node=req.node,
            permission=permission,
        ),
    )

    try:
        reply = await _invoke(req.node, req.arguments)
        if isinstance(reply, HandledError):
            await _report_handled(bot, msg, req, reply)
            return
        segments = _segments(reply)
        if not segments:
            raise EmptyReply()
        for segment in segments:
            await _deliver(bot, msg, segment)
    except (PermissionDenied, HandledError):
        raise
    except Exception as exc:
        _log_internal(req, exc)
        raise InternalError(exc) from exc


async def run_command(bot: Bot, msg: IncomingMessage) -> None:
    """Run one raw line for its caller; every outcome becomes exactly one reply."""
    req = DispatchRequest(text=msg.text.lstrip() or HELP_NAME, caller_id=msg.caller_id)
    # Replaced by the resolved name once the line is tokenized.
    req.command_name = req.text.split(maxsplit=1)[0]
    logger.info("commands.run", caller_id=req.caller_id, text=req.text)

    try:
        await _dispatch(bot, msg, req)
    except (PermissionDenied, UnmatchedQuote) as exc:
        await _reply_error(bot, msg, str(exc))
    except HandledError as exc:
        await _report_handled(bot, msg, req, exc)
    except CommandError as exc:
        await _reply_error(bot, msg, f"{req.command_name}: {exc}")
    except Exception as exc:
        # store or transport failures outside the handler call
        _log_internal(req, exc)
        await _reply_error(bot, msg, f"{req.command_name}: {InternalError(exc)}")

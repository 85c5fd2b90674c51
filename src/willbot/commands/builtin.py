"""Built-in commands for the per-caller store tables."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..errors import HandledError
from .registry import find_command

if TYPE_CHECKING:
    from ..bot import Bot
    from ..types import CallerId

ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ALIAS_RE = re.compile(r"^[^.\s]+$")


def _format_mapping(values: dict[str, str], empty: str) -> str:
    if not values:
        return empty
    return "\n".join(f"{key}={value}" for key, value in sorted(values.items()))


def _env_commands(bot: Bot) -> dict[str, Any]:
    def _forget(uid: CallerId) -> None:
        bot.user_env.pop(str(uid), None)

    async def env_set(uid: CallerId, name: str, value: str) -> str | HandledError:
        if not ENV_NAME_RE.match(name):
            return HandledError(f"invalid variable name {name!r}")
        await bot.store.set_env(uid, name, value)
        _forget(uid)
        return f"{name}={value}"

    async def env_get(uid: CallerId, name: str | None) -> str:
        env = await bot.store.get_env(uid) or {}
        if name is None:
            return _format_mapping(env, "no variables set.")
        if name not in env:
            return f"{name} is not set."
        return f"{name}={env[name]}"

    async def env_del(uid: CallerId, name: str) -> str:
        await bot.store.set_env(uid, name, None)
        _forget(uid)
        return f"{name} removed."

    return {
        "help": "Variables expanded as $NAME or ${NAME} in your commands.",
        "subs": {
            "set": {
                "help": (
                    "Set <name> to the rest of the line."
                    " Put -- before a value that starts with a dash."
                ),
                "args": ["$uid", "name:str", "value:text"],
                "fn": env_set,
            },
            "get": {
                "alias": ["ls"],
                "help": "Show one variable, or all of them.",
                "args": ["$uid", "name:str:opt"],
                "fn": env_get,
            },
            "del": {
                "alias": ["rm"],
                "help": "Remove a variable.",
                "args": ["$uid", "name:str"],
                "fn": env_del,
            },
        },
    }


def _alias_commands(bot: Bot) -> dict[str, Any]:
    async def alias_set(uid: CallerId, alias: str, command: str) -> str | HandledError:
        if not ALIAS_RE.match(alias):
            return HandledError("alias must be a single name without dots")
        if find_command(bot.root, command) is None:
            return HandledError(f"{command}: not found")
        await bot.store.set_alias(uid, alias, command)
        return f"{alias} -> {command}"

    async def alias_del(uid: CallerId, alias: str) -> str:
        await bot.store.set_alias(uid, alias, None)
        return f"alias {alias} removed."

    async def alias_list(uid: CallerId) -> str:
        aliases = await bot.store.list_aliases(uid)
        return "\n".join(
            f"{alias} -> {command}" for alias, command in sorted(aliases.items())
        ) or "no aliases."

    return {
        "help": "Replace the first segment of a command name with your own.",
        "subs": {
            "set": {
                "help": "Make <alias> stand for <command>.",
                "args": ["$uid", "alias:str", "command:str"],
                "fn": alias_set,
            },
            "del": {
                "alias": ["rm"],
                "args": ["$uid", "alias:str"],
                "fn": alias_del,
            },
            "list": {
                "alias": ["ls"],
                "args": ["$uid"],
                "fn": alias_list,
            },
        },
    }


def _with_commands(bot: Bot) -> dict[str, Any]:
    async def with_add(uid: CallerId, prefix: str) -> str | HandledError:
        if find_command(bot.root, prefix) is None:
            return HandledError(f"{prefix}: not found")
        if not await bot.store.add_scope(uid, prefix):
            return f"already using {prefix}."
        return f"now using {prefix}."

    async def with_del(uid: CallerId, prefix: str) -> str:
        if not await bot.store.remove_scope(uid, prefix):
            return f"not using {prefix}."
        return f"no longer using {prefix}."

    async def with_list(uid: CallerId) -> str:
        scopes = await bot.store.get_scopes(uid)
        return ", ".join(scopes) or "no scopes."

    return {
        "help": "Reach commands under these prefixes without typing them.",
        "subs": {
            "add": {"args": ["$uid", "prefix:str"], "fn": with_add},
            "del": {"alias": ["rm"], "args": ["$uid", "prefix:str"], "fn": with_del},
            "list": {"alias": ["ls"], "args": ["$uid"], "fn": with_list},
        },
    }


def _perm_commands(bot: Bot) -> dict[str, Any]:
    async def perm_get(uid: CallerId, target: str | None) -> str:
        who = target if target is not None else uid
        if bot.config.is_superuser(who):
            return f"{who}: unbounded"
        level = await bot.store.get_permission(who)
        return f"{who}: {level or 0}"

    async def perm_set(
        check: Callable[[int, str | None], None], target: str, level: int
    ) -> str | HandledError:
        if bot.config.is_superuser(target):
            return HandledError(f"{target}: superuser levels cannot be changed")
        check(await bot.store.get_permission(target) or 0, "changing this caller")
        check(level, "granting this level")
        await bot.store.set_permission(target, level or None)
        return f"{target}: {level}"

    return {
        "help": "Show or change permission levels.",
        "subs": {
            "get": {
                "help": "Show the level of [caller], defaulting to you.",
                "args": ["$uid", "caller:str:opt"],
                "fn": perm_get,
            },
            "set": {
                "help": (
                    "Set the level of <caller>; you need at least that level"
                    " and at least their current one."
                ),
                "args": ["$checkPerm", "caller:str", "level:num:int"],
                "fn": perm_set,
            },
        },
    }


def builtin_commands(bot: Bot) -> dict[str, dict[str, Any]]:
    """Command specs registered on every bot, keyed by top-level name."""
    return {
        "my": {
            "help": "Your own settings.",
            "subs": {
                "env": _env_commands(bot),
                "alias": _alias_commands(bot),
                "with": _with_commands(bot),
            },
        },
        "perm": _perm_commands(bot),
    }

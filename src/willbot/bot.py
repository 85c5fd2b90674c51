"""The bot handle: registry, store, transport and the public entry points."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import anyio

from .commands.builtin import builtin_commands
from .commands.dispatch import run_command
from .commands.loader import load_commands, unload_commands
from .commands.registry import (
    CommandNode,
    build_node,
    find_command,
    find_command_with_scope,
    link_child,
    new_root,
)
from .config import BotConfig
from .types import CallerId, IncomingMessage, Transport, UserStore


class Bot:
    """Everything a dispatch needs, also handed to plugins as their bot handle."""

    def __init__(
        self,
        config: BotConfig,
        *,
        store: UserStore,
        transport: Transport,
        builtins: bool = True,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.root: CommandNode = new_root()
        self.registry_lock = anyio.Lock()
        # caller id -> environment, filled lazily from the store
        self.user_env: dict[str, dict[str, str]] = {}
        if builtins:
            for name, spec in builtin_commands(self).items():
                self.register(name, spec)

    def register(
        self, name: str, spec: CommandNode | Mapping[str, Any]
    ) -> CommandNode:
        """Build, initialize and link a top-level command."""
        node = build_node(spec, name)
        link_child(self.root, name, node)
        return node

    async def load_commands(self, pattern: str | Iterable[str] = "*") -> list[str]:
        return await load_commands(self, pattern)

    async def unload_commands(self, name: str) -> bool:
        return await unload_commands(self, name)

    def find_command(self, dotted_name: str) -> CommandNode | None:
        return find_command(self.root, dotted_name)

    async def find_command_with_scope(
        self, dotted_name: str, caller_id: CallerId
    ) -> CommandNode | None:
        return await find_command_with_scope(
            self.root, dotted_name, caller_id, self.store
        )

    async def run(self, msg: IncomingMessage) -> None:
        await run_command(self, msg)

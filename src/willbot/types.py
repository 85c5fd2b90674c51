"""Messages and the collaborator interfaces the dispatcher talks to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

CallerId = int | str
ChannelKind = Literal["private", "group"]


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    text: str
    caller_id: CallerId
    channel_kind: ChannelKind = "private"
    channel_id: str | None = None
    message_id: str | None = None


class Transport(Protocol):
    """Delivers replies for a message back to where it came from."""

    async def reply(self, msg: IncomingMessage, text: str) -> None: ...

    async def reply_media(self, msg: IncomingMessage, data: bytes) -> None: ...


class UserStore(Protocol):
    """Per-caller tables: environment, permission, aliases and scopes.

    Every method is a single atomic read or read-modify-write.
    """

    async def get_env(self, caller_id: CallerId) -> dict[str, str] | None: ...

    async def set_env(
        self, caller_id: CallerId, name: str, value: str | None
    ) -> None: ...

    async def get_permission(self, caller_id: CallerId) -> int | None: ...

    async def set_permission(self, caller_id: CallerId, level: int | None) -> None: ...

    async def get_alias(self, caller_id: CallerId, alias: str) -> str | None: ...

    async def set_alias(
        self, caller_id: CallerId, alias: str, command: str | None
    ) -> None: ...

    async def list_aliases(self, caller_id: CallerId) -> dict[str, str]: ...

    async def get_scopes(self, caller_id: CallerId) -> list[str]: ...

    async def add_scope(self, caller_id: CallerId, prefix: str) -> bool: ...

    async def remove_scope(self, caller_id: CallerId, prefix: str) -> bool: ...

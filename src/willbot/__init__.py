"""Text-command dispatch engine for message-driven bots."""

from __future__ import annotations

from .bot import Bot
from .commands import ArgType, ArgumentRule, CommandNode
from .config import BotConfig, load_config
from .errors import HandledError, PermissionDenied
from .types import IncomingMessage, Transport, UserStore
from .user_state import UserStateStore

__version__ = "0.1.0"

__all__ = [
    "ArgType",
    "ArgumentRule",
    "Bot",
    "BotConfig",
    "CommandNode",
    "HandledError",
    "IncomingMessage",
    "PermissionDenied",
    "Transport",
    "UserStateStore",
    "UserStore",
    "load_config",
]

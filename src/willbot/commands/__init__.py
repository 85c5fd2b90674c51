"""Command handling: tokenizing, registry, argument binding and dispatch."""

from __future__ import annotations

from .binder import BindContext, bind_arguments
from .dispatch import run_command
from .loader import load_commands, unload_commands
from .registry import (
    CommandNode,
    build_node,
    find_command,
    find_command_with_scope,
    initialize_node,
)
from .rules import ArgType, ArgumentRule, parse_rule
from .tokenize import QuoteFlags, TokenizeResult, split_named, tokenize

__all__ = [
    "ArgType",
    "ArgumentRule",
    "BindContext",
    "CommandNode",
    "QuoteFlags",
    "TokenizeResult",
    "bind_arguments",
    "build_node",
    "find_command",
    "find_command_with_scope",
    "initialize_node",
    "load_commands",
    "parse_rule",
    "run_command",
    "split_named",
    "tokenize",
    "unload_commands",
]

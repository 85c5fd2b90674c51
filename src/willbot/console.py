"""Run the dispatcher against stdin/stdout for local testing."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TextIO

import anyio
from anyio import to_thread

from .bot import Bot
from .config import expand_path, load_config
from .errors import ConfigError
from .logging import setup_logging
from .types import CallerId, IncomingMessage
from .user_state import UserStateStore


class ConsoleTransport:
    def __init__(self, out: TextIO) -> None:
        self._out = out

    async def reply(self, msg: IncomingMessage, text: str) -> None:
        print(text, file=self._out, flush=True)

    async def reply_media(self, msg: IncomingMessage, data: bytes) -> None:
        print(f"[media: {len(data)} bytes]", file=self._out, flush=True)


def _parse_caller(value: str) -> CallerId:
    return int(value) if value.lstrip("-").isdigit() else value


async def run_console(
    config_path: Path, *, caller_id: CallerId, stdin: TextIO, stdout: TextIO
) -> int:
    config = load_config(config_path)
    assert config.state_path is not None
    bot = Bot(
        config,
        store=UserStateStore(config.state_path),
        transport=ConsoleTransport(stdout),
    )
    if config.plugins_dir is not None:
        await bot.load_commands(config.plugins)

    while True:
        line = await to_thread.run_sync(stdin.readline)
        if not line:
            return 0
        await bot.run(IncomingMessage(text=line.rstrip("\n"), caller_id=caller_id))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="willbot",
        description="Dispatch commands read from stdin, one per line.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="willbot.toml",
        help="Path to the TOML configuration file.",
    )
    parser.add_argument(
        "--caller",
        default="0",
        help="Caller id the lines are dispatched as (default: 0).",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    config_path = expand_path(args.config)
    try:
        return anyio.run(
            lambda: run_console(
                config_path,
                caller_id=_parse_caller(args.caller),
                stdin=sys.stdin,
                stdout=sys.stdout,
            )
        )
    except ConfigError as exc:
        print(f"Failed to load config: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130

"""Tests for commands/loader.py - plugin discovery, load, reload and unload."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from willbot.bot import Bot
from willbot.commands.loader import discover_plugins
from willbot.config import BotConfig
from willbot.errors import ConfigError

from willbot_fixtures import FakeTransport, make_bot, make_message

ECHO_PLUGIN = """
def setup(bot, config):
    return {
        "help": "Echo things back.",
        "subs": {"say": {"args": ["text:text"], "fn": lambda text: text}},
    }
"""

MATH_PLUGIN = """
async def setup(bot, config):
    return {"subs": {"add": {"args": ["a:num", "b:num"], "fn": lambda a, b: str(a + b)}}}
"""

GREET_PLUGIN = """
from pydantic import BaseModel


class Settings(BaseModel):
    greeting: str = "hello"
    count: int = 1


config = Settings


def setup(bot, config):
    return {"args": ["who:str"], "fn": lambda who: " ".join([f"{config.greeting} {who}"] * config.count)}
"""


def _write(directory: Path, name: str, source: str) -> Path:
    path = directory / name
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


def _bot(plugins_dir: Path | None, **settings: dict) -> tuple[Bot, FakeTransport]:
    return make_bot(config=BotConfig(plugins_dir=plugins_dir, plugin_settings=settings))


def _events(logs: list[dict]) -> list[str]:
    return [entry["event"] for entry in logs]


# --- discovery tests ---


def test_discover_skips_private_and_non_python_files(tmp_path: Path) -> None:
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    _write(tmp_path, "_helpers.py", "X = 1\n")
    _write(tmp_path, "notes.txt", "not a plugin\n")
    (tmp_path / "pkg.py").mkdir()

    assert discover_plugins(tmp_path) == {"echo": tmp_path / "echo.py"}


def test_discover_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        discover_plugins(tmp_path / "missing")


# --- load tests ---


@pytest.mark.anyio
async def test_load_all_plugins(tmp_path: Path) -> None:
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    _write(tmp_path, "math.py", MATH_PLUGIN)
    bot, transport = _bot(tmp_path)

    with capture_logs() as logs:
        loaded = await bot.load_commands()

    assert loaded == ["echo", "math"]
    assert _events(logs).count("commands.plugin.loaded") == 2

    await bot.run(make_message('echo.say "hello there" friend'))
    await bot.run(make_message("math.add 2 3.5"))
    assert transport.texts == ["hello there friend", "5.5"]


@pytest.mark.anyio
async def test_load_by_glob(tmp_path: Path) -> None:
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    _write(tmp_path, "math.py", MATH_PLUGIN)
    bot, _ = _bot(tmp_path)

    assert await bot.load_commands("e*") == ["echo"]
    assert bot.find_command("math") is None


@pytest.mark.anyio
async def test_load_by_name_list_warns_on_missing(tmp_path: Path) -> None:
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    bot, _ = _bot(tmp_path)

    with capture_logs() as logs:
        loaded = await bot.load_commands(["missing", "echo"])

    assert loaded == ["echo"]
    (warning,) = [e for e in logs if e["event"] == "commands.plugin.not_found"]
    assert warning["plugin"] == "missing"


@pytest.mark.anyio
async def test_broken_plugins_do_not_stop_the_others(tmp_path: Path) -> None:
    _write(tmp_path, "aaa_syntax.py", "def setup(:\n")
    _write(tmp_path, "bbb_raises.py", "def setup(bot, config):\n    raise RuntimeError('nope')\n")
    _write(tmp_path, "ccc_no_setup.py", "X = 1\n")
    _write(tmp_path, "ddd_bad_rule.py", "def setup(bot, config):\n    return {'args': ['x:float'], 'fn': print}\n")
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    bot, _ = _bot(tmp_path)

    with capture_logs() as logs:
        loaded = await bot.load_commands()

    assert loaded == ["echo"]
    failed = [e["plugin"] for e in logs if e["event"] == "commands.plugin.load_failed"]
    assert failed == ["aaa_syntax", "bbb_raises", "ccc_no_setup", "ddd_bad_rule"]
    assert bot.find_command("bbb_raises") is None


@pytest.mark.anyio
async def test_load_without_plugins_dir() -> None:
    bot, _ = _bot(None)
    with pytest.raises(ConfigError):
        await bot.load_commands()


@pytest.mark.anyio
async def test_plugin_name_attribute_overrides_file_name(tmp_path: Path) -> None:
    _write(tmp_path, "echo_plugin.py", 'name = "echo"\n' + ECHO_PLUGIN)
    bot, _ = _bot(tmp_path)

    assert await bot.load_commands() == ["echo"]
    assert bot.find_command("echo.say") is not None


# --- plugin config tests ---


@pytest.mark.anyio
async def test_plugin_config_is_validated(tmp_path: Path) -> None:
    _write(tmp_path, "greet.py", GREET_PLUGIN)
    bot, transport = _bot(tmp_path, greet={"greeting": "hey", "count": "2"})

    assert await bot.load_commands() == ["greet"]
    await bot.run(make_message("greet bob"))

    assert transport.texts == ["hey bob hey bob"]


@pytest.mark.anyio
async def test_plugin_config_defaults(tmp_path: Path) -> None:
    _write(tmp_path, "greet.py", GREET_PLUGIN)
    bot, transport = _bot(tmp_path)

    await bot.load_commands()
    await bot.run(make_message("greet bob"))

    assert transport.texts == ["hello bob"]


@pytest.mark.anyio
async def test_invalid_plugin_config_fails_the_load(tmp_path: Path) -> None:
    _write(tmp_path, "greet.py", GREET_PLUGIN)
    bot, _ = _bot(tmp_path, greet={"count": "many"})

    with capture_logs() as logs:
        assert await bot.load_commands() == []

    assert "commands.plugin.load_failed" in _events(logs)


@pytest.mark.anyio
async def test_plugin_without_schema_gets_raw_settings(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "cfg.py",
        "def setup(bot, config):\n"
        "    return {'args': [], 'fn': lambda: config['token']}\n",
    )
    bot, transport = _bot(tmp_path, cfg={"token": "abc"})

    await bot.load_commands()
    await bot.run(make_message("cfg"))

    assert transport.texts == ["abc"]


# --- reload / unload tests ---


@pytest.mark.anyio
async def test_reload_replaces_the_command(tmp_path: Path) -> None:
    source = "def setup(bot, config):\n    return {'args': [], 'fn': lambda: %r}\n"
    path = _write(tmp_path, "version.py", source % "one")
    bot, transport = _bot(tmp_path)

    await bot.load_commands("version")
    old_node = bot.find_command("version")
    path.write_text(source % "second release", encoding="utf-8")
    await bot.load_commands("version")

    assert bot.find_command("version") is not old_node
    await bot.run(make_message("version"))
    assert transport.texts == ["second release"]


@pytest.mark.anyio
async def test_failed_reload_keeps_the_old_command(tmp_path: Path) -> None:
    path = _write(tmp_path, "echo.py", ECHO_PLUGIN)
    bot, _ = _bot(tmp_path)

    await bot.load_commands()
    old_node = bot.find_command("echo")
    path.write_text("def setup(bot, config):\n    raise RuntimeError('broken')\n")
    assert await bot.load_commands() == []

    assert bot.find_command("echo") is old_node


@pytest.mark.anyio
async def test_unload_commands(tmp_path: Path) -> None:
    _write(tmp_path, "echo.py", ECHO_PLUGIN)
    bot, transport = _bot(tmp_path)
    await bot.load_commands()

    with capture_logs() as logs:
        assert await bot.unload_commands("echo") is True
    assert await bot.unload_commands("echo") is False

    assert _events(logs) == ["commands.plugin.unloaded"]
    await bot.run(make_message("echo.say hi"))
    assert transport.texts == ["echo.say: not found"]

"""Bot configuration loaded from a TOML file."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import ConfigError

STATE_FILENAME = "willbot_state.json"
DEFAULT_SUPERUSERS: tuple[int | str, ...] = (0,)


@dataclass(frozen=True, slots=True)
class BotConfig:
    error_prefix: str = ""
    plugins_dir: Path | None = None
    plugins: str | tuple[str, ...] = "*"
    superusers: frozenset[int | str] = frozenset(DEFAULT_SUPERUSERS)
    state_path: Path | None = None
    plugin_settings: Mapping[str, Mapping[str, Any]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def is_superuser(self, caller_id: int | str) -> bool:
        return str(caller_id) in {str(s) for s in self.superusers}

    def settings_for(self, plugin: str) -> Mapping[str, Any]:
        return self.plugin_settings.get(plugin, MappingProxyType({}))


def expand_path(s: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(s)))


def resolve_state_path(config_path: Path) -> Path:
    """Get the path for the user state file, adjacent to config."""
    return config_path.with_name(STATE_FILENAME)


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    return data


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key} must be a table")
    return value


def _resolve_relative(base: Path, value: Any, key: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    path = expand_path(value.strip())
    return path if path.is_absolute() else base / path


def parse_config(data: Mapping[str, Any], *, base_dir: Path) -> BotConfig:
    commands = _table(data, "commands")

    error_prefix = commands.get("error-prefix", "")
    if not isinstance(error_prefix, str):
        raise ConfigError("commands.error-prefix must be a string")

    plugins_dir = None
    if "plugins-dir" in commands:
        plugins_dir = _resolve_relative(
            base_dir, commands["plugins-dir"], "commands.plugins-dir"
        )

    plugins = commands.get("plugins", "*")
    if isinstance(plugins, list):
        if not all(isinstance(p, str) and p for p in plugins):
            raise ConfigError("commands.plugins must list plugin names")
        plugins = tuple(plugins)
    elif not isinstance(plugins, str):
        raise ConfigError("commands.plugins must be a glob or a list of names")

    superusers = commands.get("superusers", list(DEFAULT_SUPERUSERS))
    if not isinstance(superusers, list) or not all(
        isinstance(s, int | str) and not isinstance(s, bool) for s in superusers
    ):
        raise ConfigError("commands.superusers must be a list of caller ids")

    state_path = None
    if "state-path" in commands:
        state_path = _resolve_relative(
            base_dir, commands["state-path"], "commands.state-path"
        )

    plugin_settings: dict[str, Mapping[str, Any]] = {}
    for name, section in _table(data, "plugins").items():
        if not isinstance(section, Mapping):
            raise ConfigError(f"plugins.{name} must be a table")
        plugin_settings[name] = MappingProxyType(dict(section))

    return BotConfig(
        error_prefix=error_prefix,
        plugins_dir=plugins_dir,
        plugins=plugins,
        superusers=frozenset(superusers),
        state_path=state_path,
        plugin_settings=MappingProxyType(plugin_settings),
    )


def load_config(path: Path) -> BotConfig:
    cfg = parse_config(_load_toml(path), base_dir=path.parent)
    if cfg.state_path is None:
        return replace(cfg, state_path=resolve_state_path(path))
    return cfg

"""Load command plugins from the configured plugin directory."""

from __future__ import annotations

import fnmatch
import importlib.util
import inspect
import itertools
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from ..errors import ConfigError, PluginError
from ..logging import get_logger
from .registry import build_node, initialize_node, link_child, unlink_child

if TYPE_CHECKING:
    from ..bot import Bot

logger = get_logger(__name__)

PLUGIN_SUFFIX = ".py"
_module_counter = itertools.count()


def discover_plugins(plugins_dir: Path) -> dict[str, Path]:
    """Map plugin file stems to their paths, skipping private modules."""
    if not plugins_dir.is_dir():
        raise ConfigError(f"plugin directory not found: {plugins_dir}")
    return {
        path.stem: path
        for path in sorted(plugins_dir.iterdir())
        if path.is_file()
        and path.suffix == PLUGIN_SUFFIX
        and not path.name.startswith("_")
    }


def _select(available: Mapping[str, Path], pattern: str | Iterable[str]) -> list[Path]:
    if isinstance(pattern, str):
        return [
            path
            for stem, path in available.items()
            if fnmatch.fnmatchcase(stem, pattern)
        ]
    selected = []
    for stem in pattern:
        path = available.get(stem)
        if path is None:
            logger.warning("commands.plugin.not_found", plugin=stem)
            continue
        selected.append(path)
    return selected


def _import_fresh(path: Path) -> ModuleType:
    # A new module name per load so a reload never reuses cached state.
    module_name = f"willbot_plugin_{path.stem}_{next(_module_counter)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginError(f"cannot import plugin {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def plugin_config(module: ModuleType, settings: Mapping[str, Any]) -> Any:
    """Validate a plugin's settings against its ``config`` schema, if any."""
    schema = getattr(module, "config", None)
    if schema is None:
        return settings
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise PluginError(f"{module.__name__}: config must be a pydantic model class")
    return schema.model_validate(dict(settings))


async def _load_plugin(bot: Bot, path: Path) -> str | None:
    name = path.stem
    try:
        module = _import_fresh(path)
        name = getattr(module, "name", None) or name
        logger.info("commands.plugin.loading", plugin=name, path=str(path))
        setup = getattr(module, "setup", None)
        if not callable(setup):
            raise PluginError(f"{name}: plugin has no setup(bot, config)")
        spec = setup(bot, plugin_config(module, bot.config.settings_for(name)))
        if inspect.isawaitable(spec):
            spec = await spec
        node = initialize_node(build_node(spec, name), name)
    except Exception as exc:
        logger.exception("commands.plugin.load_failed", plugin=name, error=str(exc))
        return None
    async with bot.registry_lock:
        unlink_child(bot.root, name)
        link_child(bot.root, name, node)
    logger.info("commands.plugin.loaded", plugin=name)
    return name


async def load_commands(bot: Bot, pattern: str | Iterable[str] = "*") -> list[str]:
    """Load every plugin matching ``pattern`` and return the names that loaded.

    A plugin that fails is logged and skipped; the rest still load.
    """
    if bot.config.plugins_dir is None:
        raise ConfigError("commands.plugins-dir is not configured")
    available = discover_plugins(bot.config.plugins_dir)
    loaded = []
    for path in _select(available, pattern):
        name = await _load_plugin(bot, path)
        if name is not None:
            loaded.append(name)
    return loaded


async def unload_commands(bot: Bot, name: str) -> bool:
    async with bot.registry_lock:
        node = unlink_child(bot.root, name)
    if node is None:
        return False
    logger.info("commands.plugin.unloaded", plugin=name)
    return True

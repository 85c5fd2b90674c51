"""Per-caller state store: environment, permission, aliases and scopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .state_store import JsonStateStore
from .types import CallerId

STATE_VERSION = 1


@dataclass
class _UserState:
    version: int
    users: dict[str, dict[str, Any]] = field(default_factory=dict)


def _caller_key(caller_id: CallerId) -> str:
    return str(caller_id).strip()


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _new_user_entry() -> dict[str, Any]:
    return {
        "env": {},
        "perm": None,
        "aliases": {},
        "with": [],
    }


def _new_state() -> _UserState:
    return _UserState(version=STATE_VERSION, users={})


class UserStateStore(JsonStateStore[_UserState]):
    """Store the per-caller tables consulted on every dispatch.

    Scope: caller id. Every public method is one locked read or one
    locked read-modify-write, so concurrent dispatches never interleave
    inside an update.
    """

    def __init__(self, path: Path) -> None:
        super().__init__(
            path,
            version=STATE_VERSION,
            state_type=_UserState,
            state_factory=_new_state,
            log_prefix="user_state",
        )

    def _user_locked(self, caller_id: CallerId) -> dict[str, Any] | None:
        user = self._state.users.get(_caller_key(caller_id))
        return user if isinstance(user, dict) else None

    def _ensure_user_locked(self, caller_id: CallerId) -> dict[str, Any]:
        key = _caller_key(caller_id)
        user = self._state.users.get(key)
        if isinstance(user, dict):
            return user
        user = _new_user_entry()
        self._state.users[key] = user
        return user

    def _prune_user_locked(self, caller_id: CallerId) -> None:
        key = _caller_key(caller_id)
        user = self._state.users.get(key)
        if isinstance(user, dict) and self._user_is_empty(user):
            self._state.users.pop(key, None)

    @staticmethod
    def _user_is_empty(user: dict[str, Any]) -> bool:
        if user.get("perm") is not None:
            return False
        for key in ("env", "aliases", "with"):
            value = user.get(key)
            if value:
                return False
        return True

    # --- environment ---

    async def get_env(self, caller_id: CallerId) -> dict[str, str] | None:
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            if user is None:
                return None
            env = user.get("env")
            if not isinstance(env, dict):
                return None
            return {str(k): str(v) for k, v in env.items()}

    async def set_env(
        self, caller_id: CallerId, name: str, value: str | None
    ) -> None:
        name = name.strip()
        if not name:
            return
        async with self._lock:
            self._reload_locked_if_needed()
            if value is None:
                user = self._user_locked(caller_id)
                if user is None or not isinstance(user.get("env"), dict):
                    return
                user["env"].pop(name, None)
                self._prune_user_locked(caller_id)
                self._save_locked()
                return
            user = self._ensure_user_locked(caller_id)
            env = user.get("env")
            if not isinstance(env, dict):
                env = {}
                user["env"] = env
            env[name] = value
            self._save_locked()

    # --- permission ---

    async def get_permission(self, caller_id: CallerId) -> int | None:
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            if user is None:
                return None
            level = user.get("perm")
            if isinstance(level, bool) or not isinstance(level, int):
                return None
            return level

    async def set_permission(self, caller_id: CallerId, level: int | None) -> None:
        async with self._lock:
            self._reload_locked_if_needed()
            if level is None:
                user = self._user_locked(caller_id)
                if user is None:
                    return
                user["perm"] = None
                self._prune_user_locked(caller_id)
                self._save_locked()
                return
            user = self._ensure_user_locked(caller_id)
            user["perm"] = int(level)
            self._save_locked()

    # --- aliases ---

    async def get_alias(self, caller_id: CallerId, alias: str) -> str | None:
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            if user is None:
                return None
            aliases = user.get("aliases")
            if not isinstance(aliases, dict):
                return None
            command = aliases.get(alias)
            return command if isinstance(command, str) and command else None

    async def set_alias(
        self, caller_id: CallerId, alias: str, command: str | None
    ) -> None:
        alias = alias.strip()
        command = _normalize_text(command)
        if not alias:
            return
        async with self._lock:
            self._reload_locked_if_needed()
            if command is None:
                user = self._user_locked(caller_id)
                if user is None or not isinstance(user.get("aliases"), dict):
                    return
                user["aliases"].pop(alias, None)
                self._prune_user_locked(caller_id)
                self._save_locked()
                return
            user = self._ensure_user_locked(caller_id)
            aliases = user.get("aliases")
            if not isinstance(aliases, dict):
                aliases = {}
                user["aliases"] = aliases
            aliases[alias] = command
            self._save_locked()

    async def list_aliases(self, caller_id: CallerId) -> dict[str, str]:
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            aliases = user.get("aliases") if user is not None else None
            if not isinstance(aliases, dict):
                return {}
            return {
                k: v for k, v in aliases.items() if isinstance(v, str) and v
            }

    # --- "with" scopes ---

    async def get_scopes(self, caller_id: CallerId) -> list[str]:
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            scopes = user.get("with") if user is not None else None
            if not isinstance(scopes, list):
                return []
            return [s for s in scopes if isinstance(s, str) and s]

    async def add_scope(self, caller_id: CallerId, prefix: str) -> bool:
        prefix = prefix.strip()
        if not prefix:
            return False
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._ensure_user_locked(caller_id)
            scopes = user.get("with")
            if not isinstance(scopes, list):
                scopes = []
                user["with"] = scopes
            if prefix in scopes:
                return False
            scopes.append(prefix)
            self._save_locked()
            return True

    async def remove_scope(self, caller_id: CallerId, prefix: str) -> bool:
        prefix = prefix.strip()
        async with self._lock:
            self._reload_locked_if_needed()
            user = self._user_locked(caller_id)
            scopes = user.get("with") if user is not None else None
            if not isinstance(scopes, list) or prefix not in scopes:
                return False
            scopes.remove(prefix)
            self._prune_user_locked(caller_id)
            self._save_locked()
            return True

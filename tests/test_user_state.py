"""Tests for user_state.py - per-caller tables persisted as JSON."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from willbot.user_state import (
    STATE_VERSION,
    UserStateStore,
    _caller_key,
    _normalize_text,
    _new_state,
)


# --- helper tests ---


def test_caller_key_normalizes_ids() -> None:
    """Integer and string ids share a key."""
    assert _caller_key(42) == "42"
    assert _caller_key(" 42 ") == "42"


def test_normalize_text() -> None:
    """Blank text collapses to None."""
    assert _normalize_text("  pixiv.rank ") == "pixiv.rank"
    assert _normalize_text("   ") is None
    assert _normalize_text(None) is None


def test_new_state_is_empty() -> None:
    state = _new_state()
    assert state.version == STATE_VERSION
    assert state.users == {}


# --- environment tests ---


@pytest.mark.anyio
async def test_env_roundtrip(tmp_path: Path) -> None:
    """Variables set for one caller are only visible to that caller."""
    store = UserStateStore(tmp_path / "state.json")

    assert await store.get_env(1) is None
    await store.set_env(1, "MODE", "daily")

    assert await store.get_env(1) == {"MODE": "daily"}
    assert await store.get_env("1") == {"MODE": "daily"}
    assert await store.get_env(2) is None


@pytest.mark.anyio
async def test_env_delete_prunes_empty_user(tmp_path: Path) -> None:
    """Removing the last value drops the caller's entry."""
    path = tmp_path / "state.json"
    store = UserStateStore(path)
    await store.set_env(1, "MODE", "daily")
    await store.set_env(1, "MODE", None)

    assert await store.get_env(1) is None
    assert json.loads(path.read_text())["users"] == {}


@pytest.mark.anyio
async def test_env_get_returns_a_copy(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    await store.set_env(1, "A", "1")
    env = await store.get_env(1)
    assert env is not None
    env["B"] = "2"
    assert await store.get_env(1) == {"A": "1"}


# --- permission tests ---


@pytest.mark.anyio
async def test_permission_roundtrip(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    assert await store.get_permission(1) is None
    await store.set_permission(1, 3)
    assert await store.get_permission(1) == 3
    await store.set_permission(1, None)
    assert await store.get_permission(1) is None


# --- alias tests ---


@pytest.mark.anyio
async def test_alias_roundtrip(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    await store.set_alias(1, "p", "pixiv")
    await store.set_alias(1, "r", " pixiv.rank ")

    assert await store.get_alias(1, "p") == "pixiv"
    assert await store.list_aliases(1) == {"p": "pixiv", "r": "pixiv.rank"}
    assert await store.get_alias(2, "p") is None


@pytest.mark.anyio
async def test_alias_blank_command_removes(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    await store.set_alias(1, "p", "pixiv")
    await store.set_alias(1, "p", "  ")
    assert await store.get_alias(1, "p") is None
    assert await store.list_aliases(1) == {}


# --- scope tests ---


@pytest.mark.anyio
async def test_scopes_keep_insertion_order(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    assert await store.add_scope(1, "pixiv") is True
    assert await store.add_scope(1, "my") is True
    assert await store.add_scope(1, "pixiv") is False

    assert await store.get_scopes(1) == ["pixiv", "my"]


@pytest.mark.anyio
async def test_remove_scope(tmp_path: Path) -> None:
    store = UserStateStore(tmp_path / "state.json")
    await store.add_scope(1, "pixiv")
    assert await store.remove_scope(1, "pixiv") is True
    assert await store.remove_scope(1, "pixiv") is False
    assert await store.get_scopes(1) == []


# --- persistence tests ---


@pytest.mark.anyio
async def test_state_survives_a_new_store(tmp_path: Path) -> None:
    """A second store over the same file sees everything written."""
    path = tmp_path / "nested" / "state.json"
    store = UserStateStore(path)
    await store.set_env(1, "MODE", "daily")
    await store.set_permission(1, 2)
    await store.set_alias(1, "p", "pixiv")
    await store.add_scope(1, "pixiv")

    reopened = UserStateStore(path)
    assert await reopened.get_env(1) == {"MODE": "daily"}
    assert await reopened.get_permission(1) == 2
    assert await reopened.get_alias(1, "p") == "pixiv"
    assert await reopened.get_scopes(1) == ["pixiv"]


@pytest.mark.anyio
async def test_state_file_layout(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    store = UserStateStore(path)
    await store.set_permission(7, 1)

    data = json.loads(path.read_text())
    assert data == {
        "version": STATE_VERSION,
        "users": {"7": {"env": {}, "perm": 1, "aliases": {}, "with": []}},
    }


@pytest.mark.anyio
async def test_version_mismatch_resets_state(tmp_path: Path) -> None:
    """A file from another version is ignored with a warning."""
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"version": 99, "users": {"1": {"perm": 5}}}))
    store = UserStateStore(path)

    with capture_logs() as logs:
        assert await store.get_permission(1) is None

    assert [e["event"] for e in logs] == ["user_state.version_mismatch"]


@pytest.mark.anyio
async def test_corrupt_file_resets_state(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json")
    store = UserStateStore(path)

    with capture_logs() as logs:
        assert await store.get_scopes(1) == []

    assert [e["event"] for e in logs] == ["user_state.load_failed"]

"""Versioned JSON state file shared by the persistent stores."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any, Generic, TypeVar

import anyio

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class JsonStateStore(Generic[T]):
    """Hold a dataclass state in memory and mirror it to a JSON file.

    Subclasses take ``self._lock`` around every operation, call
    ``_reload_locked_if_needed()`` before reading and ``_save_locked()``
    after mutating. The file is reloaded whenever its mtime changes, so
    edits made by another process are picked up.
    """

    def __init__(
        self,
        path: Path,
        *,
        version: int,
        state_type: type[T],
        state_factory: Callable[[], T],
        log_prefix: str,
    ) -> None:
        self._path = path
        self._version = version
        self._state_type = state_type
        self._state_factory = state_factory
        self._log_prefix = log_prefix
        self._lock = anyio.Lock()
        self._mtime_ns: int | None = None
        self._state: T = state_factory()

    @property
    def path(self) -> Path:
        return self._path

    def _stat_mtime_ns(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _reload_locked_if_needed(self) -> None:
        mtime_ns = self._stat_mtime_ns()
        if mtime_ns is None:
            if self._mtime_ns is not None:
                self._state = self._state_factory()
                self._mtime_ns = None
            return
        if mtime_ns == self._mtime_ns:
            return
        self._mtime_ns = mtime_ns
        self._state = self._load_locked()

    def _load_locked(self) -> T:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(
                f"{self._log_prefix}.load_failed",
                path=str(self._path),
                error=str(exc),
            )
            return self._state_factory()
        if not isinstance(data, dict):
            logger.warning(f"{self._log_prefix}.invalid_state", path=str(self._path))
            return self._state_factory()
        if data.get("version") != self._version:
            logger.warning(
                f"{self._log_prefix}.version_mismatch",
                path=str(self._path),
                version=data.get("version"),
                expected_version=self._version,
            )
            return self._state_factory()
        try:
            return self._state_type(**data)
        except TypeError as exc:
            logger.warning(
                f"{self._log_prefix}.invalid_state",
                path=str(self._path),
                error=str(exc),
            )
            return self._state_factory()

    def _save_locked(self) -> None:
        payload: dict[str, Any] = asdict(self._state)  # type: ignore[call-overload]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._mtime_ns = self._stat_mtime_ns()

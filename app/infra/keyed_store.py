# app/infra/keyed_store.py
"""
Read-by-key stores for device tokens and GPS locations.

``RealtimeDatabaseStore`` reads ``{root}/{key}`` from the Firebase
Realtime Database; ``InMemoryKeyedStore`` wraps a plain dict.
"""
from __future__ import annotations

from typing import Any

from app.core.errors import DependencyError
from app.infra.firebase_app import run_blocking
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


class RealtimeDatabaseStore:
    """Keyed reads under one Realtime Database path, e.g. ``deviceTokens``"""

    def __init__(self, root: str, app=None) -> None:
        self._root = root.strip("/")
        self._app = app

    async def get(self, key: str) -> Any:
        from firebase_admin import db

        path = f"{self._root}/{key}"
        try:
            return await run_blocking(db.reference(path, app=self._app).get)
        except Exception as exc:
            logger.warning(
                f"Realtime Database read failed: {path}: {type(exc).__name__}: {exc}",
                extra={"recipient_id": key},
            )
            raise DependencyError(f"Read of {path} failed") from exc


class InMemoryKeyedStore:
    """dict-backed store; ``None`` for missing keys"""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    async def get(self, key: str) -> Any:
        return self._values.get(key)

# app/core/dispatch/ports.py
from __future__ import annotations
from typing import Any, Optional, Protocol
from app.core.dispatch.models import Recipient


class RecipientDirectory(Protocol):
    """Read-only user directory. Empty lists, never errors, for no matches."""

    async def find_by_id(self, recipient_id: str) -> Optional[Recipient]: ...
    async def find_by_group_code(self, group_code: str) -> list[Recipient]: ...
    async def find_by_role(self, role: str) -> list[Recipient]: ...
    async def find_by_group_code_and_role(self, group_code: str, role: str) -> list[Recipient]: ...


class KeyedStore(Protocol):
    async def get(self, key: str) -> Any:
        """
        Value stored under ``key`` or None when absent.
        Raises DependencyError when the store cannot be read.
        """
        ...

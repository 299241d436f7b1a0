# app/core/dispatch/token_resolver.py
"""
Device token resolution.

Tokens live in one of two places depending on when the user registered:
inline on the user record (``fcmToken``) or in the keyed
``deviceTokens/{uid}`` store.  Strategies are tried in order and the first
``found`` wins, so callers never branch on where a token is stored.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from app.core.dispatch.models import Recipient
from app.core.dispatch.ports import KeyedStore
from app.core.errors import DependencyError
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


class LookupStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class Lookup:
    status: LookupStatus
    token: str | None = None
    error: str | None = None

    @classmethod
    def found(cls, token: str) -> Lookup:
        return cls(LookupStatus.FOUND, token=token)

    @classmethod
    def absent(cls) -> Lookup:
        return cls(LookupStatus.ABSENT)

    @classmethod
    def failed(cls, error: str) -> Lookup:
        return cls(LookupStatus.ERROR, error=error)


def _usable_token(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class TokenStrategy(abc.ABC):
    """One place a device token may live"""

    name: str = "strategy"

    @abc.abstractmethod
    async def lookup(self, recipient: Recipient) -> Lookup:
        pass


class InlineTokenStrategy(TokenStrategy):
    """Token stored on the user record itself"""

    name = "inline"

    async def lookup(self, recipient: Recipient) -> Lookup:
        token = _usable_token(recipient.inline_token)
        return Lookup.found(token) if token else Lookup.absent()


class KeyedStoreTokenStrategy(TokenStrategy):
    """Token stored under ``deviceTokens/{recipient.id}``"""

    name = "device-tokens"

    def __init__(self, store: KeyedStore) -> None:
        self._store = store

    async def lookup(self, recipient: Recipient) -> Lookup:
        try:
            value = await self._store.get(recipient.id)
        except DependencyError as exc:
            return Lookup.failed(exc.detail)
        token = _usable_token(value)
        return Lookup.found(token) if token else Lookup.absent()


class TokenResolver:
    def __init__(self, strategies: Sequence[TokenStrategy]) -> None:
        self._strategies = list(strategies)

    @classmethod
    def with_fallback_store(cls, store: KeyedStore) -> TokenResolver:
        """Inline token first, then the keyed device-token store."""
        return cls([InlineTokenStrategy(), KeyedStoreTokenStrategy(store)])

    async def resolve(self, recipient: Recipient) -> str | None:
        """
        Return the recipient's current device token, or None when no
        strategy has one.

        Raises:
            DependencyError: no token found and at least one store failed,
                so absence cannot be told apart from an outage.
        """
        errors: list[str] = []
        for strategy in self._strategies:
            result = await strategy.lookup(recipient)
            if result.status is LookupStatus.FOUND:
                logger.debug(
                    f"Token resolved via {strategy.name}",
                    extra={"recipient_id": recipient.id},
                )
                return result.token
            if result.status is LookupStatus.ERROR:
                errors.append(f"{strategy.name}: {result.error}")

        if errors:
            raise DependencyError("Token lookup failed (" + "; ".join(errors) + ")")
        return None

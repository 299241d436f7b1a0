# app/infra/recipient_directory.py
"""
Recipient directory adapters.

- ``FirestoreRecipientDirectory`` reads the ``users`` collection
  (fields ``uid``, ``joinedCircleCode``, ``role``, ``fcmToken``).
- ``InMemoryRecipientDirectory`` backs local development and tests.

Both are read-only.  Queries with no matches return an empty list;
store failures raise ``DependencyError``.
"""
from __future__ import annotations

from typing import Any, Iterable

from app.core.dispatch.models import Recipient
from app.core.errors import DependencyError
from app.infra.firebase_app import run_blocking
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

FIELD_UID = "uid"
FIELD_GROUP_CODE = "joinedCircleCode"
FIELD_ROLE = "role"
FIELD_TOKEN = "fcmToken"


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def recipient_from_document(doc_id: str, data: dict[str, Any] | None) -> Recipient:
    """Map a user document to a Recipient. ``uid`` wins over the document id."""
    data = data or {}
    return Recipient(
        id=_optional_str(data.get(FIELD_UID)) or doc_id,
        group_code=_optional_str(data.get(FIELD_GROUP_CODE)),
        role=_optional_str(data.get(FIELD_ROLE)),
        inline_token=_optional_str(data.get(FIELD_TOKEN)),
    )


class FirestoreRecipientDirectory:
    """Firestore-backed directory; blocking SDK calls run in the executor."""

    def __init__(self, client, collection: str = "users") -> None:
        self._client = client
        self._collection = collection

    async def find_by_id(self, recipient_id: str) -> Recipient | None:
        try:
            snapshot = await run_blocking(
                self._client.collection(self._collection).document(recipient_id).get
            )
        except Exception as exc:
            logger.error(
                f"Firestore read failed: {self._collection}/{recipient_id}",
                extra={"recipient_id": recipient_id},
                exc_info=True,
            )
            raise DependencyError("Recipient lookup failed") from exc

        if not snapshot.exists:
            return None
        return recipient_from_document(snapshot.id, snapshot.to_dict())

    async def find_by_group_code(self, group_code: str) -> list[Recipient]:
        return await self._query([(FIELD_GROUP_CODE, group_code)])

    async def find_by_role(self, role: str) -> list[Recipient]:
        return await self._query([(FIELD_ROLE, role)])

    async def find_by_group_code_and_role(self, group_code: str, role: str) -> list[Recipient]:
        return await self._query([(FIELD_GROUP_CODE, group_code), (FIELD_ROLE, role)])

    async def _query(self, equals: list[tuple[str, str]]) -> list[Recipient]:
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self._client.collection(self._collection)
        for field_name, value in equals:
            query = query.where(filter=FieldFilter(field_name, "==", value))

        def _fetch() -> list[Recipient]:
            return [recipient_from_document(doc.id, doc.to_dict()) for doc in query.stream()]

        try:
            recipients = await run_blocking(_fetch)
        except Exception as exc:
            logger.error(f"Firestore query failed: {self._collection} where {equals}", exc_info=True)
            raise DependencyError("Recipient query failed") from exc

        logger.debug(f"Firestore query {equals} matched {len(recipients)} recipient(s)")
        return recipients


class InMemoryRecipientDirectory:
    """Directory over a fixed list of recipients (insertion order kept)"""

    def __init__(self, recipients: Iterable[Recipient] = ()) -> None:
        self._recipients: dict[str, Recipient] = {r.id: r for r in recipients}

    def add(self, recipient: Recipient) -> None:
        self._recipients[recipient.id] = recipient

    async def find_by_id(self, recipient_id: str) -> Recipient | None:
        return self._recipients.get(recipient_id)

    async def find_by_group_code(self, group_code: str) -> list[Recipient]:
        return [r for r in self._recipients.values() if r.group_code == group_code]

    async def find_by_role(self, role: str) -> list[Recipient]:
        return [r for r in self._recipients.values() if r.role == role]

    async def find_by_group_code_and_role(self, group_code: str, role: str) -> list[Recipient]:
        return [
            r for r in self._recipients.values()
            if r.group_code == group_code and r.role == role
        ]

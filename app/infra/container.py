# app/infra/container.py
"""
Wires the dispatch engine from settings.

``store_backend=firebase`` reads users from Firestore and tokens /
locations from the Realtime Database.  ``store_backend=memory`` uses
in-process stores, optionally seeded from a JSON file shaped like the
Firebase data::

    {
      "users": {"u1": {"uid": "u1", "joinedCircleCode": "G1", "role": "...", "fcmToken": "..."}},
      "deviceTokens": {"u2": "token"},
      "GPSLocation": {"u2": {"latitude": 12.5, "longitude": 77.6}}
    }
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from app.config import Settings, settings as default_settings
from app.core.dispatch.engine import DispatchEngine
from app.core.dispatch.enrichment import ContextEnricher
from app.core.dispatch.ports import KeyedStore, RecipientDirectory
from app.core.dispatch.token_resolver import TokenResolver
from app.infra.keyed_store import InMemoryKeyedStore, RealtimeDatabaseStore
from app.infra.logging_config import get_logger
from app.infra.push_gateway import PushGateway, get_push_gateway
from app.infra.recipient_directory import (
    FirestoreRecipientDirectory,
    InMemoryRecipientDirectory,
    recipient_from_document,
)

logger = get_logger(__name__)


@dataclass
class Stores:
    directory: RecipientDirectory
    device_tokens: KeyedStore
    locations: KeyedStore


def load_memory_seed(path: str | Path, s: Settings) -> Stores:
    raw: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))

    users = raw.get(s.users_collection) or {}
    if isinstance(users, list):
        recipients = [recipient_from_document(str(u.get("uid", "")), u) for u in users]
    else:
        recipients = [recipient_from_document(doc_id, data) for doc_id, data in users.items()]

    return Stores(
        directory=InMemoryRecipientDirectory(recipients),
        device_tokens=InMemoryKeyedStore(raw.get(s.device_tokens_path) or {}),
        locations=InMemoryKeyedStore(raw.get(s.gps_location_path) or {}),
    )


def build_stores(s: Settings | None = None) -> Stores:
    s = s or default_settings

    if s.store_backend == "memory":
        if s.memory_seed_path:
            stores = load_memory_seed(s.memory_seed_path, s)
            logger.info(f"Memory stores seeded from {s.memory_seed_path}")
            return stores
        return Stores(
            directory=InMemoryRecipientDirectory(),
            device_tokens=InMemoryKeyedStore(),
            locations=InMemoryKeyedStore(),
        )

    from firebase_admin import firestore
    from app.infra.firebase_app import get_firebase_app

    app = get_firebase_app()
    return Stores(
        directory=FirestoreRecipientDirectory(firestore.client(app), s.users_collection),
        device_tokens=RealtimeDatabaseStore(s.device_tokens_path, app=app),
        locations=RealtimeDatabaseStore(s.gps_location_path, app=app),
    )


def build_engine(
    s: Settings | None = None,
    *,
    stores: Stores | None = None,
    gateway: PushGateway | None = None,
) -> DispatchEngine:
    s = s or default_settings
    stores = stores or build_stores(s)
    gateway = gateway or get_push_gateway(s.push_provider)

    logger.info(
        f"Dispatch engine: store_backend={s.store_backend}, gateway={gateway.name}, "
        f"max_concurrency={s.dispatch_max_concurrency}, timeout={s.push_send_timeout_seconds}s"
    )
    return DispatchEngine(
        directory=stores.directory,
        resolver=TokenResolver.with_fallback_store(stores.device_tokens),
        enricher=ContextEnricher(stores.locations),
        gateway=gateway,
        max_concurrency=s.dispatch_max_concurrency,
        send_timeout=s.push_send_timeout_seconds,
    )

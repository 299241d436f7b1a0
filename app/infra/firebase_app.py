# app/infra/firebase_app.py
"""
Firebase Admin SDK bootstrap.

The service account arrives as a JSON string in
``GOOGLE_APPLICATION_CREDENTIALS_JSON``.  Deployment platforms often store
the private key with escaped newlines, so ``\\n`` is unescaped before the
credential is built.
"""
from __future__ import annotations

import asyncio
import functools
import json
from typing import Any, Callable

import firebase_admin
from firebase_admin import credentials

from app.config import settings
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

_firebase_app: firebase_admin.App | None = None


def parse_service_account(raw: str) -> dict[str, Any]:
    """Parse service-account JSON and normalize the private key."""
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"GOOGLE_APPLICATION_CREDENTIALS_JSON is not valid JSON: {exc.msg}") from exc

    if not isinstance(info, dict):
        raise RuntimeError("GOOGLE_APPLICATION_CREDENTIALS_JSON must be a JSON object")

    private_key = info.get("private_key")
    if isinstance(private_key, str):
        info["private_key"] = private_key.replace("\\n", "\n")
    return info


def get_firebase_app() -> firebase_admin.App:
    """Get or create the Firebase app (lazy initialization)."""
    global _firebase_app
    if _firebase_app is None:
        if not settings.google_application_credentials_json:
            raise RuntimeError("Firebase credentials not configured")

        info = parse_service_account(settings.google_application_credentials_json)
        options: dict[str, Any] = {}
        if settings.firebase_database_url:
            options["databaseURL"] = settings.firebase_database_url
        project_id = settings.firebase_project_id or info.get("project_id")
        if project_id:
            options["projectId"] = project_id

        _firebase_app = firebase_admin.initialize_app(credentials.Certificate(info), options)
        logger.info(f"Firebase app initialized: project={project_id or 'unknown'}")
    return _firebase_app


def close_firebase_app() -> None:
    global _firebase_app
    if _firebase_app is not None:
        firebase_admin.delete_app(_firebase_app)
        _firebase_app = None
        logger.info("Firebase app closed")


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking Firebase SDK call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

# app/infra/push_gateway.py
"""
Push gateway abstraction for delivering notifications to devices.

Supports multiple providers:
- sdk      - Firebase Admin SDK (``firebase_admin.messaging``)
- http     - FCM HTTP v1 REST API over the shared aiohttp session
- disabled - dry-run, nothing leaves the process

Usage:
    gateway = get_push_gateway()
    receipt = await gateway.send(token, payload)

A gateway makes exactly one attempt per token.  Failures raise
``GatewayError``; callers decide whether that fails a request or a
single recipient.
"""
from __future__ import annotations

import abc
import asyncio
import time
import uuid
from typing import Sequence

import aiohttp

from app.config import settings
from app.core.dispatch.models import NotificationPayload
from app.infra.firebase_app import get_firebase_app, run_blocking
from app.infra.http_client import get_push_session
from app.infra.logging_config import get_logger, mask_token

logger = get_logger(__name__)

# Refresh OAuth tokens this many seconds before they expire
_TOKEN_REFRESH_MARGIN_S = 60


class GatewayError(Exception):
    """The provider rejected the message or could not be reached."""

    def __init__(self, message: str, *, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class PushGateway(abc.ABC):
    """Abstract base class for push providers"""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Provider name for logging/metrics"""
        pass

    @abc.abstractmethod
    def is_configured(self) -> bool:
        pass

    @abc.abstractmethod
    async def send(self, token: str, payload: NotificationPayload) -> str:
        """
        Send one notification.

        Returns:
            Provider receipt (message id)

        Raises:
            GatewayError: provider rejected the message or was unreachable
        """
        pass

    async def send_multicast(
        self,
        tokens: Sequence[str],
        payload: NotificationPayload,
    ) -> list[str | GatewayError]:
        """Same payload to many tokens; one receipt or error per token, in order."""
        results = await asyncio.gather(
            *(self.send(token, payload) for token in tokens),
            return_exceptions=True,
        )
        return [
            r if isinstance(r, (str, GatewayError)) else GatewayError(str(r))
            for r in results
        ]


class FirebaseAdminGateway(PushGateway):
    """FCM via the Firebase Admin SDK. Blocking calls run in the executor."""

    def __init__(self, app=None) -> None:
        self._app = app

    @property
    def name(self) -> str:
        return "fcm-sdk"

    @property
    def app(self):
        if self._app is None:
            self._app = get_firebase_app()
        return self._app

    def is_configured(self) -> bool:
        return self._app is not None or settings.firebase_enabled

    @staticmethod
    def _notification(payload: NotificationPayload):
        from firebase_admin import messaging
        return messaging.Notification(title=payload.title, body=payload.body)

    async def send(self, token: str, payload: NotificationPayload) -> str:
        from firebase_admin import messaging

        message = messaging.Message(
            token=token,
            notification=self._notification(payload),
            data=payload.data or None,
        )
        try:
            message_id = await run_blocking(messaging.send, message, app=self.app)
        except Exception as exc:
            code = getattr(exc, "code", None)
            logger.warning(
                f"FCM send failed: token={mask_token(token)}, code={code}: {exc}",
                extra={"provider": self.name},
            )
            raise GatewayError(str(exc), code=code) from exc

        logger.info(
            f"FCM message sent: token={mask_token(token)}",
            extra={"provider": self.name},
        )
        return message_id

    async def send_multicast(
        self,
        tokens: Sequence[str],
        payload: NotificationPayload,
    ) -> list[str | GatewayError]:
        from firebase_admin import messaging

        if not tokens:
            return []

        messages = [
            messaging.Message(
                token=token,
                notification=self._notification(payload),
                data=payload.data or None,
            )
            for token in tokens
        ]
        try:
            batch = await run_blocking(messaging.send_each, messages, app=self.app)
        except Exception as exc:
            logger.error(f"FCM multicast failed: {exc}", extra={"provider": self.name}, exc_info=True)
            error = GatewayError(str(exc), code=getattr(exc, "code", None))
            return [error for _ in tokens]

        logger.info(
            f"FCM multicast sent: success={batch.success_count}, failure={batch.failure_count}",
            extra={"provider": self.name},
        )
        return [
            r.message_id if r.success
            else GatewayError(str(r.exception), code=getattr(r.exception, "code", None))
            for r in batch.responses
        ]


class FcmHttpGateway(PushGateway):
    """
    FCM HTTP v1 API via aiohttp.

    The OAuth2 access token comes from the service-account credential and
    is cached until shortly before it expires.
    """

    def __init__(self, app=None, endpoint: str | None = None) -> None:
        self._app = app
        self._endpoint = endpoint
        self._access_token: str | None = None
        self._access_token_expires_at: float = 0.0

    @property
    def name(self) -> str:
        return "fcm-http"

    def is_configured(self) -> bool:
        return self._app is not None or settings.firebase_enabled

    @property
    def app(self):
        if self._app is None:
            self._app = get_firebase_app()
        return self._app

    @property
    def endpoint(self) -> str:
        if self._endpoint is None:
            self._endpoint = settings.fcm_http_endpoint.format(project_id=self.app.project_id)
        return self._endpoint

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._access_token_expires_at:
            return self._access_token

        info = await run_blocking(self.app.credential.get_access_token)
        self._access_token = info.access_token
        expires_at = info.expiry.timestamp() if info.expiry else time.time() + 300
        self._access_token_expires_at = expires_at - _TOKEN_REFRESH_MARGIN_S
        return self._access_token

    @staticmethod
    def build_message(token: str, payload: NotificationPayload) -> dict:
        message: dict = {
            "token": token,
            "notification": {"title": payload.title, "body": payload.body},
        }
        if payload.data:
            message["data"] = dict(payload.data)
        return {"message": message}

    async def send(self, token: str, payload: NotificationPayload) -> str:
        try:
            access_token = await self._get_access_token()
        except Exception as exc:
            logger.error(f"FCM access token refresh failed: {type(exc).__name__}", exc_info=True)
            raise GatewayError(f"Credential refresh failed: {exc}") from exc

        session = get_push_session(limit=max(1, settings.dispatch_max_concurrency))
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with session.post(
                self.endpoint,
                json=self.build_message(token, payload),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=settings.push_send_timeout_seconds),
            ) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                if not isinstance(body, dict):
                    body = {}
                if resp.status != 200:
                    error = body.get("error") if isinstance(body.get("error"), dict) else {}
                    message = error.get("message") or f"HTTP {resp.status}"
                    logger.warning(
                        f"FCM HTTP error: status={resp.status}, token={mask_token(token)}: {message}",
                        extra={"provider": self.name},
                    )
                    raise GatewayError(message, code=error.get("status"))
        except aiohttp.ClientError as exc:
            logger.warning(f"FCM HTTP transport error: {type(exc).__name__}", extra={"provider": self.name})
            raise GatewayError(f"Transport error: {exc}") from exc

        logger.info(f"FCM message sent: token={mask_token(token)}", extra={"provider": self.name})
        return body.get("name", "")


class DisabledGateway(PushGateway):
    """Dry-run gateway when push delivery is disabled"""

    @property
    def name(self) -> str:
        return "disabled"

    def is_configured(self) -> bool:
        return True

    async def send(self, token: str, payload: NotificationPayload) -> str:
        logger.info(
            f"Push disabled, not sending: token={mask_token(token)}, title={payload.title!r}",
            extra={"provider": self.name},
        )
        return f"dry-run/{uuid.uuid4().hex}"


_GATEWAYS: dict[str, type[PushGateway]] = {
    "sdk": FirebaseAdminGateway,
    "http": FcmHttpGateway,
    "disabled": DisabledGateway,
}


def get_push_gateway(provider: str | None = None) -> PushGateway:
    """
    Build the configured push gateway.

    Unknown providers fall back to DisabledGateway.
    """
    provider = provider or settings.push_provider

    if provider not in _GATEWAYS:
        logger.error(f"Unknown push provider: {provider}")
        return DisabledGateway()

    gateway = _GATEWAYS[provider]()
    if not gateway.is_configured():
        logger.warning(f"Push provider '{provider}' not configured, sends will fail")
    return gateway

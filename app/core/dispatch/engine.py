# app/core/dispatch/engine.py
"""
Dispatch engine: fans a notification out to a circle of recipients.

Per recipient: exclusion / role filter → token resolution → optional
location enrichment → one gateway send.  Recipients run concurrently
(bounded by a semaphore) and every one of them ends up in the batch as
``Sent``, ``Skipped`` or ``Failed``; one recipient's failure never cancels
its siblings.

Single-recipient dispatch is stricter: a missing recipient, a missing
token or a gateway failure fails the whole request.
"""
from __future__ import annotations

import asyncio
import time

from app.core.dispatch.enrichment import ContextEnricher
from app.core.dispatch.models import (
    SKIP_EXCLUDED,
    SKIP_NO_TOKEN,
    SKIP_ROLE_MISMATCH,
    BatchResult,
    DispatchResult,
    Failed,
    GroupSelector,
    NotificationPayload,
    Recipient,
    Sent,
    Skipped,
)
from app.core.dispatch.ports import RecipientDirectory
from app.core.dispatch.token_resolver import TokenResolver
from app.core.errors import DeliveryError, DependencyError, NotFoundError, ValidationError
from app.infra.logging_config import LogContext, get_logger, mask_token
from app.infra.metrics import inc_counter, observe_histogram
from app.infra.push_gateway import GatewayError, PushGateway

logger = get_logger(__name__)

TIMEOUT_ERROR = "timeout"

MSG_NO_MEMBERS = "No members found in this circle"
MSG_NO_DELIVERABLE = "No other recipients with a delivery token"


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")


class DispatchEngine:
    def __init__(
        self,
        directory: RecipientDirectory,
        resolver: TokenResolver,
        enricher: ContextEnricher,
        gateway: PushGateway,
        *,
        max_concurrency: int = 20,
        send_timeout: float | None = 10.0,
    ) -> None:
        self._directory = directory
        self._resolver = resolver
        self._enricher = enricher
        self._gateway = gateway
        self._max_concurrency = max(1, max_concurrency)
        self._send_timeout = send_timeout

    @property
    def gateway(self) -> PushGateway:
        return self._gateway

    # ------------------------------------------------------------------
    # Direct dispatch
    # ------------------------------------------------------------------

    async def dispatch_to_one(self, recipient_id: str, title: str, body: str) -> Sent:
        """
        Send one notification to one recipient.

        Raises:
            ValidationError: a field is empty
            NotFoundError: recipient or device token not found
            DependencyError: directory or token store unreadable
            DeliveryError: gateway failed or timed out
        """
        _require(recipient_id=recipient_id, title=title, body=body)

        recipient = await self._directory.find_by_id(recipient_id)
        if recipient is None:
            raise NotFoundError("Recipient not found")

        token = await self._resolver.resolve(recipient)
        if token is None:
            raise NotFoundError("Device token not found")

        log_ctx = LogContext(logger, recipient_id=recipient_id)
        payload = NotificationPayload(title=title, body=body)
        try:
            receipt = await self._send(token, payload)
        except asyncio.TimeoutError as exc:
            inc_counter("push_failed", reason=TIMEOUT_ERROR)
            log_ctx.error(f"Push send timed out after {self._send_timeout}s")
            raise DeliveryError(TIMEOUT_ERROR) from exc
        except GatewayError as exc:
            inc_counter("push_failed", reason="gateway")
            log_ctx.error(f"Push send failed: {exc.message}")
            raise DeliveryError(exc.message) from exc

        inc_counter("push_sent")
        log_ctx.info(f"Sent message: {receipt}")
        return Sent(recipient_id=recipient.id, receipt=receipt)

    # ------------------------------------------------------------------
    # Group dispatch
    # ------------------------------------------------------------------

    async def selector_for_admin(
        self,
        admin_id: str,
        *,
        role: str | None = None,
        include_location: bool = False,
    ) -> GroupSelector:
        """Circle owned by ``admin_id``; the admin is excluded from it."""
        _require(admin_id=admin_id)

        admin = await self._directory.find_by_id(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        if not admin.group_code:
            raise NotFoundError("Group not found")
        return GroupSelector.for_admin(admin, role=role, include_location=include_location)

    async def dispatch_to_group(
        self,
        selector: GroupSelector,
        title: str,
        body: str,
    ) -> BatchResult:
        """
        Notify every recipient the selector resolves to.

        Audience resolution errors propagate (the audience is unknown);
        anything after that is recorded per recipient.
        """
        _require(title=title, body=body)
        if selector.is_role_query:
            _require(role=selector.role)

        log_ctx = LogContext(logger, group_code=selector.group_code or f"role:{selector.role}")
        started = time.monotonic()
        audience = await self._resolve_audience(selector)
        inc_counter("dispatch_batches")

        if not audience:
            log_ctx.info("Group dispatch: empty audience")
            return BatchResult(results=[], message=MSG_NO_MEMBERS)

        payload = NotificationPayload(title=title, body=body)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results: list[DispatchResult] = list(await asyncio.gather(
            *(self._dispatch_member(r, selector, payload, semaphore) for r in audience)
        ))

        batch = BatchResult(results=results)
        if not batch.sent and not batch.failed:
            batch.message = MSG_NO_DELIVERABLE

        duration_ms = (time.monotonic() - started) * 1000
        observe_histogram("dispatch_duration_ms", duration_ms)
        summary = batch.summary()
        log_ctx.info(
            f"Group dispatch complete: sent={summary['sent']} skipped={summary['skipped']} "
            f"failed={summary['failed']} duration={duration_ms:.2f}ms"
        )
        return batch

    async def _resolve_audience(self, selector: GroupSelector) -> list[Recipient]:
        if selector.is_role_query:
            return await self._directory.find_by_role(selector.role)
        # Whole circle: role mismatches are reported per member
        return await self._directory.find_by_group_code(selector.group_code)

    async def _dispatch_member(
        self,
        recipient: Recipient,
        selector: GroupSelector,
        payload: NotificationPayload,
        semaphore: asyncio.Semaphore,
    ) -> DispatchResult:
        if selector.exclude_id and recipient.id == selector.exclude_id:
            return self._skip(recipient, SKIP_EXCLUDED)
        if selector.role and recipient.role != selector.role:
            return self._skip(recipient, SKIP_ROLE_MISMATCH)

        async with semaphore:
            try:
                return await self._deliver(recipient, selector, payload)
            except Exception as exc:
                logger.error(
                    f"Unexpected dispatch error: {type(exc).__name__}",
                    extra={"recipient_id": recipient.id},
                    exc_info=True,
                )
                return self._fail(recipient, str(exc) or type(exc).__name__, kind="unexpected")

    async def _deliver(
        self,
        recipient: Recipient,
        selector: GroupSelector,
        payload: NotificationPayload,
    ) -> DispatchResult:
        try:
            token = await self._resolver.resolve(recipient)
        except DependencyError as exc:
            return self._fail(recipient, exc.detail, kind="store")
        if token is None:
            return self._skip(recipient, SKIP_NO_TOKEN)

        if selector.include_location:
            payload = await self._enricher.enrich(recipient.id, payload)

        try:
            receipt = await self._send(token, payload)
        except asyncio.TimeoutError:
            return self._fail(recipient, TIMEOUT_ERROR, kind="timeout")
        except GatewayError as exc:
            return self._fail(recipient, exc.message)

        inc_counter("push_sent")
        logger.debug(
            f"Push sent: token={mask_token(token)} receipt={receipt}",
            extra={"recipient_id": recipient.id},
        )
        return Sent(recipient_id=recipient.id, receipt=receipt)

    async def _send(self, token: str, payload: NotificationPayload) -> str:
        if self._send_timeout is None:
            return await self._gateway.send(token, payload)
        return await asyncio.wait_for(self._gateway.send(token, payload), timeout=self._send_timeout)

    @staticmethod
    def _skip(recipient: Recipient, reason: str) -> Skipped:
        inc_counter("push_skipped", reason=reason)
        logger.debug(f"Recipient skipped: {reason}", extra={"recipient_id": recipient.id})
        return Skipped(recipient_id=recipient.id, reason=reason)

    @staticmethod
    def _fail(recipient: Recipient, error: str, kind: str = "gateway") -> Failed:
        inc_counter("push_failed", reason=kind)
        logger.warning(f"Recipient failed: {error}", extra={"recipient_id": recipient.id})
        return Failed(recipient_id=recipient.id, error=error)

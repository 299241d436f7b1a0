# tests/test_push_gateway.py
"""Tests for app/infra/push_gateway.py."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.dispatch.models import NotificationPayload
from app.infra.push_gateway import (
    DisabledGateway,
    FcmHttpGateway,
    FirebaseAdminGateway,
    GatewayError,
    get_push_gateway,
)

from tests.conftest import RecordingGateway

PAYLOAD = NotificationPayload(title="Hi", body="Hello", data={"latitude": "1.0"})


# ============================================================================
# Base class / factory
# ============================================================================

class TestDefaultMulticast:
    @pytest.mark.asyncio
    async def test_one_result_per_token(self):
        gateway = RecordingGateway(failures={"T2": "Unregistered"})

        results = await gateway.send_multicast(["T1", "T2", "T3"], PAYLOAD)

        assert results[0] == "projects/test/messages/T1"
        assert isinstance(results[1], GatewayError)
        assert results[1].message == "Unregistered"
        assert results[2] == "projects/test/messages/T3"


class TestGetPushGateway:
    def test_disabled(self):
        assert isinstance(get_push_gateway("disabled"), DisabledGateway)

    def test_unknown_falls_back_to_disabled(self):
        assert isinstance(get_push_gateway("carrier-pigeon"), DisabledGateway)

    def test_sdk(self):
        gateway = get_push_gateway("sdk")
        assert isinstance(gateway, FirebaseAdminGateway)
        assert gateway.name == "fcm-sdk"

    def test_http(self):
        assert isinstance(get_push_gateway("http"), FcmHttpGateway)


class TestDisabledGateway:
    @pytest.mark.asyncio
    async def test_returns_dry_run_receipt(self):
        receipt = await DisabledGateway().send("T1", PAYLOAD)
        assert receipt.startswith("dry-run/")


# ============================================================================
# Firebase Admin SDK
# ============================================================================

class TestFirebaseAdminGateway:
    @pytest.mark.asyncio
    async def test_send_builds_message(self):
        app = MagicMock()
        with patch("firebase_admin.messaging.send", return_value="projects/p/messages/1") as mock_send:
            receipt = await FirebaseAdminGateway(app=app).send("T1", PAYLOAD)

        assert receipt == "projects/p/messages/1"
        message = mock_send.call_args.args[0]
        assert message.token == "T1"
        assert message.notification.title == "Hi"
        assert message.notification.body == "Hello"
        assert message.data == {"latitude": "1.0"}
        assert mock_send.call_args.kwargs["app"] is app

    @pytest.mark.asyncio
    async def test_send_failure_raises_gateway_error(self):
        error = ValueError("Invalid registration token")
        with patch("firebase_admin.messaging.send", side_effect=error):
            with pytest.raises(GatewayError) as exc_info:
                await FirebaseAdminGateway(app=MagicMock()).send("T1", PAYLOAD)
        assert "Invalid registration token" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_multicast_maps_responses(self):
        batch = SimpleNamespace(
            success_count=1,
            failure_count=1,
            responses=[
                SimpleNamespace(success=True, message_id="m1", exception=None),
                SimpleNamespace(success=False, message_id=None, exception=RuntimeError("Unregistered")),
            ],
        )
        with patch("firebase_admin.messaging.send_each", return_value=batch) as mock_send:
            results = await FirebaseAdminGateway(app=MagicMock()).send_multicast(["T1", "T2"], PAYLOAD)

        assert [m.token for m in mock_send.call_args.args[0]] == ["T1", "T2"]
        assert results[0] == "m1"
        assert isinstance(results[1], GatewayError)

    @pytest.mark.asyncio
    async def test_multicast_empty(self):
        assert await FirebaseAdminGateway(app=MagicMock()).send_multicast([], PAYLOAD) == []


# ============================================================================
# FCM HTTP v1
# ============================================================================

def _response(status: int, body):
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=body)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _http_gateway() -> FcmHttpGateway:
    app = MagicMock()
    app.project_id = "demo"
    app.credential.get_access_token.return_value = SimpleNamespace(
        access_token="ya29.token",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    return FcmHttpGateway(app=app)


class TestFcmHttpGateway:
    def test_build_message(self):
        assert FcmHttpGateway.build_message("T1", PAYLOAD) == {
            "message": {
                "token": "T1",
                "notification": {"title": "Hi", "body": "Hello"},
                "data": {"latitude": "1.0"},
            }
        }

    def test_endpoint_uses_project(self):
        assert _http_gateway().endpoint == "https://fcm.googleapis.com/v1/projects/demo/messages:send"

    @pytest.mark.asyncio
    async def test_send_success(self):
        gateway = _http_gateway()
        session = MagicMock()
        session.post.return_value = _response(200, {"name": "projects/demo/messages/42"})

        with patch("app.infra.push_gateway.get_push_session", return_value=session):
            receipt = await gateway.send("T1", PAYLOAD)

        assert receipt == "projects/demo/messages/42"
        kwargs = session.post.call_args.kwargs
        assert kwargs["headers"] == {"Authorization": "Bearer ya29.token"}
        assert kwargs["json"]["message"]["token"] == "T1"

    @pytest.mark.asyncio
    async def test_access_token_cached(self):
        gateway = _http_gateway()
        session = MagicMock()
        session.post.side_effect = lambda *a, **kw: _response(200, {"name": "n"})

        with patch("app.infra.push_gateway.get_push_session", return_value=session):
            await gateway.send("T1", PAYLOAD)
            await gateway.send("T2", PAYLOAD)

        assert gateway.app.credential.get_access_token.call_count == 1

    @pytest.mark.asyncio
    async def test_provider_error_message(self):
        gateway = _http_gateway()
        session = MagicMock()
        session.post.return_value = _response(
            404, {"error": {"message": "Requested entity was not found.", "status": "NOT_FOUND"}},
        )

        with patch("app.infra.push_gateway.get_push_session", return_value=session):
            with pytest.raises(GatewayError) as exc_info:
                await gateway.send("T1", PAYLOAD)

        assert exc_info.value.message == "Requested entity was not found."
        assert exc_info.value.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        gateway = _http_gateway()
        session = MagicMock()
        session.post.return_value = _response(502, None)

        with patch("app.infra.push_gateway.get_push_session", return_value=session):
            with pytest.raises(GatewayError) as exc_info:
                await gateway.send("T1", PAYLOAD)

        assert exc_info.value.message == "HTTP 502"

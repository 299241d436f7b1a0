# tests/conftest.py
"""Pytest configuration and fixtures"""
import asyncio
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.dispatch.engine import DispatchEngine  # noqa: E402
from app.core.dispatch.enrichment import ContextEnricher  # noqa: E402
from app.core.dispatch.models import NotificationPayload, Recipient  # noqa: E402
from app.core.dispatch.token_resolver import TokenResolver  # noqa: E402
from app.infra.keyed_store import InMemoryKeyedStore  # noqa: E402
from app.infra.metrics import get_metrics_collector  # noqa: E402
from app.infra.push_gateway import GatewayError, PushGateway  # noqa: E402
from app.infra.recipient_directory import InMemoryRecipientDirectory  # noqa: E402


class RecordingGateway(PushGateway):
    """Gateway fake: records every send, fails or stalls on chosen tokens."""

    def __init__(
        self,
        failures: dict[str, str] | None = None,
        delays: dict[str, float] | None = None,
        default_delay: float = 0.0,
    ) -> None:
        self.calls: list[tuple[str, NotificationPayload]] = []
        self.failures = failures or {}
        self.delays = delays or {}
        self.default_delay = default_delay
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def name(self) -> str:
        return "recording"

    def is_configured(self) -> bool:
        return True

    @property
    def tokens(self) -> list[str]:
        return [token for token, _ in self.calls]

    async def send(self, token: str, payload: NotificationPayload) -> str:
        self.calls.append((token, payload))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(token, self.default_delay)
            if delay:
                await asyncio.sleep(delay)
            if token in self.failures:
                raise GatewayError(self.failures[token])
            return f"projects/test/messages/{token}"
        finally:
            self.in_flight -= 1


class FailingStore:
    """Keyed store whose every read fails"""

    async def get(self, key):
        from app.core.errors import DependencyError
        raise DependencyError(f"read of {key} failed")


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def directory():
    return InMemoryRecipientDirectory([
        Recipient(id="u1", group_code="G1", role="Monitoring User", inline_token="T1"),
        Recipient(id="u2", group_code="G2", role="Monitoring User"),
        Recipient(id="sender", group_code="G1", role="Admin", inline_token="TS"),
        Recipient(id="u3", group_code="G1", role="Monitoring User"),
        Recipient(id="u4", group_code="G1", role="Monitoring User", inline_token="T4"),
    ])


@pytest.fixture
def device_tokens():
    return InMemoryKeyedStore({"u4": "T4-secondary"})


@pytest.fixture
def locations():
    return InMemoryKeyedStore({
        "u1": {"latitude": 32.79, "longitude": 34.98},
        "u4": {"latitude": 12.5},
    })


@pytest.fixture
def make_engine(directory, device_tokens, locations, gateway):
    def _make(**overrides) -> DispatchEngine:
        kwargs = {
            "directory": directory,
            "resolver": TokenResolver.with_fallback_store(overrides.pop("device_tokens", device_tokens)),
            "enricher": ContextEnricher(overrides.pop("locations", locations)),
            "gateway": gateway,
            "max_concurrency": 20,
            "send_timeout": 1.0,
        }
        kwargs.update(overrides)
        return DispatchEngine(**kwargs)
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()

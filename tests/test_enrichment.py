# tests/test_enrichment.py
"""Tests for location enrichment in app/core/dispatch/enrichment.py."""
from __future__ import annotations

import pytest

from app.core.dispatch.enrichment import ContextEnricher, parse_coordinate
from app.core.dispatch.models import UNKNOWN, LocationContext, NotificationPayload
from app.infra.keyed_store import InMemoryKeyedStore

from tests.conftest import FailingStore


class TestParseCoordinate:
    @pytest.mark.parametrize("value,expected", [
        (12.5, 12.5),
        (-0.25, -0.25),
        (7, 7.0),
        ("32.794", 32.794),
        (" 1.5 ", 1.5),
    ])
    def test_numeric(self, value, expected):
        assert parse_coordinate(value) == expected

    @pytest.mark.parametrize("value", [None, "", "north", True, float("nan"), float("inf"), 10**400, "1e999", [1.0], {}])
    def test_unknown(self, value):
        assert parse_coordinate(value) == UNKNOWN


class TestContextEnricher:
    @pytest.mark.asyncio
    async def test_missing_longitude_only(self):
        enricher = ContextEnricher(InMemoryKeyedStore({"u4": {"latitude": 12.5}}))

        payload = await enricher.enrich("u4", NotificationPayload(title="SOS", body="Help"))

        assert "Lat: 12.5, Lon: Unknown" in payload.body
        assert payload.body == "Help (Lat: 12.5, Lon: Unknown)"
        assert payload.data == {"latitude": "12.5", "longitude": "Unknown"}
        assert payload.title == "SOS"

    @pytest.mark.asyncio
    async def test_full_location(self):
        enricher = ContextEnricher(InMemoryKeyedStore({"u1": {"latitude": 32.79, "longitude": "34.98"}}))
        location = await enricher.lookup("u1")
        assert location == LocationContext(latitude=32.79, longitude=34.98)
        assert location.is_known

    @pytest.mark.asyncio
    async def test_no_record(self):
        enricher = ContextEnricher(InMemoryKeyedStore())
        payload = await enricher.enrich("u9", NotificationPayload(title="SOS", body="Help"))
        assert payload.body == "Help (Lat: Unknown, Lon: Unknown)"

    @pytest.mark.asyncio
    async def test_malformed_record(self):
        enricher = ContextEnricher(InMemoryKeyedStore({"u1": "32.7,34.9"}))
        assert await enricher.lookup("u1") == LocationContext()

    @pytest.mark.asyncio
    async def test_store_failure_degrades(self):
        enricher = ContextEnricher(FailingStore())
        payload = await enricher.enrich("u1", NotificationPayload(title="SOS", body="Help"))
        assert payload.data == {"latitude": "Unknown", "longitude": "Unknown"}

    @pytest.mark.asyncio
    async def test_existing_data_kept(self):
        enricher = ContextEnricher(InMemoryKeyedStore({"u1": {"latitude": 1.0, "longitude": 2.0}}))
        base = NotificationPayload(title="SOS", body="Help", data={"kind": "sos"})

        payload = await enricher.enrich("u1", base)

        assert payload.data == {"kind": "sos", "latitude": "1.0", "longitude": "2.0"}
        assert base.data == {"kind": "sos"}

# tests/test_observability.py
"""Tests for logging helpers and the metrics collector."""
from __future__ import annotations

import json
import logging

from app.infra.logging_config import JSONFormatter, LogContext, mask_coordinates, mask_token
from app.infra.metrics import MetricsCollector


class TestMasking:
    def test_mask_token(self):
        assert mask_token("dXk2abcdefgh1234") == "dXk2***1234"

    def test_short_or_missing_token(self):
        assert mask_token("short") == "***"
        assert mask_token(None) == "***"

    def test_mask_coordinates(self):
        assert mask_coordinates(32.794, 34.989) == "32.8**, 35.0**"


class TestJSONFormatter:
    def test_context_fields_included(self):
        record = logging.LogRecord("dispatch", logging.INFO, __file__, 1, "sent", None, None)
        record.request_id = "req-1"
        record.group_code = "G1"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "sent"
        assert data["request_id"] == "req-1"
        assert data["group_code"] == "G1"
        assert "recipient_id" not in data


class TestLogContext:
    def test_context_passed_as_extra(self, caplog):
        logger = logging.getLogger("test.log_context")
        with caplog.at_level(logging.INFO, logger="test.log_context"):
            LogContext(logger, request_id="req-1", recipient_id="u1").info("hello")

        record = caplog.records[-1]
        assert record.request_id == "req-1"
        assert record.recipient_id == "u1"
        assert not hasattr(record, "group_code")


class TestMetricsCollector:
    def test_counters_with_labels(self):
        metrics = MetricsCollector()
        metrics.inc_counter("push_skipped", labels={"reason": "no-token"})
        metrics.inc_counter("push_skipped", labels={"reason": "no-token"})
        metrics.inc_counter("push_sent")

        assert metrics.get_counter("push_skipped", reason="no-token") == 2
        assert metrics.get_counter("push_sent") == 1
        assert metrics.get_counter("push_failed") == 0
        assert metrics.get_metrics()["counters"]["push_skipped{reason=no-token}"] == 2

    def test_histogram_summary(self):
        metrics = MetricsCollector()
        for value in (10.0, 30.0, 20.0):
            metrics.observe_histogram("dispatch_duration_ms", value)

        summary = metrics.get_metrics()["histograms"]["dispatch_duration_ms"]

        assert summary["count"] == 3
        assert summary["min"] == 10.0
        assert summary["max"] == 30.0
        assert summary["avg"] == 20.0

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.inc_counter("push_sent")
        metrics.reset()
        assert metrics.get_metrics() == {"counters": {}, "histograms": {}}

"""Tests for configuration, time, logging and metrics helpers."""

import json
import logging
from datetime import datetime

import pytz

from recurrence_service.config import Settings, load_settings
from recurrence_service.utils import metrics as metric_names
from recurrence_service.utils.logger import get_logger
from recurrence_service.utils.metrics import MetricsCollector
from recurrence_service.utils.time import isoformat, parse_iso, to_naive_utc, utcnow


class TestSettings:
    """Tests for load_settings."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("DATABASE_URL", "DAPR_ENABLED", "ENABLE_SCHEDULER", "RECURRENCE_POLL_INTERVAL_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings(str(tmp_path / "missing.env"))
        assert settings.database_url == Settings.database_url
        assert settings.dapr_enabled is True
        assert settings.poll_interval_seconds == 60
        assert settings.dapr_base_url == "http://localhost:3500"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DAPR_ENABLED", "false")
        monkeypatch.setenv("ENABLE_SCHEDULER", "0")
        monkeypatch.setenv("RECURRENCE_POLL_INTERVAL_SECONDS", "15")
        monkeypatch.setenv("RECURRENCE_CLAIM_TIMEOUT_SECONDS", "120")
        monkeypatch.setenv("DAPR_HOST", "dapr")
        monkeypatch.setenv("DAPR_GRPC_PORT", "50002")

        settings = load_settings(str(tmp_path / "missing.env"))
        assert settings.dapr_enabled is False
        assert settings.enable_scheduler is False
        assert settings.poll_interval_seconds == 15
        assert settings.claim_timeout_seconds == 120
        assert settings.dapr_grpc_address == "dapr:50002"

    def test_env_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv("PUBSUB_NAME", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("PUBSUB_NAME=kafka-pubsub\n")

        assert load_settings(str(env_file)).pubsub_name == "kafka-pubsub"
        monkeypatch.delenv("PUBSUB_NAME", raising=False)


class TestTime:
    """Tests for time helpers."""

    def test_utcnow_is_naive(self):
        assert utcnow().tzinfo is None

    def test_to_naive_utc_converts_offset(self):
        aware = pytz.timezone("Europe/Madrid").localize(datetime(2026, 7, 1, 10, 0))
        assert to_naive_utc(aware) == datetime(2026, 7, 1, 8, 0)

    def test_naive_passes_through(self):
        value = datetime(2026, 1, 1)
        assert to_naive_utc(value) is value
        assert to_naive_utc(None) is None

    def test_parse_iso_with_zulu(self):
        assert parse_iso("2026-01-15T12:00:00Z") == datetime(2026, 1, 15, 12, 0)
        assert parse_iso("") is None
        assert isoformat(None) is None


class TestStructuredLogger:
    """Tests for StructuredLogger output."""

    def test_renders_json(self, caplog):
        logger = get_logger("recurrence_service.tests")
        with caplog.at_level(logging.INFO, logger="recurrence_service.tests"):
            logger.info("Recurrence triggered", task_id="task-1", when=datetime(2026, 1, 15))

        data = json.loads(caplog.records[-1].getMessage())
        assert data["message"] == "Recurrence triggered"
        assert data["level"] == "INFO"
        assert data["task_id"] == "task-1"
        assert data["when"] == "2026-01-15T00:00:00"

    def test_disabled_level_is_skipped(self, caplog):
        logger = get_logger("recurrence_service.tests.quiet")
        with caplog.at_level(logging.WARNING, logger="recurrence_service.tests.quiet"):
            logger.debug("not rendered")
        assert caplog.records == []


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters_start_at_zero(self):
        counters = MetricsCollector().get_metrics()["counters"]
        assert counters[metric_names.TRIGGERED] == 0
        assert counters[metric_names.POLL_TICKS_SKIPPED] == 0

    def test_increment_and_time(self):
        metrics = MetricsCollector()
        metrics.increment_counter(metric_names.CONFLICTS)
        metrics.increment_counter(metric_names.CONFLICTS, 2)
        with metrics.time_operation(metric_names.POLL_DURATION):
            pass

        snapshot = metrics.get_metrics()
        assert snapshot["counters"][metric_names.CONFLICTS] == 3
        assert metric_names.POLL_DURATION in snapshot["timers"]

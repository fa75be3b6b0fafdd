"""Tests for config and logging."""

import json
import logging
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from escrow_engine.config import (
    EngineConfig,
    EscrowConfig,
    KafkaConfig,
    OutputConfig,
    PostgresConfig,
    SimulatedPaymentConfig,
)
from escrow_engine.exceptions import ConfigurationError
from escrow_engine.logging import JsonFormatter, get_logger, setup_logging


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_default_values(self) -> None:
        config = EngineConfig()

        assert config.invitation_ttl_days == 7
        assert config.default_currency == "ZAR"
        assert config.payment_workers == 4
        assert config.notification_limit == 20
        assert config.storage_retry_attempts == 3
        assert config.notification_delivery_attempts == 3

    def test_currency_upper_cased(self) -> None:
        assert EngineConfig(default_currency="usd").default_currency == "USD"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"invitation_ttl_days": 0},
            {"default_currency": "RANDS"},
            {"payment_workers": 0},
            {"notification_limit": 0},
            {"storage_retry_attempts": 0},
            {"storage_retry_delay_seconds": -1.0},
            {"notification_delivery_attempts": 0},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs)


class TestSimulatedPaymentConfig:
    """Tests for SimulatedPaymentConfig."""

    def test_default_values(self) -> None:
        config = SimulatedPaymentConfig()

        assert config.latency_seconds == 2.5
        assert config.success_rate == 0.7
        assert config.force_success is False

    @pytest.mark.parametrize("kwargs", [{"latency_seconds": -1}, {"success_rate": 1.1}])
    def test_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            SimulatedPaymentConfig(**kwargs)


class TestKafkaConfig:
    """Tests for KafkaConfig."""

    def test_default_values(self) -> None:
        config = KafkaConfig()

        assert config.bootstrap_servers == "localhost:9092"
        assert config.acks == "all"
        assert config.compression == "snappy"

    def test_topics(self) -> None:
        config = KafkaConfig(topic_prefix="staging")

        assert config.events_topic == "staging.transaction-events"
        assert config.notifications_topic == "staging.notifications"


class TestPostgresConfig:
    """Tests for PostgresConfig."""

    def test_connection_string(self) -> None:
        config = PostgresConfig(host="db", port=5433, database="escrow", user="app", password="secret")

        assert config.connection_string == "postgresql://app:secret@db:5433/escrow"

    def test_output_default(self) -> None:
        assert OutputConfig().json_output_dir == Path("output")


class TestEscrowConfig:
    """Tests for EscrowConfig.from_env."""

    def test_from_env_default(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = EscrowConfig.from_env()

        assert config.engine.invitation_ttl_days == 7
        assert config.payments.latency_seconds == 2.5
        assert config.kafka.events_topic == "escrow.transaction-events"
        assert config.postgres.database == "escrow"
        assert config.seed is None
        assert config.log_level == "INFO"

    def test_from_env_custom(self) -> None:
        env = {
            "INVITATION_TTL_DAYS": "3",
            "DEFAULT_CURRENCY": "usd",
            "PAYMENT_WORKERS": "2",
            "PAYMENT_LATENCY": "0",
            "PAYMENT_SUCCESS_RATE": "1.0",
            "PAYMENT_FORCE_SUCCESS": "yes",
            "KAFKA_BOOTSTRAP_SERVERS": "kafka:29092",
            "TOPIC_PREFIX": "test",
            "POSTGRES_HOST": "db",
            "POSTGRES_PORT": "6543",
            "OUTPUT_DIR": "/tmp/escrow",
            "SEED": "42",
            "LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            config = EscrowConfig.from_env()

        assert config.engine.invitation_ttl_days == 3
        assert config.engine.default_currency == "USD"
        assert config.engine.payment_workers == 2
        assert config.payments.latency_seconds == 0.0
        assert config.payments.force_success is True
        assert config.kafka.bootstrap_servers == "kafka:29092"
        assert config.kafka.notifications_topic == "test.notifications"
        assert config.postgres.port == 6543
        assert config.output.json_output_dir == Path("/tmp/escrow")
        assert config.seed == 42
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "env",
        [
            {"SEED": "forty-two"},
            {"PAYMENT_FORCE_SUCCESS": "maybe"},
            {"PAYMENT_SUCCESS_RATE": "2"},
            {"LOG_LEVEL": "LOUD"},
            {"INVITATION_TTL_DAYS": "-1"},
        ],
    )
    def test_from_env_invalid(self, env: dict) -> None:
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError):
                EscrowConfig.from_env()


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self) -> None:
        setup_logging()

        assert logging.getLogger("escrow_engine").level == logging.INFO

    def test_setup_logging_debug(self) -> None:
        setup_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_invalid_level(self) -> None:
        """Unknown levels fall back to INFO."""
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_json_format(self) -> None:
        setup_logging(format_type="json")

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)

    def test_setup_logging_replaces_handlers(self) -> None:
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_external_loggers_quieted(self) -> None:
        setup_logging(level="DEBUG")

        for name in ("confluent_kafka", "psycopg", "faker"):
            assert logging.getLogger(name).level == logging.WARNING


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_format_basic(self) -> None:
        record = logging.LogRecord(
            name="escrow_engine.engine",
            level=logging.INFO,
            pathname="engine.py",
            lineno=1,
            msg="Transaction %s funded",
            args=("txn-001",),
            exc_info=None,
        )
        record.threadName = "payment_0"

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "escrow_engine.engine"
        assert data["thread"] == "payment_0"
        assert data["message"] == "Transaction txn-001 funded"
        assert "timestamp" in data

    def test_format_with_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord("x", logging.ERROR, "f.py", 1, "failed", None, exc_info)
        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]

    def test_format_with_extra(self) -> None:
        record = logging.LogRecord("x", logging.INFO, "f.py", 1, "msg", None, None)
        record.transaction_id = "txn-001"

        data = json.loads(JsonFormatter().format(record))

        assert data["transaction_id"] == "txn-001"


class TestGetLogger:
    """Tests for get_logger."""

    def test_get_logger(self) -> None:
        logger = get_logger("escrow_engine.test")

        assert logger.name == "escrow_engine.test"
        assert get_logger("escrow_engine.test") is logger

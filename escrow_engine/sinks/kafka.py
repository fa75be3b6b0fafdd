"""Kafka sink for streaming escrow events and notifications."""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from confluent_kafka import Producer

from escrow_engine.config import KafkaConfig
from escrow_engine.sinks.serialization import record_key, to_envelope

logger = logging.getLogger(__name__)


@dataclass
class ProducerConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str
    acks: str = "all"  # "0", "1", "all"
    batch_size: int = 16384  # bytes
    linger_ms: int = 5  # ms to wait for batching
    compression: str = "snappy"  # none, gzip, snappy, lz4
    retries: int = 3

    @classmethod
    def from_kafka_config(cls, kafka: KafkaConfig) -> "ProducerConfig":
        """Build a producer config from the application Kafka settings."""
        return cls(
            bootstrap_servers=kafka.bootstrap_servers,
            acks=kafka.acks,
            batch_size=kafka.batch_size,
            linger_ms=kafka.linger_ms,
            compression=kafka.compression,
            retries=kafka.retries,
        )


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0
    start_time: float | None = None

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Publish committed records as JSON envelopes to Kafka topics.

    Transaction events are keyed by ``transaction_id`` so one transaction's
    events stay ordered within a partition; notifications are keyed by
    ``recipient_id``.
    """

    def __init__(self, config: ProducerConfig | str) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : ProducerConfig | str
            Producer configuration or bootstrap servers string.
        """
        if isinstance(config, str):
            config = ProducerConfig(bootstrap_servers=config)

        self.config = config
        self.producer = self._create_producer()
        self.stats = ProducerStats(start_time=time.time())

    def _create_producer(self) -> Producer:
        """Create Kafka producer with configuration."""
        return Producer(
            {
                "bootstrap.servers": self.config.bootstrap_servers,
                "acks": self.config.acks,
                "retries": self.config.retries,
                "linger.ms": self.config.linger_ms,
                "batch.size": self.config.batch_size,
                "compression.type": self.config.compression,
            }
        )

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def publish(self, topic: str, record: Any, key: str | None = None) -> None:
        """Send a single record to a Kafka topic."""
        envelope = asdict(to_envelope(record))
        envelope["event_time"] = envelope["event_time"].isoformat()
        value = json.dumps(envelope, ensure_ascii=False, default=str).encode("utf-8")

        if key is None:
            key = record_key(record)

        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8") if key else None,
            value=value,
            callback=self._delivery_callback,
        )
        self.stats.sent += 1
        self.producer.poll(0)

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        self.producer.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

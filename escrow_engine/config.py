"""Configuration management for escrow-engine."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from escrow_engine.exceptions import ConfigurationError


@dataclass
class EngineConfig:
    """Lifecycle engine settings."""

    invitation_ttl_days: int = 7
    default_currency: str = "ZAR"
    payment_workers: int = 4
    notification_limit: int = 20
    storage_retry_attempts: int = 3
    storage_retry_delay_seconds: float = 0.05
    notification_delivery_attempts: int = 3

    def __post_init__(self) -> None:
        if self.invitation_ttl_days <= 0:
            raise ConfigurationError("invitation_ttl_days must be positive")
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ConfigurationError(f"Invalid currency code: {self.default_currency!r}")
        self.default_currency = self.default_currency.upper()
        if self.payment_workers < 1:
            raise ConfigurationError("payment_workers must be at least 1")
        if self.notification_limit < 1:
            raise ConfigurationError("notification_limit must be at least 1")
        if self.storage_retry_attempts < 1:
            raise ConfigurationError("storage_retry_attempts must be at least 1")
        if self.storage_retry_delay_seconds < 0:
            raise ConfigurationError("storage_retry_delay_seconds must be non-negative")
        if self.notification_delivery_attempts < 1:
            raise ConfigurationError("notification_delivery_attempts must be at least 1")


@dataclass
class SimulatedPaymentConfig:
    """Simulated payment gateway settings."""

    latency_seconds: float = 2.5
    success_rate: float = 0.7
    force_success: bool = False
    provider: str = "simulated"

    def __post_init__(self) -> None:
        if self.latency_seconds < 0:
            raise ConfigurationError("latency_seconds must be non-negative")
        if not 0.0 <= self.success_rate <= 1.0:
            raise ConfigurationError("success_rate must be between 0.0 and 1.0")


@dataclass
class KafkaConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic_prefix: str = "escrow"

    @property
    def events_topic(self) -> str:
        return f"{self.topic_prefix}.transaction-events"

    @property
    def notifications_topic(self) -> str:
        return f"{self.topic_prefix}.notifications"


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "escrow"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Output configuration."""

    json_output_dir: Path = field(default_factory=lambda: Path("output"))


@dataclass
class EscrowConfig:
    """Main configuration for escrow-engine."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    payments: SimulatedPaymentConfig = field(default_factory=SimulatedPaymentConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EscrowConfig":
        """Create config from environment variables.

        Raises
        ------
        ConfigurationError
            If a variable is set to a value of the wrong type or out of range.
        """
        engine = EngineConfig(
            invitation_ttl_days=_env("INVITATION_TTL_DAYS", 7, int),
            default_currency=os.getenv("DEFAULT_CURRENCY", "ZAR"),
            payment_workers=_env("PAYMENT_WORKERS", 4, int),
            notification_limit=_env("NOTIFICATION_LIMIT", 20, int),
            storage_retry_attempts=_env("STORAGE_RETRY_ATTEMPTS", 3, int),
            storage_retry_delay_seconds=_env("STORAGE_RETRY_DELAY", 0.05, float),
        )

        payments = SimulatedPaymentConfig(
            latency_seconds=_env("PAYMENT_LATENCY", 2.5, float),
            success_rate=_env("PAYMENT_SUCCESS_RATE", 0.7, float),
            force_success=_env("PAYMENT_FORCE_SUCCESS", False, _parse_bool),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic_prefix=os.getenv("TOPIC_PREFIX", "escrow"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env("POSTGRES_PORT", 5432, int),
            database=os.getenv("POSTGRES_DB", "escrow"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(json_output_dir=Path(os.getenv("OUTPUT_DIR", "output")))

        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid LOG_LEVEL: {log_level!r}")

        return cls(
            engine=engine,
            payments=payments,
            kafka=kafka,
            postgres=postgres,
            output=output,
            seed=_env("SEED", None, int),
            log_level=log_level,
        )


def _env(name: str, default: Any, parse: Callable[[str], Any]) -> Any:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(raw)

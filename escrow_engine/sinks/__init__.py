"""Output sinks for committed events and notifications."""

from escrow_engine.sinks.console import ConsoleSink
from escrow_engine.sinks.json_file import JsonFileSink
from escrow_engine.sinks.kafka import KafkaSink
from escrow_engine.sinks.postgres import PostgresSink
from escrow_engine.sinks.publisher import Sink, SinkPublisher

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink", "PostgresSink", "Sink", "SinkPublisher"]

"""Shared serialization utilities for sinks."""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from escrow_engine.models.base import Event

SOURCE = "escrow-engine"


def to_dict(obj: Any) -> dict:
    """Convert object to dictionary."""
    if is_dataclass(obj):
        return dataclass_to_dict(obj)
    elif isinstance(obj, dict):
        return obj
    else:
        return {"value": str(obj)}


def dataclass_to_dict(obj: Any) -> dict:
    """Convert dataclass to dict with proper serialization."""
    result = {}
    for key, value in asdict(obj).items():
        result[key] = serialize_value(value)
    return result


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output."""
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    elif isinstance(value, (set, frozenset)):
        return sorted(serialize_value(v) for v in value)
    return value


def record_key(record: Any) -> str | None:
    """Partition key: transaction id for events, recipient id for notifications."""
    for attr in ("transaction_id", "recipient_id"):
        value = getattr(record, attr, None)
        if value is None and isinstance(record, dict):
            value = record.get(attr)
        if value is not None:
            return value
    return None


def to_envelope(record: Any) -> Event:
    """Wrap an engine record in the standard streaming envelope."""
    data = to_dict(record)
    if "event_type" in data:
        event_id = data.get("event_id", "")
        event_type = f"transaction.{data['event_type']}"
        event_time = getattr(record, "created_at", None) or datetime.now()
    elif "notification_id" in data:
        event_id = data["notification_id"]
        event_type = f"notification.{data.get('type', 'created')}"
        event_time = getattr(record, "created_at", None) or datetime.now()
    else:
        event_id = str(data.get("id", ""))
        event_type = "record.published"
        event_time = datetime.now()
    return Event(
        event_id=event_id,
        event_type=event_type,
        event_time=event_time,
        source=SOURCE,
        subject=record_key(record) or "",
        data=data,
    )

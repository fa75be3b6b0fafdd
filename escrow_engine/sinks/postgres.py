"""PostgreSQL sink archiving transaction events and notifications."""

import json
import logging
import threading
from typing import Any

from escrow_engine.exceptions import SinkError
from escrow_engine.sinks.serialization import to_dict

logger = logging.getLogger(__name__)


class PostgresSink:
    """Append-only archive of published records.

    Records are routed to a table by shape: anything with an ``event_type``
    lands in ``transaction_events``, anything with a ``notification_id`` in
    ``notifications``. Re-publishing a record is ignored.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS transaction_events (
            event_id TEXT PRIMARY KEY,
            transaction_id TEXT NOT NULL,
            actor_id TEXT,
            event_type TEXT NOT NULL,
            message TEXT NOT NULL,
            status TEXT NOT NULL,
            sequence INTEGER NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS notifications (
            notification_id TEXT PRIMARY KEY,
            recipient_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL
        )
        """,
    )

    TABLE_COLUMNS = {
        "transaction_events": [
            "event_id",
            "transaction_id",
            "actor_id",
            "event_type",
            "message",
            "status",
            "sequence",
            "metadata",
            "created_at",
        ],
        "notifications": [
            "notification_id",
            "recipient_id",
            "type",
            "title",
            "body",
            "read",
            "created_at",
        ],
    }

    def __init__(self, connection_string: str, create_tables: bool = True) -> None:
        """Initialize PostgreSQL sink.

        Parameters
        ----------
        connection_string : str
            libpq connection string (see ``PostgresConfig.connection_string``).
        create_tables : bool
            Create the archive tables if they do not exist.
        """
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                "psycopg is required for PostgresSink. "
                "Install with: pip install 'psycopg[binary]'"
            ) from e

        self.connection_string = connection_string
        self.conn = psycopg.connect(connection_string)
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}

        if create_tables:
            with self.conn.cursor() as cur:
                for statement in self.SCHEMA:
                    cur.execute(statement)
            self.conn.commit()

    @classmethod
    def table_for(cls, data: dict) -> str | None:
        if "event_type" in data and "transaction_id" in data:
            return "transaction_events"
        if "notification_id" in data:
            return "notifications"
        return None

    def publish(self, topic: str, record: Any) -> None:
        """Insert one record into its archive table."""
        data = to_dict(record)
        table = self.table_for(data)
        if table is None:
            logger.warning("No archive table for record on %s; skipped", topic)
            return

        columns = self.TABLE_COLUMNS[table]
        values = []
        for col in columns:
            value = data.get(col)
            if col == "metadata":
                value = json.dumps(value or {})
            values.append(value)

        placeholders = ", ".join(["%s"] * len(columns))
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            "ON CONFLICT DO NOTHING"
        )

        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(sql, values)
                self.conn.commit()
            except Exception as e:
                self.conn.rollback()
                raise SinkError(f"Failed to archive record into {table}: {e}") from e
            self._counts[table] = self._counts.get(table, 0) + 1

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()
        logger.info("Postgres sink closed: %s", self._counts)

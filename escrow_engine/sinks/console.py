"""Console sink for debugging and development."""

import json
from typing import Any

from escrow_engine.sinks.serialization import to_dict


class ConsoleSink:
    """Output records to console (stdout) for debugging."""

    def __init__(self, pretty: bool = True, max_records: int | None = None) -> None:
        """Initialize console sink.

        Parameters
        ----------
        pretty : bool
            Pretty-print JSON output.
        max_records : int | None
            Maximum records to print per topic (None for all).
        """
        self.pretty = pretty
        self.max_records = max_records
        self._counts: dict[str, int] = {}

    def publish(self, topic: str, record: Any) -> None:
        """Print one record, prefixed with its topic."""
        count = self._counts.get(topic, 0)
        self._counts[topic] = count + 1
        if self.max_records is not None and count >= self.max_records:
            return

        data = to_dict(record)
        if self.pretty:
            print(f"[{topic}]")
            print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        else:
            print(f"[{topic}] " + json.dumps(data, ensure_ascii=False, default=str))

    def close(self) -> None:
        """Print summary and close."""
        print(f"\n{'='*60}")
        print("Console Sink Summary")
        print("=" * 60)
        for topic, count in self._counts.items():
            print(f"  {topic}: {count} records")

"""JSON Lines sink for exporting engine records to files."""

import json
import threading
from pathlib import Path
from typing import Any

from escrow_engine.sinks.serialization import to_dict


class JsonFileSink:
    """Append records to one JSON Lines file per topic."""

    def __init__(self, output_dir: str | Path) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write ``<topic>.jsonl`` files into.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def path_for(self, topic: str) -> Path:
        # escrow.transaction-events -> escrow_transaction-events.jsonl
        return self.output_dir / (topic.replace(".", "_") + ".jsonl")

    def publish(self, topic: str, record: Any) -> None:
        """Append one record as a JSON line."""
        line = json.dumps(to_dict(record), ensure_ascii=False, default=str)
        with self._lock:
            with open(self.path_for(topic), "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self._counts[topic] = self._counts.get(topic, 0) + 1

    def close(self) -> None:
        """Print summary."""
        print(f"JSON Lines written to: {self.output_dir}")
        for topic, count in self._counts.items():
            print(f"  {topic}: {count} records")

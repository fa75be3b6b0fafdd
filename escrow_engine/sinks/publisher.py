"""Fire-and-forget publication of committed records to sinks."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """Anything that can receive published records."""

    def publish(self, topic: str, record: Any) -> None: ...

    def close(self) -> None: ...


class SinkPublisher:
    """Publish records to every sink on a background thread.

    Records are published in submission order. A failing sink is logged and
    skipped; it never affects other sinks or the caller.
    """

    def __init__(self, sinks: Iterable[Sink] = (), executor: ThreadPoolExecutor | None = None) -> None:
        self.sinks = list(sinks)
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="sink-publisher")
        self._owns_executor = executor is None
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self.published = 0
        self.failed = 0

    def add_sink(self, sink: Sink) -> None:
        self.sinks.append(sink)

    def publish(self, topic: str, records: Iterable[Any]) -> Future | None:
        """Queue records for publication; returns None when there is nothing to do."""
        batch = list(records)
        if not batch or not self.sinks:
            return None
        try:
            future = self._executor.submit(self._publish_batch, topic, batch)
        except RuntimeError:
            logger.error("Publisher is shut down; dropped %d records for %s", len(batch), topic)
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _publish_batch(self, topic: str, batch: list[Any]) -> None:
        for sink in self.sinks:
            for record in batch:
                try:
                    sink.publish(topic, record)
                    self.published += 1
                except Exception:
                    self.failed += 1
                    logger.exception("Sink %s failed to publish to %s", type(sink).__name__, topic)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for queued publications."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        """Flush, close every sink and stop the worker thread."""
        self.flush()
        for sink in self.sinks:
            try:
                sink.close()
            except Exception:
                logger.exception("Sink %s failed to close", type(sink).__name__)
        if self._owns_executor:
            self._executor.shutdown(wait=True)

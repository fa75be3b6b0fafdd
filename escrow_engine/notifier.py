"""Notification inbox and best-effort delivery."""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from copy import copy
from datetime import datetime, timezone
from typing import Callable

from escrow_engine.exceptions import EntityNotFoundError
from escrow_engine.models.escrow import Notification, NotificationType
from escrow_engine.sinks.publisher import SinkPublisher

logger = logging.getLogger(__name__)

NOTIFICATIONS_TOPIC = "escrow.notifications"


class NotificationInbox:
    """Per-recipient notification storage.

    Notifications are never edited after delivery except for the ``read``
    flag, which only its recipient may flip.
    """

    def __init__(self) -> None:
        self._notifications: dict[str, Notification] = {}
        self._by_recipient: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def deliver(self, notification: Notification) -> Notification:
        """Store a notification; redelivering the same id is a no-op."""
        with self._lock:
            existing = self._notifications.get(notification.notification_id)
            if existing is not None:
                return copy(existing)
            stored = copy(notification)
            self._notifications[stored.notification_id] = stored
            self._by_recipient.setdefault(stored.recipient_id, []).append(stored.notification_id)
            return copy(stored)

    def get(self, notification_id: str) -> Notification:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                raise EntityNotFoundError(f"Notification {notification_id} not found")
            return copy(notification)

    def list(self, recipient_id: str, limit: int | None = None) -> list[Notification]:
        """Recipient's notifications, newest first."""
        with self._lock:
            ids = self._by_recipient.get(recipient_id, [])
            items = [copy(self._notifications[i]) for i in ids]
        # Stable sort keeps delivery order for equal timestamps, reversed
        items.reverse()
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[:limit] if limit is not None else items

    def unread_count(self, recipient_id: str) -> int:
        with self._lock:
            ids = self._by_recipient.get(recipient_id, [])
            return sum(1 for i in ids if not self._notifications[i].read)

    def mark_read(self, notification_id: str, recipient_id: str | None = None) -> Notification:
        """Mark one notification read; marking it again is a no-op.

        When ``recipient_id`` is given the notification must belong to it.

        Raises
        ------
        EntityNotFoundError
            If the notification does not exist or belongs to someone else.
        """
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None or (
                recipient_id is not None and notification.recipient_id != recipient_id
            ):
                raise EntityNotFoundError(f"Notification {notification_id} not found")
            notification.read = True
            return copy(notification)

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every notification of the recipient read; returns how many changed."""
        changed = 0
        with self._lock:
            for notification_id in self._by_recipient.get(recipient_id, []):
                notification = self._notifications[notification_id]
                if not notification.read:
                    notification.read = True
                    changed += 1
        return changed

    def __len__(self) -> int:
        return len(self._notifications)


class Notifier:
    """Deliver notifications off the caller's thread.

    ``notify`` never raises: a notification that cannot be delivered after
    ``delivery_attempts`` tries is logged and dropped. Delivered
    notifications are also handed to the sink publisher.
    """

    def __init__(
        self,
        inbox: NotificationInbox | None = None,
        publisher: SinkPublisher | None = None,
        delivery_attempts: int = 3,
        executor: ThreadPoolExecutor | None = None,
        topic: str = NOTIFICATIONS_TOPIC,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.inbox = inbox if inbox is not None else NotificationInbox()
        self.publisher = publisher
        self.delivery_attempts = max(1, delivery_attempts)
        self.topic = topic
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="notifier")
        self._owns_executor = executor is None
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self.dropped = 0

    def notify(
        self,
        recipient_id: str | None,
        type: NotificationType,
        title: str,
        body: str,
    ) -> Notification | None:
        """Queue a notification for delivery and return it (None if skipped)."""
        if not recipient_id:
            return None

        notification = Notification(
            notification_id=uuid.uuid4().hex,
            recipient_id=recipient_id,
            type=type,
            title=title,
            body=body,
            created_at=self._clock(),
        )
        try:
            future = self._executor.submit(self._deliver, notification)
        except RuntimeError:
            self.dropped += 1
            logger.error("Notifier is shut down; dropped %s for %s", type.value, recipient_id)
            return None

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return notification

    def _deliver(self, notification: Notification) -> None:
        for attempt in range(1, self.delivery_attempts + 1):
            try:
                delivered = self.inbox.deliver(notification)
                break
            except Exception as e:
                logger.warning(
                    "Notification %s delivery attempt %d/%d failed: %s",
                    notification.notification_id,
                    attempt,
                    self.delivery_attempts,
                    e,
                )
        else:
            self.dropped += 1
            logger.error(
                "Dropped notification %s for %s",
                notification.notification_id,
                notification.recipient_id,
            )
            return

        logger.debug("Delivered %s to %s", delivered.type.value, delivered.recipient_id)
        if self.publisher is not None:
            self.publisher.publish(self.topic, [delivered])

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> None:
        """Wait until queued notifications are delivered."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

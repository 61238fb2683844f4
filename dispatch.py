"""Notification channel and the dispatchers that marshal it.

Producers (capture and inference threads) publish ``Notification`` objects;
the channel hands each delivery to a dispatcher, which decides on which
execution context subscribers run. Deliveries are posted in publish order.
"""

from __future__ import annotations

import logging
import threading
from queue import Empty, Queue
from typing import Callable, Optional

from interfaces import Dispatcher
from models import Notification

logger = logging.getLogger(__name__)

Subscriber = Callable[[Notification], None]


class ImmediateDispatcher:
    """Runs callbacks inline on the publishing thread."""

    def post(self, fn: Callable[[], None]) -> None:
        fn()


class QueueDispatcher:
    """Queues callbacks until the consumer calls ``run_pending``."""

    def __init__(self) -> None:
        self._queue: Queue[Callable[[], None]] = Queue()

    def post(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def run_pending(self) -> int:
        ran = 0
        while True:
            try:
                fn = self._queue.get_nowait()
            except Empty:
                return ran
            fn()
            ran += 1


class ThreadDispatcher:
    """Runs callbacks on one dedicated consumer thread, in order."""

    def __init__(self, name: str = "notifications") -> None:
        self._queue: Queue[Optional[Callable[[], None]]] = Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def post(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def close(self, timeout: float = 1.0) -> None:
        self._queue.put(None)
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        while True:
            fn = self._queue.get()
            if fn is None:
                return
            try:
                fn()
            except Exception:
                logger.exception("Notification subscriber failed")


class NotificationChannel:
    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._closed = False

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Channel closed, dropping %s notification", notification.kind)
                return
            subscribers = list(self._subscribers)
            # posted under the lock so concurrent publishers keep their order
            self._dispatcher.post(lambda: self._deliver(subscribers, notification))

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._subscribers.clear()

    @staticmethod
    def _deliver(subscribers: list[Subscriber], notification: Notification) -> None:
        for subscriber in subscribers:
            subscriber(notification)

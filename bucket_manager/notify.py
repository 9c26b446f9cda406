"""Outbound notifications for completed uploads and moves.

Handlers publish an :class:`Event` once their store work is done. Delivery runs
on a background thread so a slow or failing webhook never affects the HTTP
response.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


@dataclass(frozen=True)
class Event:
    kind: str
    detail: dict = field(default_factory=dict)

    def describe(self) -> str:
        if self.kind == "uploaded":
            return f"Uploaded {self.detail.get('key')} ({self.detail.get('size', 0)} bytes)"
        if self.kind == "moved":
            return (
                f"Moved {self.detail.get('oldKey')} -> {self.detail.get('newKey')} "
                f"({self.detail.get('movedCount', 0)} objects)"
            )
        return f"{self.kind}: {self.detail}"


class NullNotifier:
    def publish(self, event: Event) -> None:
        logger.debug("Notification skipped kind=%s", event.kind)

    def close(self) -> None:
        pass


class Notifier:
    """Queue-backed notifier; subclasses implement :meth:`deliver`."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._thread = threading.Thread(target=self._run, name="notifier", daemon=True)
        self._thread.start()

    def publish(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning("Notification queue full, dropping kind=%s", event.kind)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                self.deliver(event)
            except Exception:
                logger.exception("Notification delivery failed kind=%s", event.kind)
            finally:
                self._queue.task_done()

    def deliver(self, event: Event) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Notification queue still full on close, %s events dropped", self._queue.qsize())
            return
        self._thread.join(timeout=timeout)


class TelegramNotifier(Notifier):
    def __init__(self, token: str, chat_id: str, timeout: float = 10.0, session=None) -> None:
        self.url = f"{TELEGRAM_API}/bot{token}/sendMessage"
        self.chat_id = chat_id
        self.timeout = timeout
        self.session = session or requests.Session()
        super().__init__()

    def deliver(self, event: Event) -> None:
        response = self.session.post(
            self.url,
            json={"chat_id": self.chat_id, "text": event.describe()},
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info("Notification sent kind=%s", event.kind)


def build_notifier(settings):
    if settings.telegram_token and settings.telegram_chat_id:
        return TelegramNotifier(settings.telegram_token, settings.telegram_chat_id)
    return NullNotifier()

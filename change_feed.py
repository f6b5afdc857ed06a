from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

KEEPALIVE_SECONDS = 25
CLIENT_QUEUE_SIZE = 50

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SSEClient:
    def __init__(self, maxsize: int = CLIENT_QUEUE_SIZE) -> None:
        self.id = uuid.uuid4().hex
        self.messages: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=maxsize)


class ChangeFeed:
    """Tracks the data version and fans duty updates out to SSE clients."""

    def __init__(self, client_queue_size: int = CLIENT_QUEUE_SIZE) -> None:
        self._lock = threading.Lock()
        self._clients: set[SSEClient] = set()
        self._client_queue_size = client_queue_size
        self._last_update = _utc_now()

    @property
    def last_update(self) -> str:
        with self._lock:
            return self._last_update.isoformat()

    def touch(self) -> str:
        with self._lock:
            now = _utc_now()
            if now <= self._last_update:
                now = self._last_update + timedelta(microseconds=1)
            self._last_update = now
            return now.isoformat()

    def version(self) -> dict[str, str]:
        return {"lastUpdate": self.last_update, "timestamp": _utc_now().isoformat()}

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def subscribe(self) -> SSEClient:
        client = SSEClient(self._client_queue_size)
        with self._lock:
            self._clients.add(client)
            total = len(self._clients)
        logger.info("SSE client connected. Total clients: %d", total)
        self._send(client, {"type": "connection", "message": "Connected to real-time updates"})
        return client

    def unsubscribe(self, client: SSEClient) -> None:
        with self._lock:
            self._clients.discard(client)
            total = len(self._clients)
        logger.info("SSE client disconnected. Total clients: %d", total)

    def _send(self, client: SSEClient, message: dict[str, Any]) -> bool:
        try:
            client.messages.put_nowait(message)
        except queue.Full:
            return False
        return True

    def broadcast(self, message: dict[str, Any]) -> int:
        with self._lock:
            clients = list(self._clients)
        dead = [client for client in clients if not self._send(client, message)]
        for client in dead:
            logger.warning("Dropping unresponsive SSE client %s", client.id)
            self.unsubscribe(client)
        return len(clients) - len(dead)

    def notify_duty_update(self, update: dict[str, Any]) -> int:
        return self.broadcast(
            {
                "type": "duty-update",
                "data": update,
                "timestamp": _utc_now().isoformat(),
            }
        )

    def stream(
        self,
        client: SSEClient,
        keepalive: float = KEEPALIVE_SECONDS,
        max_idle: Optional[int] = None,
    ) -> Iterator[str]:
        idle = 0
        try:
            while True:
                try:
                    message = client.messages.get(timeout=keepalive)
                except queue.Empty:
                    idle += 1
                    if max_idle is not None and idle >= max_idle:
                        return
                    yield ": keep-alive\n\n"
                    continue
                idle = 0
                yield f"data: {json.dumps(message)}\n\n"
        finally:
            self.unsubscribe(client)

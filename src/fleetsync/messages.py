"""Messages exchanged between the cache worker and open clients.

A :class:`WorkerClients` registry stands in for the set of open pages a
worker controls. It is created per worker, never shared globally.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit

_logger = logging.getLogger(__name__)

Message = dict[str, Any]
MessageHandler = Callable[["WorkerClient", Message], None]


class MessageType(StrEnum):
    NETWORK_SUCCESS = "NETWORK_SUCCESS"
    CACHE_USED = "CACHE_USED"
    OFFLINE_ERROR = "OFFLINE_ERROR"
    SYNC_COMPLETED = "SYNC_COMPLETED"
    START_SYNC = "START_SYNC"
    SKIP_WAITING = "SKIP_WAITING"
    CLEAR_CACHE = "CLEAR_CACHE"
    PUSH_RECEIVED = "PUSH_RECEIVED"


_client_ids = itertools.count(1)


class WorkerClient:
    """An open page the worker can message, focus and navigate."""

    def __init__(self, url: str, *, client_id: str | None = None) -> None:
        self.client_id = client_id or f"client-{next(_client_ids)}"
        self.url = url
        self.focused = False
        self.controlled = False
        self.inbox: list[Message] = []
        self._handlers: list[MessageHandler] = []

    def __repr__(self) -> str:
        return f"WorkerClient({self.client_id!r}, url={self.url!r})"

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    def subscribe(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def post_message(self, message: Message) -> None:
        """Deliver *message*; handler failures are logged, not raised."""
        self.inbox.append(dict(message))
        for handler in list(self._handlers):
            try:
                handler(self, message)
            except Exception:
                _logger.warning("Client %s message handler failed", self.client_id, exc_info=True)

    def focus(self) -> None:
        self.focused = True

    def navigate(self, url: str) -> None:
        self.url = url


class WorkerClients:
    """Clients known to one worker."""

    def __init__(self) -> None:
        self._clients: dict[str, WorkerClient] = {}
        self.opened_windows: list[str] = []

    def add(self, client: WorkerClient) -> WorkerClient:
        self._clients[client.client_id] = client
        return client

    def remove(self, client: WorkerClient) -> None:
        self._clients.pop(client.client_id, None)

    def match_all(self, *, include_uncontrolled: bool = False) -> list[WorkerClient]:
        clients = list(self._clients.values())
        if include_uncontrolled:
            return clients
        return [client for client in clients if client.controlled]

    def claim(self) -> int:
        """Take control of every known client; return how many were claimed."""
        claimed = 0
        for client in self._clients.values():
            if not client.controlled:
                client.controlled = True
                claimed += 1
        return claimed

    def open_window(self, url: str) -> WorkerClient:
        self.opened_windows.append(url)
        client = self.add(WorkerClient(url))
        client.controlled = True
        client.focus()
        return client

    def post_all(self, message: Message) -> int:
        """Post *message* to every controlled client; return the recipient count."""
        recipients = self.match_all()
        for client in recipients:
            client.post_message(message)
        return len(recipients)

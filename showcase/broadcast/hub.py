"""Fan-out of game changes to connected WebSocket viewers."""

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)


class ChangeType(Enum):
    """Kind of message pushed to subscribers."""

    INIT = "init"  # Full snapshot for a new subscriber
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"


def build_message(change_type: ChangeType, payload: Any) -> dict[str, Any]:
    """Build the wire message: type, payload and a millisecond timestamp."""
    return {
        "type": change_type.value,
        "payload": payload,
        "ts": int(time.time() * 1000),
    }


class Subscriber:
    """A connected viewer receiving change messages."""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex[:12]
        self.websocket = websocket

    @property
    def is_ready(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


class ChangeBroadcaster:
    """Registry of live subscribers with best-effort delivery.

    Each event goes at most once to every subscriber connected when it is
    published. Sends to different subscribers run concurrently and each is
    bounded by send_timeout. Subscribers that are gone, fail a send or do
    not take it in time are dropped; a viewer that reconnects gets a fresh
    init snapshot instead.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._subscribers: dict[str, Subscriber] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(
        self, subscriber: Subscriber, games: list[dict[str, Any]]
    ) -> bool:
        """Send the init snapshot and start delivering events.

        Args:
            subscriber: The newly connected viewer.
            games: Current games, newest first.

        Returns:
            True if the subscriber was registered.
        """
        try:
            await asyncio.wait_for(
                subscriber.send(build_message(ChangeType.INIT, games)),
                self.send_timeout,
            )
        except Exception as e:
            logger.warning(f"Failed to send init to subscriber {subscriber.id}: {e}")
            return False

        self._subscribers[subscriber.id] = subscriber
        logger.info(
            f"Subscriber {subscriber.id} connected ({self.subscriber_count} active)"
        )
        return True

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if self._subscribers.pop(subscriber.id, None) is not None:
            logger.info(
                f"Subscriber {subscriber.id} disconnected "
                f"({self.subscriber_count} active)"
            )

    async def publish(self, change_type: ChangeType, payload: Any) -> int:
        """Send one change message to every connected subscriber.

        Args:
            change_type: Kind of change.
            payload: The added/edited game dict, or {"id": ...} for deletes.

        Returns:
            Number of subscribers the message was delivered to.
        """
        message = build_message(change_type, payload)

        # Iterate a copy: subscribers may come and go while we await sends
        results = await asyncio.gather(
            *(self._deliver(s, message) for s in list(self._subscribers.values()))
        )
        delivered = sum(results)

        logger.debug(f"Published {change_type.value} to {delivered} subscribers")
        return delivered

    async def _deliver(self, subscriber: Subscriber, message: dict[str, Any]) -> bool:
        if not subscriber.is_ready:
            self.unsubscribe(subscriber)
            return False
        try:
            await asyncio.wait_for(subscriber.send(message), self.send_timeout)
            return True
        except TimeoutError:
            logger.warning(f"Dropping slow subscriber {subscriber.id}")
        except Exception as e:
            logger.debug(f"Dropping subscriber {subscriber.id}: {e}")
        self.unsubscribe(subscriber)
        return False

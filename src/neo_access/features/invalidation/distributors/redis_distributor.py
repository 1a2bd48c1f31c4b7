"""Redis-based invalidation distributor.

Publishes locally applied grant-change events on a Redis pub/sub channel
and applies events published by other nodes to this node's cache. Messages
carry the publishing node's id so a node never re-applies its own events.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from ....core.exceptions import NeoAccessError
from ..entities.events import GrantChangeEvent
from ..entities.protocols import RemoteEventHandler


logger = logging.getLogger(__name__)


class RedisInvalidationDistributor:
    """Cross-process invalidation over Redis pub/sub."""

    def __init__(
        self,
        redis_client: Any,  # redis.asyncio.Redis
        channel: str = "neo-access:invalidation",
        node_id: Optional[str] = None,
        reconnect_initial_seconds: float = 0.5,
        reconnect_max_seconds: float = 30.0
    ):
        """Initialize Redis distributor.

        Args:
            redis_client: redis.asyncio client
            channel: Pub/sub channel shared by all nodes
            node_id: Unique identifier for this node (generated when omitted)
            reconnect_initial_seconds: First resubscribe delay after the
                subscription fails; doubles per consecutive failure
            reconnect_max_seconds: Upper bound of the resubscribe delay
        """
        self._redis = redis_client
        self.channel = channel
        self.node_id = node_id or str(uuid.uuid4())
        self._handler: Optional[RemoteEventHandler] = None
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self.reconnect_initial_seconds = reconnect_initial_seconds
        self.reconnect_max_seconds = reconnect_max_seconds

        self.connected = False
        self.listener_failures = 0
        self.reconnects = 0
        self.messages_applied = 0

    @property
    def is_running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def publish(self, event: GrantChangeEvent) -> bool:
        """Publish an event. Returns False if Redis could not be reached."""
        payload = event.to_dict()
        payload["origin_node"] = self.node_id
        try:
            await self._redis.publish(self.channel, json.dumps(payload))
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Failed to publish invalidation event {event.event_id}: {e}")
            return False

    async def start(self, handler: RemoteEventHandler) -> None:
        """Subscribe to the channel and deliver remote events to ``handler``."""
        if self.is_running:
            return
        self._handler = handler
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self.connected = True
        self._listener = asyncio.create_task(self._listen())
        logger.info(f"Invalidation distributor {self.node_id} listening on {self.channel}")

    async def stop(self) -> None:
        """Stop listening and release the subscription."""
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        await self._close_subscription(unsubscribe=True)

    async def _listen(self) -> None:
        """Deliver messages, resubscribing with bounded backoff when Redis fails."""
        failures = 0
        while True:
            try:
                if self._pubsub is None:
                    self._pubsub = self._redis.pubsub()
                    await self._pubsub.subscribe(self.channel)
                    self.connected = True
                    self.reconnects += 1
                    logger.info(f"Invalidation distributor {self.node_id} resubscribed to {self.channel}")

                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    failures = 0
                    if await self.handle_message(message.get("data")):
                        self.messages_applied += 1
                raise RedisConnectionError("subscription closed")
            except (RedisError, OSError) as e:
                failures += 1
                self.listener_failures += 1
                self.connected = False
                delay = min(self.reconnect_initial_seconds * 2 ** (failures - 1), self.reconnect_max_seconds)
                logger.error(
                    f"Invalidation listener on {self.channel} failed: {e}; resubscribing in {delay:.1f}s"
                )
                await self._close_subscription()
                await asyncio.sleep(delay)

    async def _close_subscription(self, unsubscribe: bool = False) -> None:
        self.connected = False
        if self._pubsub is None:
            return
        try:
            if unsubscribe:
                await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing invalidation subscription: {e}")
        self._pubsub = None

    def stats(self) -> Dict[str, Any]:
        """Listener health and counters."""
        return {
            "node_id": self.node_id,
            "channel": self.channel,
            "is_running": self.is_running,
            "connected": self.connected,
            "listener_failures": self.listener_failures,
            "reconnects": self.reconnects,
            "messages_applied": self.messages_applied,
        }

    async def handle_message(self, raw: Any) -> bool:
        """Apply one raw pub/sub payload. Returns whether it was applied."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("payload is not a JSON object")
            if data.get("origin_node") == self.node_id:
                return False
            event = GrantChangeEvent.from_dict(data)
        except (TypeError, ValueError, KeyError, NeoAccessError) as e:
            logger.warning(f"Ignoring malformed invalidation message: {e}")
            return False

        if self._handler is None:
            logger.warning(f"No handler bound; dropping invalidation event {event.event_id}")
            return False

        try:
            await self._handler(event)
        except Exception as e:
            logger.error(f"Failed to apply remote invalidation event {event.event_id}: {e}")
            return False
        return True

"""
Transport — the queue side of the consumer.

The Processor never talks to a queue. A transport hands out Deliveries
(RawMessage + its opaque DeliveryContext) and later receives the
Processor's Disposition through acknowledge / reject / requeue.

Only an in-memory backend ships here (development and tests); real
brokers plug in by implementing MessageTransport.
"""
from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from job_queue.errors import ConfigurationError
from models.schemas import Disposition, RawMessage

logger = structlog.get_logger()


@dataclass(frozen=True)
class Delivery:
    """One message as handed out by a transport."""
    raw: RawMessage
    context: Any = None


@dataclass
class InMemoryDeliveryContext:
    delivery_tag: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    redelivered: int = 0


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class MessageTransport(ABC):
    """Abstract consumer-side transport interface."""

    @abstractmethod
    async def connect(self):
        """Establish connection to the queue backend."""
        ...

    @abstractmethod
    async def close(self):
        """Gracefully shut down."""
        ...

    @abstractmethod
    async def receive(self, timeout: float = 2.0) -> Optional[Delivery]:
        """Wait up to timeout seconds for the next delivery."""
        ...

    @abstractmethod
    async def acknowledge(self, delivery: Delivery):
        """Message handled; remove it from the queue."""
        ...

    @abstractmethod
    async def reject(self, delivery: Delivery):
        """Message can never be handled; drop it without redelivery."""
        ...

    @abstractmethod
    async def requeue(self, delivery: Delivery):
        """Message should be delivered again."""
        ...

    @abstractmethod
    async def size(self) -> int:
        """Number of messages waiting for delivery."""
        ...


async def apply_disposition(transport: MessageTransport, delivery: Delivery, disposition: Disposition):
    """Translate a Processor decision into the matching transport call."""
    if disposition == Disposition.ACKNOWLEDGE:
        await transport.acknowledge(delivery)
    elif disposition == Disposition.REJECT:
        await transport.reject(delivery)
    else:
        await transport.requeue(delivery)


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation (Development)
# ──────────────────────────────────────────────────────────────

class InMemoryTransport(MessageTransport):
    """
    Development/test transport backed by an asyncio.Queue.
    Single-process only. Acknowledged and rejected messages are kept
    for inspection.
    """

    def __init__(self):
        self._queue: asyncio.Queue[Delivery] = asyncio.Queue()
        self.acknowledged: list[RawMessage] = []
        self.rejected: list[RawMessage] = []
        self.requeued: int = 0
        self._connected = False

    async def connect(self):
        self._connected = True
        logger.info("inmemory_transport_connected")

    async def close(self):
        self._connected = False

    async def publish(self, raw: RawMessage):
        await self._queue.put(Delivery(raw, InMemoryDeliveryContext()))
        logger.debug("message_published", message_id=raw.message_id)

    async def receive(self, timeout: float = 2.0) -> Optional[Delivery]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def acknowledge(self, delivery: Delivery):
        self.acknowledged.append(delivery.raw)
        logger.debug("message_acked", message_id=delivery.raw.message_id)

    async def reject(self, delivery: Delivery):
        self.rejected.append(delivery.raw)
        logger.info("message_rejected", message_id=delivery.raw.message_id)

    async def requeue(self, delivery: Delivery):
        ctx = delivery.context
        redelivered = ctx.redelivered + 1 if isinstance(ctx, InMemoryDeliveryContext) else 1
        self.requeued += 1
        await self._queue.put(Delivery(delivery.raw, InMemoryDeliveryContext(redelivered=redelivered)))
        logger.info("message_requeued",
                    message_id=delivery.raw.message_id,
                    redelivered=redelivered)

    async def size(self) -> int:
        return self._queue.qsize()


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_transport(queue_config: dict[str, Any] = None) -> MessageTransport:
    """Factory: create the transport named by queue_config['backend']."""
    config = queue_config or {}
    backend = config.get("backend", "memory")

    if backend == "memory":
        return InMemoryTransport()
    raise ConfigurationError(f"Unsupported queue backend: {backend!r}")

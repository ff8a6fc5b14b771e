"""
Queue Consumer — pulls deliveries from a transport and runs the Processor.

Runs as one or more async tasks inside the worker process. process() is
synchronous, so each delivery is handed to a worker thread; the
semaphore caps how many run at once.

  transport.receive() ──▶ Processor.process() ──▶ Disposition
                                                     │
                 acknowledge / reject / requeue ◀────┘
"""
from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from job_queue.errors import describe_error
from job_queue.processor import Processor
from job_queue.transport import Delivery, MessageTransport, apply_disposition
from models.schemas import Disposition

logger = structlog.get_logger()


class QueueConsumer:
    """
    Usage:
        consumer = QueueConsumer(processor, transport)
        await consumer.start()              # blocks, runs until stop()
        await consumer.start_background()   # returns immediately, runs as task
        await consumer.stop()
    """

    def __init__(
        self,
        processor: Processor,
        transport: MessageTransport,
        concurrency: int = 5,
        receive_timeout: float = 2.0,
    ):
        self.processor = processor
        self.transport = transport
        self.concurrency = concurrency
        self.receive_timeout = receive_timeout
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        """Deliveries taken off the transport and not yet settled."""
        return len(self._inflight)

    async def _process_delivery(self, delivery: Delivery) -> Disposition:
        disposition = await asyncio.to_thread(
            self.processor.process, delivery.raw, delivery.context,
        )
        await apply_disposition(self.transport, delivery, disposition)
        logger.debug("delivery_handled",
                     message_id=delivery.raw.message_id,
                     disposition=disposition.value)
        return disposition

    async def handle(self, delivery: Delivery) -> Disposition:
        """Process one delivery in a worker thread and apply the result to the transport."""
        async with self._semaphore:
            return await self._process_delivery(delivery)

    async def _handle_logged(self, delivery: Delivery):
        try:
            await self._process_delivery(delivery)
        except Exception as e:
            logger.error("delivery_handling_error",
                         message_id=delivery.raw.message_id,
                         error=describe_error(e))

    def _on_done(self, task: asyncio.Task):
        self._inflight.discard(task)
        self._semaphore.release()

    async def run_once(self) -> Optional[Disposition]:
        """Handle at most one delivery. Returns None if the queue stayed empty."""
        delivery = await self.transport.receive(timeout=self.receive_timeout)
        if delivery is None:
            return None
        return await self.handle(delivery)

    async def start(self):
        """Start consuming — blocks until stop() is called."""
        self._running = True
        logger.info("queue_consumer_starting", concurrency=self.concurrency)

        while self._running:
            # a slot is taken before receiving, so at most `concurrency`
            # deliveries are ever off the transport at once
            try:
                await self._semaphore.acquire()
            except asyncio.CancelledError:
                break
            try:
                delivery = await self.transport.receive(timeout=self.receive_timeout)
            except asyncio.CancelledError:
                self._semaphore.release()
                break
            except Exception as e:
                self._semaphore.release()
                logger.error("consumer_error", error=describe_error(e))
                await asyncio.sleep(1)
                continue
            if delivery is None:
                self._semaphore.release()
                continue
            task = asyncio.create_task(self._handle_logged(delivery))
            self._inflight.add(task)
            task.add_done_callback(self._on_done)

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def start_background(self) -> asyncio.Task:
        """Start consuming in a background task. Returns the task handle."""
        task = asyncio.create_task(self.start())
        self._tasks.append(task)
        return task

    async def stop(self):
        """Stop receiving, let in-flight deliveries finish, then end background tasks."""
        self._running = False
        for task in self._tasks:
            try:
                await asyncio.wait_for(task, timeout=self.receive_timeout + 1)
            except asyncio.TimeoutError:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks.clear()
        logger.info("queue_consumer_stopped")

"""Wiring helpers: build a Processor / QueueConsumer from Settings."""
from __future__ import annotations

from typing import Optional

import structlog

from config.settings import Settings, get_settings
from job_queue.consumer import QueueConsumer
from job_queue.events import EventManager, EventSink
from job_queue.processor import Processor
from job_queue.resolver import CallableResolver
from job_queue.transport import MessageTransport, create_transport

logger = structlog.get_logger()


def build_processor(
    settings: Optional[Settings] = None,
    events: Optional[EventSink] = None,
    log=None,
) -> Processor:
    settings = settings or get_settings()
    d = settings.dispatcher

    resolver = CallableResolver(
        allow_import=d.allow_import,
        allowed_prefixes=d.allowed_prefixes,
    )
    for name, path in settings.callables.items():
        resolver.register(name, path)

    if events is None:
        events = EventManager(prefix=d.event_prefix)

    processor = Processor(
        logger=log if log is not None else structlog.get_logger("job_queue.processor"),
        events=events,
        resolver=resolver,
    )
    if isinstance(events, EventManager) and events.subject is None:
        events.subject = processor
    return processor


def build_consumer(
    settings: Optional[Settings] = None,
    transport: Optional[MessageTransport] = None,
    processor: Optional[Processor] = None,
) -> QueueConsumer:
    settings = settings or get_settings()
    q = settings.queue
    consumer = QueueConsumer(
        processor=processor or build_processor(settings),
        transport=transport or create_transport({"backend": q.backend}),
        concurrency=q.concurrency,
        receive_timeout=q.receive_timeout,
    )
    logger.info("consumer_built",
                app=settings.app_name,
                backend=q.backend,
                concurrency=q.concurrency)
    return consumer

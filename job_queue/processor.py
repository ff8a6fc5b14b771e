"""
Processor — decides what happens to a single queue message.

Flow for one delivery:
  seen → build JobMessage → resolve callable
       ├─ unresolvable → invalid  → REJECT   (never retried)
       └─ start → invoke
              ├─ raises               → exception → REQUEUE
              ├─ None / ACK / SUCCESS → success   → ACKNOWLEDGE
              ├─ REJECT / REJECTED    → reject    → REJECT
              └─ anything else        → failure   → REQUEUE

Every branch returns a Disposition; nothing raised by the job, the
resolver or an event listener leaves process(). Turning the Disposition
into an actual ack/reject/requeue is the transport's job (see consumer.py).
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

import structlog

from job_queue.errors import describe_error
from job_queue.events import EventSink, NullEventSink
from job_queue.message import JobMessage
from job_queue.resolver import CallableResolver, ResolutionFailure, FailureReason
from models.schemas import Disposition, Outcome, ProcessorEvent, RawMessage


_ACK_RESPONSES = (Disposition.ACKNOWLEDGE, Outcome.SUCCESS)
_REJECT_RESPONSES = (Disposition.REJECT, Outcome.REJECTED)


def null_logger():
    """A structlog logger whose output goes nowhere."""
    return structlog.wrap_logger(structlog.ReturnLogger())


def interpret_response(response: Any) -> Disposition:
    """Map a job's return value onto a Disposition. Unknown values mean retry."""
    if response is None:
        return Disposition.ACKNOWLEDGE
    if isinstance(response, str):
        if response in _ACK_RESPONSES:
            return Disposition.ACKNOWLEDGE
        if response in _REJECT_RESPONSES:
            return Disposition.REJECT
    return Disposition.REQUEUE


class Processor:
    """
    Stateless dispatcher. One instance can be shared by any number of
    worker threads as long as the injected logger and event sink are
    thread-safe (structlog loggers and EventManager are).
    """

    def __init__(
        self,
        logger=None,
        events: Optional[EventSink] = None,
        resolver: Optional[CallableResolver] = None,
    ):
        self.logger = logger if logger is not None else null_logger()
        self.events = events if events is not None else NullEventSink()
        self.resolver = resolver if resolver is not None else CallableResolver()

    def _notify(self, name: str, data: Mapping[str, Any]):
        try:
            self.events.dispatch(name, data)
        except Exception as e:
            self.logger.warning("event_dispatch_failed", event_name=name, error=describe_error(e))

    def process(self, queue_message: RawMessage, context: Any = None) -> Disposition:
        self._notify(ProcessorEvent.SEEN, {"queueMessage": queue_message})

        message = JobMessage(queue_message, context)
        try:
            resolved = self.resolver.resolve(message.get_callable())
        except Exception as e:
            resolved = ResolutionFailure(message.get_callable(), FailureReason.IMPORT_ERROR,
                                         describe_error(e))

        if isinstance(resolved, ResolutionFailure):
            self.logger.debug("message_invalid_callable",
                              message_id=queue_message.message_id,
                              callable=str(message.get_callable()),
                              reason=str(resolved))
            self._notify(ProcessorEvent.INVALID, {"message": message})
            return Disposition.REJECT

        self._notify(ProcessorEvent.START, {"message": message})

        try:
            response = resolved(message)
        except (Exception, SystemExit) as e:
            # a job calling sys.exit() fails that job, not the worker
            self.logger.debug("message_exception",
                              message_id=queue_message.message_id,
                              callable=str(message.get_callable()),
                              error=describe_error(e),
                              exc_info=True)
            self._notify(ProcessorEvent.EXCEPTION, {"message": message, "exception": e})
            return Disposition.REQUEUE

        disposition = interpret_response(response)

        if disposition == Disposition.ACKNOWLEDGE:
            self.logger.debug("message_processed", message_id=queue_message.message_id)
            self._notify(ProcessorEvent.SUCCESS, {"message": message})
            return Disposition.ACKNOWLEDGE

        if disposition == Disposition.REJECT:
            self.logger.debug("message_rejected", message_id=queue_message.message_id)
            self._notify(ProcessorEvent.REJECT, {"message": message})
            return Disposition.REJECT

        self.logger.debug("message_failed_requeuing",
                          message_id=queue_message.message_id,
                          response_type=type(response).__name__)
        self._notify(ProcessorEvent.FAILURE, {"message": message})
        return Disposition.REQUEUE

"""
Core data models for the queue dispatcher.
These are the value types shared across job_queue, config and tests.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class Disposition(str, Enum):
    """Final consumer decision handed back to the transport."""
    ACKNOWLEDGE = "enqueue.ack"
    REJECT = "enqueue.reject"
    REQUEUE = "enqueue.requeue"


class Outcome(str, Enum):
    """Explicit result a job callable may return instead of a Disposition."""
    SUCCESS = "success"
    REJECTED = "rejected"
    RETRY = "retry"


class CallableKind(str, Enum):
    METHOD = "method"          # (target class, member name)
    FUNCTION = "function"      # single function name
    INVALID = "invalid"        # marker for malformed payloads


class ProcessorEvent:
    """Notification names emitted by the Processor, in lifecycle order."""
    SEEN = "message.seen"
    INVALID = "message.invalid"
    START = "message.start"
    EXCEPTION = "message.exception"
    SUCCESS = "message.success"
    REJECT = "message.reject"
    FAILURE = "message.failure"

    ALL = (SEEN, INVALID, START, EXCEPTION, SUCCESS, REJECT, FAILURE)


# ──────────────────────────────────────────────────────────────
#  Transport-level message
# ──────────────────────────────────────────────────────────────

class RawMessage(BaseModel):
    """Message exactly as the transport delivered it."""
    model_config = ConfigDict(frozen=True)

    body: Union[bytes, str] = ""
    headers: dict[str, str] = {}
    message_id: str = Field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")


# ──────────────────────────────────────────────────────────────
#  CallableReference — what a message asks us to run
# ──────────────────────────────────────────────────────────────

class CallableReference(BaseModel):
    """
    Tagged reference to a unit of work.

    METHOD:   target is a class name, member the method to call on a fresh instance.
    FUNCTION: target is a function name, member is unused.
    INVALID:  the payload could not be interpreted; error says why.
    """
    model_config = ConfigDict(frozen=True)

    kind: CallableKind
    target: str = ""
    member: Optional[str] = None
    error: str = ""

    @classmethod
    def method(cls, target: str, member: str) -> CallableReference:
        return cls(kind=CallableKind.METHOD, target=target, member=member)

    @classmethod
    def function(cls, target: str) -> CallableReference:
        return cls(kind=CallableKind.FUNCTION, target=target)

    @classmethod
    def invalid(cls, error: str) -> CallableReference:
        return cls(kind=CallableKind.INVALID, error=error)

    @property
    def is_valid(self) -> bool:
        return self.kind != CallableKind.INVALID

    def to_payload(self) -> Union[list[str], str]:
        """Wire shape: [target, member] for methods, bare name for functions."""
        if self.kind == CallableKind.METHOD:
            return [self.target, self.member or ""]
        return self.target

    def __str__(self) -> str:
        if self.kind == CallableKind.METHOD:
            return f"{self.target}::{self.member}"
        if self.kind == CallableKind.FUNCTION:
            return self.target
        return f"<invalid: {self.error}>"


INVALID_CALLABLE = CallableReference.invalid("no callable in payload")


# ──────────────────────────────────────────────────────────────
#  Event — a single lifecycle notification
# ──────────────────────────────────────────────────────────────

class Event(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    subject: Any = None                       # the object that emitted it
    data: dict[str, Any] = {}

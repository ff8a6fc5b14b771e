"""
Job Message — typed view over a raw queue delivery.

Payload schema (JSON object in the message body):
  {
      "callable": ["pkg.module:ClassName", "method"]   # METHOD reference
                | "pkg.module:function_name",           # FUNCTION reference
      "args":     arbitrary mapping handed to the job,
      "headers":  string mapping, merged over transport headers,
  }

Construction never raises. A body that cannot be read produces an
INVALID callable reference, and the Processor rejects it.
"""
from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from job_queue.errors import PayloadEncodeError
from models.schemas import INVALID_CALLABLE, CallableKind, CallableReference, RawMessage


def _decode_body(body: Union[bytes, str]) -> Any:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    return json.loads(body)


def parse_callable(value: Any) -> CallableReference:
    """Turn the wire form of a callable into a CallableReference."""
    if isinstance(value, str):
        if not value.strip():
            return CallableReference.invalid("empty function name")
        return CallableReference.function(value)

    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            return CallableReference.invalid(f"expected [target, method], got {len(value)} items")
        target, member = value
        if not isinstance(target, str) or not isinstance(member, str):
            return CallableReference.invalid("target and method must be strings")
        if not target or not member:
            return CallableReference.invalid("empty target or method name")
        return CallableReference.method(target, member)

    if value is None:
        return INVALID_CALLABLE
    return CallableReference.invalid(f"unsupported callable type {type(value).__name__}")


class JobMessage:
    """
    Immutable per-delivery wrapper around (RawMessage, DeliveryContext).

    Exposes the callable reference, arguments and headers encoded in the
    payload. Mappings are returned as read-only views.
    """

    __slots__ = ("_raw", "_context", "_callable", "_args", "_headers")

    def __init__(self, raw: RawMessage, context: Any = None):
        callable_ref, args, headers = self._extract(raw)
        object.__setattr__(self, "_raw", raw)
        object.__setattr__(self, "_context", context)
        object.__setattr__(self, "_callable", callable_ref)
        object.__setattr__(self, "_args", MappingProxyType(args))
        object.__setattr__(self, "_headers", MappingProxyType(headers))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @staticmethod
    def _extract(raw: RawMessage) -> tuple[CallableReference, dict[str, Any], dict[str, str]]:
        headers: dict[str, str] = dict(raw.headers or {})
        try:
            payload = _decode_body(raw.body)
        except (ValueError, TypeError, RecursionError) as e:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            return CallableReference.invalid(f"unreadable body: {e}"), {}, headers

        if not isinstance(payload, dict):
            return CallableReference.invalid("payload is not an object"), {}, headers

        args = payload.get("args")
        if not isinstance(args, dict):
            args = {}

        payload_headers = payload.get("headers")
        if isinstance(payload_headers, dict):
            headers.update(payload_headers)

        return parse_callable(payload.get("callable")), args, headers

    # ── Accessors ─────────────────────────────────────

    def get_callable(self) -> CallableReference:
        return self._callable

    def get_args(self) -> Mapping[str, Any]:
        return self._args

    def get_arg(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def get_headers(self) -> Mapping[str, str]:
        return self._headers

    def get_raw(self) -> RawMessage:
        return self._raw

    def get_context(self) -> Any:
        return self._context

    def __repr__(self) -> str:
        return (f"JobMessage(id={self._raw.message_id!r}, "
                f"callable={str(self._callable)!r}, args={dict(self._args)!r})")


# ──────────────────────────────────────────────────────────────
#  Producer side of the payload contract
# ──────────────────────────────────────────────────────────────

CallableSpec = Union[CallableReference, str, tuple, list]


def encode_payload(
    callable_spec: CallableSpec,
    args: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> str:
    """Serialize a callable plus args/headers into the JSON body JobMessage reads."""
    if isinstance(callable_spec, CallableReference):
        ref = callable_spec
    else:
        ref = parse_callable(callable_spec)

    if ref.kind == CallableKind.INVALID:
        raise PayloadEncodeError(f"cannot encode callable: {ref.error}")

    try:
        return json.dumps({
            "callable": ref.to_payload(),
            "args": dict(args or {}),
            "headers": dict(headers or {}),
        })
    except (TypeError, ValueError) as e:
        raise PayloadEncodeError(f"payload is not JSON serializable: {e}") from e


def build_raw_message(
    callable_spec: CallableSpec,
    args: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    transport_headers: Optional[Mapping[str, str]] = None,
) -> RawMessage:
    """Convenience for tests and dev transports: a ready-to-deliver RawMessage."""
    return RawMessage(
        body=encode_payload(callable_spec, args, headers),
        headers=dict(transport_headers or {}),
    )

"""
Callable Resolver — turns a CallableReference into something we can invoke.

Lookup order for a name:
  1. Explicit registry (register("Mailer.Welcome", WelcomeMailer))
  2. Import path, when allow_import is on (off by default):
       "pkg.module:attr"  or  "pkg.module.attr"  (attr may be dotted after ':')

Modules in DENIED_MODULES are never imported, not even through an alias.

Resolution never raises. Every problem comes back as a ResolutionFailure
with a short machine-readable reason, so the Processor can reject the
message without any exception handling of its own.
"""
from __future__ import annotations

import importlib
import inspect
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

import structlog

from job_queue.errors import describe_error
from models.schemas import CallableKind, CallableReference

logger = structlog.get_logger()

_MISSING = object()

# interpreter and process control; a message must never reach these
DENIED_MODULES = frozenset({
    "builtins", "sys", "os", "subprocess", "importlib", "shutil",
    "signal", "pdb", "code", "ctypes", "multiprocessing", "posix", "nt",
})


class FailureReason:
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    IMPORT_ERROR = "import_error"
    FORBIDDEN = "forbidden"
    NOT_CALLABLE = "not_callable"
    NOT_INSTANTIABLE = "not_instantiable"
    MISSING_MEMBER = "missing_member"
    BAD_ARITY = "bad_arity"


@dataclass(frozen=True)
class ResolutionFailure:
    reference: CallableReference
    reason: str
    detail: str = ""

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.reason}: {self.detail}" if self.detail else self.reason


@dataclass(frozen=True)
class ResolvedCallable:
    """A reference whose target has been looked up and checked."""
    reference: CallableReference
    target: Any
    member: Optional[str] = None

    def __call__(self, message: Any) -> Any:
        if self.reference.kind == CallableKind.METHOD:
            instance = self.target()
            return getattr(instance, self.member)(message)
        return self.target(message)


Resolution = Union[ResolvedCallable, ResolutionFailure]


def _accepts_single_argument(fn: Callable, skip_self: bool = False) -> bool:
    """True if fn can be called with exactly one positional argument."""
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return True  # builtins without introspection; let the call decide
    params = list(sig.parameters.values())
    if skip_self and params and params[0].kind in (
        inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        params = params[1:]
    try:
        sig.replace(parameters=params).bind(None)
    except TypeError:
        return False
    return True


def _is_denied(module_path: str) -> bool:
    return any(module_path == m or module_path.startswith(m + ".") for m in DENIED_MODULES)


def _instantiable_without_args(cls: type) -> bool:
    try:
        sig = inspect.signature(cls)
    except (TypeError, ValueError):
        return True
    try:
        sig.bind()
    except TypeError:
        return False
    return True


class CallableResolver:
    """Registry + import-path lookup for job callables. Safe to share between threads."""

    def __init__(
        self,
        registry: Optional[dict[str, Any]] = None,
        allow_import: bool = False,
        allowed_prefixes: Iterable[str] = (),
    ):
        self._registry: dict[str, Any] = dict(registry or {})
        self._lock = threading.Lock()
        self.allow_import = allow_import
        self.allowed_prefixes = tuple(p.rstrip(".") for p in allowed_prefixes if p)

    # ── Registration ──────────────────────────────────

    def register(self, name: str, obj: Any):
        """
        Register a class or function under an explicit name.

        A string obj is an alias for an import path ("pkg.mod:Job"); it is
        imported lazily and is honored even when allow_import is off.
        """
        with self._lock:
            self._registry[name] = obj
        logger.debug("callable_registered", name=name)

    def unregister(self, name: str):
        with self._lock:
            self._registry.pop(name, None)

    def registered_names(self) -> list[str]:
        with self._lock:
            return sorted(self._registry)

    # ── Lookup ────────────────────────────────────────

    def _is_allowed(self, module_path: str) -> bool:
        if _is_denied(module_path):
            return False
        if not self.allowed_prefixes:
            return True
        return any(module_path == p or module_path.startswith(p + ".")
                   for p in self.allowed_prefixes)

    def _lookup(self, ref: CallableReference, name: str) -> Union[Any, ResolutionFailure]:
        with self._lock:
            obj = self._registry.get(name, _MISSING)
        if isinstance(obj, str):
            # alias: registry name → import path, imported on first use
            return self._import(ref, obj)
        if obj is not _MISSING:
            return obj

        if not self.allow_import:
            return ResolutionFailure(ref, FailureReason.NOT_FOUND, f"{name!r} is not registered")
        return self._import(ref, name)

    def _import(self, ref: CallableReference, name: str) -> Union[Any, ResolutionFailure]:
        if ":" in name:
            module_path, _, attr_path = name.partition(":")
        elif "." in name:
            module_path, _, attr_path = name.rpartition(".")
        else:
            return ResolutionFailure(ref, FailureReason.NOT_FOUND, f"{name!r} is not registered")

        if not module_path or not attr_path:
            return ResolutionFailure(ref, FailureReason.MALFORMED, f"bad import path {name!r}")
        if not self._is_allowed(module_path):
            return ResolutionFailure(ref, FailureReason.FORBIDDEN,
                                     f"module {module_path!r} is not importable by jobs")

        try:
            obj = importlib.import_module(module_path)
        except ImportError as e:
            return ResolutionFailure(ref, FailureReason.NOT_FOUND, describe_error(e))
        except Exception as e:
            logger.warning("callable_module_import_failed", module=module_path, error=describe_error(e))
            return ResolutionFailure(ref, FailureReason.IMPORT_ERROR, f"{type(e).__name__}: {describe_error(e)}")

        for part in attr_path.split("."):
            obj = getattr(obj, part, _MISSING)
            if obj is _MISSING:
                return ResolutionFailure(ref, FailureReason.NOT_FOUND,
                                         f"{module_path!r} has no attribute {attr_path!r}")
            if inspect.ismodule(obj) and _is_denied(obj.__name__):
                return ResolutionFailure(ref, FailureReason.FORBIDDEN,
                                         f"{name!r} reaches module {obj.__name__!r}")
        return obj

    def resolve(self, ref: CallableReference) -> Resolution:
        """Look up and validate ref. Returns ResolvedCallable or ResolutionFailure."""
        if ref.kind == CallableKind.INVALID:
            return ResolutionFailure(ref, FailureReason.MALFORMED, ref.error)
        if not ref.target:
            return ResolutionFailure(ref, FailureReason.MALFORMED, "empty target")

        target = self._lookup(ref, ref.target)
        if isinstance(target, ResolutionFailure):
            return target

        if ref.kind == CallableKind.FUNCTION:
            return self._check_function(ref, target)
        return self._check_method(ref, target)

    def _check_function(self, ref: CallableReference, target: Any) -> Resolution:
        if inspect.isclass(target) or not callable(target):
            return ResolutionFailure(ref, FailureReason.NOT_CALLABLE,
                                     f"{ref.target!r} is not a function")
        if not _accepts_single_argument(target):
            return ResolutionFailure(ref, FailureReason.BAD_ARITY,
                                     f"{ref.target!r} must accept exactly one argument")
        return ResolvedCallable(ref, target)

    def _check_method(self, ref: CallableReference, target: Any) -> Resolution:
        if not ref.member:
            return ResolutionFailure(ref, FailureReason.MALFORMED, "missing method name")
        if not inspect.isclass(target):
            return ResolutionFailure(ref, FailureReason.NOT_CALLABLE,
                                     f"{ref.target!r} is not a class")
        if not _instantiable_without_args(target):
            return ResolutionFailure(ref, FailureReason.NOT_INSTANTIABLE,
                                     f"{ref.target!r} needs constructor arguments")

        static = inspect.getattr_static(target, ref.member, _MISSING)
        if static is _MISSING:
            return ResolutionFailure(ref, FailureReason.MISSING_MEMBER,
                                     f"{ref.target!r} has no method {ref.member!r}")

        if isinstance(static, staticmethod):
            fn, skip_self = static.__func__, False
        elif isinstance(static, classmethod):
            fn, skip_self = getattr(target, ref.member), False
        elif inspect.isfunction(static):
            fn, skip_self = static, True
        else:
            fn, skip_self = getattr(target, ref.member), False
            if not callable(fn):
                return ResolutionFailure(ref, FailureReason.NOT_CALLABLE,
                                         f"{ref} is not callable")

        if not _accepts_single_argument(fn, skip_self=skip_self):
            return ResolutionFailure(ref, FailureReason.BAD_ARITY,
                                     f"{ref} must accept exactly one argument")
        return ResolvedCallable(ref, target, ref.member)

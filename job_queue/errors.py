"""
Exception classes for job_queue.

Only the library's own misuse is raised as an exception. Anything that
goes wrong with a delivered message (bad payload, unknown callable,
callee failure) becomes a Disposition instead.
"""


class JobQueueError(Exception):
    """Base exception for job_queue."""
    pass


class PayloadEncodeError(JobQueueError):
    """Raised when a producer tries to encode a payload the adapter could not read back."""
    pass


class ConfigurationError(JobQueueError):
    """Raised for unknown backends or inconsistent settings."""
    pass


def describe_error(exc: BaseException) -> str:
    """Text of an exception for logs. Falls back when the exception's own __str__ fails."""
    try:
        return str(exc)
    except Exception:
        try:
            return repr(exc)
        except Exception:
            return f"<unprintable {type(exc).__name__}>"

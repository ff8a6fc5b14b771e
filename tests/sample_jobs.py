"""Job callables used by the test-suite, importable as `sample_jobs`."""
import threading

from models.schemas import Disposition, Outcome

CALLS: list[tuple[str, object]] = []

# SlowJob blocks on RELEASE and tracks how many copies run at once
RELEASE = threading.Event()
_active_lock = threading.Lock()
ACTIVE = {"now": 0, "peak": 0}


def reset_slow_jobs():
    RELEASE.clear()
    with _active_lock:
        ACTIVE.update(now=0, peak=0)


class WelcomeMailer:
    def send(self, message):
        CALLS.append(("WelcomeMailer.send", message))
        return None


class RejectingJob:
    def run(self, message):
        CALLS.append(("RejectingJob.run", message))
        return Disposition.REJECT


class FailingJob:
    def run(self, message):
        CALLS.append(("FailingJob.run", message))
        raise RuntimeError("DB down")


class ExplicitJob:
    """Returns whatever the message asks for in args['respond_with']."""

    def run(self, message):
        CALLS.append(("ExplicitJob.run", message))
        return message.get_arg("respond_with")


class SlowJob:
    def run(self, message):
        with _active_lock:
            ACTIVE["now"] += 1
            ACTIVE["peak"] = max(ACTIVE["peak"], ACTIVE["now"])
        try:
            RELEASE.wait(timeout=5)
        finally:
            with _active_lock:
                ACTIVE["now"] -= 1
        CALLS.append(("SlowJob.run", message))


class StaticJob:
    @staticmethod
    def handle(message):
        CALLS.append(("StaticJob.handle", message))
        return Outcome.SUCCESS

    @classmethod
    def handle_cls(cls, message):
        CALLS.append(("StaticJob.handle_cls", message))
        return Outcome.REJECTED


class NeedsArgs:
    def __init__(self, connection):
        self.connection = connection

    def run(self, message):
        CALLS.append(("NeedsArgs.run", message))


class BrokenConstructor:
    def __init__(self):
        raise ConnectionError("no broker")

    def run(self, message):
        CALLS.append(("BrokenConstructor.run", message))


class WrongArity:
    def run(self, message, extra):
        CALLS.append(("WrongArity.run", message))

    not_a_method = "plain attribute"


def ack_function(message):
    CALLS.append(("ack_function", message))
    return Disposition.ACKNOWLEDGE


def requeue_function(message):
    CALLS.append(("requeue_function", message))
    return Disposition.REQUEUE


def no_args_function():
    CALLS.append(("no_args_function", None))

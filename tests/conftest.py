"""Shared test fixtures for the queue dispatcher."""
import pytest
import structlog

import sample_jobs
from job_queue.events import RecordingEventSink
from job_queue.message import build_raw_message
from job_queue.processor import Processor
from job_queue.resolver import CallableResolver


@pytest.fixture(autouse=True)
def reset_calls():
    sample_jobs.CALLS.clear()
    sample_jobs.reset_slow_jobs()
    yield
    sample_jobs.RELEASE.set()
    sample_jobs.CALLS.clear()


@pytest.fixture
def calls():
    return sample_jobs.CALLS


@pytest.fixture
def resolver() -> CallableResolver:
    """Registry with the names used across scenarios; import paths limited to sample_jobs."""
    r = CallableResolver(allow_import=True, allowed_prefixes=["sample_jobs"])
    r.register("Mailer.Welcome", sample_jobs.WelcomeMailer)
    r.register("Jobs.Reject", sample_jobs.RejectingJob)
    r.register("Jobs.Failing", sample_jobs.FailingJob)
    r.register("Jobs.Explicit", sample_jobs.ExplicitJob)
    r.register("ack_function", sample_jobs.ack_function)
    return r


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def processor(resolver, sink) -> Processor:
    return Processor(logger=structlog.get_logger("tests"), events=sink, resolver=resolver)


@pytest.fixture
def make_message():
    """Factory: make_message(callable, args=None, headers=None) -> RawMessage."""
    def _make(callable_spec, args=None, headers=None, transport_headers=None):
        return build_raw_message(callable_spec, args, headers, transport_headers)
    return _make

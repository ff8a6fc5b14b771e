"""Tests for event sinks — EventManager subscription, ordering and isolation."""
from concurrent.futures import ThreadPoolExecutor

from structlog.testing import capture_logs

from job_queue.events import EventManager, EventSink, NullEventSink, RecordingEventSink
from models.schemas import Event


class TestEventManager:
    def test_listener_receives_event(self):
        events = EventManager(subject="proc")
        seen = []
        events.on("message.seen", seen.append)
        events.dispatch("message.seen", {"queueMessage": "raw"})
        assert len(seen) == 1
        assert isinstance(seen[0], Event)
        assert seen[0].name == "message.seen"
        assert seen[0].subject == "proc"
        assert seen[0].data == {"queueMessage": "raw"}

    def test_only_matching_name(self):
        events = EventManager()
        seen = []
        events.on("message.start", seen.append)
        events.dispatch("message.seen", {})
        assert seen == []

    def test_registration_order(self):
        events = EventManager()
        order = []
        events.on("message.seen", lambda e: order.append("first"))
        events.on("message.seen", lambda e: order.append("second"))
        events.dispatch("message.seen", {})
        assert order == ["first", "second"]

    def test_wildcard(self):
        events = EventManager()
        names = []
        events.on("*", lambda e: names.append(e.name))
        events.dispatch("message.seen", {})
        events.dispatch("message.start", {})
        assert names == ["message.seen", "message.start"]

    def test_prefix_applies_to_names_and_subscriptions(self):
        events = EventManager(prefix="Processor")
        short, full = [], []
        events.on("message.seen", short.append)
        events.on("Processor.message.seen", full.append)
        events.dispatch("message.seen", {})
        assert [e.name for e in short] == ["Processor.message.seen"]
        assert len(full) == 1

    def test_off_single_and_all(self):
        events = EventManager()
        a, b = [], []
        events.on("message.seen", a.append)
        events.on("message.seen", b.append)
        events.off("message.seen", a.append)
        events.dispatch("message.seen", {})
        assert a == [] and len(b) == 1
        events.off("message.seen")
        events.dispatch("message.seen", {})
        assert len(b) == 1

    def test_failing_listener_is_isolated_and_logged(self):
        events = EventManager()
        after = []

        def boom(event):
            raise ValueError("listener broke")

        events.on("message.seen", boom)
        events.on("message.seen", after.append)
        with capture_logs() as logs:
            events.dispatch("message.seen", {})
        assert len(after) == 1
        errors = [l for l in logs if l["event"] == "event_listener_error"]
        assert errors and errors[0]["error"] == "listener broke"
        assert errors[0]["event_name"] == "message.seen"


class TestSimpleSinks:
    def test_protocol(self):
        assert isinstance(EventManager(), EventSink)
        assert isinstance(NullEventSink(), EventSink)
        assert isinstance(RecordingEventSink(), EventSink)

    def test_null_sink_accepts_anything(self):
        assert NullEventSink().dispatch("message.seen", {"x": 1}) is None

    def test_recording_sink(self):
        sink = RecordingEventSink()
        sink.dispatch("message.seen", {"queueMessage": 1})
        sink.dispatch("message.start", {"message": 2})
        assert sink.names == ["message.seen", "message.start"]
        assert sink.last("message.start") == {"message": 2}
        assert sink.last("message.failure") is None
        sink.clear()
        assert sink.names == []

    def test_recording_sink_readable_while_written(self):
        sink = RecordingEventSink()

        def write(n):
            for i in range(500):
                sink.dispatch("message.seen", {"n": n, "i": i})

        def read():
            for _ in range(500):
                names = sink.names
                assert set(names) <= {"message.seen"}
                sink.last("message.seen")

        with ThreadPoolExecutor(max_workers=6) as pool:
            futures = [pool.submit(write, n) for n in range(4)] + [pool.submit(read) for _ in range(2)]
            for f in futures:
                f.result()

        assert len(sink.names) == 2000
        assert sink.last("message.seen")["i"] == 499

"""Tests for watch sessions."""

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from k8sdiscovery.base import CompletionReason, Result
from k8sdiscovery.models import K8sObject, K8sPod
from k8sdiscovery.watch import WatchSession, WatchState

TARGET = K8sObject(labels={"app": "nginx"}, namespace="nginx")
URL = "http://api.test" + TARGET.render_path(watch=True)


def line(operation, name="nginx-1", ip="10.0.0.5"):
    status = {"podIP": ip} if ip else {}
    payload = {"type": operation, "object": {"metadata": {"name": name}, "status": status}}
    return json.dumps(payload).encode() + b"\n"


class Recorder:
    """Collects the callbacks of one session."""

    def __init__(self):
        self.results = []
        self.reasons = []

    def on_next(self, result):
        self.results.append(result)

    def on_complete(self, reason):
        self.reasons.append(reason)

    @property
    def pods(self):
        return [pod for result in self.results for pod in result.get()]


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestWatchSessionHandlers:
    """Tests for the WatchSession state machine, driven directly."""

    @pytest.fixture
    def recorder(self):
        return Recorder()

    @pytest.fixture
    def session(self, recorder):
        return WatchSession(MagicMock(), URL, TARGET, recorder.on_next, recorder.on_complete)

    def test_initial_state(self, session):
        """Test that a new session is connecting."""
        assert session.state == WatchState.CONNECTING
        assert session.reason is None
        assert session.closed is False

    def test_successful_head_starts_streaming(self, session, recorder):
        """Test that a 200 head moves to streaming without callbacks."""
        assert session.handle_head(200, "OK") is True
        assert session.state == WatchState.STREAMING
        assert recorder.results == []
        assert recorder.reasons == []

    def test_error_head_closes_unavailable(self, session, recorder):
        """Test that a 404 head closes the session without any result."""
        assert session.handle_head(404, "Not Found") is False

        assert session.state == WatchState.CLOSED
        assert session.reason == CompletionReason.UNAVAILABLE
        assert recorder.results == []
        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    def test_chunks_produce_notifications_in_order(self, session, recorder):
        """Test that pods are reported in the order their lines arrive."""
        session.handle_head(200)
        data = line("ADDED", "a", "10.0.0.1") + line("ADDED", "b", "10.0.0.2") + line("MODIFIED", "c", "10.0.0.3")

        # split at awkward places
        session.handle_chunk(data[:7])
        session.handle_chunk(data[7:90])
        session.handle_chunk(data[90:])

        assert [pod.name for pod in recorder.pods] == ["a", "b", "c"]
        assert all(result.ok for result in recorder.results)
        assert all(len(result.instances) == 1 for result in recorder.results)

    def test_duplicates_are_not_reported(self, session, recorder):
        """Test that repeated ADDED/MODIFIED events notify once."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED") + line("MODIFIED") + line("ADDED"))

        assert recorder.pods == [K8sPod(name="nginx-1", address="10.0.0.5")]

    def test_readd_after_delete_is_reported(self, session, recorder):
        """Test that a deleted pod is reported again when it comes back."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED"))
        session.handle_chunk(line("DELETED"))
        assert session.members == frozenset()
        session.handle_chunk(line("ADDED"))

        assert len(recorder.pods) == 2

    def test_malformed_line_is_skipped(self, session, recorder):
        """Test that a corrupt line does not end the stream."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED", "a", "10.0.0.1") + b'{"type":"ADD\n' + line("ADDED", "b", "10.0.0.2"))

        assert [pod.name for pod in recorder.pods] == ["a", "b"]
        assert session.state == WatchState.STREAMING
        assert recorder.reasons == []

    def test_blank_lines_are_ignored(self, session, recorder):
        """Test that empty lines between events are ignored."""
        session.handle_head(200)
        session.handle_chunk(b"\n" + line("ADDED") + b"\n\n")

        assert len(recorder.pods) == 1

    def test_pod_without_ip_is_not_reported(self, session, recorder):
        """Test that pending pods are not reported until they get an address."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED", ip=None))
        assert recorder.results == []

        session.handle_chunk(line("MODIFIED"))
        assert recorder.pods == [K8sPod(name="nginx-1", address="10.0.0.5")]

    def test_members_reflect_stream(self, session):
        """Test that the current membership can be polled."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED", "a", "10.0.0.1") + line("ADDED", "b", "10.0.0.2") + line("DELETED", "a", "10.0.0.1"))

        assert session.members == frozenset({K8sPod(name="b", address="10.0.0.2")})

    def test_end_closes_completed(self, session, recorder):
        """Test that the end of the body is reported as completed."""
        session.handle_head(200)
        session.handle_end()

        assert session.reason == CompletionReason.COMPLETED
        assert recorder.reasons == [CompletionReason.COMPLETED]

    def test_error_closes_unavailable(self, session, recorder):
        """Test that a transport error is reported as unavailable."""
        session.handle_head(200)
        session.handle_error(httpx.ReadError("connection reset"))

        assert session.reason == CompletionReason.UNAVAILABLE
        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    def test_cancel(self, session, recorder):
        """Test cancelling a session."""
        session.handle_head(200)
        session.cancel()

        assert session.reason == CompletionReason.CANCELLED
        assert recorder.reasons == [CompletionReason.CANCELLED]

    def test_cancel_twice_is_noop(self, session, recorder):
        """Test that cancelling an already-cancelled session does nothing."""
        session.cancel()
        session.cancel()

        assert recorder.reasons == [CompletionReason.CANCELLED]

    def test_closed_is_terminal(self, session, recorder):
        """Test that no callback fires after the session closes."""
        session.handle_head(200)
        session.handle_end()

        session.handle_chunk(line("ADDED"))
        session.handle_error(httpx.ReadError("late"))
        session.handle_end()
        session.cancel()

        assert recorder.results == []
        assert recorder.reasons == [CompletionReason.COMPLETED]

    def test_chunk_before_head_is_ignored(self, session, recorder):
        """Test that body data is only processed while streaming."""
        session.handle_chunk(line("ADDED"))

        assert recorder.results == []

    def test_cancel_from_callback_stops_processing(self, recorder):
        """Test that cancelling inside on_next stops the rest of the chunk."""
        def on_next(result):
            recorder.on_next(result)
            session.cancel()

        session = WatchSession(MagicMock(), URL, TARGET, on_next, recorder.on_complete)
        session.handle_head(200)
        session.handle_chunk(line("ADDED", "a", "10.0.0.1") + line("ADDED", "b", "10.0.0.2"))

        assert [pod.name for pod in recorder.pods] == ["a"]
        assert recorder.reasons == [CompletionReason.CANCELLED]

    def test_close_clears_state(self, session):
        """Test that the cache and buffer are released on close."""
        session.handle_head(200)
        session.handle_chunk(line("ADDED") + b'{"partial')
        session.handle_end()

        assert session.members == frozenset()
        assert len(session._frames) == 0


class TestWatchSessionRun:
    """Tests for WatchSession.run against a mock transport."""

    @pytest.fixture
    def recorder(self):
        return Recorder()

    def make_session(self, handler, recorder, headers=None):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return WatchSession(client, URL, TARGET, recorder.on_next, recorder.on_complete, headers=headers)

    def test_start_requires_running_loop(self, recorder):
        """Test that starting a session outside an event loop fails."""
        session = self.make_session(lambda request: httpx.Response(200), recorder)

        with pytest.raises(RuntimeError):
            session.start()

        assert session.task is None
        assert session.state == WatchState.CONNECTING

    @pytest.mark.asyncio
    async def test_stream_then_completed(self, recorder):
        """Test a full stream that the server ends."""
        async def body():
            yield line("ADDED", "a", "10.0.0.1")[:10]
            yield line("ADDED", "a", "10.0.0.1")[10:] + line("ADDED", "b", "10.0.0.2")
            yield line("ADDED", "a", "10.0.0.1")

        def handler(request):
            assert request.url.params["watch"] == "true"
            assert request.url.params["labelSelector"] == "app=nginx"
            return httpx.Response(200, content=body())

        session = self.make_session(handler, recorder)
        await session.run()

        assert [pod.name for pod in recorder.pods] == ["a", "b"]
        assert recorder.reasons == [CompletionReason.COMPLETED]

    @pytest.mark.asyncio
    async def test_not_found(self, recorder):
        """Test that a 404 closes the watch as unavailable without results."""
        def handler(request):
            return httpx.Response(404, json={"kind": "Status", "code": 404})

        session = self.make_session(handler, recorder)
        await session.run()

        assert recorder.results == []
        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    @pytest.mark.asyncio
    async def test_connect_error(self, recorder):
        """Test that a failed connection closes the watch as unavailable."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        session = self.make_session(handler, recorder)
        await session.run()

        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    @pytest.mark.asyncio
    async def test_error_mid_stream(self, recorder):
        """Test that a transport error while streaming is reported after earlier results."""
        async def body():
            yield line("ADDED")
            raise httpx.ReadError("connection reset")

        def handler(request):
            return httpx.Response(200, content=body())

        session = self.make_session(handler, recorder)
        await session.run()

        assert len(recorder.pods) == 1
        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    @pytest.mark.asyncio
    async def test_headers_are_sent(self, recorder):
        """Test that the session sends its headers."""
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, content=b"")

        session = self.make_session(handler, recorder, headers={"Authorization": "Bearer abc"})
        await session.run()

        assert seen["authorization"] == "Bearer abc"
        assert recorder.reasons == [CompletionReason.COMPLETED]

    @pytest.mark.asyncio
    async def test_cancel_running_session(self, recorder):
        """Test cancelling a session that is waiting for more data."""
        async def body():
            yield line("ADDED")
            await asyncio.Event().wait()

        def handler(request):
            return httpx.Response(200, content=body())

        session = self.make_session(handler, recorder)
        task = session.start()
        await wait_until(lambda: recorder.results)

        session.cancel()
        session.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert len(recorder.pods) == 1
        assert recorder.reasons == [CompletionReason.CANCELLED]

    @pytest.mark.asyncio
    async def test_callback_error_closes_session(self, recorder):
        """Test that an exception from on_next ends the watch."""
        def on_next(result):
            raise RuntimeError("caller bug")

        def handler(request):
            return httpx.Response(200, content=line("ADDED") + line("ADDED", "b", "10.0.0.2"))

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        session = WatchSession(client, URL, TARGET, on_next, recorder.on_complete)
        await session.run()

        assert recorder.reasons == [CompletionReason.UNAVAILABLE]

    @pytest.mark.asyncio
    async def test_result_objects(self, recorder):
        """Test that each notification is a successful single-pod result."""
        def handler(request):
            return httpx.Response(200, content=line("ADDED"))

        session = self.make_session(handler, recorder)
        await session.run()

        assert recorder.results == [Result.success([K8sPod(name="nginx-1", address="10.0.0.5")])]

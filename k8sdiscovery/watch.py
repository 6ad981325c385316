"""Watch sessions over the pod watch stream."""

import asyncio
from enum import Enum
from typing import Dict, FrozenSet, Optional

import httpx

from .base import CompletionHandler, CompletionReason, NextHandler, Result
from .cache import MembershipCache
from .decoder import decode_event
from .errors import DecodeFailure
from .framing import FrameBuffer
from .logging_config import (
    get_logger,
    log_api_request,
    log_api_response,
    log_discovery_event,
    log_watch_event,
)
from .models import K8sObject, K8sPod

logger = get_logger(__name__)


class WatchState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class WatchSession:
    """One long-lived watch request and the state derived from its stream.

    The session owns its frame buffer and membership cache. The ``handle_*``
    methods are called sequentially by ``run`` as the response arrives; once
    the session is closed they do nothing, and ``on_complete`` has been called
    exactly once.
    """

    def __init__(self,
                 client: httpx.AsyncClient,
                 url: str,
                 target: K8sObject,
                 on_next: NextHandler,
                 on_complete: CompletionHandler,
                 headers: Optional[Dict[str, str]] = None,
                 connect_timeout: float = 5.0) -> None:
        self.client = client
        self.url = url
        self.target = target
        self.headers = headers or {}
        self.connect_timeout = connect_timeout

        self._on_next = on_next
        self._on_complete = on_complete
        self._frames = FrameBuffer()
        self._cache = MembershipCache()
        self._task: Optional["asyncio.Task[None]"] = None

        self.state = WatchState.CONNECTING
        self.reason: Optional[CompletionReason] = None

    @property
    def closed(self) -> bool:
        return self.state == WatchState.CLOSED

    @property
    def members(self) -> FrozenSet[K8sPod]:
        """Pods currently known to this session."""
        return self._cache.members

    @property
    def task(self) -> Optional["asyncio.Task[None]"]:
        return self._task

    def start(self) -> "asyncio.Task[None]":
        """Schedule ``run`` on the running event loop."""
        if self._task is None:
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Issue the watch request and feed the response through the handlers."""
        timeout = httpx.Timeout(self.connect_timeout, read=None)
        log_api_request(logger, "GET", self.url, watch=True)

        try:
            async with self.client.stream("GET", self.url, headers=self.headers, timeout=timeout) as response:
                log_api_response(logger, "GET", self.url, response.status_code, watch=True)
                if not self.handle_head(response.status_code, response.reason_phrase):
                    return

                async for chunk in response.aiter_bytes():
                    self.handle_chunk(chunk)
                    if self.closed:
                        return

            self.handle_end()

        except asyncio.CancelledError:
            self._close(CompletionReason.CANCELLED)
            raise
        except httpx.HTTPError as e:
            self.handle_error(e)
        except Exception as e:
            logger.exception("Watch session failed", url=self.url, error=str(e))
            self._close(CompletionReason.UNAVAILABLE)

    def handle_head(self, status_code: int, reason_phrase: str = "") -> bool:
        """Handle the response status. Returns False if the session closed."""
        if self.closed:
            return False

        if status_code >= 400:
            logger.error("Error received from Kubernetes API server",
                         status_code=status_code,
                         reason=reason_phrase,
                         url=self.url)
            self._close(CompletionReason.UNAVAILABLE)
            return False

        self.state = WatchState.STREAMING
        log_discovery_event(logger, "watch_started",
                            namespace=self.target.namespace,
                            labels=dict(self.target.labels))
        return True

    def handle_chunk(self, chunk: bytes) -> None:
        if self.state != WatchState.STREAMING:
            return

        self._frames.append(chunk)
        for message in self._frames.extract_ready_messages():
            if self.closed:
                return
            if not message.strip():
                continue

            try:
                event = decode_event(message)
            except DecodeFailure as e:
                logger.warning("Skipping malformed watch event",
                               url=self.url,
                               error=str(e),
                               payload=message[:200].decode("utf-8", "replace"))
                continue

            log_watch_event(logger, event.type.value, event.object.metadata.name)
            pod = self._cache.observe(event)
            if pod is not None:
                self._on_next(Result.success([pod]))

    def handle_error(self, error: BaseException) -> None:
        if self.closed:
            return
        logger.error("Request error from Kubernetes API server", url=self.url, error=str(error))
        self._close(CompletionReason.UNAVAILABLE)

    def handle_end(self) -> None:
        if self.closed:
            return
        logger.info("Watch stream ended by the API server", url=self.url)
        self._close(CompletionReason.COMPLETED)

    def cancel(self) -> None:
        """Stop the watch. Calling this on a closed session does nothing."""
        if self.closed:
            return
        self._close(CompletionReason.CANCELLED)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _close(self, reason: CompletionReason) -> None:
        if self.closed:
            return
        self.state = WatchState.CLOSED
        self.reason = reason
        self._frames.clear()
        self._cache.clear()
        log_discovery_event(logger, "watch_closed", reason=reason.value, url=self.url)
        self._on_complete(reason)

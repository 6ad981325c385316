"""The service discovery contract shared by all backends."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

from .errors import DiscoveryCancelled, DiscoveryError, DiscoveryUnavailable
from .logging_config import get_logger
from .models import K8sObject, K8sPod

logger = get_logger(__name__)


class CompletionReason(str, Enum):
    """Why a subscription stopped delivering results."""

    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    CANCELLED = "cancelled"


class Result:
    """Either a list of instances or the error that prevented getting them."""

    __slots__ = ("instances", "error")

    def __init__(self, instances: Optional[List[K8sPod]] = None, error: Optional[DiscoveryError] = None) -> None:
        if (instances is None) == (error is None):
            raise ValueError("Result needs exactly one of instances or error")
        self.instances = instances
        self.error = error

    @classmethod
    def success(cls, instances: List[K8sPod]) -> "Result":
        return cls(instances=list(instances))

    @classmethod
    def failure(cls, error: DiscoveryError) -> "Result":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def get(self) -> List[K8sPod]:
        """Return the instances, or raise the error."""
        if self.error is not None:
            raise self.error
        return self.instances

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        return self.instances == other.instances and self.error is other.error

    def __repr__(self) -> str:
        if self.ok:
            return f"Result.success({self.instances!r})"
        return f"Result.failure({self.error!r})"


NextHandler = Callable[[Result], None]
CompletionHandler = Callable[[CompletionReason], None]


class CancellationToken:
    """Handle returned by ``subscribe``; cancelling it more than once is a no-op."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._on_cancel()


class ServiceDiscovery(Protocol):
    """Lookup, subscribe and shutdown for a discovery backend."""

    default_lookup_timeout: float

    async def lookup(self, service: K8sObject, deadline: Optional[float] = None) -> List[K8sPod]:
        ...

    def lookup_with_callback(self, service: K8sObject, callback: NextHandler,
                             deadline: Optional[float] = None) -> "asyncio.Task[None]":
        ...

    def subscribe(self, service: K8sObject, on_next: NextHandler,
                  on_complete: CompletionHandler) -> CancellationToken:
        ...

    async def shutdown(self) -> None:
        ...


def deliver_lookup(lookup: Awaitable[List[K8sPod]], callback: NextHandler) -> "asyncio.Task[None]":
    """Run a lookup on the current loop and hand its outcome to ``callback`` exactly once."""

    async def run() -> None:
        try:
            instances = await lookup
        except asyncio.CancelledError:
            callback(Result.failure(DiscoveryCancelled("Lookup cancelled")))
            raise
        except DiscoveryError as e:
            callback(Result.failure(e))
            return
        except Exception as e:
            logger.exception("Lookup failed unexpectedly", error=str(e))
            callback(Result.failure(DiscoveryUnavailable(f"Lookup failed: {e}")))
            return
        callback(Result.success(instances))

    loop = asyncio.get_running_loop()
    return loop.create_task(run())

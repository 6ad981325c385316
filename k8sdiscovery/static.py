"""Discovery backed by a fixed list of instances."""

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence, Set

from .base import (
    CancellationToken,
    CompletionHandler,
    CompletionReason,
    NextHandler,
    Result,
    deliver_lookup,
)
from .models import K8sObject, K8sPod


class FixedListDiscovery:
    """Answers every lookup from a static mapping of targets to pods.

    Useful outside a cluster and in tests. Subscriptions receive the current
    list once and then stay open until cancelled.
    """

    default_lookup_timeout = 1.0

    def __init__(self, instances: Mapping[K8sObject, Sequence[K8sPod]]) -> None:
        self._instances: Dict[K8sObject, List[K8sPod]] = {
            target: list(pods) for target, pods in instances.items()
        }
        self._subscriptions: Set[CancellationToken] = set()

    @classmethod
    def from_hosts(cls, target: K8sObject, hosts: Sequence[str]) -> "FixedListDiscovery":
        """Each host becomes a pod whose name and address are both the host."""
        return cls({target: [K8sPod(name=host, address=host) for host in hosts]})

    async def lookup(self, service: K8sObject, deadline: Optional[float] = None) -> List[K8sPod]:
        return list(self._instances.get(service, []))

    def lookup_with_callback(self, service: K8sObject, callback: NextHandler,
                             deadline: Optional[float] = None) -> "asyncio.Task[None]":
        return deliver_lookup(self.lookup(service, deadline), callback)

    def subscribe(self, service: K8sObject, on_next: NextHandler,
                  on_complete: CompletionHandler) -> CancellationToken:
        def cancel() -> None:
            self._subscriptions.discard(token)
            on_complete(CompletionReason.CANCELLED)

        token = CancellationToken(cancel)
        self._subscriptions.add(token)
        on_next(Result.success(self._instances.get(service, [])))
        return token

    async def shutdown(self) -> None:
        for token in list(self._subscriptions):
            token.cancel()

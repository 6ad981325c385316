"""Membership cache for watch sessions."""

from typing import FrozenSet, Optional, Set

from .logging_config import get_logger
from .models import K8sPod, PodUpdateOperation, UpdateOperation

logger = get_logger(__name__)


class MembershipCache:
    """The set of pods a watch session has already reported as present.

    Only the first sighting of a pod produces a notification. Deletions remove
    the pod silently so that a later re-add is reported again.
    """

    def __init__(self) -> None:
        self._members: Set[K8sPod] = set()

    def __contains__(self, pod: object) -> bool:
        return pod in self._members

    def __len__(self) -> int:
        return len(self._members)

    @property
    def members(self) -> FrozenSet[K8sPod]:
        return frozenset(self._members)

    def observe(self, event: PodUpdateOperation) -> Optional[K8sPod]:
        """Apply an update event.

        Returns:
            The pod if it has just become known, otherwise None.
        """
        pod = event.object.to_public()
        if pod is None:
            logger.debug("Ignoring pod without an address",
                         pod_name=event.object.metadata.name,
                         operation=event.type.value)
            return None

        if event.type == UpdateOperation.DELETED:
            self._members.discard(pod)
            return None

        if pod in self._members:
            return None

        self._members.add(pod)
        return pod

    def clear(self) -> None:
        self._members.clear()

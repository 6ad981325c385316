"""Kubernetes pod discovery over the API server's REST interface."""

import asyncio
from typing import Dict, List, Optional, Sequence, Set

import httpx

from .base import CancellationToken, CompletionHandler, NextHandler, deliver_lookup
from .decoder import decode_pod_list
from .environment import ClusterEnvironment, ProcessEnvironment, auth_headers
from .errors import ConfigurationError, DiscoveryTimeout, DiscoveryUnavailable
from .logging_config import (
    get_logger,
    log_api_request,
    log_api_response,
    log_discovery_event,
    log_function_entry,
    log_function_exit,
)
from .models import DiscoveryConfig, K8sObject, K8sPod
from .static import FixedListDiscovery
from .watch import WatchSession

logger = get_logger(__name__)


class K8sServiceDiscovery:
    """Looks up and watches the pods matching a label selector.

    All lookups and watches share one HTTP client, which ``shutdown`` closes.
    """

    def __init__(self,
                 config: Optional[DiscoveryConfig] = None,
                 environment: Optional[ClusterEnvironment] = None,
                 client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or DiscoveryConfig()
        self.environment = environment or ProcessEnvironment()

        api_url = self.config.api_url or self.environment.service_endpoint()
        if not api_url:
            raise ConfigurationError(
                "No API server URL configured and KUBERNETES_SERVICE_HOST/KUBERNETES_SERVICE_PORT are not set"
            )
        self.api_url = api_url.rstrip("/")
        self.default_lookup_timeout = self.config.default_lookup_timeout

        self._client = client or httpx.AsyncClient(verify=self.config.verify_tls)
        self._sessions: Set[WatchSession] = set()
        self._closed = False

        logger.debug("K8sServiceDiscovery initialized",
                     api_url=self.api_url,
                     in_pod=self.environment.running_in_pod())

    @staticmethod
    def from_fixed_host_list(target: K8sObject, hosts: Sequence[str]) -> FixedListDiscovery:
        """A backend that always answers with ``hosts`` for ``target``."""
        return FixedListDiscovery.from_hosts(target, hosts)

    def full_url(self, target: K8sObject, watch: bool = False) -> str:
        return self.api_url + target.render_path(watch=watch)

    def _headers(self) -> Dict[str, str]:
        return auth_headers(self.environment)

    async def lookup(self, service: K8sObject, deadline: Optional[float] = None) -> List[K8sPod]:
        """Fetch the pods currently matching ``service``.

        Args:
            service: Namespace and label selector to query.
            deadline: Seconds from now to wait for the full response. Defaults
                to ``default_lookup_timeout``.

        Returns:
            Pods with an assigned address, in the order the API server lists them.

        Raises:
            DiscoveryTimeout: The deadline passed or the request failed.
            DiscoveryUnavailable: The API server answered with an error status,
                or the target does not form a valid URL.
            DecodeFailure: The response body is not a pod list.
        """
        timeout = self.default_lookup_timeout if deadline is None else deadline
        url = self.full_url(service)
        log_function_entry(logger, "lookup", url=url, timeout=timeout)
        log_api_request(logger, "GET", url)

        try:
            response = await asyncio.wait_for(
                self._client.get(url, headers=self._headers(), timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Lookup timed out", url=url, timeout=timeout)
            raise DiscoveryTimeout(f"Lookup of {url} timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning("Lookup request failed", url=url, error=str(e))
            raise DiscoveryTimeout(f"Lookup of {url} failed: {e}") from e
        except httpx.InvalidURL as e:
            logger.error("Lookup URL is invalid", url=url, error=str(e))
            raise DiscoveryUnavailable(f"Cannot request {url!r}: {e}") from e

        log_api_response(logger, "GET", url, response.status_code)
        if response.status_code >= 400:
            logger.error("Error received from Kubernetes API server",
                         status_code=response.status_code,
                         reason=response.reason_phrase,
                         url=url)
            raise DiscoveryUnavailable(
                f"API server returned {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content:
            instances: List[K8sPod] = []
        else:
            instances = decode_pod_list(response.content).public_items

        log_function_exit(logger, "lookup", url=url, instances=len(instances))
        return instances

    def lookup_with_callback(self, service: K8sObject, callback: NextHandler,
                             deadline: Optional[float] = None) -> "asyncio.Task[None]":
        """Run ``lookup`` in the background and pass its ``Result`` to ``callback``."""
        return deliver_lookup(self.lookup(service, deadline), callback)

    def subscribe(self, service: K8sObject, on_next: NextHandler,
                  on_complete: CompletionHandler) -> CancellationToken:
        """Watch ``service`` and report each pod the first time it appears.

        ``on_complete`` is called exactly once when the watch ends; the watch is
        never re-established automatically. Must be called from a running event
        loop.
        """
        if self._closed:
            raise RuntimeError("K8sServiceDiscovery has been shut down")

        session = WatchSession(
            self._client,
            self.full_url(service, watch=True),
            service,
            on_next,
            on_complete,
            headers=self._headers(),
            connect_timeout=self.config.connect_timeout,
        )
        task = session.start()
        self._sessions.add(session)
        task.add_done_callback(lambda _: self._sessions.discard(session))

        log_discovery_event(logger, "subscribed",
                            namespace=service.namespace,
                            labels=dict(service.labels))
        return CancellationToken(session.cancel)

    async def shutdown(self) -> None:
        """Cancel open watches and close the HTTP client."""
        if self._closed:
            return
        self._closed = True

        sessions = list(self._sessions)
        for session in sessions:
            session.cancel()
        tasks = [s.task for s in sessions if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self._client.aclose()
        logger.info("K8sServiceDiscovery shut down", cancelled_watches=len(sessions))

"""Cluster environment detection."""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

from kubernetes.config.incluster_config import (
    SERVICE_HOST_ENV_NAME,
    SERVICE_PORT_ENV_NAME,
    SERVICE_TOKEN_FILENAME,
)

from .logging_config import get_logger

logger = get_logger(__name__)


class ClusterEnvironment(Protocol):
    """Where the API server lives and how to authenticate against it."""

    def service_endpoint(self) -> Optional[str]:
        ...

    def running_in_pod(self) -> bool:
        ...

    def bearer_token(self) -> Optional[str]:
        ...


def endpoint_from(host: Optional[str], port: Optional[str]) -> Optional[str]:
    """Build the API server URL; https only on port 443."""
    if not host or not port:
        return None
    scheme = "https" if port == "443" else "http"
    return f"{scheme}://{host}:{port}"


class ProcessEnvironment:
    """Reads the service environment variables and service account token of this process."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None, token_path: str = SERVICE_TOKEN_FILENAME) -> None:
        self._environ = environ if environ is not None else os.environ
        self._token_path = Path(token_path)

    def service_endpoint(self) -> Optional[str]:
        return endpoint_from(self._environ.get(SERVICE_HOST_ENV_NAME),
                             self._environ.get(SERVICE_PORT_ENV_NAME))

    def running_in_pod(self) -> bool:
        return SERVICE_HOST_ENV_NAME in self._environ

    def bearer_token(self) -> Optional[str]:
        if not self._token_path.exists():
            logger.debug("No service account token found", token_path=str(self._token_path))
            return None
        return self._token_path.read_text().strip()


class StaticEnvironment:
    """A fixed environment, used outside a cluster and in tests."""

    def __init__(self, endpoint: Optional[str] = None, in_pod: bool = False, token: Optional[str] = None) -> None:
        self._endpoint = endpoint
        self._in_pod = in_pod
        self._token = token

    def service_endpoint(self) -> Optional[str]:
        return self._endpoint

    def running_in_pod(self) -> bool:
        return self._in_pod

    def bearer_token(self) -> Optional[str]:
        return self._token


def auth_headers(environment: ClusterEnvironment) -> Dict[str, str]:
    """Authorization header for requests made from inside the cluster."""
    if not environment.running_in_pod():
        return {}
    token = environment.bearer_token()
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}

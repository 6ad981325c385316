"""Exceptions raised by k8sdiscovery."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    DECODE_FAILURE = "decode_failure"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"


class DiscoveryError(Exception):
    """Base class for all discovery errors."""

    kind: ErrorKind


class DiscoveryTimeout(DiscoveryError):
    """The deadline passed or the transport gave up."""

    kind = ErrorKind.TIMEOUT


class DiscoveryUnavailable(DiscoveryError):
    """The API server answered with an error status or the connection failed."""

    kind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeFailure(DiscoveryError):
    """A response body or stream message could not be decoded."""

    kind = ErrorKind.DECODE_FAILURE

    def __init__(self, message: str, payload: bytes = b"") -> None:
        super().__init__(message)
        self.payload = payload


class DiscoveryCancelled(DiscoveryError):
    kind = ErrorKind.CANCELLED


class ConfigurationError(DiscoveryError):
    kind = ErrorKind.CONFIGURATION

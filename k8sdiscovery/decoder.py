"""Decoding of API server payloads into models."""

from pydantic import ValidationError

from .errors import DecodeFailure
from .models import PodList, PodUpdateOperation


def decode_event(message: bytes) -> PodUpdateOperation:
    """Decode one watch stream line.

    Raises:
        DecodeFailure: The line is not valid JSON, has an unknown event type,
            or does not carry a pod record.
    """
    try:
        return PodUpdateOperation.model_validate_json(message)
    except ValidationError as e:
        raise DecodeFailure(f"Malformed watch event: {e.error_count()} validation error(s)", payload=message) from e


def decode_pod_list(body: bytes) -> PodList:
    """Decode a pod list response body.

    Raises:
        DecodeFailure: The body is not a valid pod list.
    """
    try:
        return PodList.model_validate_json(body)
    except ValidationError as e:
        raise DecodeFailure(f"Malformed pod list: {e.error_count()} validation error(s)", payload=body) from e

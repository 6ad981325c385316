"""Data models for k8sdiscovery."""

from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional
from urllib.parse import parse_qs, quote, unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

API_PATH_TEMPLATE = "/api/v1/namespaces/{namespace}/pods"

# Characters left alone when encoding a single label key or value
_QUERY_ALLOWED = "!$&'()*+,;=:@/?"


class K8sObject(BaseModel):
    """A label selector and namespace describing which pods to discover."""

    model_config = ConfigDict(frozen=True)

    labels: Dict[str, str] = Field(default_factory=dict, validate_default=True, description="Label selector")
    namespace: str = Field("default", description="Kubernetes namespace")

    @field_validator("labels")
    @classmethod
    def _freeze_labels(cls, labels: Dict[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(labels))

    @field_serializer("labels")
    def _serialize_labels(self, labels: Mapping[str, str]) -> Dict[str, str]:
        return dict(labels)

    def __hash__(self) -> int:
        return hash((self.namespace, frozenset(self.labels.items())))

    @property
    def label_selector(self) -> str:
        """Label selector in Kubernetes syntax, sorted by key."""
        parts = []
        for key in sorted(self.labels):
            encoded_key = quote(key, safe=_QUERY_ALLOWED)
            encoded_value = quote(self.labels[key], safe=_QUERY_ALLOWED)
            parts.append(f"{encoded_key}={encoded_value}")
        return ",".join(parts)

    def render_path(self, watch: bool = False) -> str:
        """Render the API path for listing (or watching) the matching pods.

        The selector is encoded twice: once per key and value, then as a whole
        so that it can be embedded in the query string.
        """
        path = API_PATH_TEMPLATE.format(namespace=self.namespace)
        path += f"?labelSelector={quote(self.label_selector, safe='')}"
        if watch:
            path += "&watch=true"
        return path

    @classmethod
    def from_path(cls, path: str) -> "K8sObject":
        """Parse a path produced by ``render_path`` back into a target."""
        parts = urlsplit(path)
        segments = parts.path.strip("/").split("/")
        if len(segments) != 5 or segments[:3] != ["api", "v1", "namespaces"] or segments[4] != "pods":
            raise ValueError(f"Not a pod list path: {path}")

        query = parse_qs(parts.query)
        selector = query.get("labelSelector", [""])[0]

        labels = {}
        for pair in filter(None, selector.split(",")):
            key, _, value = pair.partition("=")
            labels[unquote(key)] = unquote(value)
        return cls(labels=labels, namespace=segments[3])


class K8sPod(BaseModel):
    """A discovered pod: its name and network address."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Pod name")
    address: str = Field(..., description="Pod IP address")

    def __str__(self) -> str:
        return f"Pod[{self.name} | {self.address}]"


class PodMeta(BaseModel):
    """Pod metadata; only the name is used."""

    name: str


class PodStatus(BaseModel):
    """Pod status; the IP is unset until the pod is scheduled."""

    model_config = ConfigDict(populate_by_name=True)

    pod_ip: Optional[str] = Field(None, alias="podIP")


class InternalPod(BaseModel):
    """Pod record as returned by the API server."""

    metadata: PodMeta
    status: PodStatus = Field(default_factory=PodStatus)

    def to_public(self) -> Optional[K8sPod]:
        """Convert to a K8sPod, or None if no IP has been assigned yet."""
        if not self.status.pod_ip:
            return None
        return K8sPod(name=self.metadata.name, address=self.status.pod_ip)


class PodList(BaseModel):
    """Response body of a pod list request."""

    items: List[InternalPod] = Field(default_factory=list)

    @property
    def public_items(self) -> List[K8sPod]:
        converted = []
        for item in self.items:
            pod = item.to_public()
            if pod is not None:
                converted.append(pod)
        return converted


class UpdateOperation(str, Enum):
    """Event types of a pod watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class PodUpdateOperation(BaseModel):
    """One event from a pod watch stream."""

    type: UpdateOperation
    object: InternalPod


class DiscoveryConfig(BaseModel):
    """Configuration for the discovery client."""

    api_url: Optional[str] = Field(None, description="API server base URL; detected in-cluster when unset")
    verify_tls: bool = Field(False, description="Verify the API server certificate")
    default_lookup_timeout: float = Field(1.0, gt=0, description="Lookup timeout in seconds")
    connect_timeout: float = Field(5.0, gt=0, description="Connect timeout in seconds")
    namespace: str = Field("default", description="Default namespace for the CLI")
    labels: Dict[str, str] = Field(default_factory=dict, description="Default label selector for the CLI")

    def target(self) -> K8sObject:
        """Build the default target from the configured namespace and labels."""
        return K8sObject(labels=self.labels, namespace=self.namespace)

"""k8sdiscovery: Kubernetes pod discovery by label selector, with lookup and watch."""

__version__ = "0.1.0"

# Lazy imports to avoid loading heavy dependencies for CLI usage
__all__ = [
    "K8sServiceDiscovery",
    "FixedListDiscovery",
    "K8sObject",
    "K8sPod",
    "DiscoveryConfig",
    "CompletionReason",
    "CancellationToken",
    "Result",
]

_EXPORTS = {
    "K8sServiceDiscovery": ".discovery",
    "FixedListDiscovery": ".static",
    "K8sObject": ".models",
    "K8sPod": ".models",
    "DiscoveryConfig": ".models",
    "CompletionReason": ".base",
    "CancellationToken": ".base",
    "Result": ".base",
}


def __getattr__(name):
    if name in _EXPORTS:
        from importlib import import_module
        return getattr(import_module(_EXPORTS[name], __name__), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

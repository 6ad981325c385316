"""Command-line interface for k8sdiscovery."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .logging_config import setup_logging, get_logger

logger = get_logger(__name__)


def parse_selector(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into a label mapping."""
    labels = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid selector '{pair}', expected key=value")
        labels[key] = value
    return labels


def build_config(args: argparse.Namespace):
    """Load the configuration file (if any) and apply command-line overrides."""
    from .config import find_config, load_config
    from .models import DiscoveryConfig

    config_path = find_config(args.config)
    if config_path:
        discovery_config = load_config(config_path)
        logger.debug("Configuration loaded", config_path=str(config_path))
    else:
        discovery_config = DiscoveryConfig()

    overrides = {}
    if args.api_url:
        overrides["api_url"] = args.api_url
    if args.namespace:
        overrides["namespace"] = args.namespace
    if args.selector:
        overrides["labels"] = parse_selector(args.selector)
    if getattr(args, "timeout", None) is not None:
        overrides["default_lookup_timeout"] = args.timeout

    return DiscoveryConfig.model_validate({**discovery_config.model_dump(), **overrides})


def _print_pods(pods, output: str) -> None:
    import yaml

    data = [pod.model_dump() for pod in pods]
    if output == "json":
        print(json.dumps(data, indent=2))
    elif output == "yaml":
        print(yaml.dump(data, default_flow_style=False))
    else:
        if not pods:
            print("No pods found.")
            return
        print(f"{'Name':<50} {'Address':<40}")
        print("-" * 91)
        for pod in pods:
            print(f"{pod.name:<50} {pod.address:<40}")


def lookup_command(args: argparse.Namespace) -> None:
    """Resolve the pods behind a selector once and print them."""
    from .discovery import K8sServiceDiscovery
    from .errors import DiscoveryError

    setup_logging(args.verbose)

    try:
        discovery_config = build_config(args)
        discovery = K8sServiceDiscovery(discovery_config)
    except (DiscoveryError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    async def run_lookup():
        try:
            return await discovery.lookup(discovery_config.target())
        finally:
            await discovery.shutdown()

    try:
        pods = asyncio.run(run_lookup())
    except DiscoveryError as e:
        print(f"Lookup failed ({e.kind.value}): {e}", file=sys.stderr)
        sys.exit(1)

    _print_pods(pods, args.output)


def watch_command(args: argparse.Namespace) -> None:
    """Watch the pods behind a selector and print each one as it appears."""
    from .base import CompletionReason
    from .discovery import K8sServiceDiscovery
    from .errors import DiscoveryError

    setup_logging(args.verbose)

    try:
        discovery_config = build_config(args)
        discovery = K8sServiceDiscovery(discovery_config)
    except (DiscoveryError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    async def run_watch() -> CompletionReason:
        done = asyncio.Event()
        outcome = []

        def on_next(result):
            for pod in result.get():
                print(pod, flush=True)

        def on_complete(reason):
            outcome.append(reason)
            done.set()

        discovery.subscribe(discovery_config.target(), on_next, on_complete)
        try:
            await done.wait()
        finally:
            await discovery.shutdown()
        return outcome[0]

    try:
        reason = asyncio.run(run_watch())
    except KeyboardInterrupt:
        print("Watch interrupted", file=sys.stderr)
        return

    print(f"Watch closed: {reason.value}", file=sys.stderr)
    if reason != CompletionReason.CANCELLED:
        sys.exit(1)


def init_config_command(args: argparse.Namespace) -> None:
    """Generate a sample configuration file."""
    import yaml

    sample_config = {
        "api_url": "http://localhost:8001",
        "verify_tls": False,
        "default_lookup_timeout": 1.0,
        "connect_timeout": 5.0,
        "namespace": "default",
        "labels": {"app": "nginx"},
    }

    config_yaml = yaml.dump(sample_config, default_flow_style=False, sort_keys=False)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(config_yaml)
        print(f"Sample configuration written to {output_path}")
    else:
        print("Sample configuration:\n")
        print(config_yaml)


def validate_config_command(args: argparse.Namespace) -> None:
    """Validate a configuration file."""
    from .config import load_config
    from .errors import ConfigurationError

    try:
        discovery_config = load_config(args.config)
    except ConfigurationError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ Configuration file {args.config} is valid")
    print(f"\nConfiguration summary:")
    print(f"  API URL: {discovery_config.api_url or 'in-cluster'}")
    print(f"  Namespace: {discovery_config.namespace}")
    print(f"  Labels: {discovery_config.labels or 'None'}")
    print(f"  Lookup timeout: {discovery_config.default_lookup_timeout}s")
    print(f"  Verify TLS: {discovery_config.verify_tls}")


def version_command(args: argparse.Namespace) -> None:
    """Show version information."""
    from . import __version__
    print(f"k8sdiscovery {__version__}")


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Configuration file path"
    )
    parser.add_argument(
        "--api-url",
        help="API server base URL (default: detected in-cluster)"
    )
    parser.add_argument(
        "--namespace", "-n",
        help="Namespace to query"
    )
    parser.add_argument(
        "--selector", "-l",
        action="append",
        metavar="KEY=VALUE",
        help="Label to select on (repeatable)"
    )


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="k8sdiscovery: Kubernetes pod discovery by label selector",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    lookup_parser = subparsers.add_parser("lookup", help="Resolve the pods behind a selector once")
    _add_target_arguments(lookup_parser)
    lookup_parser.add_argument(
        "--timeout",
        type=float,
        help="Lookup timeout in seconds"
    )
    lookup_parser.add_argument(
        "--output", "-o",
        choices=["json", "yaml", "table"],
        default="table",
        help="Output format (default: table)"
    )
    lookup_parser.set_defaults(func=lookup_command)

    watch_parser = subparsers.add_parser("watch", help="Print pods as they appear behind a selector")
    _add_target_arguments(watch_parser)
    watch_parser.set_defaults(func=watch_command)

    init_parser = subparsers.add_parser("init-config", help="Generate a sample configuration file")
    init_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)"
    )
    init_parser.set_defaults(func=init_config_command)

    validate_parser = subparsers.add_parser("validate-config", help="Validate a configuration file")
    validate_parser.add_argument(
        "--config", "-c",
        required=True,
        help="Configuration file path"
    )
    validate_parser.set_defaults(func=validate_config_command)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=version_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()

"""podreplace Command Line Interface.

Replaces workloads with dev pods declared in YAML files, reverts them and
shows what is currently replaced.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable, Coroutine
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from kubernetes.config import ConfigException
from pydantic import ValidationError

from podreplace.cache import RemoteCache
from podreplace.errors import ReplaceError, ensure_replace_error
from podreplace.kubernetes import KubeClient
from podreplace.models import DevPod
from podreplace.replace import PodReplacer
from podreplace.version import __version__

if TYPE_CHECKING:
    from argparse import Namespace


Command = Callable[[PodReplacer, RemoteCache], Awaitable[int]]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="podreplace",
        description="podreplace - swap workload pods for dev pods and back",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  podreplace replace -f devpod.yaml   Replace the workloads matching the dev pods
  podreplace revert api               Restore the workload replaced by dev pod 'api'
  podreplace revert --all             Restore every replaced workload
  podreplace status                   List replaced workloads
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--namespace",
        "-n",
        type=str,
        default=None,
        help="Kubernetes namespace (default: namespace of the active context)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Replace command
    replace_parser = subparsers.add_parser("replace", help="Replace workloads with dev pods")
    replace_parser.add_argument(
        "--file",
        "-f",
        type=str,
        required=True,
        help="YAML file with one or more dev pod declarations",
    )

    # Revert command
    revert_parser = subparsers.add_parser("revert", help="Restore replaced workloads")
    revert_group = revert_parser.add_mutually_exclusive_group(required=True)
    revert_group.add_argument(
        "name",
        nargs="?",
        default=None,
        help="Name of the dev pod to revert",
    )
    revert_group.add_argument(
        "--all",
        action="store_true",
        help="Revert every cached dev pod",
    )

    # Status command
    subparsers.add_parser("status", help="List replaced workloads")

    return parser


def load_dev_pods(path: str) -> list[DevPod]:
    """Read dev pod declarations from a YAML file.

    Each document holds either one dev pod or a list of them.
    """
    dev_pods: list[DevPod] = []
    with Path(path).open(encoding="utf-8") as f:
        for document in yaml.safe_load_all(f):
            if not document:
                continue
            items = document if isinstance(document, list) else [document]
            dev_pods.extend(DevPod.model_validate(item) for item in items)
    return dev_pods


def run_replace(args: Namespace) -> int:
    """Replace the workloads matching the declared dev pods."""
    try:
        dev_pods = load_dev_pods(args.file)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        error = ensure_replace_error(
            e,
            code="invalid_dev_pod",
            phase="load_dev_pods",
            details={"file": args.file},
        )
        print(error.to_json(), file=sys.stderr)
        return 1

    async def replace(replacer: PodReplacer, cache: RemoteCache) -> int:  # noqa: ARG001
        for dev_pod in dev_pods:
            outcome = await replacer.replace_pod(dev_pod)
            print(f"{dev_pod.name}: {outcome.value}")
        return 0

    return _run(args, replace)


def run_revert(args: Namespace) -> int:
    """Restore replaced workloads."""

    async def revert(replacer: PodReplacer, cache: RemoteCache) -> int:
        if args.all:
            for name in await replacer.revert_all():
                print(f"{name}: reverted")
            return 0

        reverted = await replacer.revert_replace_pod(cache.get_dev_pod(args.name))
        print(f"{args.name}: {'reverted' if reverted else 'not replaced'}")
        return 0

    return _run(args, revert)


def check_status(args: Namespace) -> int:
    """List the dev pods recorded in the cache."""

    async def status(replacer: PodReplacer, cache: RemoteCache) -> int:  # noqa: ARG001
        entries = cache.list_dev_pods()
        if not entries:
            print("No dev pods replaced")
            return 0
        print(f"{'DEV POD':<20} {'NAMESPACE':<16} {'TARGET':<32} REPLACEMENT")
        for entry in sorted(entries, key=lambda e: e.name):
            target = f"{entry.target_kind}/{entry.target_name}"
            print(f"{entry.name:<20} {entry.namespace:<16} {target:<32} {entry.replica_set}")
        return 0

    return _run(args, status)


def _run(args: Namespace, command: Command) -> int:
    """Connect to the cluster, load the cache and run ``command``.

    Failures are printed as structured JSON and turned into exit code 1.
    """

    async def session() -> int:
        kube = KubeClient(namespace=args.namespace)
        try:
            cache = await RemoteCache.load(kube)
            return await command(PodReplacer(kube, cache), cache)
        finally:
            kube.close()

    return _run_coroutine(session())


def _run_coroutine(coro: Coroutine[Any, Any, int]) -> int:
    try:
        return asyncio.run(coro)
    except ReplaceError as e:
        print(e.to_json(), file=sys.stderr)
    except ConfigException as e:
        error = ensure_replace_error(e, code="kubeconfig_error", phase="connect")
        print(error.to_json(), file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    command_handlers = {
        "replace": run_replace,
        "revert": run_revert,
        "status": check_status,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())

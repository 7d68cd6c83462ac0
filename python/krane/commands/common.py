"""
Arguments and image discovery shared by the ``list`` and ``push`` commands.
"""

import argparse
from typing import List

from krane.config_manager import DiscoveryOptions
from krane.filters import filter_items, remove_duplicates, split_patterns
from krane.k8s_client import KubernetesClient
from krane.logging_utils import get_logger

logger = get_logger(__name__)


def add_discovery_arguments(parser: argparse.ArgumentParser, image_shorthands: bool = True) -> None:
    """Add namespace selection and image filter flags to a subcommand parser.

    Pattern flags may be repeated and take comma-separated values.
    """
    parser.add_argument(
        "-n", "--namespace",
        default="",
        help="Namespace to list images from (default: all namespaces)",
    )
    parser.add_argument(
        "-A", "--all-namespaces",
        action="store_true",
        help="List images from all namespaces",
    )
    parser.add_argument(
        "--include-namespaces",
        action="append",
        metavar="PATTERNS",
        help="Namespace patterns to include (regex or prefix, only with all namespaces)",
    )
    parser.add_argument(
        "--exclude-namespaces",
        action="append",
        metavar="PATTERNS",
        help="Namespace patterns to exclude (regex or prefix, only with all namespaces)",
    )

    include_flags = ["-i", "--include"] if image_shorthands else ["--include"]
    exclude_flags = ["-e", "--exclude"] if image_shorthands else ["--exclude"]
    parser.add_argument(
        *include_flags,
        dest="include",
        action="append",
        metavar="PATTERNS",
        help="Image patterns to include (regex or prefix)",
    )
    parser.add_argument(
        *exclude_flags,
        dest="exclude",
        action="append",
        metavar="PATTERNS",
        help="Image patterns to exclude (regex or prefix)",
    )


def discovery_from_args(args: argparse.Namespace) -> DiscoveryOptions:
    return DiscoveryOptions(
        namespace=args.namespace or "",
        all_namespaces=bool(args.all_namespaces),
        include_namespaces=tuple(split_patterns(args.include_namespaces)),
        exclude_namespaces=tuple(split_patterns(args.exclude_namespaces)),
        include_patterns=tuple(split_patterns(args.include)),
        exclude_patterns=tuple(split_patterns(args.exclude)),
    )


def discover_images(client: KubernetesClient, discovery: DiscoveryOptions) -> List[str]:
    """List pod images, then deduplicate and apply the image filters.

    Returns:
        Unique image references in first-seen order
    """
    images = client.list_images(
        all_namespaces=discovery.effective_all_namespaces,
        namespace=discovery.namespace,
        include_namespaces=list(discovery.include_namespaces),
        exclude_namespaces=list(discovery.exclude_namespaces),
    )
    unique = remove_duplicates(images)
    filtered = filter_items(unique, discovery.include_patterns, discovery.exclude_patterns)
    if len(filtered) != len(unique):
        logger.debug(f"Image filters kept {len(filtered)} of {len(unique)} images")
    return filtered

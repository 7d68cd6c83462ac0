"""
``krane list``: show the container images running in the cluster.
"""

import argparse

from krane.commands.common import add_discovery_arguments, discover_images, discovery_from_args
from krane.config_manager import VALID_OUTPUT_FORMATS, ConfigManager, ListOptions
from krane.filters import filter_items, remove_duplicates
from krane.k8s_client import KubernetesClient
from krane.logging_utils import get_logger
from krane.report_utils import group_sources_by_image, render_grouped, render_images

logger = get_logger(__name__)


def add_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "list",
        help="List container images running in the cluster",
        description="List the unique container images used by pods, including init containers",
    )
    add_discovery_arguments(parser)
    parser.add_argument(
        "-o", "--output",
        default="table",
        choices=VALID_OUTPUT_FORMATS,
        help="Output format (default: table)",
    )
    parser.add_argument(
        "-s", "--show-sources",
        action="store_true",
        help="Show the namespace and workload each image comes from",
    )
    parser.set_defaults(handler=run)
    return parser


def options_from_args(args: argparse.Namespace) -> ListOptions:
    return ListOptions(
        discovery=discovery_from_args(args),
        output_format=args.output,
        show_sources=args.show_sources,
    )


def list_images(client: KubernetesClient, options: ListOptions) -> str:
    """Discover images and render them in the requested format.

    With sources shown, pods are listed once and the image list is derived
    from the per-workload entries.
    """
    discovery = options.discovery
    if not options.show_sources:
        return render_images(sorted(discover_images(client, discovery)), options.output_format)

    infos = client.list_images_with_source(
        all_namespaces=discovery.effective_all_namespaces,
        namespace=discovery.namespace,
        include_namespaces=list(discovery.include_namespaces),
        exclude_namespaces=list(discovery.exclude_namespaces),
    )
    unique = remove_duplicates(info.image for info in infos)
    images = sorted(filter_items(unique, discovery.include_patterns, discovery.exclude_patterns))
    return render_grouped(group_sources_by_image(infos, images), options.output_format)


def run(args: argparse.Namespace, config: ConfigManager) -> int:
    options = options_from_args(args)
    options.validate()
    client = KubernetesClient(kubeconfig=config.get_kubeconfig())
    print(list_images(client, options))
    return 0

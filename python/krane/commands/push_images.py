"""
``krane push``: mirror the cluster's container images into AWS ECR.

Images are discovered from running pods, filtered, translated to ECR
repository names under a prefix and copied registry-to-registry with skopeo
by a bounded pool of workers.
"""

import argparse
import threading
from pathlib import Path

from krane.commands.common import add_discovery_arguments, discover_images, discovery_from_args
from krane.config_manager import ConfigManager, PushOptions
from krane.ecr_client import EcrClient
from krane.k8s_client import KubernetesClient
from krane.logging_utils import get_logger
from krane.pipeline import dry_run, run_pipeline
from krane.report_utils import get_timestamp_suffix, save_json
from krane.skopeo_client import SkopeoClient

logger = get_logger(__name__)


def add_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "push",
        help="Mirror cluster images into AWS ECR",
        description="Copy every container image used in the cluster into ECR repositories under a prefix",
    )
    add_discovery_arguments(parser, image_shorthands=False)
    parser.add_argument(
        "--prefix",
        help="ECR repository prefix (default: ecr.prefix from config, 'krane')",
    )
    parser.add_argument(
        "-r", "--region",
        help="AWS region for ECR (default: AWS_REGION or ecr.region from config)",
    )
    parser.add_argument(
        "-d", "--dry-run",
        action="store_true",
        help="Show what would be pushed without creating repositories or copying",
    )
    parser.add_argument(
        "-p", "--platform",
        help="Limit the copy to a single platform, e.g. linux/amd64 (default: all platforms)",
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        default=None,
        help="Skip images whose tag already exists in ECR",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        help="Maximum number of concurrent image transfers (default: 3)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="Deadline for the whole push in seconds, 0 for none",
    )
    parser.add_argument(
        "--report",
        nargs="?",
        const="",
        help="Write a JSON report of the run (default path: <output.dir>/push-report-<timestamp>.json)",
    )
    parser.set_defaults(handler=run)
    return parser


def _report_path(args: argparse.Namespace, config: ConfigManager):
    if args.report is None:
        return None
    if args.report:
        return args.report
    return str(Path(config.get_output_dir()) / f"push-report-{get_timestamp_suffix()}.json")


def options_from_args(args: argparse.Namespace, config: ConfigManager) -> PushOptions:
    """Layer command line arguments over the configuration. The command line wins."""

    def pick(value, default):
        return default if value is None else value

    return PushOptions(
        discovery=discovery_from_args(args),
        region=args.region or config.get_region(),
        prefix=args.prefix or config.get_prefix(),
        dry_run=args.dry_run,
        platform=pick(args.platform, config.get_platform()),
        skip_existing=pick(args.skip_existing, config.get_skip_existing()),
        max_concurrent=pick(args.max_concurrent, config.get_max_concurrent()),
        timeout=pick(args.timeout, config.get_push_timeout()),
        report_path=_report_path(args, config),
    )


def push_images(options: PushOptions, config: ConfigManager, cancel_event: threading.Event = None) -> int:
    """Run a push with fixed options.

    Returns:
        Process exit code (0 once the summary has been printed)

    Raises:
        ActionableError: On setup failures (AWS identity, cluster access, skopeo missing)
    """
    options.validate()
    logger.info("🚀 Starting image push to AWS ECR...")

    connect_timeout, read_timeout = config.get_aws_timeouts()
    ecr = EcrClient(options.region, connect_timeout=connect_timeout, read_timeout=read_timeout)
    logger.info(f"🏷️  ECR Registry: {ecr.registry_url}")

    k8s = KubernetesClient(kubeconfig=config.get_kubeconfig())
    images = discover_images(k8s, options.discovery)
    logger.info(f"📦 Found {len(images)} unique images")
    if not images:
        logger.info("No images to push")
        return 0

    username, password = ecr.get_auth_token()
    logger.info("🔑 ECR authentication successful")

    if options.dry_run:
        dry_run(images, ecr, options.prefix)
        logger.info("No changes were made. Run without --dry-run to push.")
        return 0

    skopeo = SkopeoClient(
        binary=config.get_skopeo_binary(),
        dest_creds=f"{username}:{password}",
        dest_tls_verify=config.get_dest_tls_verify(),
        src_authfile=config.get_src_authfile(),
        timeout=config.get_copy_timeout() or None,
    )
    skopeo.ensure_available()

    summary, failures = run_pipeline(images, ecr, skopeo.mirror, options, cancel_event=cancel_event)

    if options.report_path:
        save_json(options.report_path, {
            "registry": ecr.registry_url,
            "prefix": options.prefix,
            "summary": summary.to_dict(),
            "results": [outcome.to_dict() for outcome in summary.outcomes],
            "conversion_failures": [{"image": f.image, "error": str(f.error)} for f in failures],
        })

    logger.info("🎉 Push operation completed!")
    return 0


def run(args: argparse.Namespace, config: ConfigManager) -> int:
    return push_images(options_from_args(args, config), config)

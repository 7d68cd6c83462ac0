#!/usr/bin/env python3
"""
krane command line entry point.

    krane list [-A | -n NAMESPACE] [-o table|json|yaml] [-s]
    krane push [--prefix PREFIX] [-r REGION] [-d] [-p os/arch] [--skip-existing]
"""

import argparse
import sys
from typing import List, Optional

from krane import __version__
from krane.commands import list_images, push_images
from krane.config_manager import ConfigManager, ConfigValidationError
from krane.error_utils import ActionableError
from krane.logging_utils import get_logger, log_exception, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="krane",
        description="List the container images running in a Kubernetes cluster and mirror them into AWS ECR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration:
  Defaults are read from config.yaml (or the file named by CONFIG_FILE).
  Environment variables override the file:
  - AWS_REGION / AWS_DEFAULT_REGION: ECR region
  - KRANE_PREFIX: ECR repository prefix
  - KRANE_MAX_CONCURRENT: concurrent transfers
  - SKOPEO_BINARY: skopeo executable
  - KUBECONFIG: kubeconfig path
  - KRANE_LOG_LEVEL: log level

Examples:
  # Images across the cluster, with the workloads using them
  krane list -A --show-sources

  # Only images from quay.io, as JSON
  krane list -A -i quay.io -o json

  # Preview a push, skipping kube-system
  krane push --exclude-namespaces kube-system --dry-run

  # Mirror linux/amd64 only, 5 transfers at a time
  krane push --prefix mirror -p linux/amd64 --max-concurrent 5 --skip-existing
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        help="Path to the configuration file (default: CONFIG_FILE or config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    list_images.add_parser(subparsers)
    push_images.add_parser(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(config_file=args.config)
        setup_logging("DEBUG" if args.verbose else config.get_log_level())
        return args.handler(args, config)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_INTERRUPTED
    except ConfigValidationError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except ActionableError as e:
        logger.error(e.format_message())
        return EXIT_FAILURE
    except Exception as e:
        log_exception(logger, f"{args.command} failed", exc_info=e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())

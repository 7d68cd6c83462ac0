"""
Mirroring pipeline: source images in, aggregated outcomes out.

    images -> dedupe -> build jobs (translate names) -> worker pool
           -> executor per job -> aggregator -> summary
"""

import threading
from functools import partial
from typing import Any, Callable, List, Optional, Sequence, Tuple

from krane.config_manager import PushOptions
from krane.error_utils import InvalidNameError
from krane.executor import JobExecutor
from krane.filters import remove_duplicates
from krane.jobs import TranslationFailure, build_jobs
from krane.logging_utils import get_logger
from krane.scheduler import MirrorSummary, ResultAggregator, run_jobs

logger = get_logger(__name__)


def run_pipeline(
    images: Sequence[str],
    registry: Any,
    mirror: Callable[..., None],
    options: PushOptions,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[MirrorSummary, List[TranslationFailure]]:
    """Mirror a list of source images into the destination registry.

    Args:
        images: Filtered source image references (duplicates allowed)
        registry: Destination client providing convert_image_name,
            ensure_repository and tag_exists
        mirror: Copy function, see SkopeoClient.mirror
        options: Push options (prefix, concurrency, skip-existing, platform, timeout)
        cancel_event: Cancels the run when set

    Returns:
        Tuple of (summary of executed jobs, images that could not be translated)
    """
    cancel_event = cancel_event or threading.Event()
    executor = JobExecutor(
        registry=registry,
        mirror=mirror,
        skip_existing=options.skip_existing,
        platform=options.platform,
        cancel_event=cancel_event,
    )

    jobs, failures = build_jobs(images, partial(registry.convert_image_name, prefix=options.prefix))
    if failures:
        logger.warning(f"⚠️  {len(failures)} images skipped because their names could not be converted")
    logger.info(f"🧵 Mirroring {len(jobs)} images with up to {options.max_concurrent} concurrent transfers")

    aggregator = ResultAggregator()
    summary = run_jobs(
        jobs,
        executor.execute,
        max_concurrent=options.max_concurrent,
        cancel_event=cancel_event,
        timeout=options.timeout or None,
        aggregator=aggregator,
    )
    aggregator.log_summary()
    return summary, failures


def dry_run(images: Sequence[str], registry: Any, prefix: str) -> List[Tuple[str, str]]:
    """Show what would be pushed, sequentially and without remote writes.

    Returns:
        (source, target) pairs for every image that could be translated
    """
    unique = remove_duplicates(images)
    planned = []
    for i, image in enumerate(unique, 1):
        logger.info(f"[{i}/{len(unique)}] 📦 Processing: {image}")
        try:
            target = registry.convert_image_name(image, prefix=prefix).target_image
        except InvalidNameError as e:
            logger.warning(f"❌ Failed to convert image name {image}: {e}")
            continue
        logger.info(f"🔍 DRY RUN: Would push {image} -> {target}")
        planned.append((image, target))
    return planned

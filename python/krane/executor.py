"""
Per-job execution: ensure repository, optional skip check, mirror copy.
"""

import threading
from enum import Enum
from typing import Any, Callable, Optional

from krane.error_utils import CancelledError, KraneError
from krane.image_names import parse_platform
from krane.jobs import JobOutcome, MirrorJob
from krane.logging_utils import get_logger

logger = get_logger(__name__)


MirrorFunc = Callable[..., None]


class JobState(Enum):
    CREATED = "created"
    REPO_ENSURING = "repo-ensuring"
    SKIP_CHECK = "skip-check"
    MIRRORING = "mirroring"
    DONE = "done"


class JobExecutor:
    """Runs a single MirrorJob through its states and reports one outcome.

    Every step is a single blocking remote call. Nothing is retried: the first
    failure ends the job and is reported in its outcome.
    """

    def __init__(
        self,
        registry: Any,
        mirror: MirrorFunc,
        skip_existing: bool = False,
        platform: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            registry: Destination client (ensure_repository / tag_exists)
            mirror: Copy function called as mirror(src, dest, platform=..., cancel_event=...)
            skip_existing: Skip jobs whose target tag already exists
            platform: Optional single "os/arch" restriction

        Raises:
            InvalidPlatformError: If platform is malformed; checked here so no job starts
        """
        parse_platform(platform)
        self.registry = registry
        self.mirror = mirror
        self.skip_existing = skip_existing
        self.platform = platform or None
        self.cancel_event = cancel_event or threading.Event()

    def _check_cancelled(self, job: MirrorJob, state: JobState) -> None:
        if self.cancel_event.is_set():
            raise CancelledError(f"cancelled during {state.value} of {job.source_image}")

    def _enter(self, job: MirrorJob, state: JobState) -> None:
        self._check_cancelled(job, state)
        logger.debug(f"{job.label} {job.source_image}: {state.value}")

    def execute(self, job: MirrorJob) -> JobOutcome:
        """Process one job and return its outcome. Job failures never escape."""
        try:
            skipped = self._run(job)
        except KraneError as e:
            return JobOutcome(job=job, error=e)
        except Exception as e:
            logger.debug(f"{job.label} unexpected error for {job.source_image}", exc_info=True)
            return JobOutcome(job=job, error=e)
        return JobOutcome(job=job, skipped=skipped)

    def _run(self, job: MirrorJob) -> bool:
        """Returns True when the job was skipped."""
        self._enter(job, JobState.REPO_ENSURING)
        self.registry.ensure_repository(job.repository_name)

        tag = job.tag
        if self.skip_existing and tag:
            self._enter(job, JobState.SKIP_CHECK)
            if self.registry.tag_exists(job.repository_name, tag):
                logger.debug(f"{job.label} {job.target_image} already present")
                return True

        self._enter(job, JobState.MIRRORING)
        self.mirror(
            job.source_image,
            job.target_image,
            platform=self.platform,
            cancel_event=self.cancel_event,
        )
        logger.debug(f"{job.label} {job.source_image}: {JobState.DONE.value}")
        return False

"""
Mirror job and outcome types, and the job builder.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from krane.error_utils import InvalidNameError
from krane.filters import remove_duplicates
from krane.image_names import TranslatedImage, tag_of
from krane.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MirrorJob:
    """One source image to copy into the destination registry.

    ``index`` and ``total`` are fixed when the job list is built so progress
    labels stay correct regardless of completion order.
    """
    index: int
    total: int
    source_image: str
    target_image: str
    repository_name: str

    @property
    def label(self) -> str:
        return f"[{self.index}/{self.total}]"

    @property
    def tag(self) -> str:
        return tag_of(self.target_image)


class OutcomeStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class JobOutcome:
    """Result of executing a single MirrorJob"""
    job: MirrorJob
    error: Optional[Exception] = None
    skipped: bool = False

    def __post_init__(self):
        if self.skipped and self.error is not None:
            raise ValueError("an outcome cannot be both skipped and failed")

    @property
    def status(self) -> OutcomeStatus:
        if self.error is not None:
            return OutcomeStatus.FAILED
        if self.skipped:
            return OutcomeStatus.SKIPPED
        return OutcomeStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "index": self.job.index,
            "source": self.job.source_image,
            "target": self.job.target_image,
            "repository": self.job.repository_name,
            "status": self.status.value,
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass(frozen=True)
class TranslationFailure:
    """A source image that could not be turned into a job"""
    image: str
    error: Exception


def build_jobs(
    images: Iterable[str],
    translate: Callable[[str], TranslatedImage],
) -> Tuple[List[MirrorJob], List[TranslationFailure]]:
    """Build the ordered mirror job list for a set of source images.

    Images are deduplicated (first occurrence wins) before translation. Images
    whose names cannot be translated are reported and dropped; they never
    become jobs and do not count towards ``total``.

    Args:
        images: Filtered source image references
        translate: Callable mapping a source image to its destination

    Returns:
        Tuple of (jobs in input order, translation failures)
    """
    translated = []
    failures = []
    for image in remove_duplicates(images):
        try:
            translated.append((image, translate(image)))
        except InvalidNameError as e:
            logger.warning(f"❌ Failed to convert image name {image}: {e}")
            failures.append(TranslationFailure(image=image, error=e))

    total = len(translated)
    jobs = [
        MirrorJob(
            index=i,
            total=total,
            source_image=image,
            target_image=result.target_image,
            repository_name=result.repository_name,
        )
        for i, (image, result) in enumerate(translated, 1)
    ]
    return jobs, failures

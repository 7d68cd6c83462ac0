"""Unit tests for krane/executor.py"""

import threading
from unittest.mock import MagicMock

import pytest

from krane.error_utils import (
    CancelledError,
    InvalidPlatformError,
    MirrorError,
    RepositoryError,
    TagCheckError,
)
from krane.executor import JobExecutor
from krane.jobs import MirrorJob, OutcomeStatus

REGISTRY = "123456789012.dkr.ecr.eu-west-1.amazonaws.com"


@pytest.fixture
def job():
    return MirrorJob(
        index=1,
        total=1,
        source_image="nginx:1.25",
        target_image=f"{REGISTRY}/krane/nginx:1.25",
        repository_name="krane/nginx",
    )


@pytest.fixture
def registry():
    mock_registry = MagicMock()
    mock_registry.ensure_repository.return_value = True
    mock_registry.tag_exists.return_value = False
    return mock_registry


class TestJobExecutor:
    """Tests for the per-job state machine"""

    def test_success_runs_all_steps(self, job, registry):
        """ensure repository, then mirror with the job's references"""
        mirror = MagicMock()
        executor = JobExecutor(registry, mirror)

        outcome = executor.execute(job)

        assert outcome.status is OutcomeStatus.SUCCESS
        registry.ensure_repository.assert_called_once_with("krane/nginx")
        registry.tag_exists.assert_not_called()
        mirror.assert_called_once_with(
            "nginx:1.25",
            f"{REGISTRY}/krane/nginx:1.25",
            platform=None,
            cancel_event=executor.cancel_event,
        )

    def test_skip_existing_never_mirrors(self, job, registry):
        """An existing tag short-circuits the copy"""
        registry.tag_exists.return_value = True
        mirror = MagicMock()

        outcome = JobExecutor(registry, mirror, skip_existing=True).execute(job)

        assert outcome.status is OutcomeStatus.SKIPPED
        registry.tag_exists.assert_called_once_with("krane/nginx", "1.25")
        mirror.assert_not_called()

    def test_skip_existing_with_missing_tag_mirrors(self, job, registry):
        mirror = MagicMock()
        outcome = JobExecutor(registry, mirror, skip_existing=True).execute(job)
        assert outcome.status is OutcomeStatus.SUCCESS
        mirror.assert_called_once()

    def test_existing_repository_is_not_an_error(self, job, registry):
        """ensure_repository returning False (already existed) continues the job"""
        registry.ensure_repository.return_value = False
        mirror = MagicMock()
        outcome = JobExecutor(registry, mirror).execute(job)
        assert outcome.status is OutcomeStatus.SUCCESS
        mirror.assert_called_once()

    def test_repository_error_fails_job(self, job, registry):
        registry.ensure_repository.side_effect = RepositoryError("access denied")
        mirror = MagicMock()

        outcome = JobExecutor(registry, mirror).execute(job)

        assert outcome.status is OutcomeStatus.FAILED
        assert isinstance(outcome.error, RepositoryError)
        mirror.assert_not_called()

    def test_tag_check_error_is_terminal(self, job, registry):
        """A failed existence check fails the job instead of mirroring anyway"""
        registry.tag_exists.side_effect = TagCheckError("throttled")
        mirror = MagicMock()

        outcome = JobExecutor(registry, mirror, skip_existing=True).execute(job)

        assert outcome.status is OutcomeStatus.FAILED
        assert isinstance(outcome.error, TagCheckError)
        mirror.assert_not_called()

    def test_mirror_error_fails_job(self, job, registry):
        mirror = MagicMock(side_effect=MirrorError("manifest unknown", stderr="manifest unknown"))
        outcome = JobExecutor(registry, mirror).execute(job)
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.error.stderr == "manifest unknown"

    def test_unexpected_exception_becomes_outcome(self, job, registry):
        """Errors outside the krane hierarchy are still reported, not raised"""
        mirror = MagicMock(side_effect=RuntimeError("unexpected"))
        outcome = JobExecutor(registry, mirror).execute(job)
        assert outcome.status is OutcomeStatus.FAILED
        assert isinstance(outcome.error, RuntimeError)

    def test_platform_is_passed_to_mirror(self, job, registry):
        mirror = MagicMock()
        JobExecutor(registry, mirror, platform="linux/arm64").execute(job)
        assert mirror.call_args.kwargs["platform"] == "linux/arm64"

    def test_invalid_platform_rejected_before_any_job(self, registry):
        """A bad platform is a setup error, no remote call is made"""
        with pytest.raises(InvalidPlatformError):
            JobExecutor(registry, MagicMock(), platform="linux/amd64,linux/arm64")
        registry.ensure_repository.assert_not_called()

    def test_cancelled_before_start(self, job, registry):
        """No remote call is started once the run is cancelled"""
        cancel_event = threading.Event()
        cancel_event.set()
        mirror = MagicMock()

        outcome = JobExecutor(registry, mirror, cancel_event=cancel_event).execute(job)

        assert isinstance(outcome.error, CancelledError)
        registry.ensure_repository.assert_not_called()
        mirror.assert_not_called()

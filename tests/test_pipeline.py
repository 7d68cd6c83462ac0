"""End-to-end tests for krane/pipeline.py with fake registry and mirror"""

import threading
import time

import pytest

from krane.config_manager import PushOptions
from krane.error_utils import CancelledError, MirrorError
from krane.image_names import translate_image_name
from krane.jobs import OutcomeStatus
from krane.pipeline import dry_run, run_pipeline

REGISTRY = "123456789012.dkr.ecr.eu-west-1.amazonaws.com"


class FakeRegistry:
    """In-memory destination registry"""

    def __init__(self, existing_tags=()):
        self.lock = threading.Lock()
        self.repositories = set()
        self.existing_tags = set(existing_tags)
        self.calls = []

    def convert_image_name(self, image, prefix):
        return translate_image_name(image, prefix, REGISTRY)

    def ensure_repository(self, name):
        with self.lock:
            self.calls.append(("ensure", name))
            created = name not in self.repositories
            self.repositories.add(name)
        return created

    def tag_exists(self, repository, tag):
        with self.lock:
            self.calls.append(("exists", repository, tag))
        return (repository, tag) in self.existing_tags


class StalledRegistry(FakeRegistry):
    """Registry whose repository creation hangs and ignores cancellation"""

    def __init__(self, stall=3.0):
        super().__init__()
        self.stall = stall

    def ensure_repository(self, name):
        time.sleep(self.stall)
        return super().ensure_repository(name)


class FakeMirror:
    """Records copies; fails for sources listed in ``failing``"""

    def __init__(self, failing=(), delay=0.0):
        self.lock = threading.Lock()
        self.failing = set(failing)
        self.delay = delay
        self.copied = []

    def __call__(self, src, dest, platform=None, cancel_event=None):
        if self.delay:
            time.sleep(self.delay)
        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(f"copy of {src} cancelled")
        if src in self.failing:
            raise MirrorError(f"mirror failed {src} -> {dest}: denied", stderr="denied")
        with self.lock:
            self.copied.append((src, dest, platform))


class TestRunPipeline:
    """Tests for the full mirroring pipeline"""

    def test_end_to_end(self):
        """Invalid names are dropped, valid images are mirrored"""
        registry = FakeRegistry()
        mirror = FakeMirror()
        images = ["nginx:1.25", "docker.io/library/busybox@sha256:" + "a" * 64, "bad/../name"]

        summary, failures = run_pipeline(images, registry, mirror, PushOptions(prefix="krane"))

        assert summary.submitted == 2
        assert summary.succeeded == 2
        assert [f.image for f in failures] == ["bad/../name"]
        assert sorted(dest for _, dest, _ in mirror.copied) == [
            f"{REGISTRY}/krane/library/busybox:sha-aaaaaaaaaaaa",
            f"{REGISTRY}/krane/nginx:1.25",
        ]
        assert registry.repositories == {"krane/nginx", "krane/library/busybox"}

    def test_duplicates_are_mirrored_once(self):
        mirror = FakeMirror()
        summary, _ = run_pipeline(["nginx", "redis", "nginx"], FakeRegistry(), mirror, PushOptions())
        assert summary.submitted == 2
        assert len(mirror.copied) == 2

    def test_skip_existing(self):
        """Existing tags are skipped and never copied"""
        registry = FakeRegistry(existing_tags=[("krane/nginx", "1.25")])
        mirror = FakeMirror()
        options = PushOptions(skip_existing=True)

        summary, _ = run_pipeline(["nginx:1.25", "redis:7"], registry, mirror, options)

        assert (summary.succeeded, summary.skipped, summary.failed) == (1, 1, 0)
        assert [src for src, _, _ in mirror.copied] == ["redis:7"]

    def test_failures_do_not_stop_other_jobs(self):
        mirror = FakeMirror(failing=["redis:7"])
        summary, _ = run_pipeline(["nginx:1.25", "redis:7", "busybox"], FakeRegistry(), mirror,
                                  PushOptions(max_concurrent=2))

        assert summary.failed == 1
        assert summary.succeeded == 2
        failed = [o for o in summary.outcomes if o.status is OutcomeStatus.FAILED]
        assert failed[0].job.source_image == "redis:7"
        assert failed[0].error.stderr == "denied"

    def test_platform_is_forwarded(self):
        mirror = FakeMirror()
        run_pipeline(["nginx"], FakeRegistry(), mirror, PushOptions(platform="linux/amd64"))
        assert mirror.copied[0][2] == "linux/amd64"

    def test_cancelled_run_counts_only_reported_jobs(self):
        cancel_event = threading.Event()
        cancel_event.set()
        mirror = FakeMirror()

        summary, _ = run_pipeline([f"image-{i}" for i in range(10)], FakeRegistry(), mirror,
                                  PushOptions(), cancel_event=cancel_event)

        assert summary.cancelled is True
        assert summary.succeeded == 0
        assert mirror.copied == []

    def test_deadline_stops_slow_run(self):
        mirror = FakeMirror(delay=0.3)
        begin = time.monotonic()
        summary, _ = run_pipeline([f"image-{i}" for i in range(20)], FakeRegistry(), mirror,
                                  PushOptions(max_concurrent=2, timeout=1))

        assert time.monotonic() - begin < 10
        assert summary.cancelled is True
        assert summary.completed < 20

    def test_cancel_does_not_wait_for_stalled_registry_calls(self):
        """A cancelled run returns while repository creation is still blocked"""
        cancel_event = threading.Event()
        timer = threading.Timer(0.2, cancel_event.set)
        timer.daemon = True
        mirror = FakeMirror()

        begin = time.monotonic()
        timer.start()
        summary, _ = run_pipeline(["a:1", "b:1"], StalledRegistry(), mirror,
                                  PushOptions(max_concurrent=2), cancel_event=cancel_event)
        elapsed = time.monotonic() - begin

        assert elapsed < 1.5
        assert summary.cancelled is True
        assert summary.completed == 0
        assert summary.not_attempted == 2
        assert mirror.copied == []


class TestDryRun:
    def test_lists_targets_without_remote_writes(self, caplog):
        registry = FakeRegistry()
        with caplog.at_level("INFO"):
            planned = dry_run(["nginx:1.25", "bad/../name", "nginx:1.25"], registry, "krane")

        assert planned == [("nginx:1.25", f"{REGISTRY}/krane/nginx:1.25")]
        assert registry.calls == []
        assert "🔍 DRY RUN: Would push nginx:1.25" in caplog.text
        assert "[2/2] 📦 Processing: bad/../name" in caplog.text


@pytest.mark.parametrize("max_concurrent", [1, 4])
def test_pipeline_outcome_per_job(max_concurrent):
    """Every built job yields exactly one outcome"""
    images = [f"team/app-{i}:v{i}" for i in range(15)]
    mirror = FakeMirror(failing=[images[3], images[7]])
    summary, _ = run_pipeline(images, FakeRegistry(), mirror, PushOptions(max_concurrent=max_concurrent))

    assert len(summary.outcomes) == 15
    assert summary.failed == 2
    assert summary.succeeded == 13

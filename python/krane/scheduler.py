"""
Bounded worker pool for mirror jobs and aggregation of their outcomes.

A producer thread feeds jobs, in order, into a bounded queue. ``max_concurrent``
workers pull from that queue and run one job at a time. The calling thread
drains the outcome queue until every worker has exited, printing a progress
line per outcome. A single ``threading.Event`` cancels the whole run; workers
still blocked in a remote call shortly after cancellation are left behind and
their jobs count as not attempted.
"""

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from krane.jobs import JobOutcome, MirrorJob, OutcomeStatus
from krane.logging_utils import get_logger

logger = get_logger(__name__)

# Queue wait granularity; bounds how long a blocked thread takes to notice cancellation
POLL_INTERVAL = 0.2

# How long the consumer keeps collecting outcomes after cancellation before it
# stops waiting for workers blocked in calls that cannot be interrupted
CANCEL_GRACE_PERIOD = 0.25

_STOP = object()


class _WorkerExit:
    def __init__(self, worker_id: int):
        self.worker_id = worker_id


@dataclass
class MirrorSummary:
    """Aggregate counts for one pipeline run"""
    submitted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    outcomes: List[JobOutcome] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return self.succeeded + self.skipped + self.failed

    @property
    def not_attempted(self) -> int:
        return self.submitted - self.completed

    def to_dict(self) -> dict:
        return {
            "submitted": self.submitted,
            "successful": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_attempted": self.not_attempted,
            "cancelled": self.cancelled,
        }


class ResultAggregator:
    """Counts outcomes as they arrive, in any order, and reports progress."""

    def __init__(self, submitted: int = 0):
        self.summary = MirrorSummary(submitted=submitted)

    def record(self, outcome: JobOutcome) -> None:
        job = outcome.job
        status = outcome.status
        if status is OutcomeStatus.SKIPPED:
            logger.info(f"⏭️  {job.label} Skipped (already exists): {job.target_image}")
            self.summary.skipped += 1
        elif status is OutcomeStatus.FAILED:
            logger.error(f"❌ {job.label} Failed {job.source_image}: {outcome.error}")
            self.summary.failed += 1
        else:
            logger.info(f"✅ {job.label} Successfully pushed: {job.target_image}")
            self.summary.succeeded += 1
        self.summary.outcomes.append(outcome)

    def log_summary(self) -> None:
        s = self.summary
        logger.info(f"📊 Summary: {s.succeeded} successful, {s.skipped} skipped, {s.failed} failed")
        if s.cancelled:
            logger.warning(f"⚠️  Run cancelled: {s.not_attempted} of {s.submitted} jobs were not completed")


def _produce(jobs: Sequence[MirrorJob], job_queue: queue.Queue, workers: int, cancel_event: threading.Event) -> None:
    """Enqueue jobs in order, then one stop marker per worker."""
    items = list(jobs) + [_STOP] * workers
    for item in items:
        while True:
            if cancel_event.is_set():
                return
            try:
                job_queue.put(item, timeout=POLL_INTERVAL)
                break
            except queue.Full:
                continue


def _work(
    worker_id: int,
    execute: Callable[[MirrorJob], JobOutcome],
    job_queue: queue.Queue,
    results: queue.Queue,
    cancel_event: threading.Event,
) -> None:
    """Pull and run jobs until a stop marker arrives or the run is cancelled."""
    try:
        while not cancel_event.is_set():
            try:
                job = job_queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if job is _STOP:
                break
            logger.info(f"🔄 {job.label} Worker {worker_id} processing: {job.source_image}")
            try:
                outcome = execute(job)
            except Exception as e:
                outcome = JobOutcome(job=job, error=e)
            results.put(outcome)
    finally:
        results.put(_WorkerExit(worker_id))


def run_jobs(
    jobs: Sequence[MirrorJob],
    execute: Callable[[MirrorJob], JobOutcome],
    max_concurrent: int = 3,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    aggregator: Optional[ResultAggregator] = None,
) -> MirrorSummary:
    """Run jobs with at most ``max_concurrent`` in flight and aggregate the outcomes.

    Without cancellation every job yields exactly one outcome. On cancellation
    (the event, the optional deadline, or Ctrl-C) no new jobs are started,
    running copies are aborted and the outcomes collected within
    ``CANCEL_GRACE_PERIOD`` are returned. Jobs without an outcome count as
    not attempted.

    Args:
        jobs: Jobs in submission order
        execute: Runs a single job; see JobExecutor.execute
        max_concurrent: Number of workers, at least 1
        cancel_event: Shared cancellation signal (created when None)
        timeout: Optional deadline for the whole run, in seconds
        aggregator: Receives outcomes as they complete (created when None)

    Returns:
        MirrorSummary of the run
    """
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

    cancel_event = cancel_event or threading.Event()
    aggregator = aggregator or ResultAggregator()
    aggregator.summary.submitted = len(jobs)
    if not jobs:
        return aggregator.summary

    workers = min(max_concurrent, len(jobs))
    job_queue: queue.Queue = queue.Queue(maxsize=workers)
    results: queue.Queue = queue.Queue()

    deadline = None
    if timeout:
        deadline = threading.Timer(timeout, cancel_event.set)
        deadline.daemon = True
        deadline.start()

    producer = threading.Thread(
        target=_produce, args=(jobs, job_queue, workers, cancel_event), name="krane-producer", daemon=True
    )
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="krane-worker")
    exited = 0
    cancelled_at = None
    try:
        producer.start()
        for worker_id in range(workers):
            pool.submit(_work, worker_id, execute, job_queue, results, cancel_event)

        while exited < workers:
            if cancel_event.is_set():
                cancelled_at = cancelled_at or time.monotonic()
                if time.monotonic() - cancelled_at > CANCEL_GRACE_PERIOD:
                    logger.warning(
                        f"⚠️  {workers - exited} workers still busy in uninterruptible calls, not waiting for them"
                    )
                    break
            try:
                item = results.get(timeout=POLL_INTERVAL)
                if isinstance(item, _WorkerExit):
                    exited += 1
                    logger.debug(f"Worker {item.worker_id} finished")
                else:
                    aggregator.record(item)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                logger.warning("⚠️  Interrupted, cancelling remaining jobs...")
                cancel_event.set()
    finally:
        if deadline is not None:
            deadline.cancel()
        if exited < workers:
            # The wait was abandoned; stragglers see the event after their current call
            cancel_event.set()
        pool.shutdown(wait=exited >= workers)
        producer.join(timeout=POLL_INTERVAL * 5)

    aggregator.summary.cancelled = cancel_event.is_set()
    return aggregator.summary

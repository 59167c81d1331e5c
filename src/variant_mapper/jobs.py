"""
Mapping Job State Machine.

A mapping job wraps one Theme Adapter Builder run:

    pending -> processing -> running -> completed | failed | cancelled

``processing`` fetches the target page and fingerprints the theme;
``running`` scores fields one at a time, publishing progress after each.
Job state is owned by the runner: every change publishes a new immutable
``MappingJob`` snapshot, so pollers never see a half-updated job.
Cancellation is cooperative and checked between fields.
"""

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from variant_mapper.config import Config
from variant_mapper.constants import DEFAULT_JOB_RETENTION_HOURS, RUNNING_PROGRESS_CEILING
from variant_mapper.fetcher import (
    FetchError,
    FetchTimeoutError,
    InvalidTargetError,
    PageFetcher,
    resolve_product_url,
)
from variant_mapper.intelligence.adapter_store import ThemeAdapterStore
from variant_mapper.intelligence.builder import ThemeAdapterBuilder
from variant_mapper.intelligence.fingerprint import theme_fingerprint
from variant_mapper.intelligence.scorer import SelectorCandidateScorer
from variant_mapper.models import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    JobStatus,
    MappingJob,
    MappingRequest,
)

logger = logging.getLogger(__name__)


class DuplicateJobError(Exception):
    """An active job already exists for the same shop and target."""

    def __init__(self, existing: MappingJob):
        super().__init__(
            f"Job {existing.id} is already {existing.status.value} for this target"
        )
        self.existing = existing


class JobNotFoundError(KeyError):
    """No job with the given id."""


class InvalidTransitionError(Exception):
    """A status change not allowed by the job lifecycle."""


class JobCancelled(Exception):
    """Raised inside the runner when a cancel request is observed."""


@dataclass
class _JobControl:
    """Runner-side state for one job. Never exposed to pollers."""
    done: asyncio.Event = field(default_factory=asyncio.Event)
    cancel_requested: bool = False
    target_key: Tuple[str, str] = ("", "")


def parse_page(html: str) -> BeautifulSoup:
    """Parse fetched HTML, rejecting documents with no elements."""
    soup = BeautifulSoup(html, "html.parser")
    if soup.find(True) is None:
        raise FetchError("Page has no parseable HTML elements", kind="parse")
    return soup


class MappingJobManager:
    """
    Accepts, schedules and runs mapping jobs.

    Jobs are queued by priority (high, normal, low; FIFO within a priority)
    and executed by a pool of worker tasks. At most one active job exists per
    (shop, target): a repeat request returns the existing job, or raises
    ``DuplicateJobError`` when ``reject_duplicates`` is set.
    """

    def __init__(
        self,
        store: Optional[ThemeAdapterStore] = None,
        fetcher: Optional[PageFetcher] = None,
        builder: Optional[ThemeAdapterBuilder] = None,
        config: Optional[Config] = None,
        reject_duplicates: bool = False,
    ):
        self.config = config or Config()
        if store is None:
            store = ThemeAdapterStore(self.config.adapter_store_path)
        self.store = store
        self.fetcher = fetcher or PageFetcher(
            user_agent=self.config.user_agent,
            timeout=self.config.request_timeout,
            max_retries=self.config.max_retries,
        )
        self.builder = builder or ThemeAdapterBuilder(
            SelectorCandidateScorer(self.config.scoring_thresholds())
        )
        self.reject_duplicates = reject_duplicates

        self._jobs: Dict[str, MappingJob] = {}
        self._controls: Dict[str, _JobControl] = {}
        self._active_by_target: Dict[Tuple[str, str], str] = {}
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._workers: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the worker pool."""
        if self._workers:
            return
        for n in range(max(1, self.config.max_concurrent_jobs)):
            self._workers.append(asyncio.create_task(self._worker(n), name=f"mapping-worker-{n}"))
        logger.info(f"Started {len(self._workers)} mapping workers")

    async def stop(self) -> None:
        """
        Stop the worker pool.

        Jobs still queued stay pending and run after the next ``start``.
        A job a worker was executing is cancelled.
        """
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Stopped mapping workers")

    async def __aenter__(self) -> "MappingJobManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _worker(self, n: int) -> None:
        while True:
            _, _, job_id = await self._queue.get()
            try:
                await self.run_job(job_id)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Operator interface
    # ------------------------------------------------------------------

    def submit(self, request: MappingRequest | Dict[str, Any]) -> MappingJob:
        """
        Accept a mapping request.

        Args:
            request: MappingRequest or its dict form (validated)

        Returns:
            The new job in ``pending``, or the existing active job for the same target

        Raises:
            pydantic.ValidationError: If the request is malformed
            DuplicateJobError: If a job is active for the target and duplicates are rejected
        """
        if not isinstance(request, MappingRequest):
            request = MappingRequest.model_validate(request)

        target_key = (request.shop_id, self._target_identity(request))
        existing_id = self._active_by_target.get(target_key)
        if existing_id is not None:
            existing = self._jobs[existing_id]
            if self.reject_duplicates:
                raise DuplicateJobError(existing)
            logger.info(f"Coalesced request into active job {existing.id}")
            return existing

        options = request.options
        if "confidence_threshold" not in options.model_fields_set:
            options = options.model_copy(
                update={"confidence_threshold": self.config.confidence_floor}
            )

        job = MappingJob(
            id=uuid.uuid4().hex,
            shop_id=request.shop_id,
            theme_id=request.theme_id,
            priority=request.priority,
            options=options,
            product_handle=request.product_handle,
            product_url=request.product_url,
            product_gid=request.product_gid,
        )
        self._jobs[job.id] = job
        self._controls[job.id] = _JobControl(target_key=target_key)
        self._active_by_target[target_key] = job.id
        self._queue.put_nowait((job.priority.rank, next(self._sequence), job.id))

        kind, value = job.target
        logger.info(
            f"Job {job.id} submitted for {request.shop_id} {kind}={value} "
            f"({job.priority.value})"
        )
        return job

    def poll(self, job_id: str) -> MappingJob:
        """Current snapshot of a job."""
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def cancel(self, job_id: str) -> bool:
        """
        Request cancellation.

        A pending job is cancelled immediately and will never start. A job
        in ``processing`` or ``running`` stops at its next checkpoint.

        Returns:
            False if the job had already reached a terminal state
        """
        job = self.poll(job_id)
        if job.is_terminal:
            return False

        control = self._controls[job_id]
        control.cancel_requested = True
        if job.status == JobStatus.PENDING:
            self._transition(job_id, JobStatus.CANCELLED, completed_at=datetime.now())
        else:
            logger.info(f"Cancellation requested for job {job_id} ({job.status.value})")
        return True

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> MappingJob:
        """Wait for a job to reach a terminal state."""
        self.poll(job_id)
        await asyncio.wait_for(self._controls[job_id].done.wait(), timeout)
        return self._jobs[job_id]

    def list_jobs(
        self,
        shop_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
    ) -> List[MappingJob]:
        """Jobs newest first, optionally filtered."""
        jobs = [
            job for job in self._jobs.values()
            if (shop_id is None or job.shop_id == shop_id)
            and (status is None or job.status == status)
        ]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def stats(self, shop_id: Optional[str] = None) -> Dict[str, int]:
        """Count of jobs per status."""
        counts = {status.value: 0 for status in JobStatus}
        for job in self.list_jobs(shop_id):
            counts[job.status.value] += 1
        counts["total"] = sum(counts.values())
        return counts

    def cleanup(self, max_age_hours: float = DEFAULT_JOB_RETENTION_HOURS) -> int:
        """
        Drop terminal jobs not updated within ``max_age_hours``.

        Returns:
            Number of jobs removed
        """
        cutoff = datetime.now() - timedelta(hours=max_age_hours)
        stale = [
            job_id for job_id, job in self._jobs.items()
            if job.is_terminal and job.updated_at < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
            del self._controls[job_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} finished jobs older than {max_age_hours}h")
        return len(stale)

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    async def run_job(self, job_id: str) -> MappingJob:
        """
        Execute a pending job to a terminal state.

        Failures are recorded on the job, never raised.
        """
        job = self.poll(job_id)
        if job.status != JobStatus.PENDING:
            logger.debug(f"Skipping job {job_id} in state {job.status.value}")
            return job

        control = self._controls[job_id]
        try:
            await self._execute(job_id, control)
        except asyncio.CancelledError:
            # Worker stopped mid-job; release the target before unwinding
            logger.warning(f"Job {job_id} interrupted by worker shutdown")
            self._transition(job_id, JobStatus.CANCELLED, completed_at=datetime.now())
            raise
        except JobCancelled:
            self._transition(job_id, JobStatus.CANCELLED, completed_at=datetime.now())
        except InvalidTargetError as e:
            self._fail(job_id, str(e), "invalid_target")
        except FetchError as e:
            self._fail(job_id, str(e), e.kind)
        except Exception as e:
            logger.exception(f"Job {job_id} crashed")
            self._fail(job_id, f"Unexpected error: {e}", "internal")
        return self._jobs[job_id]

    async def _execute(self, job_id: str, control: _JobControl) -> None:
        job = self._transition(job_id, JobStatus.PROCESSING, started_at=datetime.now())

        url = resolve_product_url(
            job.shop_id,
            product_url=job.product_url,
            product_handle=job.product_handle,
            product_gid=job.product_gid,
        )
        job = self._update(job_id, resolved_url=url)

        timeout = self.config.fetch_timeout
        try:
            page = await asyncio.wait_for(self.fetcher.fetch(url), timeout=timeout)
        except asyncio.TimeoutError:
            raise FetchTimeoutError(f"Fetching {url} exceeded {timeout}s") from None
        self._check_cancel(control)

        soup = parse_page(page.html)
        fingerprint = theme_fingerprint(soup)

        if job.options.reuse_cached:
            cached = self.store.get(fingerprint)
            if cached is not None:
                logger.info(f"Job {job_id} reusing stored adapter {fingerprint}")
                self._transition(
                    job_id,
                    JobStatus.COMPLETED,
                    progress=100,
                    result=cached,
                    reused_adapter=True,
                    completed_at=datetime.now(),
                )
                return

        draft = self.builder.start(
            soup, job.options, fingerprint=fingerprint, theme_id=job.theme_id
        )
        self._transition(job_id, JobStatus.RUNNING)

        for _ in draft.steps():
            progress = min(RUNNING_PROGRESS_CEILING, draft.scored * 100 // max(draft.total, 1))
            self._update(job_id, progress=progress)
            self._check_cancel(control)
            # Let pollers and cancel requests in between fields
            await asyncio.sleep(0)

        self._check_cancel(control)
        adapter = self.store.put(draft.finish())
        self._transition(
            job_id,
            JobStatus.COMPLETED,
            progress=100,
            result=adapter,
            completed_at=datetime.now(),
        )

    @staticmethod
    def _check_cancel(control: _JobControl) -> None:
        if control.cancel_requested:
            raise JobCancelled()

    def _fail(self, job_id: str, error: str, kind: str) -> None:
        logger.warning(f"Job {job_id} failed ({kind}): {error}")
        self._transition(
            job_id, JobStatus.FAILED, error=error, error_kind=kind, completed_at=datetime.now()
        )

    @staticmethod
    def _target_identity(request: MappingRequest) -> str:
        try:
            return resolve_product_url(
                request.shop_id,
                product_url=request.product_url,
                product_handle=request.product_handle,
                product_gid=request.product_gid,
            )
        except InvalidTargetError:
            kind = next(
                k for k in ("product_url", "product_handle", "product_gid") if getattr(request, k)
            )
            return f"{kind}:{getattr(request, kind)}"

    def _update(self, job_id: str, **changes: Any) -> MappingJob:
        """Publish a new snapshot. Progress never decreases."""
        current = self._jobs[job_id]
        if "progress" in changes:
            changes["progress"] = max(current.progress, changes["progress"])
        snapshot = replace(current, updated_at=datetime.now(), **changes)
        self._jobs[job_id] = snapshot
        return snapshot

    def _transition(self, job_id: str, status: JobStatus, **changes: Any) -> MappingJob:
        current = self._jobs[job_id]
        if status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"Job {job_id}: {current.status.value} -> {status.value} is not allowed"
            )
        snapshot = self._update(job_id, status=status, **changes)
        logger.info(f"Job {job_id}: {current.status.value} -> {status.value}")

        if status not in ACTIVE_STATUSES:
            control = self._controls[job_id]
            if self._active_by_target.get(control.target_key) == job_id:
                del self._active_by_target[control.target_key]
            control.done.set()
        return snapshot

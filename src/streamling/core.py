"""
Core engine containing the rate-limited processing scheduler.

A single loop task moves queued jobs to dispatch whenever both the job's
``(provider, model)`` rate limiter and the concurrency gate have room, and
spawns one executor task per dispatched job without awaiting it. Executors
stream, accumulate, classify failures and hand finished attempts to the retry
policy and the confidence evaluator.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import math
import time
import typing as t
import uuid
from dataclasses import dataclass

import structlog

from streamling.accumulator import ResponseAccumulator, StoreAccumulator, ThrottledAccumulator
from streamling.clients import CompletionRequest, StreamingClient
from streamling.confidence import ConfidenceEvaluator, Scorer
from streamling.config import DEFAULT_CATALOG, ModelCatalog, SchedulerConfig
from streamling.exceptions import (
    DocumentReadError,
    EmptyStreamError,
    JobCancelled,
    ProcessingError,
    ValidationError,
    classify_error,
)
from streamling.jobs import Job, JobTable
from streamling.models import JobSnapshot, SchedulerUpdate, SessionState
from streamling.rate_limit import ConcurrencyGate, RateLimiterRegistry, SlidingWindowRateLimiter
from streamling.response_store import ResponseStore
from streamling.retry import RetryPolicy
from streamling.sources import DocumentSource
from streamling.status import JobStatus, RetryReason
from streamling.utils.api import get_default_api_key_from_provider
from streamling.utils.logging import logging_context

log = structlog.get_logger(__name__)
Listener = t.Callable[[SchedulerUpdate], None]


@dataclass(frozen=True)
class JobSpec:
    """
    One document to process.

    Parameters
    ----------
    source : DocumentSource
        Re-readable document handle.
    instruction : str
        Natural-language instruction.
    provider : str
        Provider identifier from the model catalog.
    model : str
        Model identifier from the model catalog.
    api_key : str | None, optional
        Credential. Defaults to the ``{PROVIDER}_API_KEY`` environment variable.
    """

    source: DocumentSource
    instruction: str
    provider: str
    model: str
    api_key: str | None = None


class SessionHandle:
    """
    Handle returned by ``Scheduler.submit``.
    """

    def __init__(self, scheduler: Scheduler, session_id: str, job_ids: tuple[str, ...]) -> None:
        self._scheduler = scheduler
        self.session_id = session_id
        self.job_ids = job_ids

    def snapshots(self) -> list[JobSnapshot]:
        return [
            snapshot
            for job_id in self.job_ids
            if (snapshot := self._scheduler.snapshot(job_id)) is not None
        ]

    async def wait(self) -> list[JobSnapshot]:
        """
        Wait until the scheduler is idle and return the session's snapshots.
        """
        await self._scheduler.wait()
        return self.snapshots()


class Scheduler:
    """
    Own the queue, rate limiters, concurrency gate and job table of a session.

    Parameters
    ----------
    client : StreamingClient
        Streaming completion collaborator.
    catalog : ModelCatalog, optional
        Provider/model table holding the rate limits.
    config : SchedulerConfig | None, optional
        Loop, buffering and store settings.
    retry_policy : RetryPolicy | None, optional
        Automatic retry caps and delays.
    scorer : Scorer | None, optional
        Confidence scorer ``(original, processed) -> Confidence``.
    response_store : ResponseStore | None, optional
        Out-of-band store used in batch mode.
    clock : typing.Callable[[], float], optional
        Monotonic clock shared by the rate limiters and job timestamps.

    Notes
    -----
    All state lives on one event loop: the loop task, the executor tasks and
    the retry timers never run concurrently, so no lock guards the queue, the
    limiters or the gate. Public methods must be called from that loop.
    """

    def __init__(
        self,
        client: StreamingClient,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        config: SchedulerConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        scorer: Scorer | None = None,
        response_store: ResponseStore | None = None,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._config = config or SchedulerConfig()
        self._retry_policy = retry_policy or RetryPolicy()
        self._evaluator = ConfidenceEvaluator(
            scorer=scorer,
            tail_length=self._config.confidence_tail_length,
            max_retries=self._retry_policy.max_confidence_retries,
        )
        self._clock = clock
        self._store = response_store if response_store is not None else ResponseStore(clock=clock)

        self._jobs = JobTable()
        self._limiters = RateLimiterRegistry()
        self._gate = ConcurrencyGate(max_concurrent=self._config.max_concurrent or 1)

        self._session_id: str | None = None
        self._single_job_mode = False
        self._loop_task: asyncio.Task[None] | None = None
        self._running = False
        self._executor_tasks: dict[str, asyncio.Task[None]] = {}
        self._retry_tasks: dict[str, asyncio.Task[None]] = {}
        self._wakeup = asyncio.Event()
        self._paused = False
        self._waiting_for_window = False
        self._seconds_until_next_window = 0
        self._last_sweep = clock()

        self._listeners: list[Listener] = []
        self._last_state: SessionState | None = None

        log.debug(
            event="Initialized Scheduler",
            max_concurrent=self._config.max_concurrent,
            poll_interval_seconds=self._config.poll_interval_seconds,
            max_error_retries=self._retry_policy.max_error_retries,
            max_confidence_retries=self._retry_policy.max_confidence_retries,
        )

    async def __aenter__(self) -> Scheduler:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: t.Any,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def is_processing(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return self._gate.active_count

    @property
    def max_concurrent(self) -> int:
        return self._gate.max_concurrent

    @property
    def queue_length(self) -> int:
        return self._jobs.queue_length

    @property
    def state(self) -> SessionState:
        return SessionState(
            session_id=self._session_id,
            job_count=len(self._jobs),
            is_processing=self._running,
            is_paused=self._paused,
            is_waiting_for_next_window=self._waiting_for_window,
            seconds_until_next_window=self._seconds_until_next_window,
            queued_count=self._jobs.queue_length,
            active_count=self._gate.active_count,
            succeeded_count=self._jobs.count(JobStatus.SUCCEEDED),
            failed_count=self._jobs.count(JobStatus.FAILED),
            aborted_count=self._jobs.count(JobStatus.ABORTED),
        )

    def rate_limiter(self, provider: str, model: str) -> SlidingWindowRateLimiter:
        return self._limiters.get(
            queue_key=(provider, model),
            rate_limit=self._catalog.rate_limit_for(provider, model),
        )

    def snapshots(self) -> list[JobSnapshot]:
        return self._jobs.snapshots()

    def snapshot(self, job_id: str) -> JobSnapshot | None:
        job = self._jobs.get(job_id)
        return job.snapshot() if job is not None else None

    def subscribe(self, listener: Listener) -> t.Callable[[], None]:
        """
        Register a listener for job snapshots and session state updates.

        Parameters
        ----------
        listener : Listener
            Called with a ``JobSnapshot`` on every job change and with a
            ``SessionState`` whenever session flags or counts change.

        Returns
        -------
        typing.Callable[[], None]
            Unsubscribe function.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, update: SchedulerUpdate) -> None:
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception as error:
                log.error(
                    event="Listener raised while handling update",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(object=error),
                )

    def _publish_job(self, job: Job) -> None:
        self._emit(job.snapshot())

    def _publish_session(self) -> None:
        state = self.state
        if state == self._last_state:
            return
        self._last_state = state
        self._emit(state)

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def submit(self, jobs: t.Sequence[JobSpec]) -> SessionHandle:
        """
        Start a new session processing ``jobs``.

        Parameters
        ----------
        jobs : typing.Sequence[JobSpec]
            Documents and instructions to process.

        Returns
        -------
        SessionHandle
            Handle on the new session.

        Raises
        ------
        ValidationError
            If nothing was submitted, an instruction is empty, a document is
            submitted twice or the previous session is still processing.
        ConfigurationError
            If a provider or model is unknown or credentials are missing.

        Notes
        -----
        Must be called from a running event loop. Results of a previous, idle
        session are replaced.
        """
        specs = list(jobs)
        if not specs:
            raise ValidationError("No documents submitted")
        if self._running:
            raise ValidationError(
                "A session is still processing; abort it or wait for it before submitting"
            )

        new_jobs: list[Job] = []
        seen: set[str] = set()
        for spec in specs:
            if not spec.instruction.strip():
                raise ValidationError(f"Empty instruction for document '{spec.source.name}'")
            if spec.source.key in seen:
                raise ValidationError(f"Document '{spec.source.name}' was submitted twice")
            seen.add(spec.source.key)
            self._catalog.get_model(spec.provider, spec.model)
            api_key = spec.api_key or get_default_api_key_from_provider(spec.provider)
            new_jobs.append(
                Job(
                    id=spec.source.key,
                    source=spec.source,
                    instruction=spec.instruction,
                    provider=spec.provider,
                    model=spec.model,
                    api_key=api_key,
                )
            )

        self._jobs.clear()
        self._store.clear()
        self._session_id = uuid.uuid4().hex
        self._single_job_mode = len(new_jobs) == 1
        if self._config.max_concurrent is None:
            first = new_jobs[0]
            self._gate.max_concurrent = self._catalog.rate_limit_for(
                first.provider, first.model
            ).limit

        now = self._clock()
        for job in new_jobs:
            job.queued_at = now
            self._jobs.add(job)
            self._jobs.enqueue(job)
            self._publish_job(job)

        log.info(
            event="Submitted session",
            session_id=self._session_id,
            job_count=len(new_jobs),
            single_job_mode=self._single_job_mode,
            max_concurrent=self._gate.max_concurrent,
        )
        self._ensure_running()
        return SessionHandle(
            scheduler=self,
            session_id=self._session_id,
            job_ids=tuple(job.id for job in new_jobs),
        )

    def retry_job(self, job_id: str) -> bool:
        """
        Manually re-enqueue a finished job, resetting its retry counters.

        Parameters
        ----------
        job_id : str
            Target job.

        Returns
        -------
        bool
            ``True`` if the job was re-enqueued, ``False`` if it is unknown or
            not in a terminal status.
        """
        job = self._jobs.get(job_id)
        if job is None:
            log.warning(event="Retry requested for unknown job", job_id=job_id)
            return False
        if not job.is_terminal:
            log.debug(event="Retry ignored for non-terminal job", job_id=job_id, status=job.status)
            return False

        job.attempt_count = 0
        job.low_confidence_retry_count = 0
        job.last_error = None
        job.error_kind = None
        job.confidence = None
        job.previous_confidence = None
        job.retry_reason = RetryReason.MANUAL
        log.info(event="Manual retry", job_id=job_id)
        self._requeue(job, front=False)
        self._ensure_running()
        return True

    def retry_all_failed(self) -> int:
        """
        Manually retry every job that ended ``failed``.

        Returns
        -------
        int
            Number of re-enqueued jobs.
        """
        failed = self._jobs.by_status(JobStatus.FAILED)
        return sum(1 for job in failed if self.retry_job(job.id))

    def abort_job(self, job_id: str) -> bool:
        """
        Abort a job. Aborting a terminal job is a no-op.

        Parameters
        ----------
        job_id : str
            Target job.

        Returns
        -------
        bool
            ``True`` if the job was aborted or its abort was signalled.

        Notes
        -----
        A ``succeeded`` job whose executor is still scoring its confidence is
        not final yet: its cancellation signal is set so no low-confidence
        retry gets scheduled, and it stays ``succeeded``.
        """
        job = self._jobs.get(job_id)
        if job is None:
            log.warning(event="Abort requested for unknown job", job_id=job_id)
            return False
        if job.is_terminal:
            if not self._has_live_executor(job) or job.cancel_event.is_set():
                return False
            log.debug(event="Signalling cancellation before confidence retry", job_id=job.id)
            job.cancel_event.set()
            self._wakeup.set()
            return True

        if job.status == JobStatus.QUEUED:
            self._jobs.remove_from_queue(job)
            self._mark_aborted(job)
        elif job.status == JobStatus.RETRY_SCHEDULED:
            retry_task = self._retry_tasks.pop(job.id, None)
            if retry_task is not None:
                retry_task.cancel()
            self._mark_aborted(job)
        else:
            log.debug(event="Signalling cancellation", job_id=job.id, status=job.status)
            job.cancel_event.set()
        self._wakeup.set()
        self._publish_session()
        return True

    def _has_live_executor(self, job: Job) -> bool:
        task = self._executor_tasks.get(job.id)
        return task is not None and not task.done()

    def abort_selected(self, job_ids: t.Iterable[str]) -> int:
        return sum(1 for job_id in list(job_ids) if self.abort_job(job_id))

    def abort_all(self) -> int:
        return self.abort_selected(job.id for job in self._jobs)

    async def clear_all(self) -> None:
        """
        Abort everything, wait for executors to wind down and forget the session.
        """
        await self._drain()
        self._jobs.clear()
        self._store.clear()
        self._session_id = None
        self._single_job_mode = False
        log.info(event="Cleared session")
        self._publish_session()

    def pause(self) -> None:
        """
        Stop dispatching new jobs. In-flight jobs keep running.
        """
        if self._paused:
            return
        self._paused = True
        log.info(event="Scheduler paused", session_id=self._session_id)
        self._wakeup.set()
        self._publish_session()

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        log.info(event="Scheduler resumed", session_id=self._session_id)
        self._wakeup.set()
        self._publish_session()

    async def wait(self) -> None:
        """
        Wait until the scheduler loop has nothing left to do.
        """
        while self._loop_task is not None and not self._loop_task.done():
            await asyncio.shield(self._loop_task)
        if self._loop_task is not None and not self._loop_task.cancelled():
            self._loop_task.result()

    async def close(self) -> None:
        """
        Abort every pending job and wait for the loop to exit.
        """
        await self._drain()
        log.debug(event="Scheduler closed")

    async def _drain(self) -> None:
        while True:
            self.abort_all()
            pending = [task for task in self._executor_tasks.values() if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self.wait()

    # ------------------------------------------------------------------
    # Scheduler loop
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._running = True
            self._loop_task = asyncio.create_task(
                coro=self._run(),
                name=f"streamling_scheduler_{self._session_id}",
            )
        self._wakeup.set()
        self._publish_session()

    def _is_idle(self) -> bool:
        return (
            self._jobs.queue_length == 0
            and self._gate.active_count == 0
            and not self._retry_tasks
        )

    async def _run(self) -> None:
        log.info(
            event="Scheduler loop started",
            session_id=self._session_id,
            queued_count=self._jobs.queue_length,
        )
        try:
            while not self._is_idle():
                self._wakeup.clear()
                if self._paused:
                    self._set_waiting(waiting=False)
                    self._publish_session()
                    await self._wakeup.wait()
                    continue

                now = self._clock()
                self._limiters.purge(now)
                self._sweep_store(now)
                if self._dispatch_ready(now):
                    self._set_waiting(waiting=False)
                    self._publish_session()
                    await asyncio.sleep(0)
                    continue
                await self._wait_for_capacity(now)
        finally:
            self._running = False
            self._set_waiting(waiting=False)
            log.info(
                event="Scheduler loop finished",
                session_id=self._session_id,
                succeeded_count=self._jobs.count(JobStatus.SUCCEEDED),
                failed_count=self._jobs.count(JobStatus.FAILED),
                aborted_count=self._jobs.count(JobStatus.ABORTED),
            )
            self._publish_session()

    def _limiter_for(self, job: Job) -> SlidingWindowRateLimiter:
        return self.rate_limiter(job.provider, job.model)

    def _dispatch_ready(self, now: float) -> int:
        """
        Dispatch jobs from the head of the queue while capacity allows.

        Parameters
        ----------
        now : float
            Clock value used for every dispatch of this round.

        Returns
        -------
        int
            Number of dispatched jobs.
        """
        dispatched = 0
        while self._gate.available > 0:
            job = self._jobs.peek()
            if job is None:
                break
            limiter = self._limiter_for(job)
            if not limiter.can_dispatch(now):
                break
            self._jobs.pop()
            limiter.record_dispatch(now)
            self._gate.acquire()
            self._jobs.transition(job, JobStatus.DISPATCHED)
            job.dispatched_at = now
            task = asyncio.create_task(
                coro=self._execute(job),
                name=f"streamling_job_{job.id}",
            )
            self._executor_tasks[job.id] = task
            task.add_done_callback(self._on_executor_task_done)
            log.debug(
                event="Dispatched job",
                job_id=job.id,
                provider=job.provider,
                model=job.model,
                attempt_count=job.attempt_count,
                active_count=self._gate.active_count,
                queued_count=self._jobs.queue_length,
            )
            self._publish_job(job)
            dispatched += 1
        return dispatched

    async def _wait_for_capacity(self, now: float) -> None:
        timeout = self._config.poll_interval_seconds
        head = self._jobs.peek()
        wait_seconds = self._limiter_for(head).next_available_in(now) if head is not None else 0.0
        if wait_seconds > 0:
            self._set_waiting(waiting=True, seconds=math.ceil(wait_seconds))
            timeout = min(timeout, wait_seconds)
            log.debug(
                event="Waiting for next rate limit window",
                provider=head.provider,
                model=head.model,
                wait_seconds=round(wait_seconds, 3),
            )
        else:
            self._set_waiting(waiting=False)
        self._publish_session()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)

    def _set_waiting(self, *, waiting: bool, seconds: int = 0) -> None:
        self._waiting_for_window = waiting
        self._seconds_until_next_window = seconds if waiting else 0

    def _sweep_store(self, now: float) -> None:
        if now - self._last_sweep < self._config.store_sweep_interval_seconds:
            return
        self._last_sweep = now
        self._store.cleanup_stale(max_age_seconds=self._config.store_max_age_seconds)

    def _on_executor_task_done(self, task: asyncio.Task[None]) -> None:
        """
        Cleanup callback for executor tasks.

        Parameters
        ----------
        task : asyncio.Task[None]
            Completed task.
        """
        for job_id, executor_task in list(self._executor_tasks.items()):
            if executor_task is task:
                del self._executor_tasks[job_id]
        try:
            error = task.exception()
        except asyncio.CancelledError:
            return
        if error is not None:
            log.error(
                event="Executor task crashed",
                task_name=task.get_name(),
                error=str(object=error),
            )

    # ------------------------------------------------------------------
    # Job executor
    # ------------------------------------------------------------------

    def _make_accumulator(self, job: Job) -> ResponseAccumulator:
        if self._single_job_mode:
            return ThrottledAccumulator(
                apply_text=functools.partial(self._append_text, job, publish=True),
                flush_interval_seconds=self._config.flush_interval_seconds,
                flush_max_chars=self._config.flush_max_chars,
                clock=self._clock,
            )
        return StoreAccumulator(
            key=job.id,
            store=self._store,
            apply_text=functools.partial(self._append_text, job, publish=False),
        )

    def _append_text(self, job: Job, text: str, *, publish: bool) -> None:
        job.response_text += text
        if publish:
            self._publish_job(job)

    async def _execute(self, job: Job) -> None:
        with logging_context(job_id=job.id, provider=job.provider, model=job.model):
            accumulator = self._make_accumulator(job)
            try:
                try:
                    received = await self._stream(job=job, accumulator=accumulator)
                    if received == 0 and not job.cancel_event.is_set():
                        raise EmptyStreamError(
                            f"No content received from {job.provider} for '{job.name}'"
                        )
                except JobCancelled:
                    self._finish_aborted(job=job, accumulator=accumulator)
                except asyncio.CancelledError:
                    self._finish_aborted(job=job, accumulator=accumulator)
                    raise
                except Exception as error:
                    if job.cancel_event.is_set():
                        self._finish_aborted(job=job, accumulator=accumulator)
                    else:
                        self._finish_failed(
                            job=job,
                            accumulator=accumulator,
                            error=classify_error(error=error),
                        )
                else:
                    if job.cancel_event.is_set():
                        self._finish_aborted(job=job, accumulator=accumulator)
                    else:
                        await self._finish_succeeded(job=job, accumulator=accumulator)
            finally:
                self._gate.release()
                self._wakeup.set()
                self._publish_session()

    async def _read_source(self, job: Job) -> str:
        try:
            return await job.source.read_text()
        except (OSError, UnicodeDecodeError) as error:
            raise DocumentReadError(f"Cannot read '{job.name}': {error}") from error

    async def _stream(self, *, job: Job, accumulator: ResponseAccumulator) -> int:
        """
        Run the streaming client for one attempt.

        Parameters
        ----------
        job : Job
            Dispatched job.
        accumulator : ResponseAccumulator
            Receives the chunks.

        Returns
        -------
        int
            Number of non-empty chunks received.

        Raises
        ------
        JobCancelled
            If the job's cancellation signal was observed.
        """
        cancel_event = job.cancel_event
        content = await self._read_source(job)
        if cancel_event.is_set():
            raise JobCancelled(job.id)

        request = CompletionRequest(
            content=content,
            instruction=job.instruction,
            provider=job.provider,
            model=job.model,
            api_key=job.api_key,
            base_url=self._catalog.get_provider(job.provider).base_url,
        )
        received = 0

        def on_chunk(chunk: str) -> None:
            nonlocal received
            if cancel_event.is_set():
                raise JobCancelled(job.id)
            if not chunk:
                return
            received += 1
            if job.status == JobStatus.DISPATCHED:
                self._jobs.transition(job, JobStatus.STREAMING)
                self._publish_job(job)
            accumulator.append(chunk)

        log.debug(event="Streaming started", attempt_count=job.attempt_count)
        client_task = asyncio.create_task(
            coro=self._client.stream_completion(request, on_chunk, cancel_event),
            name=f"streamling_stream_{job.id}",
        )
        cancel_task = asyncio.create_task(cancel_event.wait())
        try:
            await asyncio.wait({client_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not client_task.done():
                client_task.cancel()
                await asyncio.gather(client_task, return_exceptions=True)

        if client_task.cancelled():
            raise JobCancelled(job.id)
        client_task.result()
        log.debug(event="Streaming finished", chunk_count=received)
        return received

    async def _finish_succeeded(self, *, job: Job, accumulator: ResponseAccumulator) -> None:
        accumulator.commit()
        self._jobs.transition(job, JobStatus.SUCCEEDED)
        job.completed_at = self._clock()
        job.last_error = None
        job.error_kind = None
        log.info(
            event="Job succeeded",
            attempt_count=job.attempt_count,
            response_length=len(job.response_text),
        )
        self._publish_job(job)
        if self._config.evaluate_confidence:
            await self._evaluate_confidence(job)

    async def _evaluate_confidence(self, job: Job) -> None:
        try:
            original = await job.source.read_text()
        except (OSError, UnicodeDecodeError) as error:
            log.warning(
                event="Cannot re-read document for confidence scoring",
                error=str(object=error),
            )
            return
        if job.status != JobStatus.SUCCEEDED:
            # Manually retried while the document was being read.
            return

        confidence = self._evaluator.evaluate(original=original, processed=job.response_text)
        job.confidence = confidence
        if job.cancel_event.is_set() or not self._evaluator.should_retry(
            confidence=confidence, retry_count=job.low_confidence_retry_count
        ):
            log.debug(
                event="Confidence evaluated",
                score=confidence.score,
                level=confidence.level,
                aborted=job.cancel_event.is_set(),
            )
            self._publish_job(job)
            return

        job.previous_confidence = confidence
        job.confidence = None
        job.low_confidence_retry_count += 1
        log.info(
            event="Low confidence output, scheduling retry",
            score=round(confidence.score, 3),
            low_confidence_retry_count=job.low_confidence_retry_count,
        )
        self._schedule_retry(
            job=job,
            reason=RetryReason.LOW_CONFIDENCE,
            delay=self._retry_policy.confidence_delay(retry_count=job.low_confidence_retry_count),
        )

    def _finish_failed(
        self,
        *,
        job: Job,
        accumulator: ResponseAccumulator,
        error: ProcessingError,
    ) -> None:
        accumulator.commit()
        self._jobs.transition(job, JobStatus.FAILED)
        job.last_error = str(object=error)
        job.error_kind = error.kind
        if self._retry_policy.should_retry_error(error=error, attempt_count=job.attempt_count):
            job.attempt_count += 1
            delay = self._retry_policy.error_delay(attempt_count=job.attempt_count)
            log.warning(
                event="Job failed, scheduling retry",
                error=job.last_error,
                error_kind=job.error_kind,
                attempt_count=job.attempt_count,
                delay_seconds=delay,
            )
            self._publish_job(job)
            self._schedule_retry(job=job, reason=RetryReason.ERROR, delay=delay)
            return

        job.completed_at = self._clock()
        log.error(
            event="Job failed",
            error=job.last_error,
            error_kind=job.error_kind,
            attempt_count=job.attempt_count,
            retryable=error.retryable,
        )
        self._publish_job(job)

    def _finish_aborted(self, *, job: Job, accumulator: ResponseAccumulator) -> None:
        accumulator.discard()
        self._mark_aborted(job)

    def _mark_aborted(self, job: Job) -> None:
        self._jobs.transition(job, JobStatus.ABORTED)
        job.completed_at = self._clock()
        log.info(event="Job aborted", job_id=job.id)
        self._publish_job(job)

    # ------------------------------------------------------------------
    # Retries
    # ------------------------------------------------------------------

    def _schedule_retry(self, *, job: Job, reason: RetryReason, delay: float) -> None:
        self._jobs.transition(job, JobStatus.RETRY_SCHEDULED)
        job.retry_reason = reason
        self._publish_job(job)
        if delay <= 0:
            self._requeue(job, front=self._retry_policy.requeue_front)
            return
        self._retry_tasks[job.id] = asyncio.create_task(
            coro=self._retry_after(job=job, delay=delay),
            name=f"streamling_retry_{job.id}",
        )

    async def _retry_after(self, *, job: Job, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            log.debug(event="Retry timer cancelled", job_id=job.id)
            raise
        self._retry_tasks.pop(job.id, None)
        self._requeue(job, front=self._retry_policy.requeue_front)

    def _requeue(self, job: Job, *, front: bool) -> None:
        self._jobs.transition(job, JobStatus.QUEUED)
        job.response_text = ""
        job.cancel_event = asyncio.Event()
        job.queued_at = self._clock()
        job.dispatched_at = None
        job.completed_at = None
        self._jobs.enqueue(job, front=front)
        log.debug(
            event="Job requeued",
            job_id=job.id,
            retry_reason=job.retry_reason,
            queued_count=self._jobs.queue_length,
        )
        self._publish_job(job)
        self._wakeup.set()
        self._publish_session()

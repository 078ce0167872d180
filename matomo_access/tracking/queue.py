"""Serial retry queue with idempotent submission."""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from matomo_access.errors import ErrorKind, MatomoApiError
from matomo_access.fetch.constants import HTTP_STATUS_REQUEST_TIMEOUT
from matomo_access.tracking.models import (
    IdempotencyRecord,
    LastError,
    QueueStats,
    TrackingOptions,
    TrackResult,
)
from matomo_access.tracking.store import IdempotencyStore, InMemoryIdempotencyStore


logger = structlog.get_logger()

TrackingParams = dict[str, str]
Sender = Callable[[TrackingParams], Awaitable[TrackResult]]

_TRANSIENT_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.SERVER, ErrorKind.RATE_LIMIT})


def is_transient(error: MatomoApiError) -> bool:
    """Check whether a tracking failure is worth another attempt.

    Unlike report reads, writes also retry rate limits.
    """
    return error.kind in _TRANSIENT_KINDS or error.status == HTTP_STATUS_REQUEST_TIMEOUT


@dataclass
class _QueuedTask:
    params: TrackingParams
    future: asyncio.Future[TrackResult]
    enqueued_at: float
    key: str | None = None
    attempt: int = 0


@dataclass
class _Counters:
    total_processed: int = 0
    total_retried: int = 0
    last_error: LastError | None = None
    last_retry_at: float | None = None
    last_backoff_ms: int | None = None
    last_retry_status: int | None = None
    cooldown_until: float | None = None
    inflight: int = 0


class TrackingQueue:
    """Deliver tracking requests one at a time, retrying transient failures.

    Submissions sharing an idempotency key collapse onto a single attempt:
    while it is in flight every caller awaits the same future, and once it
    settles the stored outcome is replayed without a network call.
    """

    def __init__(
        self,
        send: Sender,
        options: TrackingOptions | None = None,
        store: IdempotencyStore | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the queue.

        Args:
            send: Coroutine that performs one delivery attempt.
            options: Retry ceiling and backoff.
            store: Idempotency store (default: in-memory with the configured TTL).
            clock: Source of epoch seconds.
        """
        self._send = send
        self._options = options or TrackingOptions()
        self._clock = clock
        self._store = (
            store
            if store is not None
            else InMemoryIdempotencyStore(self._options.idempotency_ttl_ms, clock)
        )
        self._pending: deque[_QueuedTask] = deque()
        self._inflight: dict[str, asyncio.Future[TrackResult]] = {}
        self._counters = _Counters()
        self._worker: asyncio.Task[None] | None = None
        self._log = logger.bind(component="tracking")

    @property
    def store(self) -> IdempotencyStore:
        """Get the idempotency store."""
        return self._store

    async def submit(
        self, params: TrackingParams, idempotency_key: str | None = None
    ) -> TrackResult:
        """Submit a tracking request.

        Args:
            params: Form fields to post.
            idempotency_key: Key guaranteeing at most one delivery.

        Returns:
            The delivery result, possibly replayed from an earlier submission.

        Raises:
            MatomoApiError: If delivery failed (now or in the replayed attempt).
        """
        existing = self._inflight.get(idempotency_key) if idempotency_key else None
        if existing is not None:
            self._log.debug("tracking_join_inflight", idempotency_key=idempotency_key)
            return await asyncio.shield(existing)

        # Claim the key before the first await so concurrent callers join us.
        future: asyncio.Future[TrackResult] = asyncio.get_running_loop().create_future()
        if idempotency_key is None:
            self._enqueue(params, future, None)
            return await asyncio.shield(future)
        self._inflight[idempotency_key] = future

        try:
            record = await self._store.get(idempotency_key)
        except asyncio.CancelledError:
            self._inflight.pop(idempotency_key, None)
            future.cancel()
            raise
        except Exception as e:
            self._inflight.pop(idempotency_key, None)
            future.set_exception(e)
            return await asyncio.shield(future)

        if record is None:
            self._enqueue(params, future, idempotency_key)
            return await asyncio.shield(future)

        self._inflight.pop(idempotency_key, None)
        self._log.debug(
            "tracking_replay", idempotency_key=idempotency_key, status=record.status
        )
        try:
            future.set_result(record.replay())
        except MatomoApiError as e:
            future.set_exception(e)
        return await asyncio.shield(future)

    def _enqueue(
        self,
        params: TrackingParams,
        future: asyncio.Future[TrackResult],
        key: str | None,
    ) -> None:
        self._pending.append(
            _QueuedTask(params=params, future=future, enqueued_at=self._clock(), key=key)
        )
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._process())

    async def _process(self) -> None:
        while self._pending:
            task = self._pending.popleft()
            self._counters.inflight = 1
            try:
                result = await self._send(task.params)
            except MatomoApiError as e:
                self._counters.inflight = 0
                await self._handle_failure(task, e)
            except Exception as e:
                self._counters.inflight = 0
                self._log.exception("tracking_send_crashed", idempotency_key=task.key)
                self._release(task)
                task.future.set_exception(e)
            else:
                self._counters.inflight = 0
                await self._handle_success(task, result)

    async def _handle_success(self, task: _QueuedTask, result: TrackResult) -> None:
        attempts = task.attempt + 1
        now = self._clock()
        self._counters.total_processed += 1
        self._counters.cooldown_until = None

        if task.key is not None:
            await self._remember(
                IdempotencyRecord(
                    key=task.key,
                    status="completed",
                    attempts=attempts,
                    created_at=task.enqueued_at,
                    completed_at=now,
                    result=result,
                )
            )
        self._release(task)
        task.future.set_result(result)
        self._log.debug("tracking_delivered", status=result.status, attempts=attempts)

    async def _handle_failure(self, task: _QueuedTask, error: MatomoApiError) -> None:
        attempts = task.attempt + 1
        now = self._clock()
        self._counters.last_error = LastError(
            message=error.message, status=error.status, timestamp=now
        )

        if is_transient(error) and attempts < self._options.max_retries:
            delay_ms = self._compute_delay_ms(attempts, error)
            self._counters.total_retried += 1
            self._counters.last_retry_at = now
            self._counters.last_backoff_ms = delay_ms
            self._counters.last_retry_status = error.status
            self._counters.cooldown_until = now + delay_ms / 1000 if delay_ms > 0 else None

            self._log.warning(
                "tracking_retry",
                attempt=attempts,
                max_retries=self._options.max_retries,
                delay_ms=delay_ms,
                status=error.status,
                error_kind=error.kind.value if error.kind else None,
            )
            task.attempt = attempts
            self._pending.append(task)
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            return

        self._counters.last_retry_status = error.status
        self._counters.cooldown_until = None
        self._log.error(
            "tracking_failed",
            attempts=attempts,
            status=error.status,
            error_kind=error.kind.value if error.kind else None,
            error=error.message,
        )

        if task.key is not None:
            await self._remember(
                IdempotencyRecord(
                    key=task.key,
                    status="failed",
                    attempts=attempts,
                    created_at=task.enqueued_at,
                    completed_at=now,
                    error=error.to_snapshot(),
                )
            )
        self._release(task)
        task.future.set_exception(error)

    async def _remember(self, record: IdempotencyRecord) -> None:
        """Persist a settled outcome; the waiting callers are answered regardless."""
        try:
            await self._store.set(record)
        except Exception as e:
            self._log.error(
                "idempotency_store_failed",
                idempotency_key=record.key,
                error=str(e),
            )

    def _compute_delay_ms(self, attempt: int, error: MatomoApiError) -> int:
        """Server-requested wait, capped, wins over the computed backoff."""
        if error.retry_after_ms is not None:
            return self._options.backoff.server_wait_ms(error.retry_after_ms)
        return self._options.backoff.delay_ms(attempt)

    def _release(self, task: _QueuedTask) -> None:
        if task.key is not None:
            self._inflight.pop(task.key, None)

    def stats(self) -> QueueStats:
        """Snapshot the queue counters."""
        counters = self._counters
        oldest = min((task.enqueued_at for task in self._pending), default=None)
        return QueueStats(
            pending=len(self._pending),
            inflight=counters.inflight,
            total_processed=counters.total_processed,
            total_retried=counters.total_retried,
            last_error=counters.last_error,
            last_retry_at=counters.last_retry_at,
            last_backoff_ms=counters.last_backoff_ms,
            last_retry_status=counters.last_retry_status,
            cooldown_until=counters.cooldown_until,
            oldest_pending_at=oldest,
        )

    async def get_idempotency_record(self, key: str) -> IdempotencyRecord | None:
        """Look up the stored outcome for a key."""
        return await self._store.get(key)

    async def drain(self) -> None:
        """Wait until every queued request has settled."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

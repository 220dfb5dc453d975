"""Serialized, rate-limited request queue for one upstream.

Some upstreams (Jikan, the MAL mirror) enforce a hard requests-per-second
limit.  Every call to such an upstream is wrapped in a zero-argument
coroutine function and handed to :meth:`RateLimitedQueue.enqueue`.  A
single worker task drains the queue:

- items run one at a time, in FIFO order, with ``base_delay`` seconds
  between consecutive items;
- an item failing with a rate-limit error is put back at the **head** of
  the queue and retried after ``backoff_base * 2**(retries - 1)`` seconds
  plus up to ``jitter`` seconds of random jitter, until its retry counter
  reaches ``max_retries``;
- any other failure rejects the caller immediately.

Item lifecycle::

    QUEUED -> RUNNING -> SUCCEEDED
                      -> RETRYING -> QUEUED (head)
                      -> FAILED

Retried items jump ahead of later work, so a sustained run of rate-limit
responses delays everything queued behind them.
"""

from __future__ import annotations

import asyncio
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from mediabridge.utils.errors import BackendUnavailableError, RateLimitError
from mediabridge.utils.logging import get_logger

Task = Callable[[], Awaitable[Any]]


class ItemState(str, Enum):  # noqa: UP042
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    RETRYING = "RETRYING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class QueueItem:
    """One pending call and the future its caller is awaiting."""

    task: Task
    future: asyncio.Future
    label: str = ""
    retries: int = 0
    state: ItemState = ItemState.QUEUED
    history: list[ItemState] = field(default_factory=list)

    def transition(self, state: ItemState) -> None:
        self.history.append(state)
        self.state = state


def _is_rate_limit(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitError)


class RateLimitedQueue:
    """FIFO scheduler serializing calls to one rate-limited upstream.

    Parameters
    ----------
    name:
        Upstream name used in log lines.
    base_delay:
        Seconds to wait after every item before pulling the next one.
    max_retries:
        Attempts allowed per item for rate-limit failures.
    backoff_base:
        Seconds of backoff after the first rate-limit failure; doubles on
        each further failure of the same item.
    jitter:
        Upper bound, in seconds, of the random delay added to each backoff.
    is_rate_limited:
        Predicate deciding which exceptions are retried.
    sleep, rng:
        Injectable clock and randomness for tests.
    """

    def __init__(
        self,
        name: str,
        base_delay: float = 0.35,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        jitter: float = 0.5,
        is_rate_limited: Callable[[BaseException], bool] = _is_rate_limit,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._name = name
        self._base_delay = base_delay
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._jitter = jitter
        self._is_rate_limited = is_rate_limited
        self._sleep = sleep
        self._rng = rng
        self._items: deque[QueueItem] = deque()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task | None = None
        self._closed = False
        self._stats = {"succeeded": 0, "failed": 0, "rate_limited": 0}
        self._logger = get_logger(__name__).bind(queue=name)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue(self, task: Task, label: str = "") -> Any:
        """Schedule *task* and return its result once the queue runs it.

        Raises
        ------
        RateLimitError
            If the upstream kept rate-limiting the item until the retry
            ceiling.
        BackendUnavailableError
            If the queue is closed.
        Exception
            Whatever the task raised, for every non-rate-limit failure.
        """
        if self._closed:
            raise BackendUnavailableError(
                message=f"Request queue '{self._name}' is closed", provider_name=self._name
            )
        item = QueueItem(task=task, future=asyncio.get_running_loop().create_future(), label=label)
        item.transition(ItemState.QUEUED)
        self._items.append(item)
        self._ensure_worker()
        self._wakeup.set()
        return await item.future

    def pending(self) -> int:
        return len(self._items)

    def get_stats(self) -> dict[str, Any]:
        return {"name": self._name, "pending": len(self._items), **self._stats}

    async def aclose(self) -> None:
        """Stop the worker and reject every item still waiting."""
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        while self._items:
            item = self._items.popleft()
            if not item.future.done():
                item.future.set_exception(
                    BackendUnavailableError(
                        message=f"Request queue '{self._name}' closed before the request ran",
                        provider_name=self._name,
                    )
                )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name=f"rate-limited-queue:{self._name}")

    async def _run(self) -> None:
        while True:
            if not self._items:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            item = self._items.popleft()
            if item.future.done():
                # The caller went away while the item was queued.
                continue

            delay = await self._process(item)
            await self._sleep(delay)

    async def _process(self, item: QueueItem) -> float:
        """Run one item; return the delay before the next pull."""
        item.transition(ItemState.RUNNING)
        try:
            result = await item.task()
        except asyncio.CancelledError:
            item.transition(ItemState.FAILED)
            self._stats["failed"] += 1
            if not item.future.done():
                reason = "closed while the request ran" if self._closed else "request was cancelled"
                item.future.set_exception(
                    BackendUnavailableError(
                        message=f"Request queue '{self._name}' {reason}",
                        provider_name=self._name,
                    )
                )
            if self._closed:
                raise
            self._logger.warning("queue_request_cancelled", request=item.label)
            return self._base_delay
        except Exception as exc:
            if self._is_rate_limited(exc):
                self._stats["rate_limited"] += 1
                item.retries += 1
                if item.retries < self._max_retries:
                    item.transition(ItemState.RETRYING)
                    backoff = self._backoff_base * 2 ** (item.retries - 1)
                    delay = backoff + self._rng() * self._jitter
                    self._logger.warning(
                        "queue_rate_limited",
                        request=item.label,
                        attempt=item.retries,
                        max_retries=self._max_retries,
                        retry_in_seconds=round(delay, 3),
                    )
                    item.transition(ItemState.QUEUED)
                    self._items.appendleft(item)
                    return delay

                self._logger.error(
                    "queue_retries_exhausted",
                    request=item.label,
                    max_retries=self._max_retries,
                )
            else:
                self._logger.warning("queue_request_failed", request=item.label, error=str(exc))

            item.transition(ItemState.FAILED)
            self._stats["failed"] += 1
            if not item.future.done():
                item.future.set_exception(exc)
            return self._base_delay

        item.transition(ItemState.SUCCEEDED)
        self._stats["succeeded"] += 1
        if not item.future.done():
            item.future.set_result(result)
        return self._base_delay

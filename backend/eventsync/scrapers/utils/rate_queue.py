"""Per-platform FIFO request queue with pacing, concurrency caps and retries.

Each platform gets its own PlatformQueue driven by a single scheduler task.
The scheduler is the only code that touches a queue's pacing state
(in-flight count, last dispatch time, pending order). Request tasks report
their outcome back through a completion buffer and the scheduler settles it.

State machine per platform:

    idle -> dispatching -> (backoff -> dispatching)* -> idle

A failed request goes back to the *front* of its queue with a delay of
retry_delay * 2 ** (retries - 1) seconds; while that delay runs the queue is
in backoff and newer work waits behind it.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

import structlog

from eventsync.config import settings
from eventsync.core.exceptions import (
    PlatformUnavailableError,
    PolicyDisallowedError,
    RetryExhaustedError,
)

logger = structlog.get_logger(__name__)


RequestFn = Callable[[], Awaitable[Any]]


@dataclass
class RateLimitConfig:
    """Pacing policy for one platform. Times are in seconds."""

    min_delay: float = 1.0
    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0

    def __post_init__(self):
        """Validate data after initialization."""
        if self.min_delay < 0:
            raise ValueError("min_delay must be non-negative")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")

    def backoff(self, retries: int) -> float:
        """Delay before retry number `retries` (1-based)."""
        return self.retry_delay * (2 ** (retries - 1))


class QueueState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    BACKOFF = "backoff"


@dataclass
class QueuedRequest:
    fn: RequestFn
    future: asyncio.Future
    enqueued_at: float
    retries: int = 0
    not_before: float = 0.0


class PlatformQueue:
    """Scheduler for a single platform's outbound requests."""

    def __init__(self, platform: str, config: RateLimitConfig):
        self.platform = platform
        self.config = config
        self.state = QueueState.IDLE
        self._pending: Deque[QueuedRequest] = deque()
        self._completions: Deque[Tuple[QueuedRequest, Optional[BaseException]]] = deque()
        self._in_flight = 0
        self._last_dispatch: Optional[float] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._runner: Optional[asyncio.Task] = None
        self._tasks: set = set()
        self.dispatch_times: Deque[float] = deque(maxlen=256)
        self.logger = logger.bind(platform=platform)

    async def submit(self, fn: RequestFn) -> Any:
        """Enqueue a request and wait for its final outcome.

        Args:
            fn: Zero-argument coroutine function performing the request

        Returns:
            Whatever fn returns on its first successful attempt

        Raises:
            RetryExhaustedError: If every allowed attempt failed
            PolicyDisallowedError: Propagated immediately, never retried
        """
        loop = asyncio.get_running_loop()
        request = QueuedRequest(fn=fn, future=loop.create_future(), enqueued_at=loop.time())
        self._pending.append(request)
        self._ensure_runner()
        self._notify()
        return await request.future

    # ------------------------------------------------------------------
    # Scheduler loop
    # ------------------------------------------------------------------

    def _ensure_runner(self) -> None:
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        if self._runner is None or self._runner.done():
            self._runner = asyncio.get_running_loop().create_task(self._run())

    def _notify(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while self._pending or self._in_flight or self._completions:
                self._wakeup.clear()
                self._settle_completions(loop.time())

                # Callers that gave up no longer need a slot
                while self._pending and self._pending[0].future.done():
                    self._pending.popleft()

                if not self._pending:
                    if self._in_flight:
                        await self._wakeup.wait()
                    continue

                if self._in_flight >= self.config.max_concurrent:
                    await self._wakeup.wait()
                    continue

                head = self._pending[0]
                now = loop.time()
                wait = 0.0
                if self._last_dispatch is not None:
                    wait = self._last_dispatch + self.config.min_delay - now
                if head.not_before > now:
                    self.state = QueueState.BACKOFF
                    wait = max(wait, head.not_before - now)

                if wait > 0:
                    await self._sleep_or_wake(wait)
                    continue

                self._dispatch(self._pending.popleft(), now)
        finally:
            self.state = QueueState.IDLE

    def _dispatch(self, request: QueuedRequest, now: float) -> None:
        self.state = QueueState.DISPATCHING
        self._last_dispatch = now
        self._in_flight += 1
        self.dispatch_times.append(now)
        task = asyncio.get_running_loop().create_task(self._execute(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _sleep_or_wake(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _execute(self, request: QueuedRequest) -> None:
        error: Optional[BaseException] = None
        try:
            result = await request.fn()
        except Exception as e:
            error = e
        else:
            if not request.future.done():
                request.future.set_result(result)
        finally:
            self._completions.append((request, error))
            self._notify()

    def _settle_completions(self, now: float) -> None:
        while self._completions:
            request, error = self._completions.popleft()
            self._in_flight = max(0, self._in_flight - 1)

            if request.future.done():
                continue

            if error is None:
                # fn was cancelled before producing a result
                request.future.cancel()
                continue

            if isinstance(error, PolicyDisallowedError):
                request.future.set_exception(error)
                continue

            if request.retries < self.config.max_retries:
                request.retries += 1
                delay = self.config.backoff(request.retries)
                request.not_before = now + delay
                self._pending.appendleft(request)
                self.logger.warning(
                    "request_retry_scheduled",
                    attempt=request.retries,
                    max_retries=self.config.max_retries,
                    delay_seconds=delay,
                    error=str(error),
                )
            else:
                self.logger.error(
                    "request_retries_exhausted",
                    attempts=request.retries + 1,
                    error=str(error),
                )
                request.future.set_exception(
                    RetryExhaustedError(self.platform, request.retries + 1, error)
                )

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "queued": len(self._pending),
            "active": self._in_flight,
            "state": self.state.value,
            "processing": self._runner is not None and not self._runner.done(),
        }

    def clear(self) -> int:
        """Reject every pending request. In-flight requests are left to finish.

        Returns:
            Number of requests rejected
        """
        rejected = 0
        while self._pending:
            request = self._pending.popleft()
            if not request.future.done():
                request.future.set_exception(
                    PlatformUnavailableError(self.platform, "request queue cleared")
                )
                rejected += 1
        self._notify()
        return rejected

    async def aclose(self) -> None:
        """Clear pending work and stop the scheduler and request tasks."""
        self.clear()
        tasks = list(self._tasks)
        if self._runner is not None:
            tasks.append(self._runner)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._runner = None


class RateLimitedQueue:
    """Registry of independent per-platform queues.

    Queues for different platforms share nothing, so a saturated or backed-off
    platform never delays another.
    """

    def __init__(
        self,
        default_config: Optional[RateLimitConfig] = None,
        platform_configs: Optional[Dict[str, RateLimitConfig]] = None,
    ):
        """Initialize the registry.

        Args:
            default_config: Policy for platforms without their own config
            platform_configs: Optional per-platform policies
        """
        self.default_config = default_config or RateLimitConfig()
        self._configs: Dict[str, RateLimitConfig] = dict(platform_configs or {})
        self._queues: Dict[str, PlatformQueue] = {}

    def configure(self, platform: str, config: RateLimitConfig) -> None:
        """Set (or replace) the pacing policy for a platform."""
        self._configs[platform] = config
        if platform in self._queues:
            self._queues[platform].config = config
        logger.info(
            "rate_queue_configured",
            platform=platform,
            min_delay=config.min_delay,
            max_concurrent=config.max_concurrent,
        )

    def get_config(self, platform: str) -> RateLimitConfig:
        return self._configs.get(platform, self.default_config)

    def queue_for(self, platform: str) -> PlatformQueue:
        """Get or create the queue for a platform."""
        if platform not in self._queues:
            self._queues[platform] = PlatformQueue(platform, self.get_config(platform))
        return self._queues[platform]

    async def add(self, platform: str, fn: RequestFn) -> Any:
        """Run fn through the platform's queue and return its result."""
        return await self.queue_for(platform).submit(fn)

    def get_stats(self, platform: Optional[str] = None) -> Dict[str, Any]:
        if platform is not None:
            if platform in self._queues:
                return self._queues[platform].get_stats()
            return {"platform": platform, "queued": 0, "active": 0, "state": "idle", "processing": False}
        return {name: queue.get_stats() for name, queue in self._queues.items()}

    def clear(self, platform: Optional[str] = None) -> None:
        """Reject pending requests for one platform, or for all of them."""
        targets = [self._queues[platform]] if platform in self._queues else []
        if platform is None:
            targets = list(self._queues.values())
        for queue in targets:
            queue.clear()

    async def aclose(self) -> None:
        for queue in list(self._queues.values()):
            await queue.aclose()
        self._queues.clear()


def create_default_queue() -> RateLimitedQueue:
    """Build a RateLimitedQueue from application settings."""
    default = RateLimitConfig(
        min_delay=settings.QUEUE_MIN_DELAY_SECONDS,
        max_concurrent=settings.QUEUE_MAX_CONCURRENT,
        max_retries=settings.QUEUE_MAX_RETRIES,
        retry_delay=settings.QUEUE_RETRY_DELAY_SECONDS,
    )
    platform_configs = {
        platform: RateLimitConfig(**limits)
        for platform, limits in settings.get_platform_queue_limits().items()
    }
    return RateLimitedQueue(default_config=default, platform_configs=platform_configs)

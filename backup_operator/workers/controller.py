"""
Controller driving a reconciler.

Feeds resource keys from an initial list, a watch and a periodic resync
into a work queue and runs the reconciler for them on a small pool of
worker tasks. A key is never reconciled by two workers at the same time:
a key that changes while its pass is running is reconciled again once the
pass is over.
"""
import asyncio
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from backup_operator.config.logging import get_logger
from backup_operator.exceptions import ConflictError, TransientError
from backup_operator.reconcilers.common import ReconcileResult

logger = get_logger(__name__)

Key = Tuple[str, str]
ReconcileFn = Callable[[str, str], Awaitable[ReconcileResult]]
ListFn = Callable[[], Awaitable[List[Key]]]
WatchFn = Callable[[], AsyncIterator[Key]]


class Controller:
    """
    Level-triggered work loop for one kind of resource.

    Features:
    - Per-key serialisation (in-flight and dirty sets)
    - Delayed requeues scheduled on the event loop, no sleeping workers
    - Per-pass deadline
    - Exponential backoff per key for unexpected failures
    - Graceful shutdown
    """

    def __init__(
        self,
        name: str,
        reconcile: ReconcileFn,
        list_keys: ListFn,
        watch_keys: Optional[WatchFn] = None,
        workers: int = 2,
        reconcile_timeout: float = 60.0,
        retry_delay: float = 10.0,
        resync_interval: float = 300.0,
        backoff_base: float = 5.0,
        backoff_max: float = 300.0,
    ):
        """
        Args:
            name: Controller name used in logs, e.g. "cassandrabackup"
            reconcile: Runs one pass for (namespace, name)
            list_keys: Lists the keys of all resources
            watch_keys: Yields keys of changed resources until the watch ends
            workers: Number of passes running concurrently (different keys only)
            reconcile_timeout: Deadline of one pass in seconds
            retry_delay: Requeue delay after transient failures and timeouts
            resync_interval: Seconds between full relists
            backoff_base: First backoff delay after an unexpected failure
            backoff_max: Upper bound of the backoff delay
        """
        self.name = name
        self._reconcile = reconcile
        self._list_keys = list_keys
        self._watch_keys = watch_keys
        self.workers = workers
        self.reconcile_timeout = reconcile_timeout
        self.retry_delay = retry_delay
        self.resync_interval = resync_interval
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

        self._queue: "asyncio.Queue[Key]" = asyncio.Queue()
        self._queued: Set[Key] = set()
        self._in_flight: Set[Key] = set()
        self._dirty: Set[Key] = set()
        self._failures: Dict[Key, int] = {}
        self._timers: Dict[Key, asyncio.TimerHandle] = {}
        self._tasks: List[asyncio.Task] = []

        self.running = False
        self.synced = False

    async def start(self) -> None:
        """Start the resync loop, the watch and the workers in the background."""
        self.running = True
        self._tasks.append(asyncio.create_task(self._resync_loop(), name=f"{self.name}-resync"))
        if self._watch_keys is not None:
            self._tasks.append(asyncio.create_task(self._watch_loop(), name=f"{self.name}-watch"))
        for i in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}"))

        logger.info(
            "controller_started",
            controller=self.name,
            workers=self.workers,
            resync_interval_seconds=self.resync_interval,
        )

    async def stop(self) -> None:
        """Stop all tasks. Running passes are cancelled."""
        logger.info("stopping_controller", controller=self.name)
        self.running = False

        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        for task in self._tasks:
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(
                    "controller_task_failed",
                    controller=self.name,
                    error_type=type(result).__name__,
                    error=str(result),
                )
        self._tasks = []

        logger.info("controller_stopped", controller=self.name)

    def enqueue(self, key: Key) -> None:
        """Queue a key for reconciliation unless it is already waiting."""
        if key in self._in_flight:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def enqueue_after(self, key: Key, delay: float) -> None:
        """Queue a key once ``delay`` seconds have passed."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire, key)

    def _fire(self, key: Key) -> None:
        self._timers.pop(key, None)
        if self.running:
            self.enqueue(key)

    async def join(self) -> None:
        """Wait until every queued key has been processed."""
        await self._queue.join()

    async def _worker(self) -> None:
        while self.running:
            key = await self._queue.get()
            self._queued.discard(key)
            self._in_flight.add(key)
            try:
                await self._process(key)
            finally:
                self._in_flight.discard(key)
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.enqueue(key)
                self._queue.task_done()

    async def _process(self, key: Key) -> None:
        namespace, name = key
        try:
            result = await asyncio.wait_for(
                self._reconcile(namespace, name),
                timeout=self.reconcile_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "reconcile_timed_out",
                controller=self.name,
                namespace=namespace,
                name=name,
                timeout_seconds=self.reconcile_timeout,
                retry_in_seconds=self.retry_delay,
            )
            self.enqueue_after(key, self.retry_delay)
            return
        except ConflictError as e:
            logger.info(
                "conflict_occurred_retrying",
                controller=self.name,
                namespace=namespace,
                name=name,
                error=e.message,
            )
            self.enqueue(key)
            return
        except TransientError as e:
            logger.warning(
                "reconcile_deferred",
                controller=self.name,
                namespace=namespace,
                name=name,
                error=e.message,
                retry_in_seconds=self.retry_delay,
            )
            self.enqueue_after(key, self.retry_delay)
            return
        except Exception as e:
            failures = self._failures.get(key, 0)
            delay = min(self.backoff_base * 2 ** failures, self.backoff_max)
            self._failures[key] = failures + 1
            logger.error(
                "reconcile_failed",
                controller=self.name,
                namespace=namespace,
                name=name,
                error=str(e),
                error_type=type(e).__name__,
                failures=failures + 1,
                retry_in_seconds=delay,
                exc_info=True,
            )
            self.enqueue_after(key, delay)
            return

        self._failures.pop(key, None)
        if result.requeue:
            self.enqueue(key)
        elif result.requeue_after is not None:
            self.enqueue_after(key, result.requeue_after)

    async def _resync_loop(self) -> None:
        while self.running:
            try:
                keys = await self._list_keys()
            except Exception as e:
                logger.error(
                    "resync_failed",
                    controller=self.name,
                    error=str(e),
                    retry_in_seconds=self.retry_delay,
                    exc_info=True,
                )
                await asyncio.sleep(self.retry_delay)
                continue

            for key in keys:
                self.enqueue(key)

            if not self.synced:
                self.synced = True
                logger.info("controller_synced", controller=self.name, resources=len(keys))
            else:
                logger.debug("controller_resynced", controller=self.name, resources=len(keys))

            await asyncio.sleep(self.resync_interval)

    async def _watch_loop(self) -> None:
        while self.running:
            try:
                async for key in self._watch_keys():
                    self.enqueue(key)
            except Exception as e:
                logger.warning(
                    "watch_failed_restarting",
                    controller=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    retry_in_seconds=self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

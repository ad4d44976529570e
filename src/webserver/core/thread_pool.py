"""
=============================================================================
WORKER POOL
=============================================================================

Every accepted connection runs on a worker thread from a bounded pool
instead of a thread of its own.

    ONE THREAD PER CONNECTION             BOUNDED POOL
    ─────────────────────────             ────────────
    for conn in accept():                 pool = ThreadPool(4, 50, queue_size=100)
        Thread(target=handle,             for conn in accept():
               args=(conn,)).start()          if not pool.submit(handle, args=(conn,)):
                                                  reject(conn)   # 503
    10,000 clients = 10,000 threads
                                          at most 50 threads, 100 waiting

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           ThreadPool                                 │
    │                                                                      │
    │   submit() ──► ┌───┬───┬───┬───┬───┐  bounded queue                 │
    │                │ T │ T │ T │   │   │  (full → submit returns False) │
    │                └─┬─┴─┬─┴─┬─┴───┴───┘                                │
    │                  │   │   │                                           │
    │            ┌─────▼┐ ┌▼────┐ ┌▼────┐                                 │
    │            │ W-0  │ │ W-1 │ │ W-2 │ ... up to max_workers           │
    │            └──────┘ └─────┘ └─────┘                                  │
    └─────────────────────────────────────────────────────────────────────┘

A connection task can occupy its worker for a long time (a keep-alive
client may send requests for minutes), so the pool starts with
min_workers and adds one whenever the tasks submitted but not yet
finished outnumber the workers, until max_workers is reached. The count
is kept under the pool lock.

Workers stop when they take a None (the "poison pill") off the queue.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for stats and scaling decisions."""
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call: "call func(*args, **kwargs) later".
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    Loop: take a task (waking every idle_timeout seconds to check for
    shutdown), stop on None, otherwise run it. An exception escaping a
    task is logged and the worker carries on with the next one.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 1.0,
        on_task_done: Optional[Callable[[], None]] = None
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.on_task_done = on_task_done

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break  # Poison pill
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s "
                f"(queued {start_time - task.submitted_at:.3f}s)"
            )
        except Exception as e:
            # Don't let one task kill the worker
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}"
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE
            if self.on_task_done:
                self.on_task_done()

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=50, queue_size=100)
        pool.start()

        if not pool.submit(handler.run, block=False):
            ...  # pool saturated, reject

        pool.shutdown(wait=False, timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 50,
        queue_size: int = 100,
        idle_timeout: float = 1.0
    ):
        """
        Args:
            min_workers: Workers created at start() and always running.
            max_workers: Upper bound on workers under load.
            queue_size: Tasks that may wait for a worker. Beyond that,
                        submit() blocks or fails.
            idle_timeout: How often idle workers wake to check for shutdown.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers and _outstanding
        self._outstanding = 0  # Submitted, not yet finished
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Start the pool with min_workers workers."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers (max {self.max_workers})")

        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()

        self._started = True

    def _spawn_worker(self) -> Worker:
        """Create and start one worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            on_task_done=self._task_done
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Submit a task for execution.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            block: Whether to wait for queue space when the queue is full.
            queue_timeout: How long to wait when blocking.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        # Counted before the put: a worker may finish it before put() returns
        with self._lock:
            self._outstanding += 1

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            self._task_done()
            return False

        self._maybe_scale_up()
        return True

    def _task_done(self):
        with self._lock:
            self._outstanding -= 1

    def _maybe_scale_up(self):
        """
        Add a worker if more tasks are outstanding than there are workers
        and we're under max_workers.
        """
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return

            if self._outstanding > len(self._workers):
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Wait for queued tasks to be picked up before stopping.
            timeout: Upper bound on the whole shutdown, in seconds.
                     Workers still running a task after that are left to
                     finish on their own (they are daemon threads).
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True
        deadline = None if timeout is None else time.time() + timeout

        if wait:
            while not self._task_queue.empty():
                if deadline is not None and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)

        # Poison pills: one per worker
        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break  # Workers still see the shutdown flag

        for worker in workers:
            worker.shutdown()
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            worker.join(timeout=remaining)

        with self._lock:
            self._workers.clear()

        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # STATS
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queued(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for logging."""
        with self._lock:
            workers = list(self._workers)

        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "outstanding": self._outstanding,
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }

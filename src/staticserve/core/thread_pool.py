"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Connections from both listeners are processed by one shared pool of
worker threads. A worker owns a connection from the TLS handshake until
the connection closes, so a long keep-alive session occupies one worker.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   HTTP accept loop ──┐                                              │
    │                      ├──► TASK QUEUE  [conn] [conn] [conn] ...      │
    │   HTTPS accept loop ─┘          │                                   │
    │                                 ▼                                   │
    │        ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐          │
    │        │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │ ...      │
    │        └──────────┘ └──────────┘ └──────────┘ └──────────┘          │
    │                                                                     │
    │   min_workers threads start with the pool. When every worker is     │
    │   busy and tasks are waiting, one more is added, up to max_workers. │
    │   A full queue rejects the task; the server answers 503.            │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Shutdown uses the "poison pill" pattern: one None per worker is put on
the queue, and a worker that receives None exits its loop.

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
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        timeout: Seconds the task may wait in the queue before it is dropped.
        on_drop: Called with `args` instead of `func` when the task is dropped.
        submitted_at: Time the task was queued.
    """

    func: Callable[..., Any]
    args: tuple = ()
    timeout: Optional[float] = None
    on_drop: Optional[Callable[..., Any]] = None
    submitted_at: float = field(default_factory=time.time)

    @property
    def is_stale(self) -> bool:
        return self.timeout is not None and (time.time() - self.submitted_at) > self.timeout


class Worker(threading.Thread):
    """Daemon thread pulling tasks off the shared queue until it gets None."""

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

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
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            if task.is_stale:
                logger.warning(
                    f"Task dropped after waiting {start_time - task.submitted_at:.2f}s "
                    f"(timeout {task.timeout}s)"
                )
                self.tasks_failed += 1
                if task.on_drop is not None:
                    task.on_drop(*task.args)
                return

            task.func(*task.args)
            self.tasks_completed += 1

        except Exception as e:
            # A failing task must not take the worker down with it.
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for connection processing.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=32)
        pool.start()
        if not pool.submit(process_connection, args=(conn,)):
            ...  # Overloaded
        pool.shutdown(wait=True, timeout=30.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 100,
        idle_timeout: float = 60.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True
        self._shutdown = False

    def _add_worker(self) -> Worker:
        """Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        timeout: Optional[float] = None,
        on_drop: Optional[Callable[..., Any]] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            timeout: Maximum seconds the task may wait in the queue.
            on_drop: Runs with `args` in place of `func` if the task goes stale.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put(Task(func=func, args=args, timeout=timeout, on_drop=on_drop), block=False)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if (
                self.busy_workers == len(self._workers)
                and len(self._workers) < self.max_workers
                and self._task_queue.qsize() > 0
            ):
                logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop all workers.

        Args:
            wait: Let queued tasks run before stopping.
            timeout: Upper bound on the wait for queued tasks.
        """
        if not self._started:
            return

        logger.debug("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while self._task_queue.unfinished_tasks:
                if deadline and time.time() > deadline:
                    logger.warning("Thread pool shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        for _ in self._workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break

        for worker in self._workers:
            worker.shutdown()
            worker.join(timeout=2.0)

        self._workers.clear()
        self._started = False

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }

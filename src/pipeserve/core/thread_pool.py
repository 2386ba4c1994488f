"""
=============================================================================
WORKER THREAD POOL
=============================================================================

A bounded pool of worker threads fed from one queue. The accept loop
submits one task per connection; each task runs the whole keep-alive
conversation for that connection on a single worker.

    submit(func, args) ──► queue.Queue(max_queue) ──► Worker-0
                                                  ──► Worker-1
                                                  ──► ...
                                                  ──► Worker-N (grown on demand,
                                                                up to max_workers)

=============================================================================
FAILURE AND SHUTDOWN
=============================================================================

A task that raises is logged with its traceback and counted; the worker
keeps serving. A task that sat in the queue past its timeout is not run;
its ``on_drop`` callback runs instead, so the submitter can release what
the task owned (the server answers 503 and closes the socket).

shutdown() waits for queued work (optionally bounded by a timeout), then
puts one ``None`` per worker on the queue; a worker that takes ``None``
exits.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    """Seconds the task may wait in the queue before it is dropped."""
    on_drop: Optional[Callable[[], Any]] = None
    """Called instead of func when the task is dropped for waiting too long."""
    submitted_at: float = field(default_factory=time.monotonic)

    @property
    def waited(self) -> float:
        return time.monotonic() - self.submitted_at


class Worker(threading.Thread):
    def __init__(self, task_queue: queue.Queue, worker_id: int, poll_interval: float = 1.0):
        super().__init__(name=f"pipeserve-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task) -> None:
        if task.timeout is not None and task.waited > task.timeout:
            logger.warning(f"Dropping task that waited {task.waited:.2f}s (limit {task.timeout}s)")
            self.tasks_failed += 1
            if task.on_drop is not None:
                try:
                    task.on_drop()
                except Exception as e:
                    logger.exception(f"Worker {self.worker_id} drop callback failed: {e}")
            return

        self.state = WorkerState.BUSY
        started = time.monotonic()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            logger.exception(f"Worker {self.worker_id} task failed: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE
            logger.debug(f"Worker {self.worker_id} task took {time.monotonic() - started:.3f}s")

    def stop(self) -> None:
        self._stop_event.set()


class ThreadPool:
    """
    Args:
        min_workers: Threads started by start().
        max_workers: Ceiling for on-demand growth.
        max_queue: Pending tasks allowed before submit() blocks or fails.
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16, max_queue: int = 100):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue = max_queue

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=max_queue)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._next_id = 0
        self._started = False
        self._closing = False

    def start(self) -> None:
        if self._started:
            return
        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._closing = False
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn()
        self._started = True

    def _spawn(self) -> Worker:
        worker = Worker(self._task_queue, self._next_id)
        self._next_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None,
        on_drop: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """
        Queue ``func(*args, **kwargs)``.

        Returns:
            False when the queue stayed full (non-blocking or queue_timeout).

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._closing:
            raise RuntimeError("Thread pool is not running")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout, on_drop=on_drop)
        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_grow()
        return True

    def _maybe_grow(self) -> None:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if self.idle_workers == 0 and self._task_queue.qsize() > 0:
                logger.debug(f"Growing pool to {len(self._workers) + 1} workers")
                self._spawn()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting work, let queued work finish, stop the workers."""
        if not self._started:
            return

        logger.info("Shutting down thread pool")
        self._closing = True

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning("Thread pool shutdown timed out with work pending")
                    break
                time.sleep(0.05)

        for worker in self._workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass

        for worker in self._workers:
            worker.join(timeout=2.0)

        self._workers.clear()
        self._started = False
        logger.info("Thread pool stopped")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def pending(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self.pending,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }

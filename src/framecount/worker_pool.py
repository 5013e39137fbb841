"""
Process-isolated frame counting.

Worker model
  - Each worker is a separate process with its own duplex pipe, started on
    demand up to ``max_workers`` and reused while it stays healthy.
  - A caller that finds no idle worker waits; the timeout covers waiting
    and scanning together.
  - A worker that overruns the timeout or dies mid-call is discarded; the
    next caller that needs one starts a replacement.
  - Shutdown is two-phase: stop accepting work, then give in-flight calls
    a grace period before terminating whatever is still running.
"""
import logging
import multiprocessing as mp
import os
import threading
import time
from multiprocessing import connection
from typing import Callable, Optional

from .errors import (
    ExecutionTimeoutError,
    PoolBusyError,
    PoolClosedError,
    WorkerCrashedError,
    WorkerError,
)
from .executor import DirectExecutor, FrameCountExecutor
from .mp3_parser import count_frames

logger = logging.getLogger(__name__)


def _worker_main(conn, target: Callable) -> None:
    """Worker process loop: receive a buffer, reply with ``(ok, count_or_error)``."""
    while True:
        try:
            buffer = conn.recv()
        except EOFError:
            break
        if buffer is None:
            break
        try:
            conn.send((True, target(buffer)))
        except Exception as e:
            conn.send((False, f"{type(e).__name__}: {e}"))
    conn.close()


class _Worker:
    def __init__(self, ctx, target: Callable, worker_id: int):
        self.id = worker_id
        self.conn, child_conn = ctx.Pipe()
        self.process = ctx.Process(
            target=_worker_main,
            args=(child_conn, target),
            name=f"framecount-worker-{worker_id}",
            daemon=True,
        )
        self.process.start()
        child_conn.close()

    def stop(self, timeout: float) -> None:
        """Ask an idle worker to exit, terminating it if it does not."""
        try:
            self.conn.send(None)
        except OSError as e:
            logger.debug("Worker %d pipe already closed: %s", self.id, e)
        self.process.join(timeout)
        if self.process.is_alive():
            logger.warning("Worker %d did not exit in %.1fs, terminating", self.id, timeout)
        self.kill()

    def terminate(self) -> None:
        if self.process.is_alive():
            self.process.terminate()
        self.process.join()

    def kill(self) -> None:
        self.terminate()
        self.conn.close()


class WorkerPool(FrameCountExecutor):
    def __init__(
        self,
        max_workers: Optional[int] = None,
        timeout: float = 30.0,
        max_pending: Optional[int] = None,
        mp_context=None,
        target: Callable = count_frames,
    ):
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.max_workers = max_workers
        self.timeout = timeout
        self.max_pending = max_pending
        self._ctx = mp_context or mp.get_context()
        self._target = target

        self._cond = threading.Condition()
        self._workers: list[_Worker] = []
        self._idle: list[_Worker] = []
        self._waiting = 0
        self._next_id = 0
        self._closed = False

    @property
    def worker_count(self) -> int:
        with self._cond:
            return len(self._workers)

    def execute(self, buffer) -> int:
        if not isinstance(buffer, (bytes, bytearray, memoryview)):
            raise TypeError(f"expected a bytes-like buffer, got {type(buffer).__name__}")
        if isinstance(buffer, memoryview):
            buffer = buffer.tobytes()

        deadline = time.monotonic() + self.timeout
        worker = self._acquire(deadline)
        try:
            ok, payload = self._round_trip(worker, buffer, deadline)
        except BaseException:
            self._discard(worker)
            raise
        self._release(worker)
        if not ok:
            raise WorkerError(payload)
        return payload

    # ---- worker bookkeeping ----

    def _has_capacity(self) -> bool:
        return bool(self._idle) or len(self._workers) < self.max_workers

    def _spawn(self) -> _Worker:
        self._next_id += 1
        worker = _Worker(self._ctx, self._target, self._next_id)
        self._workers.append(worker)
        logger.info("Started worker %d (pid %s), %d/%d running",
                    worker.id, worker.process.pid, len(self._workers), self.max_workers)
        return worker

    def _acquire(self, deadline: float) -> _Worker:
        with self._cond:
            if self._closed:
                raise PoolClosedError("worker pool is shut down")
            if (self.max_pending is not None and not self._has_capacity()
                    and self._waiting >= self.max_pending):
                raise PoolBusyError(f"{self._waiting} calls already waiting for a worker")
            self._waiting += 1
            try:
                while True:
                    if self._closed:
                        raise PoolClosedError("worker pool is shut down")
                    while self._idle:
                        worker = self._idle.pop()
                        if worker.process.is_alive():
                            return worker
                        # died while idle
                        logger.warning("Idle worker %d exited (code %s), dropping it",
                                       worker.id, worker.process.exitcode)
                        self._workers.remove(worker)
                        worker.kill()
                    if len(self._workers) < self.max_workers:
                        return self._spawn()
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise ExecutionTimeoutError(
                            f"no worker became free within {self.timeout}s")
                    self._cond.wait(remaining)
            finally:
                self._waiting -= 1

    def _release(self, worker: _Worker) -> None:
        with self._cond:
            owned = worker in self._workers
            if owned:
                self._idle.append(worker)
                self._cond.notify()
        if not owned:
            # the pool was shut down while this call was in flight
            worker.stop(timeout=1.0)

    def _discard(self, worker: _Worker) -> None:
        with self._cond:
            if worker in self._workers:
                self._workers.remove(worker)
            # a waiter may now start a replacement
            self._cond.notify()
        worker.kill()
        logger.info("Discarded worker %d", worker.id)

    def _lost(self, worker: _Worker) -> Exception:
        if self._closed:
            return PoolClosedError("worker pool was shut down during processing")
        logger.warning("Worker %d died mid-call (exit code %s)", worker.id, worker.process.exitcode)
        return WorkerCrashedError(f"worker {worker.id} exited with code {worker.process.exitcode}")

    def _round_trip(self, worker: _Worker, buffer, deadline: float):
        try:
            worker.conn.send(buffer)
        except OSError as e:
            raise WorkerCrashedError(f"worker {worker.id} is gone: {e}") from e

        remaining = max(deadline - time.monotonic(), 0)
        ready = connection.wait([worker.conn, worker.process.sentinel], timeout=remaining)
        if worker.conn in ready:
            try:
                return worker.conn.recv()
            except EOFError as e:
                raise self._lost(worker) from e
        if ready:
            raise self._lost(worker)
        logger.warning("Worker %d exceeded %.1fs, terminating it", worker.id, self.timeout)
        raise ExecutionTimeoutError(f"frame count timed out after {self.timeout}s")

    # ---- lifecycle ----

    def shutdown(self, wait: bool = True, grace_period: float = 5.0) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            if wait:
                deadline = time.monotonic() + grace_period
                while len(self._idle) < len(self._workers):
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
            idle = list(self._idle)
            busy = [w for w in self._workers if w not in idle]
            self._workers.clear()
            self._idle.clear()

        if busy:
            logger.warning("Terminating %d busy worker(s) on shutdown", len(busy))
        for worker in busy:
            # the calling thread sees the exit and closes the pipe itself
            worker.terminate()
        for worker in idle:
            worker.stop(timeout=grace_period)
        logger.info("Worker pool shut down")


def executor_from_settings(settings) -> FrameCountExecutor:
    """A ``WorkerPool`` sized from ``settings``, or a ``DirectExecutor`` when ``max_workers`` is 0."""
    if settings.max_workers == 0:
        return DirectExecutor()
    return WorkerPool(max_workers=settings.max_workers,
                      timeout=settings.worker_timeout,
                      max_pending=settings.max_pending)

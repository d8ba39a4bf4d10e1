"""Background finalization tracking.

Trackers only observe and count. They never feed back into the scheduler's
state and never trigger retries; the next eligible block does that.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional

from burn_register.errors import FinalizationError, Outcome, classify, describe, report
from burn_register.models import AttemptStatus, RegistrationAttempt

logger = logging.getLogger(__name__)

STATUS_FOR_OUTCOME = {
    Outcome.RECOVERABLE: AttemptStatus.RECOVERABLE,
    Outcome.ALREADY_DONE: AttemptStatus.ALREADY_DONE,
    Outcome.FATAL: AttemptStatus.FATAL,
}


class AttemptStats:
    """Counters shared by the driver loop and tracker threads."""

    FIELDS = ("attempts", "dispatched", "untracked") + tuple(s.value for s in AttemptStatus if s is not AttemptStatus.PENDING)

    def __init__(self):
        self._lock = threading.Lock()
        self._counts = dict.fromkeys(self.FIELDS, 0)

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def record(self, status: AttemptStatus) -> None:
        self.incr(status.value)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


class FinalizationTracker:
    """Watch dispatched extrinsics on a fixed-size pool of worker threads.

    At most ``max_pending`` extrinsics are watched at once. When that many are
    already in flight a new one is logged and left untracked.
    """

    def __init__(
        self,
        client_factory: Optional[Callable] = None,
        max_workers: int = 4,
        max_pending: int = 32,
        timeout: float = 600.0,
        poll_interval: float = 2.0,
        stats: Optional[AttemptStats] = None,
    ):
        self.client_factory = client_factory
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.stats = stats or AttemptStats()
        self.success_event = threading.Event()
        self.already_done_event = threading.Event()
        # Set on a non-waiting shutdown; ends every running await_finalized
        self._stop = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="finalization")
        self.max_pending = max(max_pending, max_workers)
        self._slots = threading.BoundedSemaphore(self.max_pending)
        self._local = threading.local()

    def _client(self):
        # Each worker thread keeps its own connection
        if self.client_factory is None:
            return None
        client = getattr(self._local, "client", None)
        if client is None:
            client = self.client_factory()
            self._local.client = client
        return client

    def track(self, attempt: RegistrationAttempt, handle) -> Optional[Future]:
        if not self._slots.acquire(blocking=False):
            self.stats.incr("untracked")
            logger.warning(
                "[Block %d] %s trackers already in flight, not watching %s",
                attempt.block_sequence, self.max_pending, handle.extrinsic_hash,
            )
            return None
        try:
            future = self._executor.submit(self._watch, attempt, handle)
        except RuntimeError:
            # Executor already shut down
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return future

    def _watch(self, attempt: RegistrationAttempt, handle) -> RegistrationAttempt:
        block = attempt.block_sequence
        started = time.monotonic()
        try:
            result = handle.await_finalized(
                timeout=self.timeout, client=self._client(), poll_interval=self.poll_interval, stop=self._stop
            )
        except FinalizationError as e:
            self._settle_failure(attempt, e, time.monotonic() - started)
            return attempt
        except Exception as e:
            logger.exception("[Block %d] Unexpected error while watching %s", block, handle.extrinsic_hash)
            self._settle_failure(attempt, e, time.monotonic() - started)
            return attempt

        elapsed = time.monotonic() - started
        attempt.settle(AttemptStatus.FINALIZED, extrinsic_digest=result.extrinsic_hash, latency=elapsed)
        self.stats.record(AttemptStatus.FINALIZED)
        logger.info("⏱️ [Block %d] wait_for_finalized_success took %.3fs", block, elapsed)
        logger.info(
            "🎯 [Block %d] Registration successful! Extrinsic hash: %s (finalized in block %s)",
            block, result.extrinsic_hash, result.block_number,
        )
        self.success_event.set()
        return attempt

    def _settle_failure(self, attempt: RegistrationAttempt, error: Exception, elapsed: float) -> None:
        outcome = classify(error)
        status = STATUS_FOR_OUTCOME[outcome]
        attempt.settle(status, latency=elapsed, detail=describe(error))
        self.stats.record(status)
        report(logger, outcome, f"[Block {attempt.block_sequence}]", describe(error))
        if outcome is Outcome.ALREADY_DONE:
            self.already_done_event.set()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the pool. Without ``wait``, queued trackers are cancelled and
        running ones give up at their next poll."""
        if not wait:
            self._stop.set()
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

"""The registration race loop.

One driver loop consumes blocks, gates them on the slot filter and fires a
registration for each block it owns. Confirmation is handed to the tracker so
the loop is back waiting for the next block right after dispatch.
"""
import collections
import enum
import logging
import threading
import time
from typing import Iterable, Optional

from burn_register.errors import Outcome, SubmissionError, classify, describe, report
from burn_register.models import (
    BlockDescriptor,
    DeploymentMode,
    RegistrationAttempt,
    SchedulerState,
    SlotConfig,
)
from burn_register.slots import eligible
from burn_register.tracker import STATUS_FOR_OUTCOME, FinalizationTracker

logger = logging.getLogger(__name__)


class Decision(enum.Enum):
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    SUBMITTED = "submitted"
    REJECTED = "rejected"


class RegistrationScheduler:
    def __init__(
        self,
        blocks: Iterable[BlockDescriptor],
        submitter,
        tracker: FinalizationTracker,
        slots: SlotConfig = SlotConfig(),
        mode: DeploymentMode = DeploymentMode.CONTINUOUS,
        exit_on_already_registered: bool = False,
        stop_event: Optional[threading.Event] = None,
        history: int = 256,
    ):
        self.blocks = blocks
        self.submitter = submitter
        self.tracker = tracker
        self.slots = slots
        self.mode = mode
        self.exit_on_already_registered = exit_on_already_registered
        self.stop_event = stop_event or threading.Event()
        self.state = SchedulerState()
        self.attempts = collections.deque(maxlen=history)
        self._already_done = False

    @property
    def stats(self):
        return self.tracker.stats

    def finished(self) -> bool:
        if self.stop_event.is_set():
            return True
        if self.mode is DeploymentMode.SINGLE_SHOT and self.tracker.success_event.is_set():
            return True
        if self.exit_on_already_registered and (self._already_done or self.tracker.already_done_event.is_set()):
            return True
        return False

    def step(self, block: BlockDescriptor) -> Decision:
        state = self.state
        number = block.sequence_number
        if state.last_processed_sequence is not None and number <= state.last_processed_sequence:
            logger.debug("Dropping block %d, already at %d", number, state.last_processed_sequence)
            return Decision.DUPLICATE

        state.last_processed_sequence = number
        if not eligible(number, self.slots):
            logger.info(
                "⏭️ Skipping block %d (slot %d), waiting for slot %d",
                number, number % self.slots.partition_count, self.slots.partition_index,
            )
            return Decision.SKIPPED

        state.attempt_count += 1
        self.stats.incr("attempts")
        logger.info(
            "%d | 🎯 Slot %d - Attempting registration for block %d (hash: %s)",
            state.attempt_count, self.slots.partition_index, number, block.identifier,
        )
        attempt = RegistrationAttempt(block_sequence=number)
        self.attempts.append(attempt)

        started = time.monotonic()
        try:
            handle = self.submitter.submit(block)
        except SubmissionError as e:
            self._reject(attempt, e)
            return Decision.REJECTED
        attempt.dispatch_latency = time.monotonic() - started
        attempt.extrinsic_digest = handle.extrinsic_hash
        self.stats.incr("dispatched")
        logger.info(
            "⏱️ sign_and_submit took %.3fs (extrinsic %s)", attempt.dispatch_latency, handle.extrinsic_hash
        )
        self.tracker.track(attempt, handle)
        return Decision.SUBMITTED

    def _reject(self, attempt: RegistrationAttempt, error: SubmissionError) -> None:
        outcome = classify(error)
        status = STATUS_FOR_OUTCOME[outcome]
        attempt.settle(status, detail=describe(error))
        self.stats.record(status)
        report(logger, outcome, f"[Block {attempt.block_sequence}] submission", describe(error))
        if outcome is Outcome.ALREADY_DONE:
            self._already_done = True

    def run(self) -> SchedulerState:
        logger.info(
            "🚀 Starting registration loop for slot %d of %d (%s mode)",
            self.slots.partition_index, self.slots.partition_count, self.mode.value,
        )
        try:
            for block in self.blocks:
                if self.finished():
                    break
                self.step(block)
                if self.finished():
                    break
        finally:
            # A finished single-shot run does not wait for stragglers
            self.tracker.shutdown(wait=not self.finished())
        self._log_summary()
        return self.state

    def succeeded(self) -> bool:
        return self.tracker.success_event.is_set()

    def _log_summary(self) -> None:
        counts = self.stats.snapshot()
        logger.info(
            "Loop finished at block %s after %d attempts: %s",
            self.state.last_processed_sequence,
            self.state.attempt_count,
            ", ".join(f"{k}={v}" for k, v in counts.items()),
        )
        if self.succeeded():
            logger.info("✅ burnedRegister succeeded!")

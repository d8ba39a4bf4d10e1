import threading
import time

import pytest

pytest.importorskip("bittensor")

from burn_register import chain  # noqa: E402
from burn_register.errors import (  # noqa: E402
    BlockFetchError,
    ChainConnectionError,
    FailureReason,
    FinalizationError,
    FinalizationTimeout,
    SubmissionError,
)
from burn_register.models import AttemptStatus, BlockDescriptor, RegistrationAttempt  # noqa: E402
from burn_register.tracker import FinalizationTracker  # noqa: E402


class FakeReceipt:
    def __init__(self, success=True, error_message=None):
        self.is_success = success
        self.error_message = error_message


class ScriptedClient:
    """Finalized head advances one block per poll; the extrinsic lands in ``landing``."""

    def __init__(self, start, landing=None, receipt=None):
        self.head = start
        self.landing = landing
        self.receipt = receipt or FakeReceipt()

    def finalized_number(self):
        self.head += 1
        return self.head

    def block_hash(self, number):
        return f"0x{number:064x}"

    def find_extrinsic(self, block_hash, extrinsic_hash):
        if self.landing is not None and block_hash == self.block_hash(self.landing):
            return self.receipt
        return None


def handle(client, anchor=100, period=256):
    return chain.PendingHandle(client=client, extrinsic_hash="0xabc", anchor_number=anchor, expires_at=anchor + period)


def test_connect_failure_is_a_startup_error(monkeypatch):
    def refuse(network):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(chain.bt, "Subtensor", refuse)
    with pytest.raises(ChainConnectionError):
        chain.SubtensorClient.connect("ws://127.0.0.1:1")


def test_finalized_success():
    client = ScriptedClient(start=100, landing=103)
    result = handle(client).await_finalized(timeout=5, poll_interval=0)
    assert result.block_number == 103
    assert result.extrinsic_hash == "0xabc"


def test_failed_dispatch_is_decoded():
    receipt = FakeReceipt(success=False, error_message={"type": "Module", "name": "HotKeyAlreadyRegisteredInSubNet"})
    client = ScriptedClient(start=100, landing=101, receipt=receipt)
    with pytest.raises(FinalizationError) as info:
        handle(client).await_finalized(timeout=5, poll_interval=0)
    assert info.value.detail.reason is FailureReason.ALREADY_REGISTERED


def test_dropped_after_mortality_window():
    client = ScriptedClient(start=100)
    with pytest.raises(FinalizationError) as info:
        handle(client, period=5).await_finalized(timeout=5, poll_interval=0)
    assert info.value.detail.reason is FailureReason.DROPPED


def test_timeout_when_nothing_happens():
    client = ScriptedClient(start=100)
    with pytest.raises(FinalizationTimeout):
        handle(client, period=10**6).await_finalized(timeout=0, poll_interval=0)


def test_pool_rejection_becomes_submission_error():
    class Substrate:
        def submit_extrinsic(self, extrinsic, wait_for_inclusion, wait_for_finalization):
            raise Exception({"code": 1014, "message": "Priority is too low: (1 vs 1)"})

    class Subtensor:
        substrate = Substrate()

    client = chain.SubtensorClient(Subtensor(), "ws://test")
    with pytest.raises(SubmissionError) as info:
        client.submit_and_watch("xt", anchor=BlockDescriptor(100, "0x1"), period=256)
    assert info.value.detail.reason is FailureReason.PRIORITY_TOO_LOW


def test_accepted_extrinsic_returns_handle():
    class Receipt:
        extrinsic_hash = bytes.fromhex("ab" * 32)

    class Substrate:
        def submit_extrinsic(self, extrinsic, wait_for_inclusion, wait_for_finalization):
            assert not wait_for_inclusion and not wait_for_finalization
            return Receipt()

    class Subtensor:
        substrate = Substrate()

    client = chain.SubtensorClient(Subtensor(), "ws://test")
    pending = client.submit_and_watch("xt", anchor=BlockDescriptor(100, "0x1"), period=256)
    assert pending.extrinsic_hash == "0x" + "ab" * 32
    assert pending.expires_at == 356


class FlakyClient(ScriptedClient):
    """Like ScriptedClient, but the given calls fail once with a transport error."""

    def __init__(self, start, landing=None, fail_head_once=False, fail_hash_of=None):
        super().__init__(start, landing)
        self.fail_head_once = fail_head_once
        self.fail_hash_of = fail_hash_of

    def finalized_number(self):
        if self.fail_head_once:
            self.fail_head_once = False
            raise BlockFetchError("failed to fetch finalized head: connection reset")
        return super().finalized_number()

    def block_hash(self, number):
        if number == self.fail_hash_of:
            self.fail_hash_of = None
            raise BlockFetchError(f"failed to fetch hash of block {number}: connection reset")
        return super().block_hash(number)


def test_transient_errors_while_watching_are_retried():
    client = FlakyClient(start=100, landing=103, fail_head_once=True, fail_hash_of=102)
    result = handle(client).await_finalized(timeout=5, poll_interval=0)
    assert result.block_number == 103
    assert result.block_hash == client.block_hash(103)


def test_mortality_still_applies_between_transient_errors():
    client = FlakyClient(start=100, fail_hash_of=103)
    with pytest.raises(FinalizationError) as info:
        handle(client, period=5).await_finalized(timeout=5, poll_interval=0)
    assert info.value.detail.reason is FailureReason.DROPPED


def test_stop_event_ends_the_wait():
    stop = threading.Event()
    stop.set()
    started = time.monotonic()
    with pytest.raises(FinalizationError) as info:
        handle(ScriptedClient(start=100)).await_finalized(timeout=60, poll_interval=30, stop=stop)
    assert time.monotonic() - started < 1
    assert info.value.detail.reason is FailureReason.CANCELLED


def test_tracker_survives_transient_errors_and_reports_success():
    client = FlakyClient(start=100, landing=103, fail_hash_of=102)
    tracker = FinalizationTracker(client_factory=lambda: client, max_workers=1, timeout=5, poll_interval=0)
    attempt = RegistrationAttempt(block_sequence=100)
    tracker.track(attempt, handle(client)).result(timeout=5)
    tracker.shutdown(wait=True)
    assert attempt.status is AttemptStatus.FINALIZED
    assert tracker.success_event.is_set()
    assert tracker.stats.snapshot()["fatal"] == 0


def test_finalized_head_failure_is_a_block_fetch_error():
    class Substrate:
        def get_chain_finalised_head(self):
            raise ConnectionResetError("connection reset")

    class Subtensor:
        substrate = Substrate()

    client = chain.SubtensorClient(Subtensor(), "ws://test")
    with pytest.raises(BlockFetchError):
        client.finalized_number()

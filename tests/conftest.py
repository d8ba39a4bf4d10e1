"""
Shared fakes for the registration tests.

Nothing here touches the network: the chain client, submitter and pending
handles are all in-memory stand-ins with the same call signatures.
"""

import os
import sys
import threading

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from burn_register.errors import SubmissionError, decode_text  # noqa: E402
from burn_register.models import BlockDescriptor, FinalizationResult  # noqa: E402
from burn_register.tracker import FinalizationTracker  # noqa: E402


def block(n):
    return BlockDescriptor(n, f"0x{n:064x}")


class FakeKey:
    def __init__(self, address):
        self.ss58_address = address


class FakeHandle:
    """Pending extrinsic whose finalization is scripted by the test."""

    def __init__(self, extrinsic_hash, outcome=None, wait_for=None):
        self.extrinsic_hash = extrinsic_hash
        self.outcome = outcome
        self.wait_for = wait_for
        self.calls = 0

    def await_finalized(self, timeout, client=None, poll_interval=2.0, stop=None):
        self.calls += 1
        if self.wait_for is not None:
            self.wait_for.wait(timeout=5)
        if callable(self.outcome):
            return self.outcome()
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return FinalizationResult(self.extrinsic_hash, "0xfinal", 1)


class FakeSubmitter:
    """Records every submit; ``script`` maps block numbers to an error text or a handle."""

    def __init__(self, script=None):
        self.script = script or {}
        self.calls = []
        self.handles = {}

    def submit(self, blk):
        self.calls.append(blk.sequence_number)
        planned = self.script.get(blk.sequence_number)
        if isinstance(planned, str):
            raise SubmissionError(decode_text(planned))
        handle = planned or FakeHandle(f"0xext{blk.sequence_number}")
        self.handles[blk.sequence_number] = handle
        return handle


class FakeChainClient:
    """Serves ``latest_block`` from a script; entries may be exceptions."""

    def __init__(self, heads=(), headers=()):
        self.heads = list(heads)
        self.headers = list(headers)
        self.spawned = 0
        self.closed = 0

    def latest_block(self):
        if not self.heads:
            return block(10**9)
        item = self.heads.pop(0)
        if isinstance(item, BaseException):
            raise item
        return block(item)

    def block_hash(self, number):
        return f"0x{number:064x}"

    def spawn(self):
        self.spawned += 1
        return self

    def close(self):
        self.closed += 1

    def subscribe_finalized(self, handler):
        for header in self.headers:
            if handler(header) is not None:
                return
        # Keep the feed open like a live node would
        threading.Event().wait(5)


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def tracker():
    t = FinalizationTracker(max_workers=4, max_pending=32, timeout=5)
    yield t
    t.shutdown(wait=True)

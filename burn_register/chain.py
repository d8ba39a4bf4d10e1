"""Thin adapter over ``bittensor.Subtensor`` and its substrate interface.

Only this module talks to the chain. Anything raised by the substrate client
is decoded into ``burn_register.errors`` types before it leaves here.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import bittensor as bt
from async_substrate_interface.errors import ExtrinsicNotFound
from async_substrate_interface.sync_substrate import ExtrinsicReceipt

from burn_register.config import DEFAULT_ENDPOINT
from burn_register.errors import (
    BlockFetchError,
    ChainConnectionError,
    ChainError,
    FailureReason,
    FinalizationError,
    FinalizationTimeout,
    SubmissionError,
    decode_dispatch_error,
    decode_exception,
)
from burn_register.models import BlockDescriptor, FinalizationResult
from burn_register.submitter import REGISTRATION_MODULE

logger = logging.getLogger(__name__)


class SubtensorClient:
    """One websocket connection to a subtensor node.

    A connection cannot serve two threads receiving at once, so every thread
    that talks to the chain concurrently gets its own client (see ``spawn``).
    """

    def __init__(self, subtensor, endpoint: str):
        self.subtensor = subtensor
        self.substrate = subtensor.substrate
        self.endpoint = endpoint

    @classmethod
    def connect(cls, endpoint: str = DEFAULT_ENDPOINT) -> "SubtensorClient":
        try:
            subtensor = bt.Subtensor(network=endpoint)
            # Touch the connection once to finish the handshake
            subtensor.substrate.get_chain_head()
        except Exception as e:
            raise ChainConnectionError(f"cannot connect to {endpoint}: {e}") from e
        logger.info("Connected to %s", endpoint)
        return cls(subtensor, endpoint)

    def spawn(self) -> "SubtensorClient":
        return type(self).connect(self.endpoint)

    def close(self) -> None:
        try:
            self.subtensor.close()
        except Exception as e:
            logger.debug("Error while closing connection to %s: %s", self.endpoint, e)

    # ------------- blocks -------------

    def latest_block(self) -> BlockDescriptor:
        try:
            block_hash = self.substrate.get_chain_head()
            number = self.substrate.get_block_number(block_hash)
        except Exception as e:
            raise BlockFetchError(f"failed to fetch latest block: {e}") from e
        return BlockDescriptor(int(number), block_hash)

    def block_hash(self, number: int) -> str:
        try:
            return self.substrate.get_block_hash(number)
        except Exception as e:
            raise BlockFetchError(f"failed to fetch hash of block {number}: {e}") from e

    def finalized_number(self) -> int:
        try:
            head = self.substrate.get_chain_finalised_head()
            return int(self.substrate.get_block_number(head))
        except Exception as e:
            raise BlockFetchError(f"failed to fetch finalized head: {e}") from e

    def subscribe_finalized(self, handler: Callable[[Any], Any]) -> None:
        """Block the calling thread, feeding finalized headers to ``handler``.

        Returning anything but None from the handler ends the subscription.
        """

        def _on_header(obj, update_nr=None, subscription_id=None):
            return handler(obj)

        self.substrate.subscribe_block_headers(_on_header, finalized_only=True)

    # ------------- extrinsics -------------

    def compose_call(self, module: str, function: str, params: dict):
        return self.substrate.compose_call(
            call_module=module, call_function=function, call_params=params
        )

    def sign(self, call, keypair, *, anchor: BlockDescriptor, period: int, tip: int = 0):
        # Mortal era starting at the anchor block; the checkpoint hash is resolved
        # by the substrate client from "current".
        era = {"period": period, "current": anchor.sequence_number}
        return self.substrate.create_signed_extrinsic(call=call, keypair=keypair, era=era, tip=tip)

    def submit_and_watch(self, extrinsic, *, anchor: BlockDescriptor, period: int) -> "PendingHandle":
        """Hand the extrinsic to the pending pool without waiting for inclusion."""
        try:
            receipt = self.substrate.submit_extrinsic(
                extrinsic, wait_for_inclusion=False, wait_for_finalization=False
            )
        except Exception as e:
            raise SubmissionError(decode_exception(e)) from e
        extrinsic_hash = receipt.extrinsic_hash
        if isinstance(extrinsic_hash, bytes):
            extrinsic_hash = "0x" + extrinsic_hash.hex()
        return PendingHandle(
            client=self,
            extrinsic_hash=extrinsic_hash,
            anchor_number=anchor.sequence_number,
            expires_at=anchor.sequence_number + period,
        )

    def find_extrinsic(self, block_hash: str, extrinsic_hash: str) -> Optional[ExtrinsicReceipt]:
        receipt = ExtrinsicReceipt(
            substrate=self.substrate, extrinsic_hash=extrinsic_hash, block_hash=block_hash
        )
        try:
            # Resolving the index scans the block for our hash.
            receipt.extrinsic_idx
        except ExtrinsicNotFound:
            return None
        return receipt

    # ------------- storage -------------

    def query_storage(self, namespace: str, item: str, key: list):
        result = self.substrate.query(module=namespace, storage_function=item, params=key)
        return getattr(result, "value", result)

    def burn_cost(self, netuid: int) -> Optional[int]:
        """Current recycle cost for ``netuid`` in rao (informational only)."""
        value = self.query_storage(REGISTRATION_MODULE, "Burn", [netuid])
        return int(value) if value is not None else None


@dataclass
class PendingHandle:
    """An extrinsic accepted into the pool, not yet finalized."""

    client: SubtensorClient
    extrinsic_hash: str
    anchor_number: int
    expires_at: int

    def await_finalized(
        self,
        timeout: float,
        client: Optional[SubtensorClient] = None,
        poll_interval: float = 2.0,
        stop: Optional[threading.Event] = None,
    ) -> FinalizationResult:
        """Scan finalized blocks for the extrinsic until it lands, dies or times out.

        Raises FinalizationError for a failed dispatch, a transaction that
        outlived its mortality window or a ``stop`` request, and
        FinalizationTimeout after ``timeout`` seconds. Transport errors while
        scanning are logged and retried on the next poll.
        """
        client = client or self.client
        stop = stop or threading.Event()
        deadline = time.monotonic() + timeout
        next_number = self.anchor_number + 1
        while True:
            try:
                head = client.finalized_number()
                while next_number <= head:
                    block_hash = client.block_hash(next_number)
                    receipt = client.find_extrinsic(block_hash, self.extrinsic_hash)
                    if receipt is not None:
                        if receipt.is_success:
                            return FinalizationResult(self.extrinsic_hash, block_hash, next_number)
                        raise FinalizationError(decode_dispatch_error(receipt.error_message))
                    next_number += 1
            except FinalizationError:
                raise
            except Exception as e:
                logger.warning(
                    "Error while watching %s at block %d, retrying: %s", self.extrinsic_hash, next_number, e
                )
            if next_number > self.expires_at:
                raise FinalizationError(
                    ChainError(
                        FailureReason.DROPPED,
                        "Dropped",
                        f"not included before mortality ended at block {self.expires_at}",
                    )
                )
            if time.monotonic() >= deadline:
                raise FinalizationTimeout(
                    ChainError(FailureReason.TIMEOUT, "Timeout", f"no finalization after {timeout:.0f}s")
                )
            if stop.wait(poll_interval):
                raise FinalizationError(ChainError(FailureReason.CANCELLED, "Cancelled", "tracking stopped"))


def to_rao(tao: float) -> int:
    return int(bt.Balance.from_tao(tao).rao)


def format_rao(rao: int) -> str:
    return str(bt.Balance.from_rao(rao))

"""Block sources: where the scheduler learns that a new block exists.

Both sources are plain iterators of ``BlockDescriptor`` that never end on a
transient error. They end only when ``stop_event`` is set.
"""
import logging
import queue
import threading
from typing import Any, Iterator, Optional

from burn_register.models import BlockDescriptor, SourceKind

logger = logging.getLogger(__name__)


def parse_header_number(header: Any) -> Optional[int]:
    """Block number from a header notification; numbers may arrive hex encoded."""
    try:
        number = header["header"]["number"]
    except (KeyError, TypeError):
        try:
            number = header.get("number")
        except AttributeError:
            return None
    if number is None:
        return None
    try:
        return int(number, 16) if isinstance(number, str) else int(number)
    except ValueError:
        return None


class PollingBlockSource:
    """Fetch the chain head on a fixed cadence, yield it when it is new."""

    def __init__(self, client, interval: float = 0.5, stop_event: Optional[threading.Event] = None):
        self.client = client
        self.interval = interval
        self.stop_event = stop_event or threading.Event()

    def __iter__(self) -> Iterator[BlockDescriptor]:
        last_seen = None
        # wait() doubles as the poll delay and returns True once we are told to stop
        while not self.stop_event.wait(self.interval):
            try:
                block = self.client.latest_block()
            except Exception as e:
                logger.warning("Failed to fetch latest block: %s", e)
                continue
            if last_seen is not None and block.sequence_number <= last_seen:
                continue
            last_seen = block.sequence_number
            yield block


class SubscriptionBlockSource:
    """Yield finalized blocks pushed by a header subscription.

    The subscription blocks its thread, so it runs on a daemon thread with a
    dedicated connection and hands block numbers over through a queue. Hashes
    are looked up on the caller's client.
    """

    def __init__(
        self,
        client,
        stop_event: Optional[threading.Event] = None,
        reconnect_backoff: float = 1.0,
        max_backoff: float = 8.0,
        queue_size: int = 1024,
    ):
        self.client = client
        self.stop_event = stop_event or threading.Event()
        self.reconnect_backoff = reconnect_backoff
        self.max_backoff = max_backoff
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        # Initial handshake: a failure here is fatal and reaches the caller.
        self._feed = client.spawn()

    def _handler(self, header):
        if self.stop_event.is_set():
            return True
        number = parse_header_number(header)
        if number is None:
            return None
        try:
            self._queue.put_nowait(number)
        except queue.Full:
            logger.warning("Header queue full, dropping block %d", number)
        return None

    def _subscription_loop(self, feed, errors: dict):
        try:
            feed.subscribe_finalized(self._handler)
        except Exception as e:
            errors["err"] = e

    def _start(self):
        errors = {"err": None}
        thread = threading.Thread(
            target=self._subscription_loop, args=(self._feed, errors), daemon=True, name="finalized-heads"
        )
        thread.start()
        logger.info("Subscribed to finalized block headers")
        return thread, errors

    def __iter__(self) -> Iterator[BlockDescriptor]:
        last_yielded = None
        backoff = self.reconnect_backoff
        thread, errors = self._start()
        while not self.stop_event.is_set():
            try:
                number = self._queue.get(timeout=1.0)
            except queue.Empty:
                if thread.is_alive():
                    continue
                logger.warning("Header subscription ended: %s", errors["err"] or "closed by node")
                logger.info("Resubscribing in %.2fs...", backoff)
                if self.stop_event.wait(backoff):
                    break
                backoff = min(backoff * 2, self.max_backoff)
                self._feed.close()
                try:
                    self._feed = self.client.spawn()
                except Exception as e:
                    logger.warning("Reconnect failed: %s", e)
                    continue
                thread, errors = self._start()
                continue

            if last_yielded is not None and number <= last_yielded:
                continue
            try:
                identifier = self.client.block_hash(number)
            except Exception as e:
                logger.warning("Failed to fetch hash for block %d: %s", number, e)
                continue
            backoff = self.reconnect_backoff
            last_yielded = number
            yield BlockDescriptor(number, identifier)


def make_block_source(kind: SourceKind, client, *, poll_interval: float = 0.5, stop_event=None):
    if kind is SourceKind.SUBSCRIBE:
        return SubscriptionBlockSource(client, stop_event=stop_event)
    return PollingBlockSource(client, interval=poll_interval, stop_event=stop_event)

import signal
import sys
import threading
from typing import Callable, Optional, Sequence

from burn_register.blocks import make_block_source
from burn_register.chain import SubtensorClient, format_rao, to_rao
from burn_register.config import RegistrationParams, parse_args
from burn_register.errors import ChainConnectionError, KeyParseError
from burn_register.identity import load_identity
from burn_register.logs import setup_logging
from burn_register.scheduler import RegistrationScheduler
from burn_register.submitter import TransactionSubmitter
from burn_register.tracker import FinalizationTracker


def log_costs(logger, client, params: RegistrationParams) -> None:
    # Informational only: the ceiling is never enforced.
    try:
        cost = client.burn_cost(params.netuid)
    except Exception as e:
        logger.warning("Could not read burn cost for netuid %d: %s", params.netuid, e)
        return
    if cost is not None:
        logger.info(
            "Burn cost for netuid %d: %s (ceiling %s, not enforced)",
            params.netuid, format_rao(cost), format_rao(params.max_cost),
        )


def run(
    params: RegistrationParams,
    connect: Callable[[str], SubtensorClient] = SubtensorClient.connect,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """Start the race. Returns the process exit status."""
    logger = setup_logging(params.log_file, params.log_level)
    logger.info("Starting registration script... %r", params)
    stop_event = stop_event or threading.Event()

    # Startup: any failure here ends the process before the first block
    try:
        identity = load_identity(params.coldkey, params.hotkey)
    except KeyParseError as e:
        logger.error("Failed to load keys: %s", e)
        return 1
    logger.info("Coldkey: %s | Hotkey: %s", identity.coldkey_address, identity.hotkey_address)

    try:
        client = connect(params.chain_endpoint)
        blocks = make_block_source(
            params.source, client, poll_interval=params.poll_interval, stop_event=stop_event
        )
    except ChainConnectionError as e:
        logger.error("Error during startup: %s", e)
        return 1

    log_costs(logger, client, params)

    submitter = TransactionSubmitter(
        client, identity, params.netuid, mortality=params.mortality, tip_rao=to_rao(params.tip) if params.tip else 0
    )
    tracker = FinalizationTracker(
        client_factory=client.spawn,
        max_workers=params.max_trackers,
        max_pending=params.max_pending,
        timeout=params.finalization_timeout,
    )
    scheduler = RegistrationScheduler(
        blocks,
        submitter,
        tracker,
        slots=params.slots,
        mode=params.mode,
        exit_on_already_registered=params.exit_on_already_registered,
        stop_event=stop_event,
    )
    scheduler.run()
    logger.info("Registration process completed.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    params = parse_args(argv)
    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    sys.exit(run(params, stop_event=stop_event))


if __name__ == "__main__":
    main()

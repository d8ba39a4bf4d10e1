"""Command line and environment configuration.

Every option can also come from the environment (or a ``.env`` file); the
command line wins.
"""
import argparse
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from burn_register.models import DeploymentMode, SlotConfig, SourceKind

DEFAULT_ENDPOINT = "wss://entrypoint-finney.opentensor.ai:443"
DEFAULT_MAX_COST = 5_000_000_000  # rao, 5 TAO


@dataclass(frozen=True)
class RegistrationParams:
    coldkey: str
    hotkey: str
    netuid: int
    max_cost: int = DEFAULT_MAX_COST
    chain_endpoint: str = DEFAULT_ENDPOINT
    slots: SlotConfig = SlotConfig()
    source: SourceKind = SourceKind.POLL
    poll_interval: float = 0.5
    mode: DeploymentMode = DeploymentMode.CONTINUOUS
    exit_on_already_registered: bool = False
    mortality: int = 256
    tip: float = 0.0
    finalization_timeout: float = 600.0
    max_trackers: int = 4
    max_pending: int = 32
    log_file: Optional[str] = None
    log_level: str = "INFO"

    def __repr__(self):
        # Never echo key material into logs
        return (
            f"RegistrationParams(netuid={self.netuid}, endpoint={self.chain_endpoint!r}, "
            f"slot={self.slots.partition_index}/{self.slots.partition_count}, "
            f"source={self.source.value}, mode={self.mode.value})"
        )


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    env = os.getenv
    p = argparse.ArgumentParser(description="Race burned_register for a hotkey on every block this instance owns")
    p.add_argument("--coldkey", default=env("COLDKEY"), help="Coldkey mnemonic, secret URI or 0x seed (pays the burn)")
    p.add_argument("--hotkey", default=env("HOTKEY"), help="Hotkey mnemonic, secret URI or 0x seed (gets registered)")
    p.add_argument("--netuid", type=int, default=env("NETUID"), help="Subnet UID to register on")
    p.add_argument(
        "--max_cost", type=int, default=int(env("MAX_COST", DEFAULT_MAX_COST)),
        help="Cost ceiling in rao (logged, not enforced)",
    )
    p.add_argument(
        "--chain_endpoint", default=env("RPC_ENDPOINT", DEFAULT_ENDPOINT),
        help=f"Subtensor websocket endpoint (default: {DEFAULT_ENDPOINT})",
    )
    p.add_argument("--slot", type=int, default=int(env("SLOT", 0)), help="Partition index of this instance (default: 0)")
    p.add_argument(
        "--slot_count", type=int, default=int(env("SLOT_COUNT", 1)),
        help="Number of cooperating instances; block N belongs to slot N %% slot_count (default: 1)",
    )
    p.add_argument(
        "--source", choices=[k.value for k in SourceKind], default=env("BLOCK_SOURCE", SourceKind.POLL.value),
        help="Poll the chain head or subscribe to finalized heads (default: poll)",
    )
    p.add_argument("--poll_interval", type=float, default=float(env("POLL_INTERVAL", 0.5)), help="Seconds between head polls")
    p.add_argument(
        "--mode", choices=[m.value for m in DeploymentMode], default=env("MODE", DeploymentMode.CONTINUOUS.value),
        help="continuous: race every owned block forever; single-shot: stop after the first finalized success",
    )
    p.add_argument(
        "--exit_on_already_registered", action="store_true", default=_env_flag("EXIT_ON_ALREADY_REGISTERED"),
        help="Stop once the chain reports the hotkey as already registered",
    )
    p.add_argument("--mortality", type=int, default=int(env("MORTALITY", 256)), help="Extrinsic validity window in blocks")
    p.add_argument("--tip", type=float, default=float(env("TIP", 0.0)), help="Optional tip in TAO (default: 0)")
    p.add_argument(
        "--finalization_timeout", type=float, default=float(env("FINALIZATION_TIMEOUT", 600.0)),
        help="Seconds a tracker waits for finalization before giving up",
    )
    p.add_argument("--max_trackers", type=int, default=int(env("MAX_TRACKERS", 4)), help="Tracker worker threads")
    p.add_argument(
        "--max_pending", type=int, default=int(env("MAX_PENDING", 32)),
        help="Extrinsics watched at once; extra submissions go untracked",
    )
    p.add_argument("--log_file", default=env("LOG_FILE"), help="Optional path to a logfile")
    p.add_argument("--log_level", default=env("LOG_LEVEL", "INFO"), help="DEBUG | INFO | WARNING | ERROR")
    return p


def parse_args(argv: Optional[Sequence[str]] = None) -> RegistrationParams:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    for name in ("coldkey", "hotkey", "netuid"):
        if getattr(args, name) in (None, ""):
            parser.error(f"--{name} is required (or set {name.upper()})")
    try:
        slots = SlotConfig(partition_count=args.slot_count, partition_index=args.slot)
    except ValueError as e:
        parser.error(str(e))
    if args.mortality < 4:
        parser.error("--mortality must be at least 4 blocks")
    if args.max_trackers < 1:
        parser.error("--max_trackers must be at least 1")

    return RegistrationParams(
        coldkey=args.coldkey,
        hotkey=args.hotkey,
        netuid=int(args.netuid),
        max_cost=args.max_cost,
        chain_endpoint=args.chain_endpoint,
        slots=slots,
        source=SourceKind(args.source),
        poll_interval=args.poll_interval,
        mode=DeploymentMode(args.mode),
        exit_on_already_registered=args.exit_on_already_registered,
        mortality=args.mortality,
        tip=args.tip,
        finalization_timeout=args.finalization_timeout,
        max_trackers=args.max_trackers,
        max_pending=args.max_pending,
        log_file=args.log_file,
        log_level=args.log_level,
    )

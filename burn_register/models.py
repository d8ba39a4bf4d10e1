"""Plain data carried between the block source, the scheduler and the trackers."""
import datetime
import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class DeploymentMode(enum.Enum):
    CONTINUOUS = "continuous"
    SINGLE_SHOT = "single-shot"


class SourceKind(enum.Enum):
    POLL = "poll"
    SUBSCRIBE = "subscribe"


class AttemptStatus(enum.Enum):
    PENDING = "pending"
    FINALIZED = "finalized"
    RECOVERABLE = "recoverable"
    ALREADY_DONE = "already_done"
    FATAL = "fatal"


@dataclass(frozen=True)
class BlockDescriptor:
    sequence_number: int
    identifier: str

    def __str__(self):
        return f"#{self.sequence_number} ({self.identifier})"


@dataclass(frozen=True)
class SlotConfig:
    """Which 1-in-N share of blocks this instance submits on."""

    partition_count: int = 1
    partition_index: int = 0

    def __post_init__(self):
        if self.partition_count < 1:
            raise ValueError(f"partition_count must be >= 1, got {self.partition_count}")
        if not 0 <= self.partition_index < self.partition_count:
            raise ValueError(
                f"partition_index must be in [0, {self.partition_count}), got {self.partition_index}"
            )


@dataclass
class SchedulerState:
    last_processed_sequence: Optional[int] = None
    attempt_count: int = 0


@dataclass
class SignedIdentity:
    """Already materialized key pairs. Never generated or persisted here."""

    coldkey: Any
    hotkey: Any

    @property
    def hotkey_address(self) -> str:
        return self.hotkey.ss58_address

    @property
    def coldkey_address(self) -> str:
        return self.coldkey.ss58_address


@dataclass(frozen=True)
class FinalizationResult:
    extrinsic_hash: str
    block_hash: str
    block_number: Optional[int] = None


@dataclass
class RegistrationAttempt:
    block_sequence: int
    submitted_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
    status: AttemptStatus = AttemptStatus.PENDING
    extrinsic_digest: Optional[str] = None
    dispatch_latency: Optional[float] = None
    finalization_latency: Optional[float] = None
    detail: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self.status is not AttemptStatus.PENDING

    def settle(self, status: AttemptStatus, *, extrinsic_digest=None, latency=None, detail=None):
        # An attempt is resolved exactly once.
        if self.settled:
            raise RuntimeError(
                f"attempt for block {self.block_sequence} already settled as {self.status.value}"
            )
        if status is AttemptStatus.PENDING:
            raise ValueError("cannot settle an attempt back to pending")
        self.status = status
        if extrinsic_digest is not None:
            self.extrinsic_digest = extrinsic_digest
        self.finalization_latency = latency
        self.detail = detail

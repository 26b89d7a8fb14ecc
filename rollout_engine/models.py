from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class TargetState(str, Enum):
    PENDING = "pending"
    DRAINING = "draining"
    UPDATING = "updating"
    HEALTH_CHECKING = "health_checking"
    RESTORING = "restoring"
    HEALTHY = "healthy"
    FAILED = "failed"


class RolloutState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Target:
    target_id: str
    state: TargetState = TargetState.PENDING
    error: Optional[Exception] = None

    @property
    def error_kind(self):
        return type(self.error).__name__ if self.error is not None else None


@dataclass(frozen=True)
class Batch:
    index: int
    targets: tuple

    def __len__(self):
        return len(self.targets)

    @property
    def target_ids(self):
        return [t.target_id for t in self.targets]


@dataclass(frozen=True)
class RolloutPlan:
    """Ordered batches covering every target exactly once"""
    batches: tuple

    @classmethod
    def build(cls, target_list, batch_size=1):
        return plan_batches(target_list, batch_size)

    def __len__(self):
        return len(self.batches)

    @property
    def targets(self):
        return [t for b in self.batches for t in b.targets]


def plan_batches(target_ids, batch_size):
    """Split targets into batches, keeping their order"""
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")

    target_list = list(target_ids)
    seen = set()
    for target_id in target_list:
        if target_id in seen:
            raise ValueError(f"duplicate target: {target_id}")
        seen.add(target_id)

    batches = []
    for i in range(0, len(target_list), batch_size):
        targets = tuple(Target(t) for t in target_list[i:i + batch_size])
        batches.append(Batch(index=len(batches), targets=targets))
    return RolloutPlan(batches=tuple(batches))


@dataclass
class RolloutConfig:
    """Configuration for rollout behavior"""
    batch_size: int = 1  # Targets per batch
    health_retries: int = 3  # Health polls before giving up on a target
    health_delay_s: float = 5.0  # Sleep between health polls
    fail_fast: bool = True  # Stop the rollout on the first failed batch
    target_list: list = field(default_factory=list)
    max_concurrency: int = 1  # Targets processed at once inside a batch
    failure_tolerance: int = 0  # Failed targets a batch may absorb and still succeed
    health_status_code: int = 200
    update_timeout_s: Optional[float] = None  # Timeout per node update
    request_timeout_s: float = 10.0  # Timeout for LB and probe HTTP calls
    lb_url: Optional[str] = None
    update_command: list = field(default_factory=list)


@dataclass
class TargetResult:
    target_id: str
    state: TargetState
    error: Optional[Exception] = None

    @property
    def ok(self):
        return self.state == TargetState.HEALTHY


@dataclass
class BatchResult:
    """Outcome of one batch run"""
    index: int
    results: list = field(default_factory=list)  # TargetResult per started target
    skipped: list = field(default_factory=list)  # Target IDs never started
    cancelled: bool = False
    failure_tolerance: int = 0

    @property
    def failed(self):
        return [r.target_id for r in self.results if not r.ok]

    @property
    def updated(self):
        return [r.target_id for r in self.results if r.ok]

    @property
    def succeeded(self):
        return len(self.failed) <= self.failure_tolerance


@dataclass
class RolloutStatus:
    """Aggregate rollout status, written only by the controller"""
    state: RolloutState = RolloutState.IDLE
    batch_index: Optional[int] = None  # Batch currently in flight
    total_batches: int = 0
    targets: dict = field(default_factory=dict)  # target_id -> TargetState
    errors: dict = field(default_factory=dict)  # target_id -> error kind
    cancel_requested: bool = False
    history: list = field(default_factory=list)

    def to_dict(self):
        return {
            "state": self.state.value,
            "batch_index": self.batch_index,
            "total_batches": self.total_batches,
            "targets": {k: v.value for k, v in self.targets.items()},
            "errors": dict(self.errors),
            "cancel_requested": self.cancel_requested,
            "history": [dict(h) for h in self.history],
        }

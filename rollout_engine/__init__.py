from .models import (
    TargetState, RolloutState, Target, Batch, RolloutPlan, RolloutConfig,
    TargetResult, BatchResult, RolloutStatus, plan_batches
)
from .errors import TargetError, DrainError, UpdateError, HealthCheckTimeout, RestoreError
from .health import HealthChecker, HttpHealthProbe, SimulatedHealthProbe
from .traffic import TrafficController, HttpTrafficController, InMemoryTrafficController
from .updater import NodeUpdater, CommandNodeUpdater, SimulatedNodeUpdater
from .scheduler import BatchScheduler
from .controller import RolloutController
from .failure import FailureInjector

__all__ = [
    "TargetState", "RolloutState", "Target", "Batch", "RolloutPlan", "RolloutConfig",
    "TargetResult", "BatchResult", "RolloutStatus", "plan_batches",
    "TargetError", "DrainError", "UpdateError", "HealthCheckTimeout", "RestoreError",
    "HealthChecker", "HttpHealthProbe", "SimulatedHealthProbe",
    "TrafficController", "HttpTrafficController", "InMemoryTrafficController",
    "NodeUpdater", "CommandNodeUpdater", "SimulatedNodeUpdater",
    "BatchScheduler", "RolloutController", "FailureInjector"
]

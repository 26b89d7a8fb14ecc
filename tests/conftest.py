import asyncio
import pytest
from rollout_engine.controller import RolloutController
from rollout_engine.failure import FailureInjector
from rollout_engine.health import HealthChecker, SimulatedHealthProbe
from rollout_engine.models import RolloutConfig
from rollout_engine.traffic import InMemoryTrafficController
from rollout_engine.updater import SimulatedNodeUpdater


class FakeSleep:
    """Records requested sleeps instead of waiting"""

    def __init__(self):
        self.slept = []

    async def __call__(self, seconds):
        self.slept.append(seconds)
        await asyncio.sleep(0)

    @property
    def total(self):
        return sum(self.slept)


class Rig:
    """In-memory traffic, updater and health probe wired into a controller"""

    def __init__(self, targets, fail_attempts=None, unhealthy_polls=None, delay=0.0, **config):
        config.setdefault("health_retries", 3)
        config.setdefault("health_delay_s", 1.0)
        self.config = RolloutConfig(target_list=list(targets), **config)
        self.injector = FailureInjector(fail_attempts=fail_attempts, delay=delay)
        self.traffic = InMemoryTrafficController(serving=targets, failure_injector=self.injector)
        self.updater = SimulatedNodeUpdater(self.injector)
        self.probe = SimulatedHealthProbe(unhealthy_polls=unhealthy_polls)
        self.sleep = FakeSleep()
        self.health = HealthChecker(self.probe, sleep=self.sleep)
        self.controller = RolloutController(self.traffic, self.updater, self.health, self.config)

    def calls_for(self, target_id):
        return [step for step, t in self.traffic.calls if t == target_id]


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def rig():
    return Rig

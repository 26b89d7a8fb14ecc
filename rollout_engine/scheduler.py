import asyncio

from .errors import TargetError, UpdateError
from .logger import get_logger
from .models import BatchResult, RolloutConfig, TargetResult, TargetState, plan_batches


class BatchScheduler:
    """Runs drain -> update -> health check -> restore for every target of a batch"""

    def __init__(self, traffic, updater, health_checker, config=None, on_transition=None):
        self.traffic = traffic
        self.updater = updater
        self.health_checker = health_checker
        self.config = config if config else RolloutConfig()
        self.on_transition = on_transition
        self.in_flight = None
        self.logger = get_logger("scheduler")

    plan_batches = staticmethod(plan_batches)

    def _transition(self, target, state):
        target.state = state
        if self.on_transition:
            self.on_transition(target)

    async def _apply(self, target_id):
        timeout = self.config.update_timeout_s
        try:
            if timeout and timeout > 0:
                await asyncio.wait_for(self.updater.apply(target_id), timeout=timeout)
            else:
                await self.updater.apply(target_id)
        except asyncio.TimeoutError:
            raise UpdateError(target_id, f"update timed out after {timeout}s")
        except UpdateError:
            raise
        except Exception as e:
            raise UpdateError(target_id, str(e)) from e

    async def _run_target(self, target):
        """One target's full sequence. Never restores a target that failed before restore."""
        target.error = None
        try:
            self._transition(target, TargetState.DRAINING)
            async with self.traffic.drained(target.target_id) as lease:
                self._transition(target, TargetState.UPDATING)
                await self._apply(target.target_id)

                self._transition(target, TargetState.HEALTH_CHECKING)
                await self.health_checker.wait_healthy(
                    target.target_id, self.config.health_retries, self.config.health_delay_s
                )

                self._transition(target, TargetState.RESTORING)
                lease.release_to_traffic()
        except TargetError as e:
            target.error = e
            self._transition(target, TargetState.FAILED)
            self.logger.warning(f"Target {target.target_id} failed: {type(e).__name__}: {e}")
            return TargetResult(target.target_id, TargetState.FAILED, e)

        self._transition(target, TargetState.HEALTHY)
        self.logger.info(f"Target {target.target_id} updated and back in rotation")
        return TargetResult(target.target_id, TargetState.HEALTHY)

    async def run_batch(self, batch, cancelled=None):
        """Process one batch.

        ``cancelled`` is polled before each target starts; a target that has
        started always runs its whole sequence.
        """
        if self.in_flight is not None:
            raise RuntimeError(f"batch {self.in_flight} is still in flight")

        config = self.config
        result = BatchResult(index=batch.index, failure_tolerance=config.failure_tolerance)
        semaphore = asyncio.Semaphore(max(1, config.max_concurrency))
        order = batch.target_ids

        async def worker(target):
            async with semaphore:
                # Already done by an earlier run of this plan
                if target.state == TargetState.HEALTHY:
                    return
                if cancelled is not None and cancelled():
                    result.cancelled = True
                    result.skipped.append(target.target_id)
                    return
                if config.fail_fast and len(result.failed) > config.failure_tolerance:
                    result.skipped.append(target.target_id)
                    return
                result.results.append(await self._run_target(target))

        self.in_flight = batch.index
        self.logger.info(f"Running batch {batch.index + 1} with {len(batch)} targets: {order}")
        try:
            await asyncio.gather(*(worker(t) for t in batch.targets))
        finally:
            self.in_flight = None

        result.results.sort(key=lambda r: order.index(r.target_id))
        result.skipped.sort(key=order.index)

        self.logger.info(
            f"Batch {batch.index + 1} done: {len(result.updated)} updated, "
            f"{len(result.failed)} failed, {len(result.skipped)} not started"
        )
        return result

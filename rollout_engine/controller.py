import copy

from .logger import get_logger
from .models import RolloutConfig, RolloutPlan, RolloutState, RolloutStatus, TargetState
from .scheduler import BatchScheduler

IN_FLIGHT_STATES = (
    TargetState.DRAINING,
    TargetState.UPDATING,
    TargetState.HEALTH_CHECKING,
    TargetState.RESTORING,
)


class RolloutController:
    """Drives a rollout plan batch by batch and owns the rollout status.

    State machine: idle -> running -> succeeded | failed | cancelled.
    Batches never overlap. A failed batch under fail-fast stops the rollout
    before any later batch is drained; completed batches are kept as they are.
    """

    def __init__(self, traffic, updater, health_checker, config=None):
        self.config = config if config else RolloutConfig()
        self.scheduler = BatchScheduler(
            traffic, updater, health_checker, self.config, on_transition=self._record_transition
        )
        self.status = RolloutStatus()
        self.plan = None
        self.results = []
        self.logger = get_logger("controller")

    def _event(self, event, **fields):
        entry = {"event": event}
        entry.update(fields)
        self.status.history.append(entry)

    def _record_transition(self, target):
        self.status.targets[target.target_id] = target.state
        if target.state == TargetState.FAILED:
            self.status.errors[target.target_id] = target.error_kind
            self._event("target_failed", target=target.target_id,
                        error=target.error_kind, message=str(target.error))

    def _finish(self, state):
        self.status.state = state
        self.status.batch_index = None
        self._event("rollout_finished", state=state.value)

    def snapshot(self):
        """Detached copy of the current status, safe to hand to other callers"""
        return copy.deepcopy(self.status)

    def cancel(self):
        """Stop starting new target sequences; the in-flight ones finish first"""
        if self.status.state != RolloutState.RUNNING:
            raise RuntimeError(f"cannot cancel a rollout in state {self.status.state.value}")
        if not self.status.cancel_requested:
            self.logger.warning("Cancel requested, waiting for in-flight targets to finish")
            self.status.cancel_requested = True
            self._event("cancel_requested", batch=self.status.batch_index)

    async def start(self, plan=None):
        """Run a rollout plan to a terminal state and return the final status"""
        if self.status.state == RolloutState.RUNNING:
            error_msg = "rollout already in progress"
            self.logger.error(error_msg)
            raise RuntimeError(error_msg)

        if plan is None:
            plan = RolloutPlan.build(self.config.target_list, self.config.batch_size)

        for target in plan.targets:
            target.state = TargetState.PENDING
            target.error = None

        self.plan = plan
        self.results = []
        self.status = RolloutStatus(
            state=RolloutState.RUNNING,
            total_batches=len(plan),
            targets={t.target_id: t.state for t in plan.targets},
        )
        self.logger.info(f"Starting rollout of {len(plan.targets)} targets in {len(plan)} batches")
        self._event("rollout_start", targets=len(plan.targets), batches=len(plan))
        return await self._run(0)

    async def resume(self):
        """Continue a failed or cancelled rollout from its first unfinished batch"""
        if self.status.state not in (RolloutState.FAILED, RolloutState.CANCELLED):
            raise RuntimeError(f"cannot resume a rollout in state {self.status.state.value}")

        for target in self.plan.targets:
            if target.state == TargetState.FAILED:
                target.state = TargetState.PENDING
                target.error = None
                self.status.targets[target.target_id] = target.state
                self.status.errors.pop(target.target_id, None)

        start_index = len(self.plan)
        for batch in self.plan.batches:
            if any(t.state != TargetState.HEALTHY for t in batch.targets):
                start_index = batch.index
                break

        self.status.state = RolloutState.RUNNING
        self.status.cancel_requested = False
        self.logger.info(f"Resuming rollout at batch {start_index + 1}/{len(self.plan)}")
        self._event("rollout_resumed", batch=start_index)
        return await self._run(start_index)

    async def _run(self, start_index):
        try:
            return await self._run_batches(start_index)
        except Exception as e:
            self._abandon(e)
            raise

    def _abandon(self, error):
        """Finish as failed after an error outside the target error types"""
        for target in self.plan.targets:
            if target.state in IN_FLIGHT_STATES:
                target.state = TargetState.FAILED
                target.error = error
                self._record_transition(target)
        self.logger.error(f"ROLLOUT ABORTED: {type(error).__name__}: {error}")
        self._event("error", batch=self.status.batch_index,
                    error=type(error).__name__, message=str(error))
        self._finish(RolloutState.FAILED)

    async def _run_batches(self, start_index):
        any_failed = False

        for batch in self.plan.batches[start_index:]:
            if self.status.cancel_requested:
                break

            self.status.batch_index = batch.index
            self._event("batch_start", batch=batch.index, targets=batch.target_ids)
            result = await self.scheduler.run_batch(batch, cancelled=lambda: self.status.cancel_requested)
            self.results.append(result)
            self._event("batch_completed", batch=batch.index, updated=result.updated,
                        failed=result.failed, skipped=result.skipped)

            if not result.succeeded:
                any_failed = True
                if self.config.fail_fast:
                    self.logger.error(
                        f"ROLLOUT ABORTED: batch {batch.index + 1} failed for {result.failed}, "
                        f"{len(self.plan) - batch.index - 1} batches left untouched"
                    )
                    self._event("abort", batch=batch.index, reason="batch failed", failed=result.failed)
                    self._finish(RolloutState.FAILED)
                    return self.snapshot()

        if self.status.cancel_requested:
            self.logger.warning("Rollout cancelled")
            self._event("cancelled", batch=self.status.batch_index)
            self._finish(RolloutState.CANCELLED)
        elif any_failed:
            self.logger.warning(f"PARTIAL SUCCESS: failed targets {sorted(self.status.errors)}")
            self._finish(RolloutState.FAILED)
        else:
            self.logger.info(f"SUCCESS: rollout completed for {len(self.plan.targets)} targets")
            self._finish(RolloutState.SUCCEEDED)
        return self.snapshot()

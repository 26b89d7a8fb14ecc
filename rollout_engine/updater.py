import asyncio

from .errors import UpdateError
from .logger import get_logger


class NodeUpdater:
    """Applies the configuration change to one target. Must be idempotent."""

    async def apply(self, target_id):
        raise NotImplementedError


class CommandNodeUpdater(NodeUpdater):
    """Runs an external provisioning command, e.g.
    ``["ansible-playbook", "site.yml", "--limit", "{target}"]``.
    """

    def __init__(self, command):
        if not command:
            raise ValueError("update command must not be empty")
        self.command = list(command)
        self.logger = get_logger("updater")

    def argv(self, target_id):
        return [part.replace("{target}", target_id) for part in self.command]

    async def apply(self, target_id):
        argv = self.argv(target_id)
        self.logger.info(f"Updating {target_id}: {' '.join(argv)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise UpdateError(target_id, f"cannot run {argv[0]}: {e}") from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            tail = stderr.decode(errors="replace").strip()[-500:]
            raise UpdateError(target_id, f"exit code {proc.returncode}: {tail}")
        self.logger.debug(f"Update output for {target_id}: {stdout.decode(errors='replace').strip()[-500:]}")


class SimulatedNodeUpdater(NodeUpdater):
    def __init__(self, failure_injector=None):
        self.failure_injector = failure_injector
        self.applied = []

    async def apply(self, target_id):
        if self.failure_injector is not None:
            delay = self.failure_injector.delay_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            if self.failure_injector.should_fail("update", target_id):
                raise UpdateError(target_id, "simulated update failure")
        self.applied.append(target_id)

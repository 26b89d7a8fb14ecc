import asyncio
from contextlib import asynccontextmanager
from urllib.parse import quote

import httpx

from .errors import DrainError, RestoreError
from .logger import get_logger


class DrainLease:
    """Handed out while a target is drained; mark it ready to put the target back"""

    def __init__(self, target_id):
        self.target_id = target_id
        self.ready = False

    def release_to_traffic(self):
        self.ready = True


class TrafficController:
    """Load balancer adapter. drain/restore must be idempotent."""

    def __init__(self):
        self.logger = get_logger("traffic")

    async def drain(self, target_id):
        raise NotImplementedError

    async def restore(self, target_id):
        raise NotImplementedError

    @asynccontextmanager
    async def drained(self, target_id):
        """Drain on entry; restore on exit only if the lease was marked ready.

        A target whose update or health check failed is never put back into
        rotation.
        """
        await self.drain(target_id)
        lease = DrainLease(target_id)
        try:
            yield lease
        finally:
            if lease.ready:
                await self.restore(target_id)
            else:
                self.logger.warning(f"Leaving {target_id} out of rotation")


class HttpTrafficController(TrafficController):
    """POST /api/drain/{target} and POST /api/add/{target}; any 2xx is success"""

    def __init__(self, base_url, timeout=10.0, client=None):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    def _url(self, action, target_id):
        return f"{self.base_url}/api/{action}/{quote(target_id, safe=':')}"

    async def _post(self, action, target_id, error_cls):
        url = self._url(action, target_id)
        try:
            response = await self.client.post(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise error_cls(target_id, f"load balancer unreachable: {e}") from e
        if not response.is_success:
            raise error_cls(target_id, f"load balancer returned {response.status_code}")
        self.logger.debug(f"POST {url} -> {response.status_code}")

    async def drain(self, target_id):
        self.logger.info(f"Draining {target_id}")
        await self._post("drain", target_id, DrainError)

    async def restore(self, target_id):
        self.logger.info(f"Restoring {target_id}")
        await self._post("add", target_id, RestoreError)

    async def aclose(self):
        await self.client.aclose()


class InMemoryTrafficController(TrafficController):
    """Keeps the serving set in memory; used for simulated rollouts"""

    def __init__(self, serving=None, failure_injector=None):
        super().__init__()
        self.serving = set(serving or ())
        self.failure_injector = failure_injector
        self.calls = []

    async def _maybe_fail(self, step, target_id, error_cls):
        if self.failure_injector is None:
            return
        delay = self.failure_injector.delay_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        if self.failure_injector.should_fail(step, target_id):
            raise error_cls(target_id, f"simulated {step} failure")

    async def drain(self, target_id):
        self.calls.append(("drain", target_id))
        await self._maybe_fail("drain", target_id, DrainError)
        self.serving.discard(target_id)

    async def restore(self, target_id):
        self.calls.append(("restore", target_id))
        await self._maybe_fail("restore", target_id, RestoreError)
        self.serving.add(target_id)

    def is_serving(self, target_id):
        return target_id in self.serving

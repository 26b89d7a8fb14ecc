import asyncio

import httpx

from .errors import HealthCheckTimeout
from .logger import get_logger


class HealthChecker:
    """Polls a health probe until the target reports healthy"""

    def __init__(self, probe, sleep=asyncio.sleep):
        self.probe = probe
        self.sleep = sleep
        self.logger = get_logger("health")

    async def wait_healthy(self, target_id, retries, delay):
        if retries < 1:
            raise ValueError("retries must be >= 1")

        for attempt in range(1, retries + 1):
            try:
                healthy = await self.probe(target_id)
            except Exception as e:
                # Transient startup errors are "not yet healthy"
                self.logger.debug(f"Probe error for {target_id} on attempt {attempt}: {e}")
                healthy = False

            if healthy:
                self.logger.info(f"Target {target_id} healthy after {attempt} attempt(s)")
                return attempt

            self.logger.debug(f"Target {target_id} not healthy yet ({attempt}/{retries})")
            if attempt < retries:
                await self.sleep(delay)

        self.logger.warning(f"Target {target_id} never became healthy after {retries} attempts")
        raise HealthCheckTimeout(target_id, retries)


class HttpHealthProbe:
    """GET {target}/health, healthy when the configured status code comes back"""

    def __init__(self, expected_status=200, timeout=10.0, client=None):
        self.expected_status = expected_status
        self.timeout = timeout
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger("health")

    @staticmethod
    def health_url(target_id):
        base = target_id if "://" in target_id else f"http://{target_id}"
        return f"{base.rstrip('/')}/health"

    async def __call__(self, target_id):
        url = self.health_url(target_id)
        try:
            response = await self.client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            self.logger.debug(f"Health probe {url} failed: {e}")
            return False
        return response.status_code == self.expected_status

    async def aclose(self):
        await self.client.aclose()


class SimulatedHealthProbe:
    """Reports a target healthy once it has been polled ``unhealthy_polls[id] + 1`` times"""

    def __init__(self, unhealthy_polls=None, failure_injector=None):
        self.unhealthy_polls = unhealthy_polls or {}
        self.failure_injector = failure_injector
        self.polls = {}

    async def __call__(self, target_id):
        self.polls[target_id] = self.polls.get(target_id, 0) + 1
        if self.failure_injector and self.failure_injector.should_fail("health", target_id):
            return False
        return self.polls[target_id] > self.unhealthy_polls.get(target_id, 0)

class FailureInjector:
    """Deterministic failures for simulated adapters.

    ``fail_attempts`` maps a step name (``drain``, ``update``, ``health``,
    ``restore``) to ``{target_id: n}``: the first ``n`` calls of that step for
    that target fail.
    """

    STEPS = ("drain", "update", "health", "restore")

    def __init__(self, fail_attempts=None, delay=0):
        self.fail_map = fail_attempts or {}
        unknown = set(self.fail_map) - set(self.STEPS)
        if unknown:
            raise ValueError(f"unknown steps: {sorted(unknown)}")
        self.delay = delay
        self.attempts = {}

    def delay_seconds(self):
        return self.delay

    def should_fail(self, step, target_id):
        key = (step, target_id)
        self.attempts[key] = self.attempts.get(key, 0) + 1
        return self.attempts[key] <= self.fail_map.get(step, {}).get(target_id, 0)

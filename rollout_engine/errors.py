class TargetError(Exception):
    """Failure of one step of a target's drain/update/health/restore sequence"""

    def __init__(self, target_id, message):
        super().__init__(f"{target_id}: {message}")
        self.target_id = target_id


class DrainError(TargetError):
    pass


class UpdateError(TargetError):
    pass


class HealthCheckTimeout(TargetError):
    def __init__(self, target_id, attempts):
        super().__init__(target_id, f"not healthy after {attempts} attempts")
        self.attempts = attempts


class RestoreError(TargetError):
    pass

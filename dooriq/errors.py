"""Exceptions raised by the simulation core."""


class SimulationError(Exception):
    """Base class. `code` is the machine-readable API error code."""

    code = "SIMULATION_ERROR"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(SimulationError):
    """Rejected before any state change."""

    code = "BAD_REQUEST"
    status_code = 400


class AttemptNotFoundError(SimulationError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt '{attempt_id}' not found")


class TerminalStateError(SimulationError):
    """A step arrived after the conversation reached TERMINAL."""

    code = "ATTEMPT_TERMINAL"
    status_code = 409

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt '{attempt_id}' is terminal; call end instead")


class StaleAttemptError(SimulationError):
    """Optimistic version check failed."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, attempt_id: str, expected_version: int):
        self.attempt_id = attempt_id
        self.expected_version = expected_version
        super().__init__(
            f"Attempt '{attempt_id}' was modified concurrently (expected version {expected_version})"
        )


class UpstreamError(SimulationError):
    """Language-model call failed after retries."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502

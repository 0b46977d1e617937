"""runtrack exception hierarchy."""

from __future__ import annotations


class RuntrackError(Exception):
    """Base exception for all runtrack errors."""


class ValidationError(RuntrackError):
    """Input could not be parsed or is not acceptable."""


class InvalidStateError(ValidationError):
    """Value is not a member of the workflow state enumeration."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Unknown workflow state: {value!r}")


class InvalidTransitionError(ValidationError):
    """Transition rejected by strict transition checking."""

    def __init__(self, run_number: int, current: str, requested: str) -> None:
        self.run_number = run_number
        self.current = current
        self.requested = requested
        super().__init__(
            f"Run {run_number}: transition {current!r} -> {requested!r} is not allowed"
        )


class NotFoundError(RuntrackError):
    """Requested record does not exist."""


class RunNotFoundError(NotFoundError):
    """No run with the given run number."""

    def __init__(self, run_number: int) -> None:
        self.run_number = run_number
        super().__init__(f"Run {run_number} not found")


class StepNotFoundError(NotFoundError):
    """No processing step for the (run, step) pair."""

    def __init__(self, run_number: int, step_number: int) -> None:
        self.run_number = run_number
        self.step_number = step_number
        super().__init__(f"Step {step_number} of run {run_number} not found")


class UnauthorizedError(RuntrackError):
    """Missing or invalid session credential."""


class StoreError(RuntrackError):
    """Canonical store operation failed (constraint violation, connectivity)."""


class MirrorError(RuntrackError):
    """Mirror unreachable or write rejected."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Mirror {path!r}: {message}")


class MirrorConflictError(MirrorError):
    """Mirror token is stale; the content changed since it was fetched."""

    def __init__(self, path: str) -> None:
        super().__init__(path, "stale token, content changed since fetch")


class OutboxError(RuntrackError):
    """Push outbox operation failed."""

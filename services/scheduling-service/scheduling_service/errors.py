from enum import Enum


class SchedulingError(Exception):
    status_code = 400
    error = "scheduling_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.error, "detail": self.detail}


class ValidationError(SchedulingError):
    status_code = 400
    error = "validation_error"


class NotFoundError(SchedulingError):
    status_code = 404
    error = "not_found"


class OwnershipError(SchedulingError):
    status_code = 403
    error = "ownership_error"

    def __init__(self, detail: str, expected: str):
        super().__init__(detail)
        self.expected = expected

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["expected"] = self.expected
        return body


class TransitionError(SchedulingError):
    status_code = 400
    error = "transition_error"

    def __init__(self, current: str, attempted: str, detail: str | None = None):
        super().__init__(detail or f"Cannot move booking from {current} to {attempted}")
        self.current = current
        self.attempted = attempted

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["current"] = self.current
        body["attempted"] = self.attempted
        return body


class ConflictReason(str, Enum):
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    BLACKED_OUT = "BLACKED_OUT"
    DOUBLE_BOOKED = "DOUBLE_BOOKED"


class ConflictError(SchedulingError):
    error = "conflict"

    def __init__(self, reason: ConflictReason, detail: str):
        super().__init__(detail)
        self.reason = reason

    @property
    def status_code(self) -> int:
        # outside-hours and blackout are bad requests, only a real clash is a 409
        return 409 if self.reason == ConflictReason.DOUBLE_BOOKED else 400

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["reason"] = self.reason.value
        return body


class DependencyError(SchedulingError):
    status_code = 502
    error = "dependency_error"

    def to_dict(self) -> dict:
        return {"error": self.error, "detail": "An upstream service failed"}

# app/jobs/errors.py
from __future__ import annotations

from typing import Any, Iterable


class JobEngineError(Exception):
    """Base for every error the job/payout engine reports to its caller."""

    code = "JOB_ENGINE_ERROR"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = {k: v for k, v in detail.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.detail}


class NotFound(JobEngineError):
    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=str(entity_id),
        )


class InvalidTransition(JobEngineError):
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        *,
        action: str,
        current_state: Any,
        expected: Iterable[Any] | None = None,
        reason: str | None = None,
    ):
        current = getattr(current_state, "value", current_state)
        expected_values = sorted(getattr(s, "value", s) for s in expected) if expected else None
        msg = f"Cannot {action} job with status {current}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(
            msg,
            action=action,
            current_state=current,
            expected=expected_values,
            reason=reason,
        )
        self.action = action
        self.current_state = current
        self.expected = expected_values


class ConflictError(JobEngineError):
    code = "CONFLICT"

    def __init__(self, job_id: Any, action: str):
        super().__init__(
            f"Job {job_id} changed while applying {action}; reload and retry",
            job_id=str(job_id),
            action=action,
        )


class ValidationError(JobEngineError):
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}", field=field)
        self.field = field


class PricingUnavailable(JobEngineError):
    code = "PRICING_UNAVAILABLE"

    def __init__(self, job_id: Any, reason: str = "no final price computed"):
        super().__init__(f"Job {job_id} has no financial data: {reason}", job_id=str(job_id))

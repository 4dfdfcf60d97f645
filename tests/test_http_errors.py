import pytest

from app.jobs.errors import (
    ConflictError,
    InvalidTransition,
    JobEngineError,
    NotFound,
    PricingUnavailable,
    ValidationError,
)
from services.http_errors import ENGINE_ERROR_HTTP_MAP, status_for


@pytest.mark.parametrize(
    "exc,status",
    [
        (NotFound("job", "j-1"), 404),
        (InvalidTransition(action="start", current_state="submitted"), 409),
        (ConflictError("j-1", "accept"), 409),
        (ValidationError("cause_code", "bad"), 422),
        (PricingUnavailable("j-1"), 409),
    ],
)
def test_engine_errors_map_to_http_status(exc, status):
    assert status_for(exc) == status
    assert exc.code in ENGINE_ERROR_HTTP_MAP


def test_unknown_code_fails_closed():
    assert status_for(JobEngineError("boom")) == 500


def test_error_payload_carries_detail():
    exc = InvalidTransition(action="complete", current_state="assigned", expected=["in_progress"])
    payload = exc.to_dict()
    assert payload["code"] == "INVALID_TRANSITION"
    assert payload["expected"] == ["in_progress"]
    assert payload["message"] == "Cannot complete job with status assigned"
    assert "reason" not in payload

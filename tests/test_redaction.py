import logging

from services.redaction import REDACTED, is_sensitive_key, redact_dict, redact_text, redact_value


def test_redact_text_masks_email_and_bearer_tokens():
    text = "Contractor jane.doe@example.com sent Bearer abcdef"
    redacted = redact_text(text)
    assert "jane.doe@example.com" not in redacted
    assert "abcdef" not in redacted
    assert "j***@example.com" in redacted
    assert REDACTED in redacted


def test_redact_dict_masks_sensitive_keys():
    payload = {
        "email": "jane@example.com",
        "access_token": "abc",
        "refresh_token": "def",
        "X-Signature": "sha256=deadbeef",
        "Authorization": "Bearer xyz",
        "contractor_payout": "315.15",
    }
    redacted = redact_dict(payload)
    assert redacted["email"] == "j***@example.com"
    assert redacted["access_token"] == REDACTED
    assert redacted["refresh_token"] == REDACTED
    assert redacted["X-Signature"] == REDACTED
    assert redacted["Authorization"] == REDACTED
    assert redacted["contractor_payout"] == "315.15"


def test_redact_value_walks_lists():
    out = redact_value([{"secret": "s"}, "a@b.co", 3])
    assert out == [{"secret": REDACTED}, "a***@b.co", 3]


def test_sensitive_key_detection_is_case_insensitive():
    assert is_sensitive_key("API_KEY")
    assert is_sensitive_key("client_secret")
    assert not is_sensitive_key("status")


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    msg = redact_text("email jane@example.com token Bearer abcdef")
    logger.info("payload=%s", msg)
    assert "jane@example.com" not in caplog.text
    assert "abcdef" not in caplog.text

import logging

from services.redaction import mask_msisdn, redact_dict, redact_text


def test_redact_text_masks_phone_email_and_tokens():
    text = "User player@example.com phone 254712345678 token Bearer abcdef"
    redacted = redact_text(text)
    assert "player@example.com" not in redacted
    assert "254712345678" not in redacted
    assert redacted == "[REDACTED]"


def test_redact_text_masks_phone_without_secrets():
    assert redact_text("msisdn 712345678 ok") == "msisdn 712****78 ok"


def test_redact_dict_masks_airtel_secrets():
    payload = {
        "pin": "enc-pin-1234",
        "client_secret": "s3cret",
        "access_token": "abc",
        "Authorization": "Bearer abc",
        "payee": {"msisdn": "712345678", "currency": "KES"},
        "reference": "MiniBet17000000000001234",
    }
    redacted = redact_dict(payload)
    assert redacted["pin"] == "[REDACTED]"
    assert redacted["client_secret"] == "[REDACTED]"
    assert redacted["access_token"] == "[REDACTED]"
    assert redacted["Authorization"] == "[REDACTED]"
    assert redacted["payee"] == {"msisdn": "712****78", "currency": "KES"}
    assert redacted["reference"] == "MiniBet17000000000001234"


def test_mask_msisdn_short_values_untouched():
    assert mask_msisdn("12345") == "12345"
    assert mask_msisdn("0712345678") == "071****78"


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    msg = redact_text("email player@example.com phone 254712345678 token Bearer abcdef")
    logger.info("payload=%s", msg)
    assert "player@example.com" not in caplog.text
    assert "254712345678" not in caplog.text

import json
import logging

from fieldcrypt.domain.encryption.field_encryption import FieldEncryption
from fieldcrypt.logging_hardening import SecretRedactionFilter, redact


def _record(msg, *args):
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


def test_redacts_json_envelope():
    wire = FieldEncryption("k").encrypt_field("secret").to_dict()
    text = redact(json.dumps(wire))

    for component in ("data", "iv", "salt", "tag"):
        assert wire[component] not in text
    assert '"iv": "[REDACTED]"' in text
    assert "AES-256-GCM" in text


def test_filter_redacts_msg_and_args():
    wire = FieldEncryption("k").encrypt_field("secret").to_dict()
    record = _record("stored %s", wire)

    assert SecretRedactionFilter().filter(record) is True
    rendered = record.getMessage()
    assert wire["salt"] not in rendered
    assert "'salt': '[REDACTED]'" in rendered


def test_keyword_form():
    record = _record("iv=AAAAAAAAAAAAAAAAAAAAAA== tag=BBBB")
    SecretRedactionFilter().filter(record)
    assert record.getMessage() == "iv=[REDACTED] tag=[REDACTED]"


def test_unrelated_messages_untouched():
    record = _record("Loaded master key: %s", "v1")
    SecretRedactionFilter().filter(record)
    assert record.getMessage() == "Loaded master key: v1"

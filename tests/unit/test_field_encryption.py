"""Tests for FieldEncryption."""
import asyncio
import base64
import copy
import pytest

from fieldcrypt.adapters.keys.static_provider import StaticKeyRing
from fieldcrypt.domain.encryption.field_encryption import FieldEncryption, decode_plaintext
from fieldcrypt.domain.encryption.models import ALGORITHM_AES_256_GCM, EncryptedField
from fieldcrypt.errors import (
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    FieldShapeError,
    UnknownKeyError,
)


@pytest.fixture
def enc():
    return FieldEncryption("test-master-key")


def _flip_bit(b64: str, index: int = 0) -> str:
    raw = bytearray(base64.b64decode(b64))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.mark.parametrize("plaintext", [
    "",
    "hello",
    "a@b.com",
    "Grüße, 東京 🚧",
    "x" * 5000,
])
def test_round_trip(enc, plaintext):
    envelope = enc.encrypt_field(plaintext)
    assert enc.decrypt_field(envelope) == plaintext


def test_envelope_shape(enc):
    envelope = enc.encrypt_field("permit-1234")

    assert envelope.algorithm == ALGORITHM_AES_256_GCM
    assert envelope.key_id == "default"
    assert len(base64.b64decode(envelope.iv)) == 16
    assert len(base64.b64decode(envelope.salt)) == 32
    assert len(base64.b64decode(envelope.tag)) == 16
    assert base64.b64decode(envelope.data) != b"permit-1234"

    wire = envelope.to_dict()
    assert set(wire) == {"data", "iv", "salt", "tag", "algorithm", "keyId"}
    assert wire["keyId"] == "default"


def test_explicit_key_id_is_stamped():
    enc = FieldEncryption(key_ring=StaticKeyRing("k", key_id="v2"))
    assert enc.encrypt_field("x").key_id == "v2"
    assert enc.encrypt_field("x", key_id="v2").key_id == "v2"


def test_ciphertext_is_not_deterministic(enc):
    a = enc.encrypt_field("same plaintext")
    b = enc.encrypt_field("same plaintext")

    assert a.iv != b.iv
    assert a.salt != b.salt
    assert a.data != b.data
    assert enc.decrypt_field(a) == enc.decrypt_field(b) == "same plaintext"


def test_decrypt_accepts_wire_mapping(enc):
    wire = enc.encrypt_field("from the database").to_dict()
    assert enc.decrypt_field(wire) == "from the database"

    snake = dict(wire)
    snake["key_id"] = snake.pop("keyId")
    assert enc.decrypt_field(snake) == "from the database"


@pytest.mark.parametrize("component", ["data", "tag"])
def test_tamper_detection(enc, component):
    wire = enc.encrypt_field("do not touch").to_dict()
    wire[component] = _flip_bit(wire[component])

    with pytest.raises(DecryptionError):
        enc.decrypt_field(wire)


def test_tampered_salt_or_iv_fails(enc):
    wire = enc.encrypt_field("do not touch").to_dict()
    for component in ("salt", "iv"):
        tampered = dict(wire)
        tampered[component] = _flip_bit(wire[component], index=3)
        with pytest.raises(DecryptionError):
            enc.decrypt_field(tampered)


def test_wrong_key_rejected(enc):
    envelope = enc.encrypt_field("sensitive")
    other = FieldEncryption("a-different-master-key")

    with pytest.raises(DecryptionError, match="tag mismatch"):
        other.decrypt_field(envelope)


def test_unknown_key_id_rejected(enc):
    wire = enc.encrypt_field("sensitive").to_dict()
    wire["keyId"] = "retired-2019"

    with pytest.raises(UnknownKeyError):
        enc.decrypt_field(wire)


def test_unknown_algorithm_rejected(enc):
    wire = enc.encrypt_field("sensitive").to_dict()
    wire["algorithm"] = "AES-128-CBC"

    with pytest.raises(DecryptionError, match="Unsupported algorithm"):
        enc.decrypt_field(wire)


def test_malformed_base64_rejected(enc):
    wire = enc.encrypt_field("sensitive").to_dict()
    wire["iv"] = "not*base64"

    with pytest.raises(DecryptionError):
        enc.decrypt_field(wire)


def test_wrong_component_length_rejected(enc):
    wire = enc.encrypt_field("sensitive").to_dict()
    wire["iv"] = base64.b64encode(b"\x00" * 12).decode("ascii")

    with pytest.raises(DecryptionError, match="must be 16 bytes"):
        enc.decrypt_field(wire)


def test_missing_attributes_is_shape_error(enc):
    with pytest.raises(FieldShapeError):
        enc.decrypt_field({"data": "AAAA"})
    with pytest.raises(FieldShapeError):
        enc.decrypt_field("just a string")


def test_non_string_plaintext_rejected(enc):
    with pytest.raises(EncryptionError):
        enc.encrypt_field(42)  # type: ignore[arg-type]


def test_encrypt_with_unloaded_key_rejected(enc):
    with pytest.raises(EncryptionError, match="unknown key"):
        enc.encrypt_field("x", key_id="nope")


def test_empty_master_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        FieldEncryption("")


def test_encrypt_fields_selective(enc):
    record = {"a": "x", "b": "y", "c": 5}
    out = enc.encrypt_fields(record, ["b"])

    assert out["a"] == "x"
    assert out["c"] == 5
    envelope = EncryptedField.from_value(out["b"])
    assert envelope.algorithm == ALGORITHM_AES_256_GCM

    restored = enc.decrypt_fields(out, ["b"])
    assert restored == record


def test_input_record_not_mutated(enc):
    record = {"email": "a@b.com", "profile": {"x": 1}}
    snapshot = copy.deepcopy(record)

    out = enc.encrypt_fields(record, ["email", "profile"])
    enc.decrypt_fields(out, ["email", "profile"])

    assert record == snapshot
    assert out is not record


def test_encrypt_fields_twice_differs(enc):
    record = {"ssn": "123-45-6789"}
    a = enc.encrypt_fields(record, ["ssn"])
    b = enc.encrypt_fields(record, ["ssn"])

    assert a["ssn"] != b["ssn"]
    assert enc.decrypt_fields(a, ["ssn"]) == enc.decrypt_fields(b, ["ssn"]) == record


@pytest.mark.parametrize("value", [
    {"x": 1},
    [1, "two", {"three": 3}],
    30,
    12.5,
    True,
    False,
    {"nested": {"unicode": "ü", "list": []}},
    "plain text",
    "5551234567",
    "false",
])
def test_type_preserved(enc, value):
    out = enc.encrypt_fields({"v": value}, ["v"])
    restored = enc.decrypt_fields(out, ["v"])

    assert restored["v"] == value
    assert type(restored["v"]) is type(value)


def test_null_and_absent_passthrough(enc):
    record = {"email": None, "name": "Alice"}
    out = enc.encrypt_fields(record, ["email", "phone_number"])

    assert out == {"email": None, "name": "Alice"}
    assert "phone_number" not in out

    restored = enc.decrypt_fields(out, ["email", "phone_number"])
    assert restored == {"email": None, "name": "Alice"}
    assert "phone_number" not in restored


def test_non_serializable_value_raises(enc):
    with pytest.raises(EncryptionError, match="not JSON-serializable"):
        enc.encrypt_fields({"blob": object()}, ["blob"])


def test_decrypt_fields_leaves_plain_values(enc):
    record = {"notes": "never encrypted", "meta": {"no_data_key": True}}
    assert enc.decrypt_fields(record, ["notes", "meta"]) == record


def test_partial_batch_resilience(enc):
    good = enc.encrypt_fields({"email": "a@b.com", "phone_number": "555-0100"}, ["email", "phone_number"])
    record = dict(good)
    record["ssn"] = {"data": "AAAA"}  # envelope-shaped but incomplete
    tampered = dict(good["phone_number"])
    tampered["tag"] = _flip_bit(tampered["tag"])
    record["phone_number"] = tampered

    report = enc.decrypt_fields_report(record, ["email", "ssn", "phone_number"])

    assert report.record["email"] == "a@b.com"
    assert report.record["ssn"] is None
    assert report.record["phone_number"] is None
    assert report.failed == {"ssn": "ENVELOPE_INVALID", "phone_number": "DECRYPT_FAILED"}
    assert not report.ok

    assert enc.decrypt_fields(record, ["email", "ssn", "phone_number"]) == report.record


def test_example_scenario(enc):
    record = {"email": "a@b.com", "name": "Alice", "age": 30}
    out = enc.encrypt_fields(record, ["email"])

    assert out["name"] == "Alice"
    assert out["age"] == 30
    email = out["email"]
    for component in ("data", "iv", "salt", "tag"):
        assert isinstance(email[component], str) and email[component]
        base64.b64decode(email[component], validate=True)
    assert email["algorithm"] == "AES-256-GCM"

    assert enc.decrypt_fields(out, ["email"]) == record


def test_decode_plaintext_branches():
    assert decode_plaintext('{"x": 1}').value == {"x": 1}
    assert decode_plaintext('{"x": 1}').structured is True
    assert decode_plaintext("plain text").value == "plain text"
    assert decode_plaintext("plain text").structured is False


@pytest.mark.parametrize("value", [
    "5551234567",
    "123456789",
    "true",
    "null",
    "30",
    '{"a":1}',
    '"already quoted"',
    "NaN",
    "Infinity",
    "-Infinity",
])
def test_json_looking_strings_stay_strings(enc, value):
    out = enc.encrypt_fields({"phone_number": value}, ["phone_number"])

    assert enc.decrypt_fields(out, ["phone_number"]) == {"phone_number": value}


def test_raw_string_envelope_still_decodes_as_json(enc):
    # Envelopes written as raw text keep the decode-as-JSON reading
    record = {"age": enc.encrypt_field("30").to_dict(), "note": enc.encrypt_field("hello").to_dict()}

    assert enc.decrypt_fields(record, ["age", "note"]) == {"age": 30, "note": "hello"}


@pytest.mark.parametrize("value", [float("nan"), float("inf"), {"ratio": float("-inf")}])
def test_non_finite_numbers_rejected(enc, value):
    with pytest.raises(EncryptionError, match="not JSON-serializable"):
        enc.encrypt_fields({"v": value}, ["v"])


def test_decode_plaintext_rejects_non_standard_constants():
    for text in ("NaN", "Infinity", "-Infinity", "[1, NaN]"):
        decoded = decode_plaintext(text)
        assert decoded.structured is False
        assert decoded.value == text


def test_rotate_field_moves_to_current_key():
    old = FieldEncryption(key_ring=StaticKeyRing("old-secret", key_id="v1"))
    envelope = old.encrypt_field("rotate me")

    ring = _TwoKeyRing({"v1": b"old-secret", "v2": b"new-secret"}, current="v2")
    enc = FieldEncryption(key_ring=ring)

    rotated = enc.rotate_field(envelope)
    assert rotated.key_id == "v2"
    assert enc.decrypt_field(rotated) == "rotate me"

    # already on the target key: unchanged
    assert enc.rotate_field(rotated) is rotated


def test_rotate_fields_record():
    ring = _TwoKeyRing({"v1": b"one", "v2": b"two"}, current="v2")
    enc = FieldEncryption(key_ring=ring)
    record = enc.encrypt_fields({"email": "a@b.com", "name": "Alice"}, ["email"], key_id="v1")
    assert record["email"]["keyId"] == "v1"

    rotated = enc.rotate_fields(record, ["email", "phone_number"])
    assert rotated["email"]["keyId"] == "v2"
    assert rotated["name"] == "Alice"
    assert enc.decrypt_fields(rotated, ["email"])["email"] == "a@b.com"


def test_async_helpers(enc):
    async def run():
        out = await enc.encrypt_fields_async({"email": "a@b.com", "n": 1}, ["email"])
        return await enc.decrypt_fields_async(out, ["email"])

    assert asyncio.run(run()) == {"email": "a@b.com", "n": 1}


def test_repr_does_not_leak_key(enc):
    assert "test-master-key" not in repr(enc)


class _TwoKeyRing(StaticKeyRing):
    """Minimal multi-key ring for rotation tests."""

    def __init__(self, keys, current):
        super().__init__(keys[current].decode(), key_id=current)
        self._keys = keys

    @property
    def loaded_key_ids(self):
        return sorted(self._keys)

    def get_master_key(self, key_id):
        if key_id not in self._keys:
            raise UnknownKeyError(key_id)
        return self._keys[key_id]

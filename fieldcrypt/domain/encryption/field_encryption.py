"""Field-Level Encryption with per-operation key derivation.

Every encryption draws a fresh salt and IV, derives a 256-bit key from the
master key with PBKDF2-HMAC-SHA256 and seals the plaintext with AES-256-GCM.
The resulting EncryptedField envelope carries everything needed for
decryption except the master key itself.
"""
import asyncio
import base64
import binascii
import json
import logging
import os
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from fieldcrypt.adapters.keys.env_provider import EnvKeyRing
from fieldcrypt.adapters.keys.static_provider import StaticKeyRing
from fieldcrypt.domain.encryption.models import (
    ALGORITHM_AES_256_GCM,
    ASSOCIATED_DATA,
    IV_LENGTH,
    KEY_LENGTH,
    PBKDF2_ITERATIONS,
    SALT_LENGTH,
    TAG_LENGTH,
    DecodedValue,
    EncryptedField,
    FieldDecryptionReport,
    looks_encrypted,
)
from fieldcrypt.domain.encryption.ports import MasterKeyRing
from fieldcrypt.errors import (
    DecryptionError,
    EncryptionError,
    FieldCryptError,
    UnknownKeyError,
)
from fieldcrypt.settings import Settings

logger = logging.getLogger(__name__)

EnvelopeLike = Union[EncryptedField, Mapping[str, Any]]


def derive_key(master_key: bytes, salt: bytes) -> bytes:
    """Stretch ``master_key`` and ``salt`` into a 256-bit AES key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(master_key)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def serialize_value(value: Any) -> str:
    """Plaintext form of a field value.

    Strings are stored as-is unless their text would itself decode as JSON
    (``"5551234567"``, ``"true"``); those are stored as a JSON string literal
    so decryption gives back a ``str``. Everything else is compact JSON.
    """
    if isinstance(value, str):
        if decode_plaintext(value).structured:
            return json.dumps(value, ensure_ascii=False)
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def decode_plaintext(plaintext: str) -> DecodedValue:
    """Restore a decrypted plaintext, preferring its JSON interpretation.

    NaN and Infinity are not JSON and decode as raw strings.
    """
    try:
        return DecodedValue(json.loads(plaintext, parse_constant=_reject_constant), structured=True)
    except ValueError:
        return DecodedValue(plaintext, structured=False)


def _b64decode(value: str, name: str, expected_length: Optional[int] = None) -> bytes:
    try:
        raw = base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise DecryptionError(f"Envelope component '{name}' is not valid base64") from e
    if expected_length is not None and len(raw) != expected_length:
        raise DecryptionError(
            f"Envelope component '{name}' must be {expected_length} bytes, got {len(raw)}"
        )
    return raw


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class FieldEncryption:
    """Field-level encryption service.

    Holds a read-only key ring for its lifetime; every call uses its own salt
    and IV, so one instance can be shared across threads and requests.
    """

    def __init__(
        self,
        master_key: Optional[str] = None,
        *,
        key_ring: Optional[MasterKeyRing] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize with a master key or key ring.

        Args:
            master_key: Single master secret, stamped as key id "default".
            key_ring: Key ring to use (takes precedence over master_key).
            settings: Settings used to load an EnvKeyRing when neither
                master_key nor key_ring is given.

        Raises:
            ConfigurationError: if no usable master key is configured.
        """
        if key_ring is None:
            if master_key is not None:
                key_ring = StaticKeyRing(master_key)
            else:
                key_ring = EnvKeyRing(settings)
        self._key_ring = key_ring

    @property
    def current_key_id(self) -> str:
        return self._key_ring.current_key_id

    @property
    def key_ring(self) -> MasterKeyRing:
        return self._key_ring

    def encrypt_field(self, plaintext: str, key_id: Optional[str] = None) -> EncryptedField:
        """Encrypt a single string value into a fresh envelope."""
        if not isinstance(plaintext, str):
            raise EncryptionError(f"Plaintext must be str, got {type(plaintext).__name__}")

        key_id = key_id or self._key_ring.current_key_id
        try:
            master_key = self._key_ring.get_master_key(key_id)
        except UnknownKeyError as e:
            raise EncryptionError(f"Cannot encrypt with unknown key '{key_id}'") from e

        try:
            salt = os.urandom(SALT_LENGTH)
            iv = os.urandom(IV_LENGTH)
            key = derive_key(master_key, salt)
            ct_and_tag = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), ASSOCIATED_DATA)
        except Exception as e:
            logger.debug(f"Cipher failure during encryption: {type(e).__name__}")
            raise EncryptionError("Failed to encrypt field data") from e

        ciphertext = ct_and_tag[:-TAG_LENGTH]
        tag = ct_and_tag[-TAG_LENGTH:]

        return EncryptedField(
            data=_b64encode(ciphertext),
            iv=_b64encode(iv),
            salt=_b64encode(salt),
            tag=_b64encode(tag),
            algorithm=ALGORITHM_AES_256_GCM,
            key_id=key_id,
        )

    def decrypt_field(self, envelope: EnvelopeLike) -> str:
        """Decrypt an envelope. Fails closed on any verification problem."""
        envelope = EncryptedField.from_value(envelope)

        if envelope.algorithm != ALGORITHM_AES_256_GCM:
            raise DecryptionError(f"Unsupported algorithm: {envelope.algorithm}")

        master_key = self._key_ring.get_master_key(envelope.key_id)

        ciphertext = _b64decode(envelope.data, "data")
        iv = _b64decode(envelope.iv, "iv", IV_LENGTH)
        salt = _b64decode(envelope.salt, "salt", SALT_LENGTH)
        tag = _b64decode(envelope.tag, "tag", TAG_LENGTH)

        key = derive_key(master_key, salt)
        try:
            plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, ASSOCIATED_DATA)
        except InvalidTag:
            raise DecryptionError("Authentication tag mismatch or key mismatch.") from None

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not valid UTF-8") from e

    def encrypt_fields(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
        key_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return a copy of ``record`` with each listed non-null field encrypted.

        Raises:
            EncryptionError: if any listed field cannot be encrypted; no
                partially encrypted record is returned.
        """
        result = dict(record)
        for name in field_names:
            value = record.get(name)
            if value is None:
                continue
            try:
                plaintext = serialize_value(value)
            except (TypeError, ValueError) as e:
                raise EncryptionError(f"Field '{name}' is not JSON-serializable") from e
            result[name] = self.encrypt_field(plaintext, key_id).to_dict()
        return result

    def decrypt_fields_report(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
    ) -> FieldDecryptionReport:
        """Decrypt listed envelope fields, isolating failures per field.

        A field that fails to decrypt is set to None and reported in
        ``failed`` with its error code.
        """
        report = FieldDecryptionReport(record=dict(record))
        for name in field_names:
            value = record.get(name)
            if not looks_encrypted(value):
                continue
            try:
                plaintext = self.decrypt_field(value)
            except FieldCryptError as e:
                logger.warning(f"Failed to decrypt field {name}: {e.code}")
                report.record[name] = None
                report.failed[name] = e.code
                continue
            report.record[name] = decode_plaintext(plaintext).value
        return report

    def decrypt_fields(self, record: Mapping[str, Any], field_names: Iterable[str]) -> Dict[str, Any]:
        """Return a copy of ``record`` with listed envelope fields decrypted."""
        return self.decrypt_fields_report(record, field_names).record

    def rotate_field(self, envelope: EnvelopeLike, key_id: Optional[str] = None) -> EncryptedField:
        """Re-encrypt an envelope under ``key_id`` (default: the current key)."""
        envelope = EncryptedField.from_value(envelope)
        target = key_id or self._key_ring.current_key_id
        if envelope.key_id == target:
            return envelope
        return self.encrypt_field(self.decrypt_field(envelope), target)

    def rotate_fields(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
        key_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return a copy of ``record`` with listed envelopes moved to ``key_id``."""
        result = dict(record)
        for name in field_names:
            value = record.get(name)
            if not looks_encrypted(value):
                continue
            result[name] = self.rotate_field(value, key_id).to_dict()
        return result

    async def encrypt_fields_async(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
        key_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(self.encrypt_fields, record, list(field_names), key_id)

    async def decrypt_fields_async(self, record: Mapping[str, Any], field_names: Iterable[str]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.decrypt_fields, record, list(field_names))

    def __repr__(self) -> str:
        return f"FieldEncryption(key_ring={self._key_ring!r})"

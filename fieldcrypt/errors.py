"""Field encryption error taxonomy and API-boundary translation."""
import logging
from fastapi import HTTPException
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class FieldCryptError(Exception):
    """Base class for all field encryption failures."""
    code = "FIELDCRYPT_ERROR"


class ConfigurationError(FieldCryptError):
    """No usable master key (or an inconsistent key ring) is configured."""
    code = "CONFIG_INVALID"


class EncryptionError(FieldCryptError):
    """The cipher rejected the input or failed to produce ciphertext/tag."""
    code = "ENCRYPT_FAILED"


class DecryptionError(FieldCryptError):
    """Tag mismatch, wrong key, malformed envelope or unsupported algorithm."""
    code = "DECRYPT_FAILED"


class UnknownKeyError(DecryptionError):
    """The envelope references a key id that is not loaded."""
    code = "KEY_NOT_LOADED"


class FieldShapeError(DecryptionError):
    """A value does not have the EncryptedField envelope shape."""
    code = "ENVELOPE_INVALID"


def raise_api_error(
    code: str,
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Raise a standardized HTTPException.

    Args:
        code: Error code (ENCRYPTION_UNAVAILABLE, etc.)
        status_code: HTTP Status Code
        message: Human readable message
        details: Optional extra details
    """
    error_body: Dict[str, Any] = {
        "code": code,
        "message": message
    }
    if details:
        error_body["details"] = details

    raise HTTPException(status_code=status_code, detail={"error": error_body})


def raise_for_crypto_failure(exc: FieldCryptError) -> None:
    """Translate an encryption failure into a generic 500.

    The response never carries the exception text, the failing field or any
    cipher detail; only the error code is logged server-side.
    """
    logger.warning(f"Field encryption failure at API boundary: {exc.code}")
    raise_api_error(
        "ENCRYPTION_UNAVAILABLE",
        500,
        "The request could not be processed."
    )

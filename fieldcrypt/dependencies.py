"""Dependency Injection Module.

The FieldEncryption instance is built once at startup and attached to the
application; route handlers receive it through ``Depends(get_field_encryption)``.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request

from fieldcrypt.domain.encryption.field_encryption import FieldEncryption
from fieldcrypt.errors import ConfigurationError
from fieldcrypt.settings import Settings, load_settings

logger = logging.getLogger(__name__)


def build_field_encryption(settings: Optional[Settings] = None) -> FieldEncryption:
    """Construct the encryption service from configuration (fails fast)."""
    settings = settings or load_settings()
    encryption = FieldEncryption(settings=settings)
    logger.info(f"Field encryption ready (current key: {encryption.current_key_id})")
    return encryption


def install_field_encryption(app: FastAPI, encryption: FieldEncryption) -> None:
    app.state.field_encryption = encryption


def get_field_encryption(request: Request) -> FieldEncryption:
    """FastAPI dependency returning the installed FieldEncryption."""
    encryption = getattr(request.app.state, "field_encryption", None)
    if encryption is None:
        raise ConfigurationError("Field encryption has not been installed on the application.")
    return encryption

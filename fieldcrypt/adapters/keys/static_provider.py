"""Static (single master key) key ring adapter."""
from typing import List

from fieldcrypt.domain.encryption.models import DEFAULT_KEY_ID
from fieldcrypt.domain.encryption.ports import MasterKeyRing
from fieldcrypt.errors import ConfigurationError, UnknownKeyError


class StaticKeyRing(MasterKeyRing):
    """Key ring holding exactly one master key.

    The master key string is used as the PBKDF2 password as-is (UTF-8).
    """

    def __init__(self, master_key: str, key_id: str = DEFAULT_KEY_ID):
        if not master_key:
            raise ConfigurationError("Master key must be a non-empty string.")
        if not key_id:
            raise ConfigurationError("Key id must be a non-empty string.")
        self._key = master_key.encode("utf-8")
        self._key_id = key_id

    @property
    def current_key_id(self) -> str:
        return self._key_id

    @property
    def loaded_key_ids(self) -> List[str]:
        return [self._key_id]

    def get_master_key(self, key_id: str) -> bytes:
        if key_id != self._key_id:
            raise UnknownKeyError(f"Envelope uses unknown key '{key_id}'")
        return self._key

    def __repr__(self) -> str:
        return f"StaticKeyRing(key_id={self._key_id!r})"

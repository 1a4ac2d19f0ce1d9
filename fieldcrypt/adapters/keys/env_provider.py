import os
import logging
import re
from typing import Dict, List, Mapping, Optional

from fieldcrypt.domain.encryption.ports import MasterKeyRing
from fieldcrypt.errors import ConfigurationError, UnknownKeyError
from fieldcrypt.settings import Settings, load_settings

logger = logging.getLogger(__name__)

DEV_KEY_ID = "dev-insecure"
_DEV_MASTER_KEY = "dev-only-field-encryption-key"

# ENCRYPTION_KEY_<ID>; ID is lowercase alphanumeric plus '_' and '-'.
KEY_VAR_PATTERN = re.compile(r"^ENCRYPTION_KEY_([a-z0-9][a-z0-9_-]{0,31})$")


class EnvKeyRing(MasterKeyRing):
    """Multi-key ring loaded from the environment.

    Loads ENCRYPTION_MASTER_KEY (under ENCRYPTION_KEY_ID) and every
    ENCRYPTION_KEY_<ID> variable, so envelopes written under retired keys
    stay decryptable while new encryptions use the current key.
    """

    def __init__(self, settings: Optional[Settings] = None, environ: Optional[Mapping[str, str]] = None):
        """Initialize from settings and environment.

        Args:
            settings: Parsed settings; read from the environment if omitted.
            environ: Variables scanned for ENCRYPTION_KEY_<ID>; defaults to os.environ.
        """
        self._settings = settings or load_settings()
        self._environ = os.environ if environ is None else environ
        self._keys: Dict[str, bytes] = {}
        self._current_key_id: Optional[str] = self._settings.ENCRYPTION_CURRENT_KEY_ID
        self._load_keys()
        self._validate_startup()

    def _load_keys(self):
        """Load all keys from settings and the environment."""
        master_key = self._settings.ENCRYPTION_MASTER_KEY
        if master_key:
            self._keys[self._settings.ENCRYPTION_KEY_ID] = master_key.encode("utf-8")

        for name, value in self._environ.items():
            match = KEY_VAR_PATTERN.match(name)
            if not match:
                continue
            key_id = match.group(1)
            if not value:
                raise ConfigurationError(f"Key variable for '{key_id}' is empty.")
            if key_id in self._keys and self._keys[key_id] != value.encode("utf-8"):
                raise ConfigurationError(f"Conflicting material for key '{key_id}'.")
            self._keys[key_id] = value.encode("utf-8")
            logger.info(f"Loaded master key: {key_id}")

    def _validate_startup(self):
        """Ensure the key ring is in a valid state for operation."""
        if not self._keys:
            if not self._settings.DEV_MODE:
                raise ConfigurationError(
                    "ENCRYPTION_MASTER_KEY (or ENCRYPTION_KEY_<ID>) must be set outside DEV_MODE."
                )
            self._keys[DEV_KEY_ID] = _DEV_MASTER_KEY.encode("utf-8")
            self._current_key_id = DEV_KEY_ID
            logger.warning("Using insecure DEV master key. DO NOT USE IN PRODUCTION.")
            return

        if not self._current_key_id:
            if self._settings.ENCRYPTION_KEY_ID in self._keys:
                self._current_key_id = self._settings.ENCRYPTION_KEY_ID
            elif len(self._keys) == 1:
                self._current_key_id = next(iter(self._keys))
            else:
                raise ConfigurationError(
                    "ENCRYPTION_CURRENT_KEY_ID must be set when several keys are loaded."
                )

        if self._current_key_id not in self._keys:
            raise ConfigurationError(f"Current key '{self._current_key_id}' is not loaded.")

    @property
    def current_key_id(self) -> str:
        return self._current_key_id  # type: ignore

    @property
    def loaded_key_ids(self) -> List[str]:
        return sorted(self._keys.keys())

    def get_master_key(self, key_id: str) -> bytes:
        try:
            return self._keys[key_id]
        except KeyError:
            raise UnknownKeyError(f"Envelope uses unknown key '{key_id}'") from None

    def __repr__(self) -> str:
        return f"EnvKeyRing(current={self._current_key_id!r}, loaded={self.loaded_key_ids!r})"

"""Field Encryption Domain Ports (Interfaces)."""
from abc import ABC, abstractmethod
from typing import List


class MasterKeyRing(ABC):
    """Abstract Port for master key material, addressed by key id."""

    @property
    @abstractmethod
    def current_key_id(self) -> str:
        """ID of the master key used for new encryptions."""
        ...

    @property
    @abstractmethod
    def loaded_key_ids(self) -> List[str]:
        """IDs of all currently loaded master keys."""
        ...

    @abstractmethod
    def get_master_key(self, key_id: str) -> bytes:
        """Return the master secret for ``key_id``.

        Raises:
            UnknownKeyError: if ``key_id`` is not loaded.
        """
        ...

    def has_key(self, key_id: str) -> bool:
        return key_id in self.loaded_key_ids

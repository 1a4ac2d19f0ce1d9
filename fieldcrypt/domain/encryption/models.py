"""Field Encryption Domain Models."""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fieldcrypt.errors import FieldShapeError

ALGORITHM_AES_256_GCM = "AES-256-GCM"
DEFAULT_KEY_ID = "default"

# Fixed forever: changing any of these makes existing envelopes undecryptable.
PBKDF2_ITERATIONS = 10_000
KEY_LENGTH = 32
SALT_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
ASSOCIATED_DATA = b"additional-auth-data"

_B64_PATTERN = r"^[A-Za-z0-9+/]*={0,2}$"


class EncryptedField(BaseModel):
    """
    Encrypted field envelope.

    Self-describing: everything needed for decryption except the master key
    named by ``keyId``. Binary components are standard base64 strings.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    data: str = Field(..., pattern=_B64_PATTERN)
    iv: str = Field(..., min_length=1, pattern=_B64_PATTERN)
    salt: str = Field(..., min_length=1, pattern=_B64_PATTERN)
    tag: str = Field(..., min_length=1, pattern=_B64_PATTERN)
    algorithm: str = Field(default=ALGORITHM_AES_256_GCM)
    key_id: str = Field(default=DEFAULT_KEY_ID, alias="keyId", min_length=1, max_length=255)

    def to_dict(self) -> Dict[str, str]:
        """Wire form persisted in JSON columns (camelCase ``keyId``)."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_value(cls, value: Union["EncryptedField", Mapping[str, Any]]) -> "EncryptedField":
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise FieldShapeError(f"Expected an envelope mapping, got {type(value).__name__}")
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise FieldShapeError(f"Malformed envelope (fields: {', '.join(missing)})") from e


def looks_encrypted(value: Any) -> bool:
    """True if ``value`` structurally resembles an envelope (has ``data``)."""
    if isinstance(value, EncryptedField):
        return True
    return isinstance(value, Mapping) and "data" in value


@dataclass(frozen=True)
class DecodedValue:
    """Result of decoding a decrypted plaintext.

    ``structured`` records whether the JSON decode branch was taken.
    """
    value: Any
    structured: bool


@dataclass
class FieldDecryptionReport:
    """Best-effort decrypted record plus the fields that could not be decrypted."""
    record: Dict[str, Any]
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class SensitiveDataField:
    """Descriptor of a single sensitive column."""
    field_name: str
    data_type: str = "string"  # string | object | array
    required: bool = False
    max_length: Optional[int] = None

    def __post_init__(self):
        if self.data_type not in ("string", "object", "array"):
            raise ValueError(f"Unsupported data type: {self.data_type}")

    def check(self, value: Any) -> Optional[str]:
        """Return a problem description for a plaintext value, or None if it conforms."""
        if value is None:
            return f"{self.field_name} is required" if self.required else None
        if self.data_type == "string":
            if not isinstance(value, str):
                return f"{self.field_name} must be a string"
            if self.max_length is not None and len(value) > self.max_length:
                return f"{self.field_name} exceeds {self.max_length} characters"
        elif self.data_type == "object" and not isinstance(value, Mapping):
            return f"{self.field_name} must be an object"
        elif self.data_type == "array" and not isinstance(value, list):
            return f"{self.field_name} must be an array"
        return None

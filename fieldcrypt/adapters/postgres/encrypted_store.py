"""EncryptedRecordStore - Database-backed records with field-level encryption."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Table, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fieldcrypt.adapters.postgres.models import ActivityLog
from fieldcrypt.domain.encryption.field_encryption import FieldEncryption
from fieldcrypt.domain.encryption.models import ALGORITHM_AES_256_GCM
from fieldcrypt.errors import FieldCryptError

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class EncryptedRecordStore:
    """Persists records whose sensitive fields are stored as envelopes.

    Sensitive columns must be JSON columns; tables are addressed by an ``id``
    primary key column.
    """

    def __init__(self, db: Session, encryption: FieldEncryption, principal_id: Optional[str] = None):
        """Initialize store.

        Args:
            db: SQLAlchemy database session
            encryption: Field encryption service
            principal_id: ID of principal performing operations (for audit)
        """
        self._db = db
        self._encryption = encryption
        self._principal_id = principal_id or "system"

    def store_encrypted(self, table: Table, data: Mapping[str, Any], sensitive_fields: Sequence[str]) -> StoreResult:
        """Encrypt sensitive fields and insert the row. Returns the stored (encrypted) row."""
        try:
            encrypted = self._encryption.encrypt_fields(data, sensitive_fields)
            result = self._db.execute(insert(table).values(**encrypted))
            record_id = result.inserted_primary_key[0]
            self._db.commit()
        except FieldCryptError as e:
            logger.error(f"Failed to encrypt data for {table.name}: {e.code}")
            return StoreResult(success=False, error="Failed to store encrypted data")
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(f"Failed to store encrypted data in {table.name}: {type(e).__name__}")
            return StoreResult(success=False, error="Failed to store encrypted data")

        self._log_encryption_activity("encrypt", table.name, sensitive_fields)
        return StoreResult(success=True, data=self._stored_row(table, record_id, encrypted))

    def retrieve_decrypted(self, table: Table, record_id: Any, sensitive_fields: Sequence[str]) -> StoreResult:
        """Load a row by id and decrypt its sensitive fields."""
        try:
            row = self._fetch(table, record_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to retrieve {table.name}/{record_id}: {type(e).__name__}")
            return StoreResult(success=False, error="Failed to retrieve decrypted data")

        if row is None:
            return StoreResult(success=False, error="Record not found")

        report = self._encryption.decrypt_fields_report(row, sensitive_fields)
        if report.failed:
            logger.warning(f"Undecryptable fields in {table.name}/{record_id}: {sorted(report.failed)}")

        self._log_encryption_activity("decrypt", table.name, sensitive_fields)
        return StoreResult(success=True, data=report.record)

    def update_encrypted(
        self,
        table: Table,
        record_id: Any,
        data: Mapping[str, Any],
        sensitive_fields: Sequence[str],
    ) -> StoreResult:
        """Encrypt sensitive fields and update the row. Returns the stored (encrypted) row."""
        try:
            encrypted = self._encryption.encrypt_fields(data, sensitive_fields)
            result = self._db.execute(
                update(table).where(table.c.id == record_id).values(**encrypted)
            )
            if result.rowcount == 0:
                self._db.rollback()
                return StoreResult(success=False, error="Record not found")
            self._db.commit()
        except FieldCryptError as e:
            logger.error(f"Failed to encrypt update for {table.name}: {e.code}")
            return StoreResult(success=False, error="Failed to update encrypted data")
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(f"Failed to update {table.name}/{record_id}: {type(e).__name__}")
            return StoreResult(success=False, error="Failed to update encrypted data")

        self._log_encryption_activity("update_encrypt", table.name, sensitive_fields)
        return StoreResult(success=True, data=self._stored_row(table, record_id, encrypted))

    def _fetch(self, table: Table, record_id: Any) -> Optional[Dict[str, Any]]:
        row = self._db.execute(select(table).where(table.c.id == record_id)).mappings().first()
        return dict(row) if row is not None else None

    def _stored_row(self, table: Table, record_id: Any, encrypted: Mapping[str, Any]) -> Dict[str, Any]:
        """Re-read a committed row, falling back to the written values if the read fails."""
        try:
            row = self._fetch(table, record_id)
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.warning(f"Failed to re-read {table.name}/{record_id} after write: {type(e).__name__}")
            row = None
        return row if row is not None else {**encrypted, "id": record_id}

    def _log_encryption_activity(self, operation: str, table_name: str, fields: Sequence[str]) -> None:
        """Record the operation in activity_logs. Never fails the caller."""
        event = ActivityLog(
            id=str(uuid.uuid4()),
            user_id=self._principal_id,
            action=f"encryption_{operation}",
            entity_type="encryption",
            details={
                "table_name": table_name,
                "encrypted_fields": list(fields),
                "operation_timestamp": datetime.now(timezone.utc).isoformat(),
                "algorithm": ALGORITHM_AES_256_GCM,
            },
        )
        try:
            self._db.add(event)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(f"Failed to log encryption activity: {type(e).__name__}")

    def list_activity(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent encryption audit entries."""
        rows = (
            self._db.query(ActivityLog)
            .filter(ActivityLog.entity_type == "encryption")
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": r.id,
                "user_id": r.user_id,
                "action": r.action,
                "metadata": r.details,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]

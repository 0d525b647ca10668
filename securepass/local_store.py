"""
Local prototype store.

Keeps every account's credentials in one JSON file on this device and serves
them through the same gateway contract as the remote table. Secrets are
written as entered.
"""

import json
import logging
import os
import platform
import shutil
import stat
import uuid
from typing import Any, Dict, List, Optional

from .errors import GatewayError
from .gateway import RemoteStoreGateway
from .models import CredentialDraft, CredentialRecord, utc_now

logger = logging.getLogger(__name__)


def write_json_atomic(filepath: str, data: Any) -> None:
    """
    Write `data` as JSON through a temporary file and restrict it to the owner.
    Raises OSError if the file cannot be written.
    """
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = filepath + '.tmp'
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        # Atomic replace using shutil.move
        shutil.move(tmp_path, filepath)
        set_owner_only_permissions(filepath)
    except OSError as e:
        logger.error(f"Error saving {filepath}: {e}", exc_info=True)
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def read_json(filepath: str, default: Any) -> Any:
    if not os.path.exists(filepath):
        return default
    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)


def set_owner_only_permissions(filepath: str) -> None:
    """Set file to be readable/writable by owner only."""
    if platform.system() == 'Windows':
        logger.debug(f"Leaving default Windows permissions on {filepath}")
        return
    os.chmod(filepath, stat.S_IRUSR | stat.S_IWUSR)  # 600


class LocalStoreGateway(RemoteStoreGateway):
    """Credential table kept in a JSON file shared by all local accounts."""

    def __init__(self, filepath: str):
        """
        Args:
            filepath: Path to the JSON store file; created on first write
        """
        self.filepath = filepath

    def _load_rows(self) -> List[Dict[str, Any]]:
        try:
            data = read_json(self.filepath, {'records': []})
        except (OSError, ValueError) as e:
            logger.error(f"Could not read local store {self.filepath}: {e}")
            raise GatewayError(f"Could not read the local store: {e}") from e
        return data.get('records', [])

    def _save_rows(self, rows: List[Dict[str, Any]]) -> None:
        data = {
            'records': rows,
            'metadata': {'last_modified': utc_now().isoformat()},
        }
        try:
            write_json_atomic(self.filepath, data)
        except OSError as e:
            raise GatewayError(f"Could not write the local store: {e}") from e

    @staticmethod
    def _find(rows: List[Dict[str, Any]], record_id: str) -> int:
        for i, row in enumerate(rows):
            if row['id'] == record_id:
                return i
        raise GatewayError(f"Credential {record_id} does not exist in the store", status_code=404)

    async def list(self, owner_id: str) -> List[CredentialRecord]:
        records = [CredentialRecord.from_dict(row) for row in self._load_rows() if row['owner_id'] == owner_id]
        # Rows are kept in insertion order; reversing first puts the later of two equal timestamps first.
        return sorted(reversed(records), key=lambda r: r.created_at, reverse=True)

    async def insert(self, owner_id: str, draft: CredentialDraft) -> CredentialRecord:
        now = utc_now()
        record = CredentialRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **draft.to_dict(),
        )
        rows = self._load_rows()
        rows.append(record.to_dict())
        self._save_rows(rows)
        logger.info(f"Stored credential {record.id} for user {owner_id}")
        return record

    async def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[CredentialRecord]:
        rows = self._load_rows()
        i = self._find(rows, record_id)
        current = CredentialRecord.from_dict(rows[i])
        changes = {k: v for k, v in fields.items() if k != 'updated_at'}
        updated = current.with_changes(changes, fields.get('updated_at') or utc_now())
        rows[i] = updated.to_dict()
        self._save_rows(rows)
        return updated

    async def delete(self, record_id: str) -> None:
        rows = self._load_rows()
        del rows[self._find(rows, record_id)]
        self._save_rows(rows)
        logger.info(f"Removed credential {record_id}")

"""
Token store - JSON-file persistence for Pipedrive credential records.

The whole file is loaded into memory on construction and rewritten in full
on every mutation. Single process only.
"""

import json
import logging
import os
from pathlib import Path

from ..exceptions import InvalidRequest
from ..models import AccountKey, CredentialRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class TokenStore:
    """Account key -> CredentialRecord mapping backed by a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._records: dict[str, CredentialRecord] = self._load()

    def get(self, key: AccountKey) -> CredentialRecord | None:
        return self._records.get(str(key))

    def put(self, key: AccountKey, record: CredentialRecord) -> None:
        """Store a record; both tokens must be present."""
        if not record.is_complete:
            raise ValueError(f"Refusing to store incomplete credential for {key}")
        self._records[str(key)] = record
        self._save()

    def remove(self, key: AccountKey) -> bool:
        """Delete a record. Returns True if one existed."""
        if self._records.pop(str(key), None) is None:
            return False
        self._save()
        return True

    def __contains__(self, key: AccountKey) -> bool:
        return str(key) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def _load(self) -> dict[str, CredentialRecord]:
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read token store {self.path}, starting empty: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Token store {self.path} is not a mapping, starting empty")
            return {}

        # Files written before versioning are a flat key -> record mapping
        accounts = data.get("accounts", {}) if "version" in data else data
        if not isinstance(accounts, dict):
            logger.warning(f"Token store {self.path} has no accounts mapping, starting empty")
            return {}

        records = {}
        for key, raw in accounts.items():
            try:
                AccountKey.parse(key)
            except InvalidRequest:
                logger.warning(f"Skipping token store entry with malformed key {key!r}")
                continue
            try:
                record = CredentialRecord.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed token store entry for {key}")
                continue
            if not record.is_complete:
                logger.warning(f"Skipping incomplete token store entry for {key}")
                continue
            records[key] = record

        logger.info(f"Loaded {len(records)} credential(s) from {self.path}")
        return records

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": SCHEMA_VERSION,
            "accounts": {key: record.to_dict() for key, record in self._records.items()},
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        os.replace(tmp_path, self.path)

import json
import threading
from pathlib import Path
from uuid import uuid4

from loguru import logger

from lock_it.auth import CredentialVerifier
from lock_it.errors import NotFoundError, StorageError
from lock_it.photos import PhotoStore
from lock_it.schema import PasswordConfig, UnlockRecord
from lock_it.utils.files import write_json_atomic


class AttemptLedger:
    """
    Append-only log of unlock attempts, most recent first.

    Records can be removed one at a time, or all at once after the fixed
    password has been re-entered. Every mutation holds the ledger lock for
    its whole duration, including the write to ``records_file``.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        records_file: Path | None = None,
        photos: PhotoStore | None = None,
        max_records: int | None = None,
    ):
        self.verifier = verifier
        self.records_file = records_file
        self.photos = photos
        self.max_records = max_records
        self._records: list[UnlockRecord] = []
        self._lock = threading.RLock()
        self._load_records()

    def _load_records(self):
        if self.records_file is None or not self.records_file.exists():
            self._records = []
            return

        try:
            with open(self.records_file) as f:
                data = json.load(f)
            self._records = [UnlockRecord(**r) for r in data]
        except Exception as e:
            logger.error(f"Failed to load unlock records: {e}")
            self._records = []

    def _save_records(self):
        if self.records_file is None:
            return
        try:
            write_json_atomic(
                self.records_file,
                [r.model_dump(mode="json") for r in self._records],
            )
        except OSError as e:
            logger.error(f"Failed to save unlock records: {e}")
            raise StorageError(f"Could not write {self.records_file}: {e}") from e

    def append(self, record: UnlockRecord) -> UnlockRecord:
        """
        Stores a record, assigning an id (and moving its photo to disk) as needed.

        Raises StorageError when the records file cannot be written. The record
        then stays in memory and goes to disk with the next successful save.
        """
        with self._lock:
            known_ids = {r.id for r in self._records}
            record_id = record.id
            if not record_id or record_id in known_ids:
                record_id = uuid4().hex

            updates: dict = {"id": record_id}
            if record.photo_data and self.photos is not None:
                try:
                    path = self.photos.save(record_id, record.success, record.photo_data)
                    updates.update(photo_data=None, photo_path=str(path))
                except (OSError, ValueError) as e:
                    logger.error(f"Dropping photo of unlock record {record_id}: {e}")
                    updates["photo_data"] = None

            stored = record.model_copy(update=updates)
            self._records.insert(0, stored)

            if self.max_records is not None and len(self._records) > self.max_records:
                for expired in self._records[self.max_records :]:
                    self._remove_photo(expired)
                del self._records[self.max_records :]

            self._save_records()
            logger.debug(
                f"Recorded unlock attempt {record_id}: success={stored.success}, "
                f"attempt={stored.attempt_count}"
            )
            return stored

    def list(self, include_photos: bool = False) -> list[UnlockRecord]:
        """All records, most recent first. Optionally inlines photo files as data URIs."""
        with self._lock:
            records = list(self._records)

        if not include_photos or self.photos is None:
            return records

        result = []
        for r in records:
            photo = self.photos.load(r.photo_path)
            result.append(r.model_copy(update={"photo_data": photo}) if photo else r)
        return result

    def get(self, record_id: str) -> UnlockRecord:
        with self._lock:
            for r in self._records:
                if r.id == record_id:
                    return r
        raise NotFoundError(record_id)

    def delete(self, record_id: str):
        """
        Removes one record and its photo.

        Raises NotFoundError for unknown ids and StorageError on write failure.
        """
        with self._lock:
            record = self.get(record_id)
            self._records = [r for r in self._records if r.id != record_id]
            self._remove_photo(record)
            self._save_records()
            logger.info(f"Deleted unlock record {record_id}")

    def clear_all(self, password: str, config: PasswordConfig) -> bool:
        """
        Empties the ledger once the fixed password is re-entered.

        TOTP codes are not accepted here. On a wrong password nothing changes
        and False is returned. Raises StorageError when the empty ledger cannot
        be written.
        """
        with self._lock:
            result = self.verifier.verify_fixed(password, config)
            if not result.success:
                logger.warning("Refused to clear unlock records: wrong password")
                return False

            for r in self._records:
                self._remove_photo(r)
            count = len(self._records)
            self._records = []
            self._save_records()
            logger.info(f"Cleared {count} unlock records")
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _remove_photo(self, record: UnlockRecord):
        if self.photos is not None:
            self.photos.delete(record.photo_path)

"""JSON-file record store with atomic replace-on-save and rotating backups."""
import json
import logging
import os
import shutil
import uuid
from enum import Enum
from pathlib import Path
from typing import Optional

from vocab_curator.errors import (
    MalformedStoreError, NotFoundError, PreassignedIdentifierError, StoreSaveError,
)
from vocab_curator.models import LEVELS, ExplanationLevel, Record, RecordStatus
from vocab_curator.textfmt import decode_text, encode_text, format_iso, parse_iso, utc_timestamp

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "reading", "expression", "general_context", "explanation_context",
    "image_context", "user_note",
)
TIMESTAMP_FIELDS = (
    "explanation_generated_at_utc", "image_generated_at_utc", "approved_at_utc",
)


class BackupMode(str, Enum):
    NONE = "none"
    COPY = "copy"


def record_to_dict(record: Record) -> dict:
    data = {"id": record.id}
    for name in TEXT_FIELDS:
        data[name] = encode_text(getattr(record, name))
    data["status"] = record.status.value
    data["created_at_utc"] = format_iso(record.created_at_utc)
    for name in TIMESTAMP_FIELDS:
        data[name] = format_iso(getattr(record, name))
    data["explanations"] = {
        level.value: encode_text(record.explanations[level])
        for level in LEVELS if level in record.explanations
    }
    data["image_file"] = record.image_file
    data["image_prompt"] = encode_text(record.image_prompt)
    return data


def record_from_dict(data: dict) -> Record:
    if not isinstance(data, dict):
        raise ValueError(f"record must be an object, got {type(data).__name__}")
    reading = decode_text(data.get("reading"))
    if reading is None:
        raise ValueError("record has no reading")
    explanations = {}
    for key, text in (data.get("explanations") or {}).items():
        explanations[ExplanationLevel(key)] = decode_text(text)
    created = parse_iso(data.get("created_at_utc"))
    if created is None:
        raise ValueError("record has no created_at_utc")
    return Record(
        id=data.get("id") or "",
        reading=reading,
        expression=decode_text(data.get("expression")),
        general_context=decode_text(data.get("general_context")),
        explanation_context=decode_text(data.get("explanation_context")),
        image_context=decode_text(data.get("image_context")),
        user_note=decode_text(data.get("user_note")),
        status=RecordStatus(data.get("status", RecordStatus.PENDING_GENERATION.value)),
        created_at_utc=created,
        explanation_generated_at_utc=parse_iso(data.get("explanation_generated_at_utc")),
        image_generated_at_utc=parse_iso(data.get("image_generated_at_utc")),
        approved_at_utc=parse_iso(data.get("approved_at_utc")),
        explanations=explanations,
        image_file=data.get("image_file"),
        image_prompt=decode_text(data.get("image_prompt")),
    )


def dumps_records(records: list) -> str:
    return json.dumps([record_to_dict(r) for r in records], ensure_ascii=False, indent=2) + "\n"


def loads_records(text: str) -> list:
    """Parse store file content. Blank text and a bare ``null`` mean no records."""
    if not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedStoreError(f"Store file is not valid JSON: {e}") from e
    if data is None:
        return []
    if not isinstance(data, list):
        raise MalformedStoreError(f"Store file must contain an array, got {type(data).__name__}")
    try:
        return [record_from_dict(item) for item in data]
    except (ValueError, TypeError, AttributeError) as e:
        raise MalformedStoreError(f"Store file contains an invalid record: {e}") from e


class RecordStore:
    """In-memory record collection persisted to a single JSON file.

    Every mutation saves the whole collection, sorted by creation time.
    Intended for a single writer process.
    """

    def __init__(
        self,
        data_file,
        backup_directory=None,
        backup_mode: BackupMode = BackupMode.COPY,
        max_backup_files: int = 100,
    ):
        self.data_file = Path(data_file)
        self.backup_directory = Path(backup_directory) if backup_directory else self.data_file.parent / "backups"
        self.backup_mode = BackupMode(backup_mode)
        self.max_backup_files = max_backup_files
        self._records: list = []

    @property
    def temp_file(self) -> Path:
        return self.data_file.with_name(self.data_file.name + ".tmp")

    def load_all(self) -> list:
        if not self.data_file.exists():
            self._records = []
            return []
        try:
            # utf-8-sig also accepts files written with a byte order mark
            text = self.data_file.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedStoreError(f"Store file is not valid UTF-8: {e}") from e
        records = loads_records(text)
        self._records = sorted(records, key=lambda r: r.created_at_utc)
        logger.debug("Loaded %d record(s) from %s", len(self._records), self.data_file)
        return list(self._records)

    def get_all(self, status: Optional[RecordStatus] = None) -> list:
        if status is None:
            return list(self._records)
        return [r for r in self._records if r.status == status]

    def get_by_id(self, record_id: str) -> Optional[Record]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def add(self, record: Record) -> Record:
        if record.id:
            raise PreassignedIdentifierError(f"Cannot add a record that already has an id ({record.id}).")
        record.id = str(uuid.uuid4())
        self._records.append(record)
        self._save()
        return record

    def update(self, record: Record) -> None:
        index = self._index_of(record.id)
        if index is None:
            raise NotFoundError(f"Record {record.id!r} was not found and cannot be updated.")
        self._records[index] = record
        self._save()

    def delete(self, record_id: str) -> None:
        index = self._index_of(record_id)
        if index is None:
            raise NotFoundError(f"Record {record_id!r} was not found and cannot be deleted.")
        del self._records[index]
        self._save()

    def _index_of(self, record_id: str) -> Optional[int]:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        return None

    def backup_files(self) -> list:
        """Backups of this store's data file, oldest first."""
        if not self.backup_directory.is_dir():
            return []
        prefix = self.data_file.stem + "-"
        files = [
            p for p in self.backup_directory.iterdir()
            if p.is_file() and p.name.startswith(prefix) and p.suffix.lower() == ".json"
        ]
        return sorted(files, key=lambda p: p.name.lower())

    def _save(self) -> None:
        errors = []
        backups_enabled = self.backup_mode == BackupMode.COPY

        if backups_enabled:
            try:
                self._create_backup()
            except OSError as e:
                errors.append(e)

        try:
            self._records.sort(key=lambda r: r.created_at_utc)
            self._write_atomic(dumps_records(self._records))
        except Exception as e:
            errors.append(e)

        if backups_enabled and self.max_backup_files > 0:
            try:
                errors.extend(self._prune_backups())
            except OSError as e:
                errors.append(e)

        if errors:
            raise StoreSaveError(errors)

    def _create_backup(self) -> None:
        if not self.data_file.exists():
            return
        self.backup_directory.mkdir(parents=True, exist_ok=True)
        # one backup per second is enough; a same-second save overwrites it
        backup = self.backup_directory / f"{self.data_file.stem}-{utc_timestamp()}.json"
        shutil.copyfile(self.data_file, backup)
        logger.debug("Backed up %s to %s", self.data_file, backup)

    def _write_atomic(self, text: str) -> None:
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        temp = self.temp_file
        try:
            temp.write_text(text, encoding="utf-8")
            # os.replace overwrites the destination in one step, so a failed
            # rename leaves the previous data file intact
            os.replace(temp, self.data_file)
        except BaseException:
            if temp.exists():
                try:
                    temp.unlink()
                except OSError:
                    logger.warning("Could not remove temp file %s", temp)
            raise
        logger.debug("Saved %d record(s) to %s", len(self._records), self.data_file)

    def _prune_backups(self) -> list:
        errors = []
        files = self.backup_files()
        excess = len(files) - self.max_backup_files
        if excess <= 0:
            return errors
        for path in files[:excess]:
            try:
                path.unlink()
                logger.info("Pruned old backup %s", path.name)
            except OSError as e:
                errors.append(OSError(f"Failed to delete old backup file '{path}': {e}"))
        return errors

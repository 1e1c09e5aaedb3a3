"""Record management: create, find, edit, delete, and batch explanation generation."""
import logging
import threading
from typing import Callable, Optional

from vocab_curator.errors import VocabCuratorError
from vocab_curator.lifecycle import clear_ai_content, commit_explanations, has_ai_content, new_record
from vocab_curator.models import Record, RecordStatus
from vocab_curator.services import Services
from vocab_curator.store import RecordStore

logger = logging.getLogger(__name__)


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def find_duplicates(store: RecordStore, reading: str, exclude_id: Optional[str] = None) -> list[Record]:
    """Records whose reading matches ``reading`` case-insensitively."""
    key = reading.strip().casefold()
    return [
        r for r in store.get_all()
        if r.reading.strip().casefold() == key and r.id != exclude_id
    ]


def find_by_reading(store: RecordStore, reading: str) -> list[Record]:
    return find_duplicates(store, reading)


def pending_records(store: RecordStore) -> list[Record]:
    """Records that are not approved yet, oldest first."""
    return [r for r in store.get_all() if r.status != RecordStatus.APPROVED]


def create_record(
    services: Services,
    reading: str,
    expression: Optional[str] = None,
    general_context: Optional[str] = None,
    user_note: Optional[str] = None,
) -> Record:
    if not reading or not reading.strip():
        raise ValueError("reading is required")
    record = new_record(
        reading, expression=_optional(expression),
        general_context=_optional(general_context), user_note=_optional(user_note),
    )
    services.store.add(record)
    logger.info("Added record %s (%s)", record.id, record.reading)
    return record


def discard_ai_content(services: Services, record: Record) -> None:
    """Delete the record's image file, then clear its generated content and save.

    If the file cannot be deleted the record is left untouched.
    """
    services.assets.delete_final(record)
    clear_ai_content(record)
    services.store.update(record)
    logger.info("Cleared AI content of %s", record.id)


def update_core_fields(
    services: Services,
    record: Record,
    reading: str,
    expression: Optional[str],
    general_context: Optional[str],
    user_note: Optional[str],
) -> dict:
    """Apply edits to the identifying fields and save them in one write.

    Generated content describes the old field values, so when any field
    changes it is cleared in the same save. The image file is deleted
    before anything is modified.
    """
    reading = (reading or "").strip() or record.reading
    new_values = {
        "reading": reading,
        "expression": _optional(expression),
        "general_context": _optional(general_context),
        "user_note": _optional(user_note),
    }
    changed = any(getattr(record, name) != value for name, value in new_values.items())
    if not changed:
        return {"changed": False, "ai_content_cleared": False}

    had_content = has_ai_content(record) or record.status != RecordStatus.PENDING_GENERATION
    if had_content:
        services.assets.delete_final(record)

    for name, value in new_values.items():
        setattr(record, name, value)
    if had_content:
        clear_ai_content(record)
    services.store.update(record)
    return {"changed": True, "ai_content_cleared": had_content}


def delete_record(services: Services, record: Record) -> None:
    services.assets.delete_final(record)
    services.store.delete(record.id)
    logger.info("Deleted record %s", record.id)


def generate_missing_explanations(
    services: Services,
    cancel: Optional[threading.Event] = None,
    on_progress: Optional[Callable[[Record, bool], None]] = None,
) -> dict:
    """Generate and commit explanations for every record that has none.

    Failures are logged and skipped. Setting ``cancel`` stops after the
    current record.
    """
    targets = [r for r in services.store.get_all() if not r.explanations]
    summary = {"total": len(targets), "succeeded": 0, "failed": 0, "cancelled": False}
    for record in targets:
        if cancel is not None and cancel.is_set():
            summary["cancelled"] = True
            break
        try:
            result = services.provider.produce_explanations(record, record.explanation_context, cancel)
            commit_explanations(record, result.context, result.explanations)
            services.store.update(record)
        except (VocabCuratorError, OSError):
            logger.exception("Failed to generate explanations for %s", record.id)
            summary["failed"] += 1
            ok = False
        else:
            summary["succeeded"] += 1
            ok = True
        if on_progress:
            on_progress(record, ok)
    return summary

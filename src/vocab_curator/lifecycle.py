"""Record lifecycle: pending generation -> pending approval -> approved."""
from datetime import datetime
from typing import Optional

from vocab_curator.errors import IncompleteExplanationsError, InvalidTransitionError
from vocab_curator.models import LEVELS, Record, RecordStatus, utc_now


def new_record(
    reading: str,
    expression: Optional[str] = None,
    general_context: Optional[str] = None,
    user_note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Record:
    return Record(
        reading=reading.strip(),
        expression=expression,
        general_context=general_context,
        user_note=user_note,
        status=RecordStatus.PENDING_GENERATION,
        created_at_utc=now or utc_now(),
    )


def has_ai_content(record: Record) -> bool:
    return bool(record.explanations) or bool(record.image_file)


def _reopen_approval(record: Record) -> None:
    # new or changed content always needs a fresh approval
    record.status = RecordStatus.PENDING_APPROVAL
    record.approved_at_utc = None


def commit_explanations(
    record: Record, context: Optional[str], explanations: dict, now: Optional[datetime] = None,
) -> None:
    missing = [level.value for level in LEVELS if not explanations.get(level)]
    if missing:
        raise IncompleteExplanationsError(f"Missing explanation level(s): {', '.join(missing)}")
    record.explanation_context = context
    record.explanations = {level: explanations[level] for level in LEVELS}
    record.explanation_generated_at_utc = now or utc_now()
    _reopen_approval(record)


def commit_image(
    record: Record,
    context: Optional[str],
    relative_path: str,
    prompt: Optional[str],
    now: Optional[datetime] = None,
) -> None:
    record.image_context = context
    record.image_file = relative_path
    record.image_prompt = prompt
    record.image_generated_at_utc = now or utc_now()
    _reopen_approval(record)


def approve(record: Record, now: Optional[datetime] = None) -> None:
    if record.status != RecordStatus.PENDING_APPROVAL:
        raise InvalidTransitionError(
            f"Only records pending approval can be approved (status is {record.status.value})."
        )
    record.status = RecordStatus.APPROVED
    record.approved_at_utc = now or utc_now()


def clear_ai_content(record: Record) -> None:
    """Drop all generated content and timestamps. Files on disk are not touched."""
    record.explanations = {}
    record.image_file = None
    record.image_prompt = None
    record.explanation_generated_at_utc = None
    record.image_generated_at_utc = None
    record.approved_at_utc = None
    record.status = RecordStatus.PENDING_GENERATION

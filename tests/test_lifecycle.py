from datetime import datetime, timezone

import pytest

from vocab_curator.errors import IncompleteExplanationsError, InvalidTransitionError
from vocab_curator.lifecycle import (
    approve, clear_ai_content, commit_explanations, commit_image, has_ai_content, new_record,
)
from vocab_curator.models import ExplanationLevel, RecordStatus

from conftest import explanations

NOW = datetime(2024, 2, 2, 9, 30, tzinfo=timezone.utc)
LATER = datetime(2024, 2, 3, 9, 30, tzinfo=timezone.utc)


def test_new_record_starts_pending_generation():
    record = new_record("  ねこ ", expression="猫", user_note="pet", now=NOW)
    assert record.reading == "ねこ"
    assert record.expression == "猫"
    assert record.status == RecordStatus.PENDING_GENERATION
    assert record.created_at_utc == NOW
    assert record.id == ""
    assert not has_ai_content(record)


def test_commit_explanations_moves_to_pending_approval():
    record = new_record("ねこ", now=NOW)
    commit_explanations(record, "ctx", explanations(), now=LATER)
    assert record.status == RecordStatus.PENDING_APPROVAL
    assert record.explanation_context == "ctx"
    assert record.explanation_generated_at_utc == LATER
    assert all(record.explanations[level] for level in ExplanationLevel)
    assert record.approved_at_utc is None
    assert record.explanations[ExplanationLevel.ADVANCED] == "advanced"
    assert has_ai_content(record)


def test_commit_explanations_requires_all_levels():
    record = new_record("ねこ", now=NOW)
    partial = explanations()
    partial[ExplanationLevel.MODERATE] = ""
    with pytest.raises(IncompleteExplanationsError):
        commit_explanations(record, None, partial)
    assert record.status == RecordStatus.PENDING_GENERATION
    assert record.explanations == {}


def test_commit_on_approved_record_reopens_approval():
    record = new_record("ねこ", now=NOW)
    commit_explanations(record, None, explanations())
    approve(record, now=NOW)
    assert record.approved_at_utc == NOW

    commit_image(record, "img ctx", "rec.png", "a cat", now=LATER)

    assert record.status == RecordStatus.PENDING_APPROVAL
    assert record.approved_at_utc is None
    assert record.image_file == "rec.png"
    assert record.image_prompt == "a cat"
    assert record.image_context == "img ctx"
    assert record.image_generated_at_utc == LATER


def test_approve_only_from_pending_approval():
    record = new_record("ねこ", now=NOW)
    with pytest.raises(InvalidTransitionError):
        approve(record)
    commit_explanations(record, None, explanations())
    approve(record)
    with pytest.raises(InvalidTransitionError):
        approve(record)


def test_clear_ai_content_keeps_contexts_and_core_fields():
    record = new_record("ねこ", expression="猫", general_context="gc", now=NOW)
    commit_explanations(record, "ectx", explanations())
    commit_image(record, "ictx", "rec.png", "prompt")
    approve(record)

    clear_ai_content(record)

    assert record.status == RecordStatus.PENDING_GENERATION
    assert record.explanations == {}
    assert record.image_file is None
    assert record.image_prompt is None
    assert record.explanation_generated_at_utc is None
    assert record.image_generated_at_utc is None
    assert record.approved_at_utc is None
    assert record.explanation_context == "ectx"
    assert record.image_context == "ictx"
    assert record.expression == "猫"
    assert not has_ai_content(record)


def test_explanation_commit_after_approval_reopens_approval():
    record = new_record("ねこ", now=NOW)
    commit_explanations(record, None, explanations())
    approve(record, now=NOW)

    commit_explanations(record, "again", explanations("2"), now=LATER)

    assert record.status == RecordStatus.PENDING_APPROVAL
    assert record.approved_at_utc is None
    assert record.explanations[ExplanationLevel.EASY] == "easy2"

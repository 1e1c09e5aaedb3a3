# tests/test_integration.py
"""End-to-end test of the core workflow."""
from unittest.mock import patch

from vocab_curator.app import cmd_add, cmd_edit, cmd_finalize
from vocab_curator.models import ExplanationLevel, RecordStatus
from vocab_curator.store import RecordStore

from conftest import explanations

ASK = "vocab_curator.app.Prompt.ask"


def test_full_record_workflow(services, provider, assets, data_file, provider_error):
    """Add a record, generate and approve content, then edit it and watch the content go."""
    provider.explanation_results = [provider_error, explanations("2")]
    provider.image_results = [b"image-1"]

    answers = [
        "ねこ", "猫", "a small pet", "",            # add
        "explain", "", "r", "for kids", "2",      # attempt 1 fails, keep attempt 2
        "image", "", "1",                         # one image attempt
        "approve", "back",
    ]
    with patch(ASK, side_effect=answers):
        cmd_add(services)

    [record] = RecordStore(data_file).load_all()
    assert record.status == RecordStatus.APPROVED
    assert record.explanation_context == "for kids"
    assert record.explanations[ExplanationLevel.EASY] == "easy2"
    assert record.image_file == f"{record.id}.png"
    assert (assets.final_directory / record.image_file).read_bytes() == b"image-1"
    assert record.approved_at_utc is not None
    assert list(assets.staging_directory.iterdir()) == []
    assert provider.calls[-1] == ("image", "ねこ", None)

    answers = [
        "ねこ",                  # select
        "いぬ", "犬", "", "",     # edit reading and expression
        "back",
    ]
    with patch(ASK, side_effect=answers):
        cmd_edit(services)

    [record] = RecordStore(data_file).load_all()
    assert record.reading == "いぬ"
    assert record.expression == "犬"
    assert record.general_context == "a small pet"
    assert record.status == RecordStatus.PENDING_GENERATION
    assert record.explanations == {}
    assert record.image_file is None
    assert record.approved_at_utc is None
    assert list(assets.final_directory.iterdir()) == []
    assert len(services.store.backup_files()) >= 1

    with patch(ASK, side_effect=["next"]):
        cmd_finalize(services)

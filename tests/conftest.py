import pytest

from vocab_curator.assets import ImageAssets
from vocab_curator.errors import ProviderError
from vocab_curator.models import GeneratedExplanations, GeneratedImage, ExplanationLevel
from vocab_curator.services import Services
from vocab_curator.store import BackupMode, RecordStore


def explanations(tag: str = "") -> dict:
    return {
        ExplanationLevel.EASY: f"easy{tag}",
        ExplanationLevel.MODERATE: f"moderate{tag}",
        ExplanationLevel.ADVANCED: f"advanced{tag}",
    }


class FakeProvider:
    """Returns queued results in order; an Exception in the queue is raised instead."""

    def __init__(self, explanation_results=(), image_results=()):
        self.explanation_results = list(explanation_results)
        self.image_results = list(image_results)
        self.calls = []

    def produce_explanations(self, record, context, cancel=None):
        self.calls.append(("explanations", record.reading, context))
        result = self.explanation_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return GeneratedExplanations(context=context, explanations=result)

    def produce_image(self, record, context, cancel=None):
        self.calls.append(("image", record.reading, context))
        result = self.image_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return GeneratedImage(context=context, data=result, extension=".png", prompt=f"prompt for {context}")


@pytest.fixture
def data_file(tmp_path):
    """Provide a temporary store file path for tests."""
    return tmp_path / "data" / "vocab.json"


@pytest.fixture
def store(data_file, tmp_path):
    return RecordStore(data_file, backup_directory=tmp_path / "backups", backup_mode=BackupMode.COPY, max_backup_files=5)


@pytest.fixture
def assets(tmp_path):
    return ImageAssets(tmp_path / "images", tmp_path / "staging")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def services(store, assets, provider):
    return Services(store=store, assets=assets, provider=provider)


@pytest.fixture
def provider_error():
    return ProviderError("model unavailable", payload={"error": {"code": "server_error"}})

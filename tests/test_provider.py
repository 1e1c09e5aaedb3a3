"""Tests for deadlines, prompt templates and response parsing."""
import asyncio
import base64
import json
import threading
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest
from openai import AsyncOpenAI

from vocab_curator.errors import DeadlineExceeded, GenerationCancelled, ProviderError
from vocab_curator.models import ExplanationLevel, Record
from vocab_curator.provider import (
    OpenAIContentProvider, PromptTemplates, cancel_on_interrupt, extension_for_content_type,
    parse_explanations, run_with_deadline,
)

from conftest import explanations


async def finish(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def fail():
    raise ProviderError("bad gateway")


def test_run_with_deadline_returns_result():
    assert run_with_deadline(finish("done"), timeout=5) == "done"


def test_run_with_deadline_times_out():
    with pytest.raises(DeadlineExceeded):
        run_with_deadline(finish("late", delay=5), timeout=0.05)


def test_run_with_deadline_propagates_errors():
    with pytest.raises(ProviderError, match="bad gateway"):
        run_with_deadline(fail(), timeout=5)


def test_run_with_deadline_cancel_signal():
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        with pytest.raises(GenerationCancelled):
            run_with_deadline(finish("late", delay=5), timeout=10, cancel=cancel)
    finally:
        timer.cancel()


def test_run_with_deadline_already_cancelled():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(GenerationCancelled):
        run_with_deadline(finish("never"), timeout=5, cancel=cancel)


def test_cancel_on_interrupt_yields_given_event():
    cancel = threading.Event()
    with cancel_on_interrupt(cancel) as event:
        assert event is cancel
    with cancel_on_interrupt() as event:
        assert not event.is_set()


@pytest.mark.parametrize("content_type,expected", [
    ("image/png", ".png"),
    ("image/jpeg; charset=binary", ".jpg"),
    ("IMAGE/WEBP", ".webp"),
    ("application/octet-stream", ".png"),
    (None, ".png"),
])
def test_extension_for_content_type(content_type, expected):
    assert extension_for_content_type(content_type) == expected


def test_parse_explanations():
    parsed = parse_explanations('{"easy": "e", "moderate": " ", "advanced": "a", "extra": "x"}')
    assert parsed == {ExplanationLevel.EASY: "e", ExplanationLevel.ADVANCED: "a"}


@pytest.mark.parametrize("content", ["not json", "[1, 2]", '"text"'])
def test_parse_explanations_rejects_bad_content(content):
    with pytest.raises(ProviderError):
        parse_explanations(content)


def test_default_templates_fill_record_fields():
    record = Record(reading="ねこ", expression="猫", general_context="pets", explanations=explanations())
    templates = PromptTemplates()
    explanation = templates.explanation_prompt(record, "for kids")
    image = templates.image_prompt(record, "watercolor")
    assert "ねこ" in explanation and "猫" in explanation and "for kids" in explanation
    assert "ねこ" in image and "watercolor" in image and "moderate" in image


def test_templates_are_read_on_every_call(tmp_path):
    path = tmp_path / "explain.txt"
    path.write_text("v1 {reading}", encoding="utf-8")
    templates = PromptTemplates(explanation_file=path, image_file=path)
    record = Record(reading="ねこ")
    assert templates.explanation_prompt(record, None) == "v1 ねこ"
    path.write_text("v2 {reading} [{context}]", encoding="utf-8")
    assert templates.explanation_prompt(record, None) == "v2 ねこ []"


def test_openai_client_does_not_retry():
    assert OpenAIContentProvider(api_key="test")._client().max_retries == 0


def test_openai_provider_explanations():
    provider = OpenAIContentProvider(api_key="test", timeout=5)
    reply = json.dumps({"easy": "E", "moderate": "M", "advanced": "A"})

    async def fake_chat(prompt):
        assert "ねこ" in prompt
        return reply

    with patch.object(provider, "_chat", side_effect=fake_chat):
        result = provider.produce_explanations(Record(reading="ねこ"), "ctx")

    assert result.context == "ctx"
    assert result.explanations[ExplanationLevel.MODERATE] == "M"


def test_openai_provider_makes_one_request_per_failed_generation(monkeypatch):
    hits = []

    def server_error(request):
        hits.append(request.url.path)
        return httpx.Response(500, json={"error": {"message": "boom", "type": "server_error"}})

    real_client = AsyncOpenAI

    def client_with_transport(**kwargs):
        transport = httpx.MockTransport(server_error)
        return real_client(http_client=httpx.AsyncClient(transport=transport), **kwargs)

    monkeypatch.setattr("vocab_curator.provider.AsyncOpenAI", client_with_transport)
    provider = OpenAIContentProvider(api_key="test", base_url="http://localhost/v1", timeout=5)

    with pytest.raises(ProviderError):
        provider.produce_explanations(Record(reading="ねこ"), None)

    assert hits == ["/v1/chat/completions"]


def test_openai_provider_rejects_partial_explanations():
    provider = OpenAIContentProvider(api_key="test", timeout=5)

    async def fake_chat(prompt):
        return json.dumps({"easy": "E", "moderate": "", "advanced": "A"})

    with patch.object(provider, "_chat", side_effect=fake_chat):
        with pytest.raises(ProviderError):
            provider.produce_explanations(Record(reading="ねこ"), None)


def test_openai_provider_image_from_base64():
    provider = OpenAIContentProvider(api_key="test", timeout=5)
    item = SimpleNamespace(b64_json=base64.b64encode(b"PNGDATA").decode(), url=None, revised_prompt=None)

    class FakeImages:
        async def generate(self, **kwargs):
            return SimpleNamespace(data=[item])

    class FakeClient:
        images = FakeImages()

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

    with patch.object(provider, "_client", return_value=FakeClient()):
        image = provider.produce_image(Record(reading="ねこ"), "ctx")

    assert image.data == b"PNGDATA"
    assert image.extension == ".png"
    assert "ねこ" in image.prompt


def test_openai_provider_image_download(monkeypatch):
    provider = OpenAIContentProvider(api_key="test", timeout=5)
    item = SimpleNamespace(b64_json=None, url="https://example.invalid/img", revised_prompt="a cat")

    class FakeImages:
        async def generate(self, **kwargs):
            return SimpleNamespace(data=[item])

    class FakeClient:
        images = FakeImages()

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

    monkeypatch.setattr(provider, "_download", lambda url: (b"JPEG", "image/jpeg"))
    with patch.object(provider, "_client", return_value=FakeClient()):
        image = provider.produce_image(Record(reading="ねこ"), None)

    assert image.data == b"JPEG"
    assert image.extension == ".jpg"
    assert image.prompt == "a cat"

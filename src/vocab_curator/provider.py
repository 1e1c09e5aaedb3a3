"""Content generation: provider protocol, deadlines, prompt templates and OpenAI backend."""
import asyncio
import base64
import json
import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

import openai
import requests
from openai import AsyncOpenAI

from vocab_curator.errors import DeadlineExceeded, GenerationCancelled, ProviderError
from vocab_curator.models import LEVELS, GeneratedExplanations, GeneratedImage, Record

logger = logging.getLogger(__name__)

CONTENT_DIR = Path(__file__).parent / "content"
DEFAULT_TIMEOUT = 180.0

IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "image/x-icon": ".ico",
    "image/svg+xml": ".svg",
}

EXPLANATION_SCHEMA = {
    "type": "json_schema",
    "json_schema": {
        "name": "explanations",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {level.value: {"type": "string"} for level in LEVELS},
            "required": [level.value for level in LEVELS],
            "additionalProperties": False,
        },
    },
}


class ContentProvider(Protocol):
    def produce_explanations(
        self, record: Record, context: Optional[str], cancel: Optional[threading.Event] = None,
    ) -> GeneratedExplanations: ...

    def produce_image(
        self, record: Record, context: Optional[str], cancel: Optional[threading.Event] = None,
    ) -> GeneratedImage: ...


def extension_for_content_type(content_type: Optional[str], fallback: str = ".png") -> str:
    if not content_type:
        return fallback
    mime = content_type.split(";")[0].strip().lower()
    return IMAGE_EXTENSIONS.get(mime, fallback)


async def _wait_for_event(event: threading.Event, poll: float = 0.05) -> None:
    while not event.is_set():
        await asyncio.sleep(poll)


async def _race(coro, timeout: float, cancel: Optional[threading.Event]):
    task = asyncio.ensure_future(coro)
    watcher = asyncio.ensure_future(_wait_for_event(cancel)) if cancel is not None else None
    waiting = [task] if watcher is None else [task, watcher]
    done, _ = await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    if task in done:
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if watcher is not None and watcher in done:
        raise GenerationCancelled("Generation was cancelled.")
    if watcher is not None:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
    raise DeadlineExceeded(f"Generation did not finish within {timeout:g} seconds.")


def run_with_deadline(coro, timeout: float = DEFAULT_TIMEOUT, cancel: Optional[threading.Event] = None):
    """Run ``coro`` until it finishes, ``timeout`` elapses, or ``cancel`` is set.

    Either limit aborts the call on its own: the timeout raises DeadlineExceeded,
    the cancellation signal raises GenerationCancelled.
    """
    if cancel is not None and cancel.is_set():
        coro.close()
        raise GenerationCancelled("Generation was cancelled before it started.")
    return asyncio.run(_race(coro, timeout, cancel))


@contextmanager
def cancel_on_interrupt(cancel: Optional[threading.Event] = None):
    """Yield an event that Ctrl+C sets instead of raising KeyboardInterrupt.

    Lets the user abort a slow generation call without leaving the session.
    Outside the main thread no handler can be installed and the event is
    only set by the caller.
    """
    event = cancel if cancel is not None else threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield event
        return
    previous = signal.signal(signal.SIGINT, lambda signum, frame: event.set())
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)


class PromptTemplates:
    """Prompt formats read from disk on every call, so edits apply immediately."""

    def __init__(self, explanation_file=None, image_file=None):
        self.explanation_file = Path(explanation_file) if explanation_file else CONTENT_DIR / "explanation_prompt.txt"
        self.image_file = Path(image_file) if image_file else CONTENT_DIR / "image_prompt.txt"

    @staticmethod
    def _fields(record: Record, context: Optional[str]) -> dict:
        return {
            "reading": record.reading,
            "expression": record.expression or "",
            "general_context": record.general_context or "",
            "context": context or "",
        }

    def explanation_prompt(self, record: Record, context: Optional[str]) -> str:
        template = self.explanation_file.read_text(encoding="utf-8")
        return template.format(**self._fields(record, context))

    def image_prompt(self, record: Record, context: Optional[str]) -> str:
        template = self.image_file.read_text(encoding="utf-8")
        fields = self._fields(record, context)
        for level in LEVELS:
            fields[level.value] = record.explanations.get(level, "")
        return template.format(**fields)


def parse_explanations(content: str) -> dict:
    """Map a ``{"easy": ..., "moderate": ..., "advanced": ...}`` reply to levels.

    Blank or missing levels are left out.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ProviderError(f"AI response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProviderError("AI response is not a JSON object.")
    explanations = {}
    for level in LEVELS:
        text = data.get(level.value)
        if isinstance(text, str) and text.strip():
            explanations[level] = text
    return explanations


def _error_payload(error: Exception) -> Optional[dict]:
    body = getattr(error, "body", None)
    return body if isinstance(body, dict) else None


class OpenAIContentProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chat_model: str = "gpt-5",
        image_model: str = "gpt-image-1",
        timeout: float = DEFAULT_TIMEOUT,
        templates: Optional[PromptTemplates] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.chat_model = chat_model
        self.image_model = image_model
        self.timeout = timeout
        self.templates = templates or PromptTemplates()

    def _client(self) -> AsyncOpenAI:
        # a fresh client per call; each call runs in its own event loop.
        # Retrying is the user's choice in the session, never the SDK's.
        return AsyncOpenAI(
            api_key=self.api_key, base_url=self.base_url, timeout=self.timeout, max_retries=0,
        )

    def produce_explanations(
        self, record: Record, context: Optional[str], cancel: Optional[threading.Event] = None,
    ) -> GeneratedExplanations:
        prompt = self.templates.explanation_prompt(record, context)
        logger.debug("Explanation prompt for %s:\n%s", record.id, prompt)
        content = run_with_deadline(self._chat(prompt), self.timeout, cancel)
        explanations = parse_explanations(content)
        if len(explanations) != len(LEVELS):
            raise ProviderError("AI response did not contain all three explanation levels.")
        return GeneratedExplanations(context=context, explanations=explanations)

    def produce_image(
        self, record: Record, context: Optional[str], cancel: Optional[threading.Event] = None,
    ) -> GeneratedImage:
        prompt = self.templates.image_prompt(record, context)
        logger.debug("Image prompt for %s:\n%s", record.id, prompt)
        data, extension, revised_prompt = run_with_deadline(self._image(prompt), self.timeout, cancel)
        return GeneratedImage(context=context, data=data, extension=extension, prompt=revised_prompt)

    async def _chat(self, prompt: str) -> str:
        try:
            async with self._client() as client:
                response = await client.chat.completions.create(
                    model=self.chat_model,
                    messages=[{"role": "user", "content": prompt}],
                    response_format=EXPLANATION_SCHEMA,
                )
        except openai.APIError as e:
            raise ProviderError(f"OpenAI chat request failed: {e}", payload=_error_payload(e)) from e
        if not response.choices or not response.choices[0].message.content:
            raise ProviderError("AI response content is empty.")
        return response.choices[0].message.content

    async def _image(self, prompt: str):
        try:
            async with self._client() as client:
                response = await client.images.generate(model=self.image_model, prompt=prompt, n=1)
        except openai.APIError as e:
            raise ProviderError(f"OpenAI image request failed: {e}", payload=_error_payload(e)) from e
        if not response.data:
            raise ProviderError("AI response data is empty.")
        item = response.data[0]
        if item.b64_json:
            return base64.b64decode(item.b64_json), ".png", item.revised_prompt or prompt
        if not item.url:
            raise ProviderError("AI response contains neither image data nor a URL.")
        data, content_type = await asyncio.to_thread(self._download, item.url)
        return data, extension_for_content_type(content_type), item.revised_prompt or prompt

    def _download(self, url: str):
        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ProviderError(f"Image download failed: {e}") from e
        return resp.content, resp.headers.get("Content-Type")

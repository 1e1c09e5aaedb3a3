"""Generate, review, then keep, commit, retry or cancel: explanations and images."""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from vocab_curator.errors import DataIntegrityError, VocabCuratorError
from vocab_curator.lifecycle import commit_explanations, commit_image
from vocab_curator.models import LEVELS, Attempt, ExplanationLevel, Record, utc_now
from vocab_curator.provider import cancel_on_interrupt
from vocab_curator.services import Services

logger = logging.getLogger(__name__)
console = Console()

LEVEL_STYLES = {
    ExplanationLevel.EASY: "white on blue",
    ExplanationLevel.MODERATE: "black on yellow",
    ExplanationLevel.ADVANCED: "white on red",
}

RETRY_KEYS = ("", "r", "retry")
CANCEL_KEYS = ("e", "cancel")
CLEAR_INPUT = "-"


class SessionOutcome(Enum):
    COMMITTED = "committed"
    KEPT_ORIGINAL = "kept_original"
    CANCELLED = "cancelled"


@dataclass
class Selection:
    kind: str  # keep_original, commit, retry, cancel or invalid
    attempt: Optional[Attempt] = None


class AttemptSession:
    """Attempts made for one content type of one record during one session.

    ``original`` is the record's content at session start; while present it
    stays selectable as option 0.
    """

    def __init__(self, original=None, context: Optional[str] = None):
        self.original = original
        self.attempts: list[Attempt] = []
        self.last_context = context

    @property
    def next_index(self) -> int:
        return len(self.attempts) + 1

    def record_success(self, context: Optional[str], payload) -> Attempt:
        attempt = Attempt(index=self.next_index, context=context, payload=payload)
        self.attempts.append(attempt)
        self.last_context = context
        return attempt

    def record_failure(self, context: Optional[str], error: str) -> Attempt:
        attempt = Attempt(index=self.next_index, context=context, error=error)
        self.attempts.append(attempt)
        self.last_context = context
        return attempt

    def successful(self) -> list[Attempt]:
        return [a for a in self.attempts if a.succeeded]

    def options(self) -> list[str]:
        keys = ["0"] if self.original else []
        keys.extend(str(a.index) for a in self.successful())
        return keys + ["r", "e"]

    def choose(self, text: Optional[str]) -> Selection:
        choice = (text or "").strip().lower()
        if choice in RETRY_KEYS:
            return Selection("retry")
        if choice in CANCEL_KEYS:
            return Selection("cancel")
        if choice == "0":
            return Selection("keep_original") if self.original else Selection("invalid")
        if choice.isdigit():
            index = int(choice)
            if 1 <= index <= len(self.attempts) and self.attempts[index - 1].succeeded:
                return Selection("commit", self.attempts[index - 1])
        return Selection("invalid")


def show_explanations(explanations: dict) -> None:
    for level in LEVELS:
        if level in explanations:
            console.print(Panel(
                explanations[level], title=f"[{LEVEL_STYLES[level]}] {level.value} [/]",
                title_align="left", border_style="dim",
            ))


def _ask_context(label: str, previous: Optional[str]) -> Optional[str]:
    answer = Prompt.ask(
        f"{label} (Enter to keep, '{CLEAR_INPUT}' to clear)", default=previous or "", show_default=bool(previous),
    )
    answer = answer.strip() if answer else ""
    if answer == CLEAR_INPUT:
        return None
    return answer or previous


def _ask_selection(session: AttemptSession, noun: str) -> Selection:
    while True:
        console.print("\n[bold]Choose:[/bold]")
        if session.original:
            console.print(f"  [cyan]0[/cyan]  keep the original {noun}")
        for attempt in session.successful():
            console.print(f"  [cyan]{attempt.index}[/cyan]  use attempt {attempt.index}")
        console.print("  [cyan]r[/cyan]  generate again (default)")
        console.print("  [cyan]e[/cyan]  cancel")
        selection = session.choose(Prompt.ask(">", default="r", show_default=False))
        if selection.kind != "invalid":
            return selection
        console.print("[red]Invalid choice.[/red]")


def _generation_failed(session: AttemptSession, context: Optional[str], error: Exception, noun: str) -> None:
    index = session.next_index
    logger.error("Attempt %d to generate %s failed", index, noun, exc_info=error)
    session.record_failure(context, str(error))
    console.print(f"[red]Attempt {index} failed:[/red] {error}")


def run_explanation_session(
    services: Services, record: Record, cancel: Optional[threading.Event] = None,
) -> SessionOutcome:
    """Interactively generate explanations for ``record`` and commit the chosen attempt."""
    original = dict(record.explanations) or None
    session = AttemptSession(original=original, context=record.explanation_context)

    while True:
        console.print(f"\n[bold]Explanations for {record.display_text} (attempt {session.next_index})[/bold]")
        context = _ask_context("Explanation context", session.last_context)
        try:
            with cancel_on_interrupt(cancel) as signal_event:
                result = services.provider.produce_explanations(record, context, signal_event)
        except (VocabCuratorError, OSError) as e:
            _generation_failed(session, context, e, "explanations")
        else:
            session.record_success(context, result.explanations)
            show_explanations(result.explanations)

        selection = _ask_selection(session, "explanations")
        if selection.kind == "keep_original":
            console.print("[dim]Keeping the original explanations.[/dim]")
            return SessionOutcome.KEPT_ORIGINAL
        if selection.kind == "cancel":
            return SessionOutcome.CANCELLED
        if selection.kind == "commit":
            attempt = selection.attempt
            commit_explanations(record, attempt.context, attempt.payload)
            services.store.update(record)
            console.print(f"[green]Saved the explanations from attempt {attempt.index}.[/green]")
            return SessionOutcome.COMMITTED


def _stage_original(services: Services, record: Record):
    try:
        return services.assets.stage_existing_for_edit(record)
    except DataIntegrityError as e:
        # a replacement is usually generated right away, so carry on without option 0
        logger.error("Could not stage the current image of %s: %s", record.id, e)
        console.print(f"[yellow]{e}[/yellow]")
        return None


def run_image_session(
    services: Services, record: Record, cancel: Optional[threading.Event] = None,
) -> SessionOutcome:
    """Interactively generate an image for ``record``; staged files never outlive the session."""
    assets = services.assets
    try:
        session = AttemptSession(original=_stage_original(services, record), context=record.image_context)
        while True:
            console.print(f"\n[bold]Image for {record.display_text} (attempt {session.next_index})[/bold]")
            context = _ask_context("Image context", session.last_context)
            try:
                with cancel_on_interrupt(cancel) as signal_event:
                    image = services.provider.produce_image(record, context, signal_event)
                staged = assets.save_candidate(
                    record, image.data, image.extension, session.next_index,
                    image.context, utc_now(), image.prompt,
                )
            except (VocabCuratorError, OSError) as e:
                _generation_failed(session, context, e, "an image")
            else:
                session.record_success(context, staged)
                console.print(f"Generated: [cyan]{assets.staged_path(staged)}[/cyan]")

            selection = _ask_selection(session, "image")
            if selection.kind == "keep_original":
                console.print("[dim]Keeping the original image.[/dim]")
                return SessionOutcome.KEPT_ORIGINAL
            if selection.kind == "cancel":
                return SessionOutcome.CANCELLED
            if selection.kind == "commit":
                staged = selection.attempt.payload
                relative_path = assets.finalize(record, staged)
                commit_image(record, staged.context, relative_path, staged.prompt)
                services.store.update(record)
                console.print(f"[green]Saved the image from attempt {selection.attempt.index}.[/green]")
                return SessionOutcome.COMMITTED
    finally:
        assets.cleanup(record.id)

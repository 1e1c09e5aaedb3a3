"""Data classes for the vocabulary record domain model."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class RecordStatus(str, Enum):
    PENDING_GENERATION = "pending_generation"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"


class ExplanationLevel(str, Enum):
    """Explanation difficulty, in ascending order."""

    EASY = "easy"
    MODERATE = "moderate"
    ADVANCED = "advanced"


LEVELS = (ExplanationLevel.EASY, ExplanationLevel.MODERATE, ExplanationLevel.ADVANCED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Record:
    reading: str
    id: str = ""
    expression: Optional[str] = None
    general_context: Optional[str] = None
    explanation_context: Optional[str] = None
    image_context: Optional[str] = None
    user_note: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING_GENERATION
    created_at_utc: datetime = field(default_factory=utc_now)
    explanation_generated_at_utc: Optional[datetime] = None
    image_generated_at_utc: Optional[datetime] = None
    approved_at_utc: Optional[datetime] = None
    explanations: dict = field(default_factory=dict)  # ExplanationLevel -> str
    image_file: Optional[str] = None
    image_prompt: Optional[str] = None

    @property
    def display_text(self) -> str:
        if self.expression and self.expression.strip():
            return f"{self.reading} ({self.expression})"
        return self.reading


@dataclass
class StagedImage:
    """An image candidate sitting in the staging directory."""

    relative_path: str
    context: Optional[str]
    generated_at_utc: datetime
    prompt: Optional[str] = None


@dataclass
class GeneratedExplanations:
    context: Optional[str]
    explanations: dict  # ExplanationLevel -> str


@dataclass
class GeneratedImage:
    context: Optional[str]
    data: bytes
    extension: str
    prompt: Optional[str] = None


@dataclass
class Attempt:
    """One generation try inside an orchestration session.

    A failed try keeps its slot with ``payload`` set to None so the numbering
    shown to the user stays stable across retries.
    """

    index: int
    context: Optional[str]
    payload: object = None  # dict of explanations or StagedImage
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.payload is not None

"""Core data structures for the Glossa reading aid."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .dom import LiveElement


@dataclass(frozen=True)
class CandidateBlock:
    """Text of one block-level node taken from the cleaned article."""

    text: str


@dataclass
class MatchResult:
    """A candidate block paired with the live element that holds it."""

    block: CandidateBlock
    element: "LiveElement"
    score: float


@dataclass
class TranslatedBlock:
    """One block as returned by the batch translation service."""

    original: str
    translated: str


@dataclass
class Batch:
    """A group of blocks sent to the translation service in one request."""

    batch_id: int
    start: int
    blocks: List[str]


@dataclass
class TranslationOutcome:
    """Aggregated result of translating every batch of a page."""

    blocks: List[TranslatedBlock]
    failed_batches: int
    total_batches: int
    error_messages: List[str] = field(default_factory=list)


@dataclass
class Article:
    """Readable article extracted from a page."""

    title: str
    html: str
    length: int


@dataclass
class WordFragment:
    """A piece of translated text; ``key`` is set for interactive word units."""

    text: str
    key: Optional[str] = None

    @property
    def interactive(self) -> bool:
        return self.key is not None


@dataclass
class WordAnalysis:
    """Structured result of a deeper word analysis."""

    translation: str
    pos: Optional[str] = None
    article: Optional[str] = None
    example: Optional[str] = None
    explanation: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "WordAnalysis":
        if not isinstance(payload, dict):
            raise ValueError("analysis payload must be an object")
        translation = payload.get("translation")
        if not isinstance(translation, str) or not translation.strip():
            raise ValueError("analysis payload is missing a translation")

        def _optional(name: str) -> Optional[str]:
            value = payload.get(name)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            translation=translation.strip(),
            pos=_optional("pos"),
            article=_optional("article"),
            example=_optional("example"),
            explanation=_optional("explanation"),
        )


@dataclass
class Settings:
    """Learner preferences used when translating and analysing."""

    native_language: str = "English"
    target_language: str = "German"
    cefr_level: str = "B1"
    simplify: bool = True
    auto_translate: bool = False


@dataclass
class PageReport:
    """Report returned after translating a page."""

    title: str
    matched_blocks: int
    applied_blocks: int
    failed_batches: int
    total_batches: int
    target_language: str
    cefr_level: str
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)

"""Error reporting policy: recorded failures and user-facing notices."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .errors import (
    ErrorCategory,
    ErrorRecord,
    ExtractionFailure,
    InvalidCredentialError,
    MatchFailure,
    MissingCredentialError,
    SessionActiveError,
)
from .structures import PageReport


@dataclass
class Notice:
    """A message for the surface that started an operation."""

    kind: str  # "success", "warning", "info" or "error"
    title: str
    hint: str = ""
    show_settings: bool = False


class FailureLog:
    """Collects handled failures so they can be summarised afterwards."""

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []

    def record(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        return record

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]


def describe_failure(exc: BaseException) -> Notice:
    """Translate an exception into the notice shown to the user."""

    message = str(exc) or "Translation failed"

    if isinstance(exc, SessionActiveError):
        return Notice(kind="info", title=message)
    if isinstance(exc, ExtractionFailure):
        return Notice(
            kind="error",
            title="No content found",
            hint="Navigate to an article page with readable content.",
        )
    if isinstance(exc, MatchFailure):
        return Notice(
            kind="error",
            title="Could not match content",
            hint="The article was found but its paragraphs could not be located on the page.",
        )
    if isinstance(exc, MissingCredentialError):
        return Notice(
            kind="error",
            title=message,
            hint="Add your OpenAI API key in settings.",
            show_settings=True,
        )
    if isinstance(exc, InvalidCredentialError):
        return Notice(
            kind="error",
            title=message,
            hint="Your API key may be invalid.",
            show_settings=True,
        )

    lowered = message.lower()
    if "api key" in lowered:
        return Notice(
            kind="error",
            title=message,
            hint="Add your OpenAI API key in settings.",
            show_settings=True,
        )
    if "429" in message or "rate" in lowered:
        return Notice(
            kind="error",
            title=message,
            hint="Rate limited. Wait a moment and try again.",
        )
    if "401" in message or "invalid" in lowered:
        return Notice(
            kind="error",
            title=message,
            hint="Your API key may be invalid.",
            show_settings=True,
        )
    return Notice(kind="error", title=message, hint="Please try again later.")


def summarise_report(report: PageReport) -> Notice:
    """Success notice, downgraded to a warning when batches failed."""

    if report.failed_batches > 0:
        return Notice(
            kind="warning",
            title=(
                f"Translated {report.applied_blocks} paragraphs "
                f"({report.failed_batches}/{report.total_batches} batches failed "
                "- some text unchanged)"
            ),
        )
    return Notice(kind="success", title=f"Translated {report.applied_blocks} paragraphs")

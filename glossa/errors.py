"""Error definitions and policy helpers for the Glossa reading aid."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises runtime errors so they can be reported consistently."""

    ARGUMENT = auto()
    FILE_IO = auto()
    EXTRACTION = auto()
    MATCHING = auto()
    TRANSLATION = auto()
    CREDENTIAL = auto()
    ANALYSIS = auto()
    SESSION = auto()
    OTHER = auto()


class GlossaError(Exception):
    """Base exception for all custom errors."""

    category = ErrorCategory.OTHER


class ExtractionFailure(GlossaError):
    """Raised when no readable article could be extracted from the page."""

    category = ErrorCategory.EXTRACTION


class MatchFailure(GlossaError):
    """Raised when extracted blocks could not be located in the live page."""

    category = ErrorCategory.MATCHING


class SessionActiveError(GlossaError):
    """Raised when a translation is started while another one is active."""

    category = ErrorCategory.SESSION


class UnsupportedFileTypeError(GlossaError):
    """Raised when a given file extension is not supported."""

    category = ErrorCategory.ARGUMENT


class OverwriteRefusedError(GlossaError):
    """Raised when attempting to overwrite an output without consent."""

    category = ErrorCategory.FILE_IO


class TranslationProviderConfigurationError(GlossaError):
    """Raised when the translation provider is misconfigured."""

    category = ErrorCategory.CREDENTIAL


class MissingCredentialError(TranslationProviderConfigurationError):
    """Raised when no API key is configured for the selected provider."""


class InvalidCredentialError(TranslationProviderConfigurationError):
    """Raised when the upstream service rejects the configured API key."""


class TranslationProviderError(GlossaError):
    """Raised when the translation provider fails permanently."""

    category = ErrorCategory.TRANSLATION


class BatchTranslationFailure(TranslationProviderError):
    """Raised when a single batch could not be translated."""

    def __init__(self, message: str, *, batch_id: int | None = None) -> None:
        super().__init__(message)
        self.batch_id = batch_id


class AnalysisFailure(GlossaError):
    """Raised when word analysis is unavailable or returned malformed data."""

    category = ErrorCategory.ANALYSIS


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None

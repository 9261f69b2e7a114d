"""Translation, analysis and word-gloss provider abstractions."""

from __future__ import annotations

import asyncio
import csv
import json
import pathlib
import re
import sys
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from .errors import (
    AnalysisFailure,
    InvalidCredentialError,
    MissingCredentialError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .structures import Settings, TranslatedBlock, WordAnalysis

if TYPE_CHECKING:  # pragma: no cover
    from .configuration import GlossaConfig

LANGUAGE_CODES = {
    "English": "en",
    "German": "de",
    "French": "fr",
    "Spanish": "es",
    "Italian": "it",
    "Portuguese": "pt",
    "Dutch": "nl",
    "Polish": "pl",
    "Russian": "ru",
    "Japanese": "ja",
    "Chinese": "zh",
    "Korean": "ko",
}

BLOCK_PREFIX_PATTERN = re.compile(r"^#\d+:\s*")


def language_code(language: str) -> str:
    """Map a language name to its ISO-639-1 code."""

    cleaned = language.strip()
    code = LANGUAGE_CODES.get(cleaned.title())
    if code:
        return code
    return cleaned.lower()[:2]


def build_prompt(blocks: Sequence[str], settings: Settings) -> str:
    """Number the blocks and describe the learner for the translator."""

    numbered = "\n\n".join(
        f"#{index + 1}: {block}" for index, block in enumerate(blocks)
    )
    instructions = (
        f"Translate to {settings.target_language} (Level {settings.cefr_level}) "
        f"for a {settings.native_language} speaker."
    )
    if settings.simplify:
        instructions += (
            f" Prefer vocabulary and sentence structures a {settings.cefr_level} "
            "learner can follow."
        )
    return f"{instructions}\n\n{numbered}"


def strip_block_prefix(text: str) -> str:
    return BLOCK_PREFIX_PATTERN.sub("", text)


class BlockTranslationProvider(ABC):
    """Abstract adapter for batch block translation."""

    name = "abstract"

    @abstractmethod
    def translate_blocks(
        self,
        blocks: Sequence[str],
        *,
        settings: Settings,
    ) -> List[TranslatedBlock]:
        """Translate the blocks of one batch, in order."""


class EchoBlockProvider(BlockTranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def translate_blocks(
        self,
        blocks: Sequence[str],
        *,
        settings: Settings,
    ) -> List[TranslatedBlock]:
        return [TranslatedBlock(original=block, translated=block) for block in blocks]


class WordAnalyzer(ABC):
    """Abstract adapter for deeper, context-aware word analysis."""

    @abstractmethod
    def analyze(self, word: str, context: str, settings: Settings) -> WordAnalysis:
        """Analyse ``word`` as used in ``context``."""


class _OpenAIService:
    """Builds an OpenAI or Azure OpenAI client from configuration."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        config: "GlossaConfig",
        *,
        debug: bool = False,
        model: str | None = None,
    ) -> None:
        self.config = config
        self.debug = debug
        self.provider_kind = config.LLM_PROVIDER
        self._client, self._default_model = self._build_client()
        override = model or config.GLOSSA_MODEL
        if override:
            self._default_model = override

    def _build_client(self) -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client()

        return self._build_openai_client()

    def _build_openai_client(self) -> tuple[Any, str]:
        api_key = self.config.OPENAI_API_KEY
        if not api_key:
            raise MissingCredentialError(
                "Missing OpenAI API key. Set OPENAI_API_KEY in your settings."
            )
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        return OpenAI(api_key=api_key), self.DEFAULT_MODEL

    def _build_azure_client(self) -> tuple[Any, str]:
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": self.config.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": self.config.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": self.config.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": self.config.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            raise MissingCredentialError(
                "Azure OpenAI API key configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        try:
            from openai import AzureOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        client = AzureOpenAI(
            api_key=self.config.AZURE_OPENAI_API_KEY,
            api_version=self.config.AZURE_OPENAI_API_VERSION,
            azure_endpoint=self.config.AZURE_OPENAI_ENDPOINT,
        )
        return client, self.config.AZURE_OPENAI_DEPLOYMENT_NAME  # type: ignore[return-value]

    def _complete_json(
        self,
        *,
        messages: list[dict[str, str]],
        model: str | None = None,
    ) -> Any:
        """Call the Chat Completions API in JSON mode and parse the reply."""

        self._log_debug("provider.request.messages", messages)
        try:
            response = self._client.chat.completions.create(
                model=model or self._default_model,
                response_format={"type": "json_object"},
                messages=messages,
            )
        except Exception as exc:  # pragma: no cover - network call
            status = getattr(exc, "status_code", None)
            if status == 401:
                raise InvalidCredentialError(f"Invalid API key ({status})") from exc
            if status is not None:
                raise TranslationProviderError(f"API error: {status} - {exc}") from exc
            raise TranslationProviderError(
                f"Translation service temporarily unavailable — {exc}"
            ) from exc

        choices = getattr(response, "choices", None) or []
        content: str | None = None
        for choice in choices:
            message = getattr(choice, "message", None)
            message_content = getattr(message, "content", None)
            if message_content:
                content = str(message_content)
                break
        self._log_debug("provider.response.content", content)

        if not content:
            raise TranslationProviderError("Empty response from API")
        try:
            return json.loads(self._strip_code_fence(content))
        except json.JSONDecodeError as exc:
            raise TranslationProviderError(
                f"Translation provider returned invalid JSON: {exc}"
            ) from exc

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not getattr(self, "debug", False):
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except Exception:
            message = repr(payload)
        print(f"[glossa][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()


class OpenAIBlockProvider(_OpenAIService, BlockTranslationProvider):
    """Batch translation through OpenAI chat models."""

    name = "openai"

    SYSTEM_PROMPT = (
        "Translate the numbered text blocks. Return JSON with 'blocks' array: "
        "[{ original, translated }]. Do NOT include the #1:, #2: etc. prefixes in "
        "your translations - just the translated text."
    )

    def translate_blocks(
        self,
        blocks: Sequence[str],
        *,
        settings: Settings,
    ) -> List[TranslatedBlock]:
        if not blocks:
            return []

        payload = self._complete_json(
            messages=[
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(blocks, settings)},
            ]
        )
        return self._parse_blocks(payload, blocks)

    def _parse_blocks(self, payload: Any, sent: Sequence[str]) -> List[TranslatedBlock]:
        items = payload.get("blocks") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise TranslationProviderError(
                "Translation provider response malformed: could not find blocks list."
            )

        translated: List[TranslatedBlock] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise TranslationProviderError(
                    "Translation provider response malformed: expected objects."
                )
            original = item.get("original")
            if not isinstance(original, str) or not original:
                original = sent[index] if index < len(sent) else ""
            text = item.get("translated")
            translated.append(
                TranslatedBlock(
                    original=original,
                    translated=strip_block_prefix(text if isinstance(text, str) else ""),
                )
            )
        return translated


class OpenAIWordAnalyzer(_OpenAIService, WordAnalyzer):
    """Context-aware grammar analysis of a single word."""

    def analyze(self, word: str, context: str, settings: Settings) -> WordAnalysis:
        prompt = (
            f'Analyze the word "{word}" in this context: "{context}".\n'
            f"Target language: {settings.target_language}. "
            f"Learner speaks: {settings.native_language}.\n"
            "Return JSON: {\n"
            '  "translation": "string",\n'
            '  "pos": "string (noun/verb/adj etc)",\n'
            '  "article": "string or null (if applicable, e.g. der/die/das)",\n'
            '  "example": "simple example sentence in target language",\n'
            '  "explanation": "brief explanation of usage in this context"\n'
            "}"
        )
        try:
            payload = self._complete_json(messages=[{"role": "user", "content": prompt}])
            return WordAnalysis.from_payload(payload)
        except (TranslationProviderError, ValueError) as exc:
            raise AnalysisFailure(f"Analysis failed: {exc}") from exc


class WordTranslator(ABC):
    """Fast single-word translator that may be unavailable at runtime."""

    @abstractmethod
    async def initialize(self, source_language: str, target_language: str) -> bool:
        """Prepare the translator; return whether it is usable."""

    @abstractmethod
    async def translate(self, word: str) -> Optional[str]:
        """Translate one word, or return ``None`` when it cannot."""


class UnavailableWordTranslator(WordTranslator):
    """Stand-in used when no on-device translator exists."""

    async def initialize(self, source_language: str, target_language: str) -> bool:
        return False

    async def translate(self, word: str) -> Optional[str]:
        return None


class LexiconWordTranslator(WordTranslator):
    """Offline glossary lookup from a JSON object or a two-column TSV file.

    ``{source}`` and ``{target}`` in the path are replaced by language codes.
    """

    def __init__(self, path: str | pathlib.Path) -> None:
        self.path_template = str(path)
        self.entries: Dict[str, str] | None = None

    async def initialize(self, source_language: str, target_language: str) -> bool:
        path = pathlib.Path(
            self.path_template.format(
                source=language_code(source_language),
                target=language_code(target_language),
            )
        ).expanduser()
        try:
            self.entries = await asyncio.to_thread(self._load, path)
        except (OSError, ValueError):
            self.entries = None
        return bool(self.entries)

    def _load(self, path: pathlib.Path) -> Dict[str, str]:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError(f"Lexicon {path} must contain a JSON object.")
            return {str(key): str(value) for key, value in data.items()}

        entries: Dict[str, str] = {}
        for row in csv.reader(text.splitlines(), delimiter="\t"):
            if len(row) < 2 or not row[0].strip() or row[0].startswith("#"):
                continue
            entries[row[0].strip()] = row[1].strip()
        return entries

    async def translate(self, word: str) -> Optional[str]:
        if not self.entries:
            return None
        return self.entries.get(word) or self.entries.get(word.lower())


def build_block_provider(
    name: str | None,
    config: "GlossaConfig",
    *,
    debug: bool = False,
    model: str | None = None,
) -> BlockTranslationProvider:
    """Factory to create block translation providers by name."""

    normalized = (name or "openai").strip().lower()
    if normalized in {"openai", "gpt", "default"}:
        return OpenAIBlockProvider(config, debug=debug, model=model)
    if normalized in {"echo", "noop", "mock"}:
        return EchoBlockProvider()
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )


def build_word_analyzer(
    config: "GlossaConfig",
    *,
    debug: bool = False,
    model: str | None = None,
) -> WordAnalyzer:
    return OpenAIWordAnalyzer(config, debug=debug, model=model)


def build_word_translator(config: "GlossaConfig") -> WordTranslator:
    if config.GLOSSA_WORD_LEXICON:
        return LexiconWordTranslator(config.GLOSSA_WORD_LEXICON)
    return UnavailableWordTranslator()


def verify_api_key(api_key: str | None) -> None:
    """Check an OpenAI API key by listing the available models."""

    if not api_key or not api_key.strip():
        raise MissingCredentialError("Please enter an API key first.")
    try:
        from openai import OpenAI  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise TranslationProviderConfigurationError(
            "OpenAI Python SDK not installed. Install with `pip install openai`."
        ) from exc

    client = OpenAI(api_key=api_key.strip())
    try:
        client.models.list()
    except Exception as exc:  # pragma: no cover - network call
        status = getattr(exc, "status_code", None)
        raise InvalidCredentialError(
            f"Invalid API key ({status or 'unreachable'})"
        ) from exc

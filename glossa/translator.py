"""High-level orchestration for page translation."""

from __future__ import annotations

import asyncio
import pathlib
import time
from typing import List, Optional, Sequence

from .configuration import DEFAULT_BATCH_TIMEOUT, SettingsStore
from .documents import ArticleExtractor, Extractor
from .dom import LiveDocument
from .errors import (
    BatchTranslationFailure,
    ErrorCategory,
    ExtractionFailure,
    GlossaError,
    MatchFailure,
    OverwriteRefusedError,
    SessionActiveError,
    TranslationProviderConfigurationError,
)
from .interaction import InteractionController
from .matching import match_blocks
from .policy import FailureLog
from .providers import BlockTranslationProvider
from .rewriter import SessionManager, TranslationSession
from .segmenter import BatchBuilder, split_blocks
from .structures import Batch, PageReport, Settings, TranslatedBlock, TranslationOutcome


class BatchTranslator:
    """Translates blocks in small batches dispatched concurrently.

    A batch that fails or exceeds the timeout keeps its original text; the
    remaining batches are still applied.
    """

    def __init__(
        self,
        provider: BlockTranslationProvider,
        *,
        settings: Settings,
        timeout: float = DEFAULT_BATCH_TIMEOUT,
        max_blocks: int = 2,
        verbose: bool = False,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.timeout = timeout
        self.max_blocks = max_blocks
        self.verbose = verbose
        self.failures = FailureLog()

    async def translate(self, blocks: Sequence[str]) -> TranslationOutcome:
        batches = BatchBuilder(self.max_blocks).build(blocks)
        if self.verbose:
            print(f"Prepared {len(blocks)} blocks in {len(batches)} batches.")

        results = await asyncio.gather(
            *(self._process_batch(batch, len(batches)) for batch in batches)
        )

        assembled: List[TranslatedBlock] = []
        failed = 0
        for translated, succeeded in results:
            assembled.extend(translated)
            if not succeeded:
                failed += 1

        return TranslationOutcome(
            blocks=assembled,
            failed_batches=failed,
            total_batches=len(batches),
            error_messages=self.failures.messages,
        )

    async def _process_batch(
        self,
        batch: Batch,
        total: int,
    ) -> tuple[List[TranslatedBlock], bool]:
        label = f"Batch {batch.batch_id}/{total}"
        started = time.time()
        try:
            translated = await asyncio.wait_for(
                asyncio.to_thread(
                    self.provider.translate_blocks,
                    batch.blocks,
                    settings=self.settings,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            failure: Exception = BatchTranslationFailure(
                f"{label} timed out after {self.timeout:g} seconds.",
                batch_id=batch.batch_id,
            )
        except TranslationProviderConfigurationError:
            raise
        except Exception as exc:  # any other failure degrades this batch only
            failure = exc
        else:
            if self.verbose:
                print(
                    f"Processed {label.lower()} ({len(batch.blocks)} blocks, "
                    f"{time.time() - started:.2f}s)."
                )
            return self._align(batch, translated), True

        self.failures.record(ErrorCategory.TRANSLATION, f"{label} failed - {failure}")
        if self.verbose:
            print(f"{label} failed - {failure}. Keeping the original text.")
        return [TranslatedBlock(original=text, translated=text) for text in batch.blocks], False

    def _align(
        self,
        batch: Batch,
        translated: Sequence[TranslatedBlock],
    ) -> List[TranslatedBlock]:
        """One result per sent block, in order; gaps keep the original text."""

        aligned: List[TranslatedBlock] = []
        for index, text in enumerate(batch.blocks):
            result = translated[index] if index < len(translated) else None
            translated_text = result.translated if result is not None else ""
            aligned.append(
                TranslatedBlock(original=text, translated=translated_text or text)
            )
        return aligned


class PageTranslator:
    """Coordinates extraction, matching, translation and in-place rewriting."""

    def __init__(
        self,
        document: LiveDocument,
        *,
        provider: BlockTranslationProvider,
        settings_store: SettingsStore | None = None,
        extractor: Extractor | None = None,
        controller: InteractionController | None = None,
        timeout: float = DEFAULT_BATCH_TIMEOUT,
        verbose: bool = False,
    ) -> None:
        self.document = document
        self.provider = provider
        self.settings_store = settings_store or SettingsStore()
        self.extractor = extractor or ArticleExtractor()
        self.controller = controller
        self.timeout = timeout
        self.verbose = verbose
        self.sessions = SessionManager(document, controller)
        self._in_progress = False

    @property
    def session(self) -> Optional[TranslationSession]:
        return self.sessions.active

    async def translate_page(self) -> PageReport:
        if self._in_progress:
            raise SessionActiveError("Translation already in progress")
        self.sessions.ensure_idle()
        self._in_progress = True
        try:
            return await self._translate()
        finally:
            self._in_progress = False

    async def maybe_auto_translate(self) -> Optional[PageReport]:
        """Translate straight away when the learner enabled auto-translate."""

        if not self.settings_store.read().auto_translate:
            return None
        return await self.translate_page()

    async def _translate(self) -> PageReport:
        start_time = time.time()

        article = self.extractor.extract(self.document)
        if article is None:
            raise ExtractionFailure("No content found")

        blocks = split_blocks(article.html)
        if not blocks:
            raise ExtractionFailure("No readable content")

        matches = match_blocks(blocks, self.document)
        if not matches:
            raise MatchFailure("Could not match content")
        if self.verbose:
            print(f"Matched {len(matches)} of {len(blocks)} article blocks.")

        settings = self.settings_store.read()
        batch_translator = BatchTranslator(
            self.provider,
            settings=settings,
            timeout=self.timeout,
            verbose=self.verbose,
        )
        outcome = await batch_translator.translate([match.block.text for match in matches])

        session = self.sessions.apply([match.element for match in matches], outcome.blocks)
        if self.controller is not None:
            # Word glosses go from the language being learned back to the native one.
            self.controller.prepare_word_translator(
                settings.target_language, settings.native_language
            )

        return PageReport(
            title=article.title,
            matched_blocks=len(matches),
            applied_blocks=len(session.elements),
            failed_batches=outcome.failed_batches,
            total_batches=outcome.total_batches,
            target_language=settings.target_language,
            cefr_level=settings.cefr_level,
            elapsed_seconds=time.time() - start_time,
            error_messages=outcome.error_messages,
        )

    def restore(self) -> bool:
        return self.sessions.restore()


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .html page."
        )
    if not input_path.is_file():
        raise GlossaError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input page. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists — rename or use the overwrite flag."
        )

"""Word and sentence interaction modes over a translated page.

Input events are fed one at a time through :meth:`InteractionController.dispatch`.
Word clicks open a gloss popup; clicks while a modifier key is held reveal
the original text of the whole block. The two never fire for the same
event: in sentence mode word units are transparent to the pointer, so a
click lands on the translated block itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Coroutine, Optional, Set

from .configuration import SettingsStore
from .dom import LiveDocument, LiveElement
from .errors import AnalysisFailure, GlossaError
from .providers import UnavailableWordTranslator, WordAnalyzer, WordTranslator
from .rewriter import (
    CONTEXT_KEY,
    HOVER_CLASS,
    ORIGINAL_KEY,
    SENTENCE_MODE_CLASS,
    TRANSLATED_CLASS,
    WORD_CLASS,
    WORD_KEY,
)
from .structures import WordAnalysis

MODIFIER_KEYS = frozenset({"Control", "Meta"})
ESCAPE_KEY = "Escape"


@dataclass
class KeyDown:
    key: str
    type: ClassVar[str] = "keydown"


@dataclass
class KeyUp:
    key: str
    type: ClassVar[str] = "keyup"


@dataclass
class PointerMove:
    target: Optional[LiveElement]
    type: ClassVar[str] = "pointermove"


@dataclass
class PointerEnter:
    type: ClassVar[str] = "pointerenter"


@dataclass
class PointerLeave:
    type: ClassVar[str] = "pointerleave"


@dataclass
class Click:
    target: Optional[LiveElement]
    in_popup: bool = False
    type: ClassVar[str] = "click"


@dataclass
class Blur:
    type: ClassVar[str] = "blur"


class Mode(Enum):
    IDLE = "idle"
    WORD_FOCUSED = "word_focused"
    SENTENCE_HOVER = "sentence_hover"
    SENTENCE_REVEALED = "sentence_revealed"


class PopupKind(Enum):
    WORD = "word"
    ORIGINAL = "original"


class PopupStatus(Enum):
    LOADING = "loading"
    READY = "ready"


class ButtonState(Enum):
    HIDDEN = "hidden"
    IDLE = "idle"
    BUSY = "busy"
    RETRY = "retry"


@dataclass
class Popup:
    """Content of the single popup shown next to a word or block."""

    kind: PopupKind
    anchor: LiveElement
    word: str = ""
    original: str = ""
    status: PopupStatus = PopupStatus.READY
    message: str = ""
    gloss: Optional[str] = None
    analysis: Optional[WordAnalysis] = None
    button: ButtonState = ButtonState.HIDDEN
    error: Optional[str] = None
    closed: bool = False


@dataclass
class InteractionState:
    modifier_held: bool = False
    pointer_target: Optional[LiveElement] = None
    hovered: Optional[LiveElement] = None
    active_popup: Optional[Popup] = None
    clicked_unit: Optional[LiveElement] = None
    mode: Mode = Mode.IDLE


class InteractionController:
    """State machine routing keyboard and pointer input on a translated page."""

    def __init__(
        self,
        document: LiveDocument,
        *,
        settings_store: SettingsStore | None = None,
        word_translator: WordTranslator | None = None,
        analyzer: WordAnalyzer | None = None,
    ) -> None:
        self.document = document
        self.settings_store = settings_store or SettingsStore()
        self.word_translator = word_translator or UnavailableWordTranslator()
        self.analyzer = analyzer
        self.state = InteractionState()
        self.translator_languages: tuple[str, str] | None = None
        self._translator_init: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # --- lifecycle ----------------------------------------------------------

    def prepare_word_translator(self, source_language: str, target_language: str) -> None:
        """Remember the language pair; initialisation waits for the first word click."""

        self.translator_languages = (source_language, target_language)
        self._translator_init = None

    def reset(self) -> None:
        """Drop popup, highlight and word translator state."""

        self.close_popup()
        self._clear_hover()
        self.document.body.remove_class(SENTENCE_MODE_CLASS)
        self.state = InteractionState()
        self.translator_languages = None
        self._translator_init = None

    async def settle(self) -> None:
        """Wait for every lookup started by earlier events."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # --- dispatch -----------------------------------------------------------

    def dispatch(self, event: Any) -> None:
        if isinstance(event, KeyDown):
            self._on_key_down(event)
        elif isinstance(event, KeyUp):
            if event.key in MODIFIER_KEYS:
                self._exit_sentence_mode()
        elif isinstance(event, Blur):
            self._exit_sentence_mode()
        elif isinstance(event, PointerMove):
            self.state.pointer_target = event.target
            if self.state.modifier_held:
                self._refresh_hover()
        elif isinstance(event, Click):
            self._on_click(event)
        else:
            raise TypeError(f"Unsupported event {event!r}")

    def _on_key_down(self, event: KeyDown) -> None:
        if event.key == ESCAPE_KEY:
            self.close_popup()
            return
        if event.key in MODIFIER_KEYS and not self.state.modifier_held:
            self.state.modifier_held = True
            self.document.body.add_class(SENTENCE_MODE_CLASS)
            self._refresh_hover()

    def _exit_sentence_mode(self) -> None:
        self.state.modifier_held = False
        self.document.body.remove_class(SENTENCE_MODE_CLASS)
        self._clear_hover()

    def _on_click(self, event: Click) -> None:
        if event.in_popup:
            return
        target = event.target
        if target is not None and self.state.modifier_held:
            unit = target.closest(WORD_CLASS)
            if unit is not None and unit.parent is not None:
                target = unit.parent
        consumed = target is not None and self.document.dispatch(target, event)
        if not consumed:
            self._on_outside_click(target)

    def _on_outside_click(self, target: Optional[LiveElement]) -> None:
        if self.state.active_popup is None:
            return
        if target is not None and (
            target.closest(WORD_CLASS) is not None
            or target.closest(TRANSLATED_CLASS) is not None
        ):
            return
        self.close_popup()

    # --- handlers wired by the rewriter -------------------------------------

    def on_word_click(self, event: Any, unit: LiveElement) -> bool:
        if self.state.modifier_held:
            return False
        if self.state.clicked_unit == unit and self.state.active_popup is not None:
            self.close_popup()
            return True
        self.open_word_popup(unit)
        return True

    def on_sentence_enter(self, event: Any, element: LiveElement) -> bool:
        if not self.state.modifier_held:
            return False
        self._clear_hover()
        self.state.hovered = element
        element.add_class(HOVER_CLASS)
        if self.state.active_popup is None:
            self.state.mode = Mode.SENTENCE_HOVER
        return True

    def on_sentence_leave(self, event: Any, element: LiveElement) -> bool:
        if not self.state.modifier_held:
            return False
        element.remove_class(HOVER_CLASS)
        if self.state.hovered == element:
            self.state.hovered = None
            self._settle_mode()
        return True

    def on_sentence_click(self, event: Any, element: LiveElement) -> bool:
        if not self.state.modifier_held:
            return False
        self.show_original(element)
        return True

    # --- hover --------------------------------------------------------------

    def _block_under_pointer(self) -> Optional[LiveElement]:
        target = self.state.pointer_target
        if target is None or not self.document.contains(target):
            return None
        return target.closest(TRANSLATED_CLASS)

    def _refresh_hover(self) -> None:
        block = self._block_under_pointer()
        if block == self.state.hovered:
            return
        if self.state.hovered is not None:
            self._fire(self.state.hovered, PointerLeave())
            self._clear_hover()
        if block is not None:
            self._fire(block, PointerEnter())

    def _clear_hover(self) -> None:
        hovered = self.state.hovered
        if hovered is not None:
            hovered.remove_class(HOVER_CLASS)
            self.state.hovered = None
        self._settle_mode()

    def _fire(self, element: LiveElement, event: Any) -> None:
        for listener in self.document.listeners(element, event.type):
            listener.handler(event, element)

    def _settle_mode(self) -> None:
        popup = self.state.active_popup
        if popup is not None:
            self.state.mode = (
                Mode.WORD_FOCUSED if popup.kind is PopupKind.WORD else Mode.SENTENCE_REVEALED
            )
        elif self.state.hovered is not None:
            self.state.mode = Mode.SENTENCE_HOVER
        else:
            self.state.mode = Mode.IDLE

    # --- popups -------------------------------------------------------------

    def close_popup(self) -> None:
        popup = self.state.active_popup
        if popup is not None:
            popup.closed = True
        self.state.active_popup = None
        self.state.clicked_unit = None
        self._settle_mode()

    def _is_active(self, popup: Popup) -> bool:
        return self.state.active_popup is popup and not popup.closed

    def show_original(self, element: LiveElement) -> Popup:
        self.close_popup()
        block = element.closest(TRANSLATED_CLASS) or element
        popup = Popup(
            kind=PopupKind.ORIGINAL,
            anchor=block,
            original=block.get_data(ORIGINAL_KEY) or "",
        )
        self.state.active_popup = popup
        self.state.mode = Mode.SENTENCE_REVEALED
        return popup

    def open_word_popup(self, unit: LiveElement) -> Popup:
        self.close_popup()
        word = unit.get_data(WORD_KEY) or unit.text
        popup = Popup(
            kind=PopupKind.WORD,
            anchor=unit,
            word=word,
            status=PopupStatus.LOADING,
        )
        self.state.active_popup = popup
        self.state.clicked_unit = unit
        self.state.mode = Mode.WORD_FOCUSED
        self._spawn(self._word_lookup(popup))
        return popup

    async def _word_lookup(self, popup: Popup) -> None:
        if self._translator_init is None and self.translator_languages:
            # The on-device translator may only start after a user gesture.
            source, target = self.translator_languages
            self._translator_init = asyncio.ensure_future(
                self._initialize_translator(source, target)
            )

        ready = False
        init = self._translator_init
        if init is not None:
            if init.done():
                ready = init.result()
            else:
                popup.message = "Setting up translator..."
                ready = await init
            if not self._is_active(popup):
                return

        gloss: Optional[str] = None
        if ready:
            popup.message = "Translating..."
            try:
                gloss = await self.word_translator.translate(popup.word)
            except Exception:  # degrade to analysis only
                gloss = None
            if not self._is_active(popup):
                return

        popup.gloss = gloss
        popup.status = PopupStatus.READY
        popup.message = ""
        popup.button = ButtonState.IDLE

    async def _initialize_translator(self, source: str, target: str) -> bool:
        try:
            return await self.word_translator.initialize(source, target)
        except Exception:  # degrade to "unavailable"
            return False

    def analyze(self, popup: Popup | None = None) -> Optional[asyncio.Task]:
        """Start the deeper analysis for the active word popup (button click)."""

        popup = popup or self.state.active_popup
        if popup is None or popup.kind is not PopupKind.WORD:
            return None
        if not self._is_active(popup) or popup.button is ButtonState.BUSY:
            return None
        popup.button = ButtonState.BUSY
        popup.error = None
        return self._spawn(self._analyze(popup))

    async def _analyze(self, popup: Popup) -> None:
        block = popup.anchor.closest(TRANSLATED_CLASS)
        context = (block.get_data(CONTEXT_KEY) if block is not None else None) or ""
        settings = self.settings_store.read()
        try:
            if self.analyzer is None:
                raise AnalysisFailure("Word analysis is not configured.")
            analysis = await asyncio.to_thread(
                self.analyzer.analyze, popup.word, context, settings
            )
        except Exception as exc:  # failure stays in the popup with a retry
            if self._is_active(popup):
                popup.button = ButtonState.RETRY
                popup.error = (
                    str(exc) if isinstance(exc, GlossaError) else f"Analysis failed: {exc}"
                )
            return
        if not self._is_active(popup):
            return
        popup.analysis = analysis
        popup.button = ButtonState.HIDDEN

    def _spawn(self, coroutine: Coroutine[Any, Any, None]) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coroutine)
            return None
        task = loop.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

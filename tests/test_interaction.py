import asyncio
from typing import List, Optional

import pytest

from glossa.configuration import SettingsStore
from glossa.dom import LiveDocument, LiveElement
from glossa.errors import AnalysisFailure
from glossa.interaction import (
    Blur,
    ButtonState,
    Click,
    InteractionController,
    KeyDown,
    KeyUp,
    Mode,
    PointerMove,
    PopupKind,
    PopupStatus,
)
from glossa.providers import WordAnalyzer, WordTranslator
from glossa.rewriter import HOVER_CLASS, SENTENCE_MODE_CLASS, WORD_CLASS, SessionManager
from glossa.structures import Settings, TranslatedBlock, WordAnalysis

FIRST_TRANSLATION = "Der Hund läuft schnell."
SECOND_TRANSLATION = "Viele Besitzer gehen spazieren."


class FakeWordTranslator(WordTranslator):
    def __init__(self) -> None:
        self.init_calls: List[tuple] = []
        self.glossary = {"Hund": "dog", "läuft": "runs"}

    async def initialize(self, source_language: str, target_language: str) -> bool:
        self.init_calls.append((source_language, target_language))
        await asyncio.sleep(0)
        return True

    async def translate(self, word: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self.glossary.get(word)


class FlakyAnalyzer(WordAnalyzer):
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: List[tuple] = []

    def analyze(self, word: str, context: str, settings: Settings) -> WordAnalysis:
        self.calls.append((word, context))
        if self.failures:
            self.failures -= 1
            raise AnalysisFailure("Analysis failed: upstream unreachable")
        return WordAnalysis(translation="dog", pos="noun", article="der")


def _translate(page: LiveDocument, store: SettingsStore, **kwargs):
    controller = InteractionController(page, settings_store=store, **kwargs)
    manager = SessionManager(page, controller)
    first, second = page.find_by_id("first"), page.find_by_id("second")
    manager.apply(
        [first, second],
        [
            TranslatedBlock(original=first.text, translated=FIRST_TRANSLATION),
            TranslatedBlock(original=second.text, translated=SECOND_TRANSLATION),
        ],
    )
    return controller, manager, first, second


def _units(element: LiveElement) -> List[LiveElement]:
    return [child for child in element.children() if child.has_class(WORD_CLASS)]


def test_clicking_the_same_word_twice_closes_the_popup(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    hund = _units(first)[1]

    controller.dispatch(Click(hund))
    popup = controller.state.active_popup
    assert popup is not None and popup.kind is PopupKind.WORD
    assert popup.word == "Hund"
    assert controller.state.mode is Mode.WORD_FOCUSED

    controller.dispatch(Click(hund))
    assert controller.state.active_popup is None
    assert popup.closed
    assert controller.state.mode is Mode.IDLE


def test_word_popup_without_translator_offers_analysis(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)

    controller.dispatch(Click(_units(first)[0]))

    popup = controller.state.active_popup
    assert popup.status is PopupStatus.READY
    assert popup.gloss is None
    assert popup.button is ButtonState.IDLE


def test_blur_leaves_sentence_mode(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    controller.dispatch(PointerMove(_units(first)[0]))

    controller.dispatch(KeyDown("Control"))
    assert controller.state.modifier_held
    assert page.body.has_class(SENTENCE_MODE_CLASS)
    assert first.has_class(HOVER_CLASS)
    assert controller.state.mode is Mode.SENTENCE_HOVER

    controller.dispatch(Blur())
    assert not controller.state.modifier_held
    assert not page.body.has_class(SENTENCE_MODE_CLASS)
    assert not first.has_class(HOVER_CLASS)
    assert controller.state.mode is Mode.IDLE


def test_hover_follows_pointer_between_blocks(page, settings_store) -> None:
    controller, _, first, second = _translate(page, settings_store)
    controller.dispatch(KeyDown("Meta"))

    controller.dispatch(PointerMove(_units(first)[2]))
    assert first.has_class(HOVER_CLASS)

    controller.dispatch(PointerMove(_units(second)[0]))
    assert not first.has_class(HOVER_CLASS)
    assert second.has_class(HOVER_CLASS)
    assert controller.state.hovered == second


def test_modifier_click_on_word_reveals_original_only(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    unit = _units(first)[1]

    controller.dispatch(KeyDown("Control"))
    controller.dispatch(PointerMove(unit))
    controller.dispatch(Click(unit))

    popup = controller.state.active_popup
    assert popup.kind is PopupKind.ORIGINAL
    assert popup.anchor == first
    assert popup.original == (
        "The dog runs quickly through the busy park every single morning."
    )
    assert controller.state.clicked_unit is None
    assert controller.state.mode is Mode.SENTENCE_REVEALED

    controller.dispatch(KeyUp("Control"))
    assert controller.state.active_popup is popup
    assert controller.state.mode is Mode.SENTENCE_REVEALED


def test_original_popup_replaces_word_popup(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    unit = _units(first)[0]
    controller.dispatch(Click(unit))
    word_popup = controller.state.active_popup

    controller.dispatch(KeyDown("Control"))
    controller.dispatch(Click(first))

    assert word_popup.closed
    assert controller.state.active_popup.kind is PopupKind.ORIGINAL


def test_escape_closes_popup(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    controller.dispatch(Click(_units(first)[0]))

    controller.dispatch(KeyDown("Escape"))

    assert controller.state.active_popup is None


def test_outside_click_closes_popup_but_block_click_does_not(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store)
    controller.dispatch(Click(_units(first)[0]))

    controller.dispatch(Click(first))
    assert controller.state.active_popup is not None

    controller.dispatch(Click(_units(first)[0], in_popup=True))
    assert controller.state.active_popup is not None

    controller.dispatch(Click(page.find_by_id("third")))
    assert controller.state.active_popup is None


def test_translator_initialises_lazily_once(page, settings_store) -> None:
    translator = FakeWordTranslator()
    controller, _, first, _ = _translate(page, settings_store, word_translator=translator)
    controller.prepare_word_translator("German", "English")
    assert translator.init_calls == []

    async def scenario():
        hund, laeuft = _units(first)[1], _units(first)[2]
        controller.dispatch(Click(hund))
        stale = controller.state.active_popup
        controller.dispatch(Click(laeuft))
        await controller.settle()
        return stale, controller.state.active_popup

    stale, current = asyncio.run(scenario())

    assert translator.init_calls == [("German", "English")]
    assert stale.closed and stale.gloss is None
    assert stale.status is PopupStatus.LOADING
    assert current.gloss == "runs"
    assert current.status is PopupStatus.READY


def test_failed_analysis_can_be_retried(page, settings_store) -> None:
    analyzer = FlakyAnalyzer(failures=1)
    controller, _, first, _ = _translate(page, settings_store, analyzer=analyzer)
    controller.dispatch(Click(_units(first)[1]))
    popup = controller.state.active_popup

    controller.analyze()
    assert popup.button is ButtonState.RETRY
    assert popup.error == "Analysis failed: upstream unreachable"

    controller.analyze()
    assert popup.button is ButtonState.HIDDEN
    assert popup.error is None
    assert popup.analysis.article == "der"
    assert analyzer.calls[-1] == (
        "Hund",
        "The dog runs quickly through the busy park every single morning.",
    )


class UnreachableAnalyzer(WordAnalyzer):
    def analyze(self, word: str, context: str, settings: Settings) -> WordAnalysis:
        raise ConnectionError("upstream unreachable")


def test_unexpected_analysis_error_offers_retry(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store, analyzer=UnreachableAnalyzer())

    async def scenario():
        controller.dispatch(Click(_units(first)[1]))
        await controller.settle()
        popup = controller.state.active_popup
        controller.analyze()
        await controller.settle()
        return popup

    popup = asyncio.run(scenario())

    assert popup.button is ButtonState.RETRY
    assert popup.error == "Analysis failed: upstream unreachable"
    assert popup.analysis is None


def test_analysis_for_closed_popup_is_discarded(page, settings_store) -> None:
    controller, _, first, _ = _translate(page, settings_store, analyzer=FlakyAnalyzer())

    async def scenario():
        controller.dispatch(Click(_units(first)[1]))
        popup = controller.state.active_popup
        await controller.settle()
        controller.analyze()
        controller.dispatch(KeyDown("Escape"))
        await controller.settle()
        return popup

    popup = asyncio.run(scenario())

    assert popup.analysis is None


def test_restore_resets_interaction_state(page, settings_store) -> None:
    controller, manager, first, _ = _translate(page, settings_store)
    controller.dispatch(Click(_units(first)[0]))
    controller.dispatch(KeyDown("Control"))

    manager.restore()

    assert controller.state.active_popup is None
    assert not page.body.has_class(SENTENCE_MODE_CLASS)


def test_unknown_event_is_rejected(page, settings_store) -> None:
    controller, _, _, _ = _translate(page, settings_store)
    with pytest.raises(TypeError):
        controller.dispatch("scroll")

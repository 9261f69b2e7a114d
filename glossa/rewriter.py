"""Reversible in-place rewriting of matched page elements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from bs4 import PageElement

from .dom import LiveDocument, LiveElement
from .errors import SessionActiveError
from .segmenter import tokenize_words
from .structures import TranslatedBlock

LISTENER_TAG = "glossa"
TRANSLATED_CLASS = "glossa-translated"
WORD_CLASS = "glossa-word"
HOVER_CLASS = "glossa-sentence-hover"
SENTENCE_MODE_CLASS = "glossa-sentence-mode"
STYLE_ID = "glossa-styles"
ORIGINAL_KEY = "glossa-original"
CONTEXT_KEY = "glossa-context"
WORD_KEY = "word"

STYLESHEET = """
.glossa-word { cursor: pointer; border-radius: 3px; }
.glossa-word:hover { background: rgba(99, 102, 241, 0.15); }
.glossa-sentence-mode .glossa-word { pointer-events: none; }
.glossa-sentence-mode .glossa-translated { cursor: help; }
.glossa-sentence-hover { background: rgba(250, 204, 21, 0.25); }
"""


class InteractionHandlers(Protocol):
    """Callbacks the rewriter wires onto rewritten elements."""

    def on_word_click(self, event: Any, element: LiveElement) -> Optional[bool]:
        ...

    def on_sentence_enter(self, event: Any, element: LiveElement) -> Optional[bool]:
        ...

    def on_sentence_leave(self, event: Any, element: LiveElement) -> Optional[bool]:
        ...

    def on_sentence_click(self, event: Any, element: LiveElement) -> Optional[bool]:
        ...


@dataclass
class ElementSnapshot:
    """Everything needed to put an element back exactly as it was."""

    contents: List[PageElement]
    attributes: Dict[str, Any]


@dataclass
class TranslationSession:
    """Elements rewritten by one translation pass and their original text."""

    elements: List[LiveElement]
    originals: List[str]
    snapshots: List[ElementSnapshot] = field(default_factory=list, repr=False)


def install_styles(document: LiveDocument) -> None:
    if document.find_by_id(STYLE_ID) is not None:
        return
    style = document.create_element("style", STYLESHEET, attrs={"id": STYLE_ID})
    container = document.head or document.body
    container.append(style)


def remove_styles(document: LiveDocument) -> None:
    style = document.find_by_id(STYLE_ID)
    if style is not None:
        style.remove()


def render_tokenized(
    document: LiveDocument,
    element: LiveElement,
    translated_text: str,
    handlers: InteractionHandlers | None = None,
) -> List[LiveElement]:
    """Replace the element's content with word units and plain fragments.

    Returns the created word units in order.
    """

    element.clear()
    units: List[LiveElement] = []
    for fragment in tokenize_words(translated_text):
        if not fragment.interactive:
            element.append(fragment.text)
            continue
        unit = document.create_element(
            "span",
            fragment.text,
            classes=[WORD_CLASS],
            data={WORD_KEY: fragment.key or ""},
        )
        element.append(unit)
        if handlers is not None:
            document.add_listener(unit, "click", handlers.on_word_click, tag=LISTENER_TAG)
        units.append(unit)
    return units


def apply_translations(
    document: LiveDocument,
    elements: Sequence[LiveElement],
    translated_blocks: Sequence[TranslatedBlock],
    handlers: InteractionHandlers | None = None,
) -> TranslationSession:
    """Rewrite elements with their translations, pairing them by position.

    Surplus elements or blocks on either side are left alone.
    """

    count = min(len(elements), len(translated_blocks))
    session = TranslationSession(elements=[], originals=[])

    for element, block in zip(elements[:count], translated_blocks[:count]):
        original_text = element.text
        snapshot = ElementSnapshot(
            contents=[],
            attributes=element.snapshot_attributes(),
        )
        snapshot.contents = element.detach_contents()

        element.set_data(ORIGINAL_KEY, original_text)
        element.set_data(CONTEXT_KEY, block.original or original_text.strip())
        element.add_class(TRANSLATED_CLASS)

        render_tokenized(document, element, block.translated or block.original, handlers)

        if handlers is not None:
            document.add_listener(
                element, "pointerenter", handlers.on_sentence_enter, tag=LISTENER_TAG
            )
            document.add_listener(
                element, "pointerleave", handlers.on_sentence_leave, tag=LISTENER_TAG
            )
            document.add_listener(
                element, "click", handlers.on_sentence_click, tag=LISTENER_TAG
            )

        session.elements.append(element)
        session.originals.append(original_text)
        session.snapshots.append(snapshot)

    if count:
        install_styles(document)
    return session


def _detach_listeners(document: LiveDocument, element: LiveElement) -> None:
    document.remove_listeners(element, tag=LISTENER_TAG)
    for descendant in element.descendants():
        document.remove_listeners(descendant, tag=LISTENER_TAG)


def restore(document: LiveDocument, session: TranslationSession) -> int:
    """Put every recorded element back in its pre-translation state.

    Elements no longer attached to the document are skipped. Returns the
    number of elements restored.
    """

    restored = 0
    for element, snapshot in zip(session.elements, session.snapshots):
        _detach_listeners(document, element)
        if not document.contains(element):
            continue
        element.replace_contents(snapshot.contents)
        element.restore_attributes(snapshot.attributes)
        restored += 1

    document.body.remove_class(SENTENCE_MODE_CLASS)
    remove_styles(document)
    return restored


class SessionManager:
    """Owns the single translation session of a document."""

    def __init__(self, document: LiveDocument, controller: Any = None) -> None:
        self.document = document
        self.controller = controller
        self._session: Optional[TranslationSession] = None

    @property
    def active(self) -> Optional[TranslationSession]:
        return self._session

    def ensure_idle(self) -> None:
        if self._session is not None:
            raise SessionActiveError("Page already translated")

    def start(self, session: TranslationSession) -> TranslationSession:
        self.ensure_idle()
        self._session = session
        return session

    def apply(
        self,
        elements: Sequence[LiveElement],
        translated_blocks: Sequence[TranslatedBlock],
    ) -> TranslationSession:
        self.ensure_idle()
        session = apply_translations(
            self.document, elements, translated_blocks, handlers=self.controller
        )
        return self.start(session)

    def restore(self) -> bool:
        """Restore the active session; without one this does nothing."""

        session = self._session
        if session is None:
            return False
        if self.controller is not None:
            self.controller.reset()
        try:
            restore(self.document, session)
        finally:
            self._session = None
        return True

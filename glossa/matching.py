"""Locate extracted article blocks among the live elements of a page."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Set

from .dom import LiveDocument, LiveElement
from .structures import CandidateBlock, MatchResult

MATCH_TAGS = (
    "p",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "li",
    "blockquote",
    "td",
    "th",
    "caption",
    "div",
)
# Tunable heuristics rather than guarantees.
FUZZY_THRESHOLD = 0.85
CONTAINER_CHILD_LENGTH = 30
MIN_TOKEN_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse whitespace runs, trim and lowercase."""

    return _WHITESPACE.sub(" ", text).strip().lower()


def _token_set(text: str) -> Set[str]:
    return {token for token in normalize(text).split(" ") if len(token) >= MIN_TOKEN_LENGTH}


def similarity(a: str, b: str) -> float:
    """Jaccard index over the word sets of two texts (words longer than 2)."""

    set_a = _token_set(a)
    set_b = _token_set(b)
    if not set_a or not set_b:
        return 0.0
    shared = len(set_a & set_b)
    return shared / (len(set_a) + len(set_b) - shared)


def is_container(element: LiveElement) -> bool:
    """Whether a direct block-ish child carries substantial text of its own."""

    for child in element.children():
        if child.name in MATCH_TAGS and len(child.text.strip()) > CONTAINER_CHILD_LENGTH:
            return True
    return False


class LiveMatcher:
    """Matches candidate blocks to live elements, one element per block."""

    def __init__(self, document: LiveDocument, *, threshold: float = FUZZY_THRESHOLD) -> None:
        self.document = document
        self.threshold = threshold
        self._matched: Set[LiveElement] = set()
        self._excluded: Set[LiveElement] = set()

    def match(self, blocks: Sequence[CandidateBlock]) -> List[MatchResult]:
        results: List[MatchResult] = []
        for block in blocks:
            result = self._match_block(block)
            if result is None:
                continue
            self._claim(result.element)
            results.append(result)
        return results

    def _candidates(self) -> List[LiveElement]:
        candidates: List[LiveElement] = []
        for element in self.document.query(MATCH_TAGS):
            if element in self._excluded:
                continue
            if any(ancestor in self._matched for ancestor in element.ancestors()):
                continue
            candidates.append(element)
        return candidates

    def _match_block(self, block: CandidateBlock) -> Optional[MatchResult]:
        target = normalize(block.text)
        best: Optional[LiveElement] = None
        best_score = 0.0

        for element in self._candidates():
            if is_container(element):
                continue
            text = element.text
            if normalize(text) == target:
                return MatchResult(block=block, element=element, score=1.0)
            score = similarity(text, block.text)
            if score > self.threshold and score > best_score:
                best = element
                best_score = score

        if best is None:
            return None
        return MatchResult(block=block, element=best, score=best_score)

    def _claim(self, element: LiveElement) -> None:
        self._matched.add(element)
        self._excluded.add(element)
        self._excluded.update(element.ancestors())


def match_blocks(
    blocks: Sequence[CandidateBlock],
    document: LiveDocument,
    *,
    threshold: float = FUZZY_THRESHOLD,
) -> List[MatchResult]:
    """Return the live element for each block that could be located, in order."""

    return LiveMatcher(document, threshold=threshold).match(blocks)

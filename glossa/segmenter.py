"""Block splitting, batching and word tokenization utilities."""

from __future__ import annotations

import re
import unicodedata
from typing import List, Sequence

from bs4 import BeautifulSoup

from .structures import Batch, CandidateBlock, WordFragment

SPLIT_BLOCK_TAGS = ("p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote")
MIN_BLOCK_LENGTH = 30

WHITESPACE_SPLIT = re.compile(r"(\s+)")
APOSTROPHES = {"'", "’"}


def split_blocks(html: str) -> List[CandidateBlock]:
    """Return the block-level texts of a cleaned article in document order."""

    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    blocks: List[CandidateBlock] = []
    for node in soup.find_all(list(SPLIT_BLOCK_TAGS)):
        text = node.get_text().strip()
        if len(text) > MIN_BLOCK_LENGTH:
            blocks.append(CandidateBlock(text=text))
    return blocks


def _split_preserving_whitespace(text: str) -> List[str]:
    """Split text into word and whitespace runs without losing any character."""

    return [fragment for fragment in WHITESPACE_SPLIT.split(text) if fragment]


def _has_letter(fragment: str) -> bool:
    return any(char.isalpha() for char in fragment)


def word_key(fragment: str) -> str:
    """Strip everything but letters, marks, apostrophes and hyphens."""

    kept: List[str] = []
    for char in fragment:
        category = unicodedata.category(char)
        if category[0] in {"L", "M"} or category == "Pd" or char in APOSTROPHES:
            kept.append(char)
    return "".join(kept)


def tokenize_words(text: str) -> List[WordFragment]:
    """Tokenise translated text into interactive words and plain fragments.

    Joining the ``text`` of every fragment reproduces the input exactly.
    """

    fragments: List[WordFragment] = []
    for piece in _split_preserving_whitespace(text):
        if _has_letter(piece):
            fragments.append(WordFragment(text=piece, key=word_key(piece)))
        else:
            fragments.append(WordFragment(text=piece))
    return fragments


class BatchBuilder:
    """Groups blocks into small batches for concurrent translation."""

    def __init__(self, max_blocks: int = 2, budget: int = 4000) -> None:
        self.max_blocks = max(1, max_blocks)
        self.budget = max(1, budget)

    def build(self, blocks: Sequence[str]) -> List[Batch]:
        batches: List[Batch] = []
        batch_blocks: List[str] = []
        running_total = 0
        start = 0

        for index, block in enumerate(blocks):
            size = len(block)
            if batch_blocks and (
                len(batch_blocks) >= self.max_blocks
                or running_total + size > self.budget
            ):
                batches.append(
                    Batch(batch_id=len(batches) + 1, start=start, blocks=batch_blocks)
                )
                batch_blocks = []
                running_total = 0
                start = index

            batch_blocks.append(block)
            running_total += size

        if batch_blocks:
            batches.append(
                Batch(batch_id=len(batches) + 1, start=start, blocks=batch_blocks)
            )

        return batches

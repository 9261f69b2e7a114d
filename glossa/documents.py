"""Page loading, saving and readable-article extraction."""

from __future__ import annotations

import pathlib
import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .dom import LiveDocument
from .errors import UnsupportedFileTypeError
from .structures import Article

HTML_SUFFIXES = (".html", ".htm", ".xhtml")

DROP_TAGS = ("script", "style", "noscript", "template", "svg", "meta", "link", "iframe")
JUNK_CONTAINER_TAGS = ("nav", "header", "footer", "aside", "form")
ROOT_SELECTORS = ("article", "main", '[role="main"]', '[role="article"]')
DENSITY_TAGS = ("p", "li", "blockquote", "pre")
MIN_ARTICLE_LENGTH = 100

_WHITESPACE = re.compile(r"\s+")


def _collapsed_text(node: Tag) -> str:
    return _WHITESPACE.sub(" ", node.get_text(" ")).strip()


def _decompose_all(root: Tag, names: Tuple[str, ...]) -> None:
    for element in root.find_all(list(names)):
        if getattr(element, "decomposed", False):
            continue
        element.decompose()


class Extractor(ABC):
    """Produces a readable article from a page without touching the page."""

    @abstractmethod
    def extract(self, document: LiveDocument) -> Optional[Article]:
        """Return the readable article, or ``None`` when there is none."""


class ArticleExtractor(Extractor):
    """Heuristic extractor: semantic roots first, paragraph density second."""

    def __init__(self, *, min_length: int = MIN_ARTICLE_LENGTH) -> None:
        self.min_length = min_length

    def extract(self, document: LiveDocument) -> Optional[Article]:
        # Work on a re-parsed copy so the caller's tree is never mutated.
        soup = BeautifulSoup(document.serialize(), "lxml")
        title = self._title(soup)
        _decompose_all(soup, DROP_TAGS)

        root = self._find_root(soup)
        if root is None:
            return None
        _decompose_all(root, JUNK_CONTAINER_TAGS)

        length = len(_collapsed_text(root))
        if length < self.min_length:
            return None
        return Article(title=title, html=str(root), length=length)

    def _title(self, soup: BeautifulSoup) -> str:
        if soup.title is not None:
            title = soup.title.get_text(strip=True)
            if title:
                return title
        heading = soup.find("h1")
        if heading is not None:
            return heading.get_text(strip=True)
        return ""

    def _find_root(self, soup: BeautifulSoup) -> Optional[Tag]:
        for selector in ROOT_SELECTORS:
            candidate = soup.select_one(selector)
            if candidate is not None and len(_collapsed_text(candidate)) >= self.min_length:
                return candidate

        scores: dict[int, Tuple[Tag, int]] = {}
        for node in soup.find_all(list(DENSITY_TAGS)):
            if node.find_parent(list(JUNK_CONTAINER_TAGS)) is not None:
                continue
            parent = node.parent
            if not isinstance(parent, Tag):
                continue
            _, score = scores.get(id(parent), (parent, 0))
            scores[id(parent)] = (parent, score + len(_collapsed_text(node)))

        if scores:
            best, _ = max(scores.values(), key=lambda item: item[1])
            return best
        return soup.body


class BaseDocumentHandler(ABC):
    """Common base class for page handlers."""

    def __init__(self, source_path: pathlib.Path):
        self.source_path = source_path

    @abstractmethod
    def load(self) -> LiveDocument:
        """Parse the page into a live document."""

    @abstractmethod
    def save(self, document: LiveDocument, destination: pathlib.Path) -> None:
        """Persist the (possibly rewritten) page."""


class HtmlPageHandler(BaseDocumentHandler):
    """Reads and writes saved HTML pages."""

    encoding = "utf-8"

    def load(self) -> LiveDocument:
        markup = self.source_path.read_text(encoding=self.encoding, errors="replace")
        return LiveDocument.from_html(markup)

    def save(self, document: LiveDocument, destination: pathlib.Path) -> None:
        destination.write_text(document.serialize(), encoding=self.encoding)


def detect_handler(path: pathlib.Path) -> Tuple[str, BaseDocumentHandler]:
    """Select an appropriate handler for the provided file."""

    if path.suffix.lower() in HTML_SUFFIXES:
        return "html", HtmlPageHandler(path)
    raise UnsupportedFileTypeError(
        "This file type isn’t supported — please use a saved .html page."
    )

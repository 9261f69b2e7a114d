"""Narrow DOM interface over a parsed HTML page.

The matcher, rewriter and interaction controller only talk to the page
through :class:`LiveDocument` and :class:`LiveElement`. Elements are opaque
handles compared by identity of the wrapped node, metadata lives in
``data-*`` attributes and event listeners are kept in a registry on the
document so they can be detached by tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag

Handler = Callable[[Any, "LiveElement"], Optional[bool]]


class LiveElement:
    """Handle to one element of a :class:`LiveDocument`."""

    __slots__ = ("node",)

    def __init__(self, node: Tag) -> None:
        self.node = node

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LiveElement) and other.node is self.node

    def __hash__(self) -> int:
        return id(self.node)

    def __repr__(self) -> str:
        preview = self.text.strip()[:30]
        return f"<LiveElement {self.name} {preview!r}>"

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def text(self) -> str:
        return self.node.get_text()

    @property
    def parent(self) -> Optional["LiveElement"]:
        parent = self.node.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return LiveElement(parent)

    def ancestors(self) -> Iterator["LiveElement"]:
        """Yield ancestors from the closest outwards, stopping below ``<body>``."""

        for parent in self.node.parents:
            if isinstance(parent, BeautifulSoup) or parent.name == "body":
                return
            yield LiveElement(parent)

    def children(self) -> List["LiveElement"]:
        return [LiveElement(child) for child in self.node.children if isinstance(child, Tag)]

    def descendants(self) -> List["LiveElement"]:
        return [LiveElement(node) for node in self.node.find_all(True)]

    def closest(self, class_name: str) -> Optional["LiveElement"]:
        """Return this element or the nearest ancestor carrying ``class_name``."""

        if self.has_class(class_name):
            return self
        for parent in self.node.parents:
            if isinstance(parent, BeautifulSoup):
                break
            if class_name in (parent.get("class") or []):
                return LiveElement(parent)
        return None

    # --- classes ------------------------------------------------------------

    @property
    def classes(self) -> List[str]:
        value = self.node.get("class")
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        return list(value)

    def has_class(self, class_name: str) -> bool:
        return class_name in self.classes

    def add_class(self, class_name: str) -> None:
        classes = self.classes
        if class_name not in classes:
            classes.append(class_name)
            self.node["class"] = classes

    def remove_class(self, class_name: str) -> None:
        classes = self.classes
        if class_name not in classes:
            return
        classes.remove(class_name)
        if classes:
            self.node["class"] = classes
        else:
            del self.node["class"]

    # --- attributes and metadata --------------------------------------------

    def get_attribute(self, name: str) -> Any:
        return self.node.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        self.node[name] = value

    def remove_attribute(self, name: str) -> None:
        if name in self.node.attrs:
            del self.node[name]

    def snapshot_attributes(self) -> Dict[str, Any]:
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self.node.attrs.items()
        }

    def restore_attributes(self, attributes: Mapping[str, Any]) -> None:
        self.node.attrs = {
            key: list(value) if isinstance(value, list) else value
            for key, value in attributes.items()
        }

    def get_data(self, key: str) -> Optional[str]:
        return self.node.get(f"data-{key}")

    def set_data(self, key: str, value: str) -> None:
        self.node[f"data-{key}"] = value

    def delete_data(self, key: str) -> None:
        self.remove_attribute(f"data-{key}")

    # --- content ------------------------------------------------------------

    def detach_contents(self) -> List[PageElement]:
        """Remove and return the element's child nodes, untouched."""

        return [child.extract() for child in list(self.node.contents)]

    def replace_contents(self, nodes: Sequence[PageElement]) -> None:
        self.node.clear()
        for child in nodes:
            self.node.append(child)

    def clear(self) -> None:
        self.node.clear()

    def set_text(self, text: str) -> None:
        self.node.clear()
        self.node.append(NavigableString(text))

    def append(self, child: Union["LiveElement", str]) -> None:
        if isinstance(child, LiveElement):
            self.node.append(child.node)
        else:
            self.node.append(NavigableString(child))

    def remove(self) -> None:
        self.node.extract()


@dataclass
class Listener:
    """An event handler registered on an element under a tag."""

    element: LiveElement
    event: str
    handler: Handler
    tag: str


class LiveDocument:
    """A parsed page plus the listeners attached to its elements."""

    def __init__(self, soup: BeautifulSoup) -> None:
        self.soup = soup
        self._listeners: List[Listener] = []

    @classmethod
    def from_html(cls, markup: str, parser: str = "lxml") -> "LiveDocument":
        return cls(BeautifulSoup(markup, parser))

    @property
    def body(self) -> LiveElement:
        body = self.soup.body
        if body is None:
            body = self.soup.new_tag("body")
            self.soup.append(body)
        return LiveElement(body)

    @property
    def head(self) -> Optional[LiveElement]:
        head = self.soup.head
        return LiveElement(head) if head is not None else None

    @property
    def title(self) -> str:
        title = self.soup.title
        return title.get_text(strip=True) if title is not None else ""

    def query(self, tag_names: Iterable[str]) -> List[LiveElement]:
        """Return every element with one of ``tag_names`` in document order."""

        return [LiveElement(node) for node in self.soup.find_all(list(tag_names))]

    def find_by_id(self, element_id: str) -> Optional[LiveElement]:
        node = self.soup.find(id=element_id)
        return LiveElement(node) if isinstance(node, Tag) else None

    def create_element(
        self,
        name: str,
        text: str | None = None,
        *,
        classes: Sequence[str] = (),
        data: Mapping[str, str] | None = None,
        attrs: Mapping[str, str] | None = None,
    ) -> LiveElement:
        node = self.soup.new_tag(name)
        if classes:
            node["class"] = list(classes)
        for key, value in (attrs or {}).items():
            node[key] = value
        for key, value in (data or {}).items():
            node[f"data-{key}"] = value
        if text is not None:
            node.append(NavigableString(text))
        return LiveElement(node)

    def contains(self, element: LiveElement) -> bool:
        """Whether the element is still attached to this document."""

        return any(parent is self.soup for parent in element.node.parents)

    # --- listeners ----------------------------------------------------------

    def add_listener(
        self,
        element: LiveElement,
        event: str,
        handler: Handler,
        *,
        tag: str,
    ) -> None:
        self._listeners.append(
            Listener(element=element, event=event, handler=handler, tag=tag)
        )

    def remove_listeners(self, element: LiveElement, *, tag: str) -> int:
        """Detach every listener registered on ``element`` under ``tag``."""

        kept = [
            listener
            for listener in self._listeners
            if not (listener.element == element and listener.tag == tag)
        ]
        removed = len(self._listeners) - len(kept)
        self._listeners = kept
        return removed

    def listeners(
        self,
        element: LiveElement | None = None,
        event: str | None = None,
        *,
        tag: str | None = None,
    ) -> List[Listener]:
        return [
            listener
            for listener in self._listeners
            if (element is None or listener.element == element)
            and (event is None or listener.event == event)
            and (tag is None or listener.tag == tag)
        ]

    def dispatch(self, target: LiveElement, event: Any) -> bool:
        """Bubble ``event`` from ``target`` to the root.

        A handler returning a truthy value stops propagation. Returns whether
        any handler consumed the event.
        """

        path: List[LiveElement] = [target]
        path.extend(
            LiveElement(parent)
            for parent in target.node.parents
            if not isinstance(parent, BeautifulSoup)
        )
        for current in path:
            for listener in self.listeners(current, event.type):
                if listener.handler(event, current):
                    return True
        return False

    def serialize(self) -> str:
        return str(self.soup)

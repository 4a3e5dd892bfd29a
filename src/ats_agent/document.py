"""Immutable document snapshots used by the classifier, filler and outcome detector."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

NODE_ATTR = "data-ats-node"
VISIBLE_ATTR = "data-ats-visible"
INVIEW_ATTR = "data-ats-inview"
POSITION_ATTR = "data-ats-position"
VALUE_ATTR = "data-ats-value"
CHECKED_ATTR = "data-ats-checked"
DISABLED_ATTR = "data-ats-disabled"
FILES_ATTR = "data-ats-files"

_WHITESPACE = re.compile(r"\s+")


class DocumentSnapshot:
    """A parsed copy of one document at one moment.

    Live captures carry computed-state annotations written by the perception
    script. Static markup (tests, saved pages) falls back to inline styles and
    attributes, and every element is treated as laid out inside the viewport.
    """

    def __init__(
        self,
        html: str,
        url: str = "about:blank",
        title: Optional[str] = None,
        viewport: Optional[Dict[str, int]] = None,
    ) -> None:
        self.url = url
        self.viewport = dict(viewport or {})
        self.soup = BeautifulSoup(html or "", "html.parser")
        for tag in self.soup(["script", "style", "noscript"]):
            tag.decompose()
        self._index: Dict[str, Tag] = {}
        for position, tag in enumerate(self.soup.find_all(True)):
            node_id = tag.get(NODE_ATTR)
            if not node_id:
                node_id = f"s-{position}"
                tag[NODE_ATTR] = node_id
            self._index.setdefault(node_id, tag)
        if title is None and self.soup.title is not None:
            title = self.soup.title.get_text(strip=True)
        self.title = title or ""
        body = self.soup.body or self.soup
        self.text = _normalize(body.get_text(" ", strip=True))

    @classmethod
    def from_html(cls, html: str, url: str = "about:blank") -> "DocumentSnapshot":
        return cls(html, url=url)

    @property
    def lowered_text(self) -> str:
        return self.text.lower()

    # -- lookup ---------------------------------------------------------------

    def select(self, selector: str, root: Optional[Tag] = None) -> List[Tag]:
        scope = root if root is not None else self.soup
        return list(scope.select(selector))

    def select_one(self, selector: str, root: Optional[Tag] = None) -> Optional[Tag]:
        scope = root if root is not None else self.soup
        return scope.select_one(selector)

    def select_any(self, selectors: Iterable[str], root: Optional[Tag] = None) -> bool:
        return any(self.select_one(selector, root) is not None for selector in selectors)

    def find(self, node_id: Optional[str]) -> Optional[Tag]:
        if not node_id:
            return None
        return self._index.get(node_id)

    def shares_document(self, node_id: Optional[str]) -> bool:
        """True when ``node_id`` was stamped on the same live document this snapshot came from."""
        if not node_id or "-" not in node_id:
            return False
        prefix = node_id.rsplit("-", 1)[0] + "-"
        return any(key.startswith(prefix) for key in self._index)

    @staticmethod
    def node_id(tag: Tag) -> str:
        return str(tag.get(NODE_ATTR) or "")

    @staticmethod
    def closest(tag: Tag, selector: str) -> Optional[Tag]:
        return tag.css.closest(selector)

    # -- computed state -------------------------------------------------------

    def is_visible(self, tag: Optional[Tag]) -> bool:
        """Rendered with a size, not hidden by style, and no hidden or aria-hidden ancestor."""
        if tag is None:
            return False
        if tag.get(VISIBLE_ATTR) == "0":
            return False
        if tag.get("aria-hidden") == "true" or _inline_hidden(tag):
            return False
        if tag.name == "input" and (tag.get("type") or "").lower() == "hidden":
            return False
        for parent in tag.parents:
            if not isinstance(parent, Tag) or parent is self.soup:
                break
            if parent.get("aria-hidden") == "true" or _inline_hidden(parent):
                return False
        return True

    def in_viewport(self, tag: Optional[Tag]) -> bool:
        if tag is None:
            return False
        return tag.get(INVIEW_ATTR) != "0"

    def is_visible_in_viewport(self, tag: Optional[Tag]) -> bool:
        return self.is_visible(tag) and self.in_viewport(tag)

    def position(self, tag: Tag) -> str:
        annotated = tag.get(POSITION_ATTR)
        if annotated:
            return str(annotated).lower()
        return _inline_styles(tag).get("position", "static")

    def value(self, tag: Tag) -> str:
        annotated = tag.get(VALUE_ATTR)
        if annotated is not None:
            return str(annotated)
        if tag.name == "textarea":
            return tag.get_text()
        if tag.name == "select":
            options = tag.find_all("option")
            chosen = next((option for option in options if option.has_attr("selected")), None)
            if chosen is None and options:
                chosen = options[0]
            return option_value(chosen) if chosen is not None else ""
        return str(tag.get("value") or "")

    def is_checked(self, tag: Tag) -> bool:
        annotated = tag.get(CHECKED_ATTR)
        if annotated is not None:
            return annotated == "1"
        return tag.has_attr("checked")

    def is_disabled(self, tag: Tag) -> bool:
        annotated = tag.get(DISABLED_ATTR)
        if annotated is not None:
            return annotated == "1"
        return tag.has_attr("disabled") or tag.get("aria-disabled") == "true"

    @staticmethod
    def is_required(tag: Tag) -> bool:
        return tag.has_attr("required") or tag.get("aria-required") == "true"

    # -- text -----------------------------------------------------------------

    @staticmethod
    def element_text(tag: Tag) -> str:
        if tag.name == "input":
            return _normalize(str(tag.get("value") or tag.get("aria-label") or ""))
        text = _normalize(tag.get_text(" ", strip=True))
        return text or _normalize(str(tag.get("aria-label") or ""))

    def label_text(self, tag: Tag) -> str:
        """Text of the label associated with a form control, or an empty string."""
        label: Optional[Tag] = None
        tag_id = tag.get("id")
        if tag_id:
            label = self.soup.find("label", attrs={"for": tag_id})
        if label is None:
            group = tag.css.closest(".form-group")
            if group is not None:
                label = group.find("label")
        if label is None:
            label = tag.find_previous_sibling()
        if label is None:
            label = tag.find_parent("label")
        if label is None:
            return ""
        return _normalize(label.get_text(" ", strip=True))


def option_value(option: Tag) -> str:
    if option.has_attr("value"):
        return str(option.get("value") or "")
    return _normalize(option.get_text(" ", strip=True))


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _inline_styles(tag: Tag) -> Dict[str, str]:
    styles: Dict[str, str] = {}
    raw = str(tag.get("style") or "")
    for declaration in raw.split(";"):
        if ":" not in declaration:
            continue
        name, _, value = declaration.partition(":")
        styles[name.strip().lower()] = value.replace("!important", "").strip().lower()
    return styles


def _inline_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    styles = _inline_styles(tag)
    if styles.get("display") == "none" or styles.get("visibility") == "hidden":
        return True
    opacity = styles.get("opacity")
    if opacity:
        try:
            return float(opacity) == 0
        except ValueError:
            return False
    return False

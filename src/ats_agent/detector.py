"""Field detection: match document elements to field and action purposes."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from bs4 import Tag

from .document import DocumentSnapshot
from .models import DetectedField, ElementKind, FieldPurpose
from .rules import (
    ACTION_TEXT_KEYWORDS,
    FIELD_PURPOSE_RULES,
    LABEL_MATCH_CONFIDENCE,
    SELECT_LABEL_KEYWORDS,
    TEXT_MATCH_CONFIDENCE,
)

logger = logging.getLogger(__name__)


def detect_fields(doc: DocumentSnapshot, root: Optional[Tag] = None) -> List[DetectedField]:
    """Return every element under ``root`` (default: whole document) that matches a known purpose.

    Three passes, each only considering elements no earlier match claimed:
    selector rules in table order, label text of unclaimed ``<select>``
    controls, then visible text of buttons and links.
    """
    fields: List[DetectedField] = []
    claimed: Set[str] = set()

    for rule in FIELD_PURPOSE_RULES:
        for selector in rule.selectors:
            for element in doc.select(selector, root):
                node_id = doc.node_id(element)
                if node_id in claimed:
                    continue
                claimed.add(node_id)
                fields.append(build_field(doc, element, rule.purpose, rule.weight, selector))

    for select in doc.select("select", root):
        node_id = doc.node_id(select)
        if node_id in claimed:
            continue
        purpose = purpose_from_label(doc.label_text(select))
        if purpose is FieldPurpose.UNKNOWN:
            continue
        claimed.add(node_id)
        fields.append(build_field(doc, select, purpose, LABEL_MATCH_CONFIDENCE, "label-based"))

    for control in doc.select("button, a", root):
        node_id = doc.node_id(control)
        if node_id in claimed:
            continue
        purpose = purpose_from_text(doc.element_text(control))
        if purpose is FieldPurpose.UNKNOWN:
            continue
        claimed.add(node_id)
        fields.append(build_field(doc, control, purpose, TEXT_MATCH_CONFIDENCE, "text-based"))

    logger.debug("Detected %s fields", len(fields))
    return fields


def purpose_from_label(label: str) -> FieldPurpose:
    lowered = label.lower()
    if not lowered:
        return FieldPurpose.UNKNOWN
    for purpose, keywords in SELECT_LABEL_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return purpose
    return FieldPurpose.UNKNOWN


def purpose_from_text(text: str) -> FieldPurpose:
    lowered = text.lower().strip()
    if not lowered:
        return FieldPurpose.UNKNOWN
    for purpose, keywords in ACTION_TEXT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return purpose
    return FieldPurpose.UNKNOWN


def element_kind(element: Tag) -> ElementKind:
    name = (element.name or "").lower()
    if name == "input":
        input_type = (element.get("type") or "").lower()
        if input_type == "file":
            return ElementKind.FILE
        if input_type == "checkbox":
            return ElementKind.CHECKBOX
        if input_type in {"submit", "button"}:
            return ElementKind.BUTTON
        return ElementKind.INPUT
    if name == "button":
        return ElementKind.BUTTON
    if name == "a":
        return ElementKind.LINK
    if name == "select":
        return ElementKind.SELECT
    return ElementKind.INPUT


def build_field(
    doc: DocumentSnapshot,
    element: Tag,
    purpose: FieldPurpose,
    confidence: float,
    selector: str,
) -> DetectedField:
    href = element.get("href") if element.name == "a" else None
    return DetectedField(
        node_id=doc.node_id(element),
        element_kind=element_kind(element),
        purpose=purpose,
        confidence=confidence,
        selectors=(selector,),
        tag=element.name or "",
        text=doc.element_text(element)[:120],
        href=str(href) if href else None,
    )

"""Page classification with weighted indicators and priority tie-breaking."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .detector import detect_fields
from .document import DocumentSnapshot
from .models import DetectedField, ElementKind, FieldPurpose, PageClassification, PageMetadata, PageType
from .rules import (
    AUTOFILL_KEYWORDS,
    CAPTCHA_IFRAME_SELECTORS,
    LAST_APPLICATION_KEYWORDS,
    MANUAL_KEYWORDS,
    OVERLAY_COUNT_SELECTOR,
    OVERLAY_SELECTOR,
    PAGE_TYPE_RULES,
    Composite,
    Indicator,
    Predicate,
    Selector,
    TextContains,
)

logger = logging.getLogger(__name__)


def classify(doc: DocumentSnapshot) -> PageClassification:
    """Classify one document snapshot. Pure: the same snapshot always yields the same result."""
    detected = detect_fields(doc)
    actions = tuple(field for field in detected if field.is_action)
    fields = tuple(field for field in detected if not field.is_action)

    metadata = PageMetadata(
        has_overlay=has_positioned_overlay(doc),
        has_password_field=any(field.purpose is FieldPurpose.PASSWORD for field in detected),
        has_file_upload=any(
            field.purpose is FieldPurpose.RESUME or field.element_kind is ElementKind.FILE for field in detected
        ),
        has_multiple_inputs=sum(1 for field in fields if field.element_kind is ElementKind.INPUT) >= 3,
        form_count=len(doc.select("form")),
        overlay_count=len(doc.select(OVERLAY_COUNT_SELECTOR)),
    )

    scores: List[Tuple[int, float, PageType]] = []
    for page_type, rule in PAGE_TYPE_RULES.items():
        if page_type is PageType.UNKNOWN:
            continue
        confidence = rule_confidence(rule.indicators, doc)
        if confidence >= rule.min_confidence:
            scores.append((rule.priority, confidence, page_type))
            logger.debug("Page type %s qualifies at %.1f%%", page_type.value, confidence * 100)

    scores.sort(key=lambda entry: (entry[0], -entry[1]))
    if scores:
        _, confidence, page_type = scores[0]
    else:
        confidence, page_type = 0.0, PageType.UNKNOWN

    return PageClassification(
        type=page_type,
        confidence=confidence,
        fields=fields,
        actions=actions,
        metadata=metadata,
    )


def rule_confidence(indicators: Sequence[Indicator], doc: DocumentSnapshot) -> float:
    """Share of indicator weight that the document satisfies."""
    total = 0.0
    matched = 0.0
    for indicator in indicators:
        total += indicator.weight
        if evaluate_indicator(indicator, doc):
            matched += indicator.weight
    return matched / total if total > 0 else 0.0


def evaluate_indicator(indicator: Indicator, doc: DocumentSnapshot) -> bool:
    if isinstance(indicator, Selector):
        return doc.select_any(indicator.selectors)
    if isinstance(indicator, TextContains):
        text = doc.lowered_text
        return any(phrase in text for phrase in indicator.phrases)
    if isinstance(indicator, (Predicate, Composite)):
        return bool(indicator.check(doc))
    raise TypeError(f"Unsupported indicator: {indicator!r}")


def has_positioned_overlay(doc: DocumentSnapshot) -> bool:
    return any(doc.position(overlay) in {"fixed", "absolute"} for overlay in doc.select(OVERLAY_SELECTOR))


# -- helpers used by the navigator -------------------------------------------


def find_best_action(
    classification: PageClassification,
    purpose: FieldPurpose,
    candidates: Optional[Iterable[DetectedField]] = None,
) -> Optional[DetectedField]:
    """Highest-confidence action for ``purpose``; ties keep document order."""
    pool = classification.actions if candidates is None else candidates
    matching = [action for action in pool if action.purpose is purpose]
    if not matching:
        return None
    matching.sort(key=lambda action: action.confidence, reverse=True)
    return matching[0]


def apply_preference(text: str) -> int:
    """Rank for options-dialog choices: autofill, then manual, then last application, then anything."""
    lowered = text.lower()
    if any(keyword in lowered for keyword in AUTOFILL_KEYWORDS):
        return 0
    if any(keyword in lowered for keyword in MANUAL_KEYWORDS):
        return 1
    if any(keyword in lowered for keyword in LAST_APPLICATION_KEYWORDS):
        return 2
    return 3


def captcha_field(classification: PageClassification) -> Optional[DetectedField]:
    return next((field for field in classification.fields if field.purpose is FieldPurpose.CAPTCHA), None)


def is_simple_captcha(classification: PageClassification, doc: DocumentSnapshot) -> bool:
    """True for a plain checkbox captcha; False for embedded challenge frames or no captcha control."""
    field = captcha_field(classification)
    if field is None:
        return False
    if field.element_kind is ElementKind.CHECKBOX:
        return True
    return not doc.select_any(CAPTCHA_IFRAME_SELECTORS)


def has_guest_option(classification: PageClassification) -> bool:
    return any(action.purpose in {FieldPurpose.GUEST, FieldPurpose.SKIP} for action in classification.actions)


def log_classification(classification: PageClassification, url: str = "") -> None:
    logger.info(
        "Classified %s as %s (%.1f%%): %s fields, actions=%s",
        url or "page",
        classification.type.value,
        classification.confidence * 100,
        len(classification.fields),
        [action.purpose.value for action in classification.actions],
    )
    logger.debug("Page metadata: %s", classification.metadata.model_dump())
    for field in classification.fields:
        logger.debug(
            "Field %s (%s) %.1f%% via %s",
            field.purpose.value,
            field.element_kind.value,
            field.confidence * 100,
            ", ".join(field.selectors),
        )

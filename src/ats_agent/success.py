"""Submission outcome detection.

Layers run most-specific first and the first decisive one wins:

    1. a visible, dedicated success element;
    2. the form element, visible before submitting, now hidden or removed;
    3. the submit control disabled with submitted-state text;
    4. a blocking page dialog raised after submit (success or failure wording);
    5. URL / page-text delta against the snapshot taken before submitting.

Anything ambiguous is reported as not submitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .document import DocumentSnapshot

logger = logging.getLogger(__name__)

SUCCESS_SELECTORS = (
    '[data-automation-id*="success" i]',
    '[data-testid*="success" i]',
    '[data-testid*="confirmation" i]',
    "#application-confirmation",
    "#application_confirmation",
    ".application-success",
    ".application-confirmation",
    ".success-message",
    ".thank-you",
)
SUBMITTED_CONTROL_WORDS = ("submitted", "submitting", "applied", "sent", "thank")
CONFIRMATION_URL_TOKENS = ("thank", "confirm", "success", "submitted", "complete", "applied")
SUCCESS_PHRASES = (
    "thank you for applying",
    "thanks for applying",
    "thank you for your application",
    "application submitted",
    "application has been submitted",
    "application was submitted",
    "application received",
    "we have received your application",
    "we've received your application",
    "successfully submitted",
    "submission received",
)
ERROR_PHRASES = (
    "error",
    "is required",
    "are required",
    "invalid",
    "please fix",
    "please correct",
    "failed",
    "try again",
)


@dataclass
class SuccessSignal:
    satisfied: bool
    reason: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class SubmissionSnapshot:
    """Location, page text and form visibility recorded immediately before a submit action."""

    url: str
    text: str
    dialog_count: int = 0
    form_visible: bool = False


def take_submission_snapshot(
    doc: DocumentSnapshot, dialog_count: int = 0, form_node_id: Optional[str] = None
) -> SubmissionSnapshot:
    form = doc.find(form_node_id) if form_node_id else None
    return SubmissionSnapshot(
        url=doc.url,
        text=doc.lowered_text,
        dialog_count=dialog_count,
        form_visible=form is not None and doc.is_visible(form),
    )


def evaluate_submission(
    before: SubmissionSnapshot,
    current: DocumentSnapshot,
    form_node_id: Optional[str],
    submit_node_id: Optional[str],
    dialog_messages: Sequence[str] = (),
) -> SuccessSignal:
    for selector in SUCCESS_SELECTORS:
        for element in current.select(selector):
            if element.name in {"input", "select", "textarea"}:
                continue
            if current.is_visible(element):
                return SuccessSignal(True, f"success element {selector}", "success_element")

    same_document = current.url == before.url and current.shares_document(form_node_id or submit_node_id)
    if form_node_id and same_document and before.form_visible:
        form = current.find(form_node_id)
        if form is None:
            return SuccessSignal(True, "form removed", "form_gone")
        if not current.is_visible(form):
            return SuccessSignal(True, "form hidden", "form_gone")

    if submit_node_id and same_document:
        control = current.find(submit_node_id)
        if control is not None and current.is_disabled(control):
            label = current.element_text(control).lower()
            if any(word in label for word in SUBMITTED_CONTROL_WORDS):
                return SuccessSignal(True, f"submit control disabled ({label})", "submit_disabled")

    for message in list(dialog_messages)[before.dialog_count:]:
        lowered = message.lower()
        if _contains_any(lowered, ERROR_PHRASES):
            return SuccessSignal(False, f"page dialog reported failure: {message}", "dialog")
        if _contains_any(lowered, SUCCESS_PHRASES) or "success" in lowered:
            return SuccessSignal(True, f"page dialog confirmed: {message}", "dialog")

    if current.url != before.url and _contains_any(current.url.lower(), CONFIRMATION_URL_TOKENS):
        return SuccessSignal(True, f"redirected to {current.url}", "url_delta")

    text = current.lowered_text
    if text != before.text and _contains_any(text, SUCCESS_PHRASES) and not _contains_any(before.text, SUCCESS_PHRASES):
        if not _contains_any(text, ERROR_PHRASES):
            return SuccessSignal(True, "page text now confirms the submission", "text_delta")

    return SuccessSignal(False, "no confirmation observed")


def was_submitted(
    before: SubmissionSnapshot,
    current: DocumentSnapshot,
    form_node_id: Optional[str],
    submit_node_id: Optional[str],
    dialog_messages: Sequence[str] = (),
) -> bool:
    signal = evaluate_submission(before, current, form_node_id, submit_node_id, dialog_messages)
    logger.info("Submission check: %s (%s)", signal.satisfied, signal.reason)
    return signal.satisfied


def _contains_any(text: str, phrases: Sequence[str]) -> bool:
    return any(phrase in text for phrase in phrases)

"""Write identity-profile values into detected form fields."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from bs4 import Tag

from .document import FILES_ATTR, DocumentSnapshot, option_value
from .models import DetectedField, ElementKind, FieldPurpose, FillReport, IdentityProfile, PageClassification

logger = logging.getLogger(__name__)

# Answers for screening questions the profile does not model. Changing these changes what
# gets submitted on the user's behalf, so they stay fixed and visible here.
DEFAULT_ANSWERS = {
    FieldPurpose.CLEARANCE: "no",
    FieldPurpose.EXPORT_CONTROLS: "US citizen",
    FieldPurpose.PREVIOUS_APPLICATION: "no",
    FieldPurpose.PREVIOUS_EMPLOYMENT: "no",
    FieldPurpose.CONFLICT_OF_INTEREST: "no",
}
DEFAULT_COUNTRY = "United States"

# Never written by the filler.
UNFILLED_PURPOSES = frozenset({FieldPurpose.PASSWORD, FieldPurpose.CAPTCHA, FieldPurpose.UNKNOWN})

QUALIFIED_YES_WORDS = ("currently", "eligible", "not")

_PUNCTUATION = re.compile(r"[^\w\s]")
_DROPPED = re.compile(r"[.']")
_WHITESPACE = re.compile(r"\s+")

Option = Tuple[str, str]


def resolve_value(purpose: FieldPurpose, profile: IdentityProfile) -> Optional[str]:
    """Value to write for ``purpose``; None when there is nothing to write.

    Resume fields resolve to None here because they take a file payload, not text.
    """
    if purpose is FieldPurpose.FIRST_NAME:
        return profile.first_name
    if purpose is FieldPurpose.LAST_NAME:
        return profile.last_name
    if purpose is FieldPurpose.FULL_NAME:
        return profile.full_name
    if purpose is FieldPurpose.EMAIL:
        return profile.email
    if purpose is FieldPurpose.PHONE:
        return profile.phone
    if purpose is FieldPurpose.COVER_LETTER:
        return profile.cover_letter
    if purpose is FieldPurpose.EXPERIENCE:
        return profile.years_experience
    if purpose is FieldPurpose.LINKEDIN:
        return profile.linkedin
    if purpose is FieldPurpose.WEBSITE:
        return profile.website
    if purpose is FieldPurpose.WORK_AUTH:
        return "yes" if profile.work_authorized else "no"
    if purpose is FieldPurpose.SPONSORSHIP:
        return "yes" if profile.sponsorship_required else "no"
    if purpose is FieldPurpose.COUNTRY:
        return profile.country or DEFAULT_COUNTRY
    return DEFAULT_ANSWERS.get(purpose)


def choose_option(options: Sequence[Option], wanted: str, required: bool = False) -> Optional[str]:
    """Pick the option value that best answers ``wanted`` from ``(value, text)`` pairs.

    Order: exact value or text match, a plain affirmative when "yes" is wanted,
    option-text containment, value containment (values of two or more
    characters), and finally the first non-empty option when the control is
    required.
    """
    target = _normalize(wanted)
    candidates = [(value, text) for value, text in options if value.strip() or text.strip()]
    real = [(value, text) for value, text in candidates if value.strip()]
    if not target:
        return real[0][0] if required and real else None

    for value, text in candidates:
        if _normalize(value) == target or _normalize(text) == target:
            return value

    if target == "yes":
        for value, text in candidates:
            label = _normalize(text) or _normalize(value)
            if label.startswith("yes") and not any(word in label.split() for word in QUALIFIED_YES_WORDS):
                return value

    for value, text in candidates:
        if _contains(_normalize(text), target):
            return value

    for value, _text in candidates:
        normalized = _normalize(value)
        if len(normalized) >= 2 and (_contains(normalized, target) or _contains(target, normalized)):
            return value

    if required and real:
        logger.debug("No option matches %r; falling back to first option %r", wanted, real[0][0])
        return real[0][0]
    return None


class FormFiller:
    """Fills the non-action fields of one classification using the session's write operations."""

    def __init__(self, profile: IdentityProfile, session) -> None:
        self.profile = profile
        self.session = session

    async def fill(self, classification: PageClassification, snapshot: DocumentSnapshot) -> FillReport:
        report = FillReport()
        for field in classification.fields:
            if field.purpose in UNFILLED_PURPOSES:
                continue
            element = snapshot.find(field.node_id)
            if element is None:
                report.skipped.append(field.purpose)
                continue
            try:
                filled = await self._fill_field(field, element, snapshot)
            except Exception as exc:  # noqa: BLE001 - one bad field must not stop the rest
                logger.warning("Failed to fill %s (%s): %s", field.purpose.value, field.node_id, exc)
                report.failed.append(field.purpose)
                continue
            if filled:
                report.filled.append(field.purpose)
            else:
                report.skipped.append(field.purpose)

        logger.info(
            "Form fill: filled=%s skipped=%s failed=%s",
            [purpose.value for purpose in report.filled],
            [purpose.value for purpose in report.skipped],
            [purpose.value for purpose in report.failed],
        )
        return report

    async def _fill_field(self, field: DetectedField, element: Tag, snapshot: DocumentSnapshot) -> bool:
        is_file = field.element_kind is ElementKind.FILE or field.purpose is FieldPurpose.RESUME
        visible = snapshot.is_visible(element)
        if not visible and not (is_file and snapshot.is_required(element)):
            logger.debug("Skipping hidden %s field %s", field.purpose.value, field.node_id)
            return False

        if is_file:
            return await self._attach_resume(field, element, force_visible=not visible)

        wanted = resolve_value(field.purpose, self.profile)
        if wanted is None or not str(wanted).strip():
            logger.debug("No profile value for %s", field.purpose.value)
            return False

        if field.element_kind is ElementKind.SELECT:
            return await self._fill_select(field, element, snapshot, wanted)
        if field.element_kind is ElementKind.CHECKBOX:
            await self.session.set_checked(field.node_id, _normalize(wanted) in {"yes", "true", "1"})
            return True
        if (element.get("type") or "").lower() == "radio":
            return await self._fill_radio(field, element, snapshot, wanted)

        await self.session.fill_text(field.node_id, wanted)
        logger.debug("Filled %s", field.purpose.value)
        return True

    async def _attach_resume(self, field: DetectedField, element: Tag, *, force_visible: bool) -> bool:
        resume = self.profile.resume
        if resume is None:
            logger.info("No resume in profile; leaving %s empty", field.node_id)
            return False
        if str(element.get(FILES_ATTR) or "0") not in {"", "0"}:
            logger.debug("File input %s already holds a file", field.node_id)
            return False
        await self.session.attach_file(field.node_id, resume, force_visible=force_visible)
        logger.info("Attached resume %s", resume.name)
        return True

    async def _fill_select(self, field: DetectedField, element: Tag, snapshot: DocumentSnapshot, wanted: str) -> bool:
        options: List[Option] = [
            (option_value(option), option.get_text(" ", strip=True)) for option in element.find_all("option")
        ]
        chosen = choose_option(options, wanted, required=snapshot.is_required(element))
        if chosen is None:
            logger.info("No option of %s answers %r", field.purpose.value, wanted)
            return False
        await self.session.select_option(field.node_id, chosen)
        logger.debug("Selected %r for %s", chosen, field.purpose.value)
        return True

    async def _fill_radio(self, field: DetectedField, element: Tag, snapshot: DocumentSnapshot, wanted: str) -> bool:
        name = element.get("name")
        group = snapshot.select(f'input[type="radio"][name="{name}"]') if name else [element]
        by_value = {}
        options: List[Option] = []
        for radio in group:
            value = str(radio.get("value") or "")
            options.append((value, snapshot.label_text(radio)))
            by_value.setdefault(value, radio)
        chosen = choose_option(options, wanted, required=snapshot.is_required(element))
        if chosen is None or chosen not in by_value:
            return False
        await self.session.set_checked(snapshot.node_id(by_value[chosen]), True)
        return True


def _normalize(text: str) -> str:
    lowered = _DROPPED.sub("", (text or "").lower())
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", lowered)).strip()


def _contains(haystack: str, needle: str) -> bool:
    if not haystack or not needle:
        return False
    if len(needle) <= 3:
        return re.search(rf"\b{re.escape(needle)}\b", haystack) is not None
    return needle in haystack

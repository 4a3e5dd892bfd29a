"""Rule tables for page-type classification and field-purpose detection.

The tables are plain data. The few checks that cannot be written as a selector
list live in the named predicate functions below so they can be tested on
their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Union

from .document import DocumentSnapshot
from .models import FieldPurpose, PageType

OVERLAY_SELECTOR = '[role="dialog"], .modal, .popup, .modal-overlay, [data-automation-id*="popup"]'
OVERLAY_COUNT_SELECTOR = '[role="dialog"], .modal, .popup'
TEXT_INPUT_SELECTOR = (
    'input[type="text"], input:not([type]), input[type="email"], input[type="tel"], textarea'
)
CAPTCHA_IFRAME_SELECTORS = ('iframe[src*="recaptcha"]', 'iframe[src*="hcaptcha"]', 'iframe[src*="captcha"]')
CAPTCHA_INPUT_SELECTORS = ('input[id*="captcha" i]', 'input[name*="captcha" i]')
APPLY_ENTRY_SELECTORS = (
    'button[aria-label*="apply" i]',
    'a[href*="apply"]',
    '[data-testid*="apply"]',
    '.apply-button',
    '#apply-button',
)


@dataclass(frozen=True)
class Selector:
    """Succeeds when any selector matches at least one element."""

    selectors: Tuple[str, ...]
    weight: float
    kind: str = "structural-match"


@dataclass(frozen=True)
class TextContains:
    """Succeeds when the page text contains any of the phrases (case-insensitive)."""

    phrases: Tuple[str, ...]
    weight: float
    kind: str = "text-match"


@dataclass(frozen=True)
class Predicate:
    """Single-signal custom check: an attribute match or a count threshold."""

    check: Callable[[DocumentSnapshot], bool]
    weight: float
    kind: str = "attribute-match"


@dataclass(frozen=True)
class Composite:
    """Custom check that combines several structural signals."""

    check: Callable[[DocumentSnapshot], bool]
    weight: float
    kind: str = "composite-predicate"


Indicator = Union[Selector, TextContains, Predicate, Composite]


@dataclass(frozen=True)
class PageTypeRule:
    page_type: PageType
    indicators: Tuple[Indicator, ...]
    min_confidence: float
    priority: int


@dataclass(frozen=True)
class FieldPurposeRule:
    purpose: FieldPurpose
    selectors: Tuple[str, ...]
    weight: float


# -- named predicates ---------------------------------------------------------


def visible_overlay_with_inputs(doc: DocumentSnapshot, minimum: int = 2) -> bool:
    """A rendered overlay that holds at least ``minimum`` text-like inputs."""
    for overlay in doc.select('[role="dialog"], .modal, .popup, .modal-overlay'):
        if not doc.is_visible(overlay):
            continue
        if len(doc.select(TEXT_INPUT_SELECTOR, overlay)) >= minimum:
            return True
    return False


def has_fixed_position_element(doc: DocumentSnapshot) -> bool:
    return bool(doc.select('[style*="position: fixed"], [style*="position:fixed"], [data-ats-position="fixed"]'))


def has_three_text_inputs(doc: DocumentSnapshot) -> bool:
    return len(doc.select('input[type="text"], input:not([type]), input[type="email"], input[type="tel"]')) >= 3


def apply_text_control_present(doc: DocumentSnapshot) -> bool:
    return any("apply" in doc.element_text(element).lower() for element in doc.select("button, a"))


def apply_entry_without_form(doc: DocumentSnapshot) -> bool:
    has_apply = doc.select_any(APPLY_ENTRY_SELECTORS)
    has_form = len(doc.select('input[type="text"], input:not([type]), input[type="email"]')) >= 3
    return has_apply and not has_form


def captcha_widget_present(doc: DocumentSnapshot) -> bool:
    return doc.select_any(CAPTCHA_IFRAME_SELECTORS) or doc.select_any(CAPTCHA_INPUT_SELECTORS)


def embedded_captcha_challenge(doc: DocumentSnapshot) -> bool:
    return doc.select_any(CAPTCHA_IFRAME_SELECTORS)


# -- page-type rules ----------------------------------------------------------

PAGE_TYPE_RULES: Dict[PageType, PageTypeRule] = {
    # Checked before the generic modal rule: a form inside an overlay wins ties.
    PageType.FORM_MODAL: PageTypeRule(
        page_type=PageType.FORM_MODAL,
        priority=1,
        min_confidence=0.7,
        indicators=(Composite(check=visible_overlay_with_inputs, weight=1.0),),
    ),
    PageType.MODAL: PageTypeRule(
        page_type=PageType.MODAL,
        priority=2,
        min_confidence=0.6,
        indicators=(
            Selector(selectors=('[role="dialog"]', '[aria-modal="true"]'), weight=0.8),
            Selector(selectors=(".modal", ".popup", ".dialog", '[data-automation-id*="popup"]'), weight=0.6),
            Predicate(check=has_fixed_position_element, weight=0.5),
            Selector(selectors=('button[aria-label*="close" i]', ".close-button"), weight=0.4),
        ),
    ),
    PageType.FORM: PageTypeRule(
        page_type=PageType.FORM,
        priority=3,
        min_confidence=0.8,
        indicators=(
            Selector(
                selectors=('input[autocomplete="given-name"]', 'input[name*="first" i]', 'input[id*="first" i]'),
                weight=0.3,
            ),
            Selector(
                selectors=('input[autocomplete="family-name"]', 'input[name*="last" i]', 'input[id*="last" i]'),
                weight=0.3,
            ),
            Selector(selectors=('input[type="email"]', 'input[autocomplete="email"]'), weight=0.3),
            Selector(selectors=('input[type="file"]', 'input[accept*="pdf"]'), weight=0.4),
            Predicate(check=has_three_text_inputs, weight=0.2, kind="count-threshold"),
        ),
    ),
    PageType.SIGNUP: PageTypeRule(
        page_type=PageType.SIGNUP,
        priority=4,
        min_confidence=0.7,
        indicators=(
            Selector(selectors=('input[type="password"]',), weight=0.9),
            TextContains(phrases=("create account", "sign up"), weight=0.7),
        ),
    ),
    PageType.INTERMEDIATE: PageTypeRule(
        page_type=PageType.INTERMEDIATE,
        priority=5,
        min_confidence=0.5,
        indicators=(
            Selector(selectors=APPLY_ENTRY_SELECTORS, weight=0.7),
            Predicate(check=apply_text_control_present, weight=0.5, kind="text-match"),
            Composite(check=apply_entry_without_form, weight=0.3),
        ),
    ),
    PageType.CAPTCHA: PageTypeRule(
        page_type=PageType.CAPTCHA,
        priority=6,
        min_confidence=0.6,
        indicators=(
            Composite(check=captcha_widget_present, weight=0.9),
            TextContains(phrases=("captcha", "verify you are human"), weight=0.5),
        ),
    ),
    PageType.UNKNOWN: PageTypeRule(
        page_type=PageType.UNKNOWN,
        priority=999,
        min_confidence=0.0,
        indicators=(),
    ),
}


# -- field-purpose rules ------------------------------------------------------
# Order matters: an element is claimed by the first rule whose selector matches it.

FIELD_PURPOSE_RULES: Tuple[FieldPurposeRule, ...] = (
    FieldPurposeRule(
        FieldPurpose.FIRST_NAME,
        (
            'input[autocomplete="given-name"]',
            'input[name*="first" i]',
            'input[id*="first" i]',
            'input[placeholder*="first" i]',
        ),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.LAST_NAME,
        (
            'input[autocomplete="family-name"]',
            'input[name*="last" i]',
            'input[id*="last" i]',
            'input[placeholder*="last" i]',
        ),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.EMAIL,
        ('input[type="email"]', 'input[autocomplete="email"]', 'input[name*="email" i]', 'input[id*="email" i]'),
        1.0,
    ),
    FieldPurposeRule(
        FieldPurpose.PHONE,
        ('input[type="tel"]', 'input[autocomplete="tel"]', 'input[name*="phone" i]', 'input[id*="phone" i]'),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.FULL_NAME,
        (
            'input[name="fullName"]',
            'input[name*="full" i][name*="name" i]',
            'input[id*="full" i][id*="name" i]',
            'input[placeholder*="full name" i]',
        ),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.RESUME,
        (
            'input[type="file"][accept*="pdf"]',
            'input[name*="resume" i]',
            'input[id*="resume" i]',
            'input[name*="cv" i]',
        ),
        1.0,
    ),
    FieldPurposeRule(
        FieldPurpose.COVER_LETTER,
        ('input[name*="cover" i]', 'textarea[name*="cover" i]', 'input[id*="cover" i]'),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.EXPERIENCE,
        ('select[name*="experience" i]', 'select[id*="experience" i]'),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.LINKEDIN,
        ('input[name*="linkedin" i]', 'input[id*="linkedin" i]', 'input[placeholder*="linkedin" i]'),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.WEBSITE,
        ('input[type="url"]', 'input[name*="website" i]', 'input[id*="website" i]', 'input[placeholder*="website" i]'),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.WORK_AUTH,
        (
            'select[name*="work" i][name*="authorization" i]',
            'select[name*="work" i][name*="auth" i]',
            'select[id*="work" i][id*="authorization" i]',
            'select[id*="work" i][id*="auth" i]',
            'select[name*="authorization" i]',
            'select[id*="authorization" i]',
        ),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.SPONSORSHIP,
        (
            'select[name*="sponsor" i]',
            'select[name*="visa" i]',
            'select[id*="sponsor" i]',
            'select[id*="visa" i]',
            'select[name*="h1b" i]',
            'select[id*="h1b" i]',
        ),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.CLEARANCE,
        ('select[name*="clearance" i]', 'select[id*="clearance" i]'),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.EXPORT_CONTROLS,
        ('select[name*="export" i]', 'select[id*="export" i]', 'select[name*="citizen" i]', 'select[id*="citizen" i]'),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.COUNTRY,
        ('select[name*="country" i]', 'select[id*="country" i]'),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.PREVIOUS_APPLICATION,
        (
            'select[name*="previous" i][name*="application" i]',
            'select[name*="application" i]',
            'select[id*="previous" i][id*="application" i]',
        ),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.PREVIOUS_EMPLOYMENT,
        (
            'select[name*="previous" i][name*="employment" i]',
            'select[name*="employment" i]',
            'select[id*="previous" i][id*="employment" i]',
        ),
        0.8,
    ),
    FieldPurposeRule(
        FieldPurpose.CONFLICT_OF_INTEREST,
        ('select[name*="conflict" i]', 'select[id*="conflict" i]'),
        0.8,
    ),
    FieldPurposeRule(FieldPurpose.PASSWORD, ('input[type="password"]',), 1.0),
    FieldPurposeRule(
        FieldPurpose.CAPTCHA,
        CAPTCHA_INPUT_SELECTORS + ('input[type="checkbox"][id*="recaptcha" i]',),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.SUBMIT,
        ('button[type="submit"]', 'button[aria-label*="submit" i]', 'input[type="submit"]'),
        1.0,
    ),
    FieldPurposeRule(
        FieldPurpose.APPLY,
        (
            'button[aria-label*="apply" i]',
            'a[href*="apply"]',
            'button[data-automation-id*="apply"]',
            'a[data-automation-id="autofillWithResume"]',
            'a[data-automation-id="applyManually"]',
            'a[data-automation-id="useMyLastApplication"]',
            'a[href*="autofill"]',
            'a[href*="manual"]',
            '[data-testid*="apply"]',
            ".apply-button",
            "#apply-button",
            ".option-button",
        ),
        0.9,
    ),
    FieldPurposeRule(
        FieldPurpose.CLOSE,
        (
            'button[aria-label*="close" i]',
            'button[data-automation-id*="close"]',
            ".close-button",
            ".modal-close",
            '[data-dismiss="modal"]',
        ),
        0.8,
    ),
    FieldPurposeRule(FieldPurpose.SKIP, ('button[aria-label*="skip" i]', 'a[href*="skip"]'), 0.7),
    FieldPurposeRule(
        FieldPurpose.GUEST,
        ('button[aria-label*="guest" i]', 'a[href*="guest"]', 'button[data-automation-id*="guest"]'),
        0.9,
    ),
)

# Label fragments for <select> controls that no selector rule claimed.
SELECT_LABEL_KEYWORDS: Tuple[Tuple[FieldPurpose, Tuple[str, ...]], ...] = (
    (FieldPurpose.WORK_AUTH, ("work authorization", "authorized to work")),
    (FieldPurpose.SPONSORSHIP, ("sponsor", "visa", "h1b")),
    (FieldPurpose.CLEARANCE, ("clearance",)),
    (FieldPurpose.EXPORT_CONTROLS, ("export", "citizen", "permanent resident")),
    (FieldPurpose.COUNTRY, ("country",)),
    (FieldPurpose.PREVIOUS_APPLICATION, ("previously applied", "history with")),
    (FieldPurpose.PREVIOUS_EMPLOYMENT, ("previously employed", "ever been employed")),
    (FieldPurpose.CONFLICT_OF_INTEREST, ("conflict of interest",)),
)
LABEL_MATCH_CONFIDENCE = 0.7

# Visible-text keywords for buttons and links, checked in order.
AUTOFILL_KEYWORDS = ("autofill", "auto-fill", "auto fill")
MANUAL_KEYWORDS = ("apply manually", "manual")
LAST_APPLICATION_KEYWORDS = ("use my last", "last application")
ACTION_TEXT_KEYWORDS: Tuple[Tuple[FieldPurpose, Tuple[str, ...]], ...] = (
    (FieldPurpose.APPLY, AUTOFILL_KEYWORDS),
    (FieldPurpose.APPLY, MANUAL_KEYWORDS),
    (FieldPurpose.APPLY, LAST_APPLICATION_KEYWORDS),
    (FieldPurpose.APPLY, ("apply",)),
    (FieldPurpose.SUBMIT, ("submit",)),
    (FieldPurpose.CLOSE, ("close",)),
    (FieldPurpose.SKIP, ("skip",)),
    (FieldPurpose.GUEST, ("guest", "continue without")),
    # Account creation is left to the signup rule.
    (FieldPurpose.UNKNOWN, ("sign up", "create account")),
)
TEXT_MATCH_CONFIDENCE = 0.7

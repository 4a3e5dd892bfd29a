"""Navigation state machine: classify, act once, re-classify until a terminal result."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urldefrag, urljoin

from bs4 import Tag

from .classifier import (
    apply_preference,
    captcha_field,
    classify,
    find_best_action,
    has_guest_option,
    is_simple_captcha,
    log_classification,
)
from .config import MAX_ATTEMPTS, SUBMIT_WAIT_MS, VALIDATION_WAIT_MS
from .detector import build_field
from .document import DocumentSnapshot
from .filler import FormFiller
from .models import (
    DetectedField,
    ElementKind,
    FieldPurpose,
    HistoryEntry,
    IdentityProfile,
    NavigationReason,
    NavigationResult,
    PageClassification,
    PageType,
)
from .notifications import EventChannel
from .robustness import ActionNoEffectError
from .rules import TEXT_MATCH_CONFIDENCE
from .session import followable_href
from .success import SubmissionSnapshot, take_submission_snapshot, was_submitted

logger = logging.getLogger(__name__)

MESSAGES = {
    "submitted": "Application form filled and submitted",
    "not_submitted": (
        "Application form filled, but the submission could not be confirmed. "
        "Please review the form and submit it manually."
    ),
    "no_submit": "Application form filled, but no submit button was found. Please submit it manually.",
    "account_required": "This application requires account creation. Please create an account manually and try again.",
    "complex_captcha": "This application requires solving a complex CAPTCHA. Please solve it manually.",
    "unknown_page": "Unable to classify this page. It may not be a supported ATS platform.",
    "max_attempts": "Maximum navigation attempts reached without finding application form",
}


@dataclass
class NavigationState:
    """Per-run state. ``acted_on`` only holds identities from the current location."""

    max_attempts: int = MAX_ATTEMPTS
    attempts: int = 0
    visited_urls: Set[str] = field(default_factory=set)
    acted_on: Set[str] = field(default_factory=set)
    intermediate_urls: Set[str] = field(default_factory=set)
    history: List[HistoryEntry] = field(default_factory=list)
    current_url: Optional[str] = None

    def enter(self, url: str) -> None:
        location = urldefrag(url)[0]
        if location != self.current_url:
            if self.current_url is not None:
                logger.debug("Location changed to %s; forgetting %s acted-on elements", location, len(self.acted_on))
            self.acted_on.clear()
            self.current_url = location
        self.visited_urls.add(location)

    def record_action(self, action: str) -> None:
        if self.history:
            self.history[-1].action = action


def element_identity(doc: DocumentSnapshot, element: Optional[Tag], fallback: str = "") -> str:
    """Best-effort fingerprint: id, class list, or tag plus leading text, qualified by structural path."""
    if element is None:
        return f"node:{fallback}"
    element_id = element.get("id")
    classes = element.get("class") or []
    if element_id:
        base = f"id:{element_id}"
    elif classes:
        base = "class:" + " ".join(classes)
    else:
        base = f"{element.name}:{element.get_text(' ', strip=True)[:20]}"
    return f"{base}@{structural_path(element)}"


def structural_path(element: Tag) -> str:
    parts: List[str] = []
    node: Optional[Tag] = element
    while node is not None and node.name not in (None, "[document]"):
        parent = node.parent
        index = 0
        if parent is not None:
            siblings = parent.find_all(node.name, recursive=False)
            index = next((pos for pos, sibling in enumerate(siblings) if sibling is node), 0)
        parts.append(f"{node.name}[{index}]")
        node = parent if isinstance(parent, Tag) else None
    return "/".join(reversed(parts))


class Navigator:
    """Drives one document context toward a submitted application form.

    Every iteration re-classifies a fresh snapshot and performs at most one
    state-changing action. The run ends with a typed ``NavigationResult`` or
    after ``max_attempts`` iterations. Click failures that survive the
    session's retries propagate to the caller.
    """

    def __init__(
        self,
        session,
        profile: IdentityProfile,
        *,
        notifier: Optional[EventChannel] = None,
        job_id: Optional[str] = None,
        max_attempts: int = MAX_ATTEMPTS,
        validation_wait_ms: int = VALIDATION_WAIT_MS,
        submit_wait_ms: int = SUBMIT_WAIT_MS,
    ) -> None:
        self.session = session
        self.profile = profile
        self.notifier = notifier
        self.job_id = job_id
        self.max_attempts = max_attempts
        self.validation_wait_ms = validation_wait_ms
        self.submit_wait_ms = submit_wait_ms
        self.state = NavigationState(max_attempts=max_attempts)
        self._handlers = {
            PageType.FORM: self._handle_form,
            PageType.FORM_MODAL: self._handle_form,
            PageType.MODAL: self._handle_modal,
            PageType.SIGNUP: self._handle_signup,
            PageType.INTERMEDIATE: self._handle_intermediate,
            PageType.CAPTCHA: self._handle_captcha,
            PageType.UNKNOWN: self._handle_unknown,
        }

    async def intelligent_navigate(self) -> NavigationResult:
        self.state = NavigationState(max_attempts=self.max_attempts)
        activity_since = time.time() * 1000
        logger.info("Starting intelligent navigation at %s", self.session.url)

        while self.state.attempts < self.state.max_attempts:
            self.state.attempts += 1
            snapshot = await self.session.snapshot()
            self.state.enter(snapshot.url)
            classification = classify(snapshot)
            log_classification(classification, snapshot.url)

            user_input = await self.session.user_input_detected(activity_since)
            if user_input:
                logger.info("User activity detected on %s", snapshot.url)
            activity_since = time.time() * 1000
            self.state.history.append(
                HistoryEntry(
                    url=snapshot.url,
                    classification=classification,
                    timestamp=time.time(),
                    user_input=user_input,
                )
            )

            result = await self._handlers[classification.type](classification, snapshot)
            if result is not None:
                return self._finish(result)

            outcome = await self.session.wait_for_page_change()
            logger.debug("Attempt %s/%s ended with %s", self.state.attempts, self.state.max_attempts, outcome)

        logger.info("Max attempts reached")
        last = self.state.history[-1].classification if self.state.history else None
        return self._finish(
            NavigationResult(
                success=False,
                reason=NavigationReason.MAX_ATTEMPTS,
                message=MESSAGES["max_attempts"],
                final_classification=last,
            )
        )

    def history_summary(self) -> List[Dict[str, Any]]:
        return [
            {
                "url": entry.url,
                "type": entry.classification.type.value,
                "confidence": entry.classification.confidence,
                "action": entry.action or "none",
                "timestamp": datetime.utcfromtimestamp(entry.timestamp).isoformat() + "Z",
                "user_input": entry.user_input,
            }
            for entry in self.state.history
        ]

    # -- handlers -------------------------------------------------------------

    async def _handle_form(
        self, classification: PageClassification, snapshot: DocumentSnapshot
    ) -> Optional[NavigationResult]:
        submit = self._best_visible(classification, snapshot, FieldPurpose.SUBMIT, in_view=True)
        apply = self._best_visible(classification, snapshot, FieldPurpose.APPLY, in_view=True)
        location = self.state.current_url or snapshot.url
        if submit is None and apply is not None and location not in self.state.intermediate_urls:
            self.state.intermediate_urls.add(location)
            logger.info("Form has no visible submit button but offers Apply; treating as an intermediate step")
            return await self._handle_intermediate(classification, snapshot, apply)

        logger.info("Application form found")
        captcha = captcha_field(classification)
        if captcha is not None and captcha.element_kind is ElementKind.CHECKBOX and is_simple_captcha(classification, snapshot):
            await self._tick_captcha(captcha, snapshot)

        report = await FormFiller(self.profile, self.session).fill(classification, snapshot)
        if report.failed:
            logger.warning("Some fields could not be filled: %s", [purpose.value for purpose in report.failed])
        await self.session.wait_for_settle(self.validation_wait_ms)

        submit = submit or self._best_visible(classification, snapshot, FieldPurpose.SUBMIT)
        if submit is None:
            logger.warning("No submit button found")
            return NavigationResult(
                success=False,
                reason=NavigationReason.MANUAL_INPUT_REQUIRED,
                message=MESSAGES["no_submit"],
                final_classification=classification,
            )

        if await self._submit(submit, snapshot):
            logger.info("Form submitted successfully")
            return NavigationResult(
                success=True,
                reason=NavigationReason.FORM_FOUND,
                message=MESSAGES["submitted"],
                final_classification=classification,
            )
        logger.warning("Form filled but not submitted")
        return NavigationResult(
            success=False,
            reason=NavigationReason.MANUAL_INPUT_REQUIRED,
            message=MESSAGES["not_submitted"],
            final_classification=classification,
        )

    async def _handle_modal(
        self, classification: PageClassification, snapshot: DocumentSnapshot
    ) -> Optional[NavigationResult]:
        if any(action.purpose is FieldPurpose.APPLY for action in classification.actions):
            logger.info("Detected options dialog")
            options = [
                action
                for action in classification.actions
                if action.purpose is FieldPurpose.APPLY and snapshot.is_visible(snapshot.find(action.node_id))
            ]
            if options:
                choice = min(options, key=lambda action: apply_preference(action.text))
                await self._click(choice, "apply_option", snapshot)
            else:
                reveal = self._reveal_control(snapshot)
                if reveal is not None:
                    await self._click(reveal, "reveal_options", snapshot)
            # Options dialogs stay open; the next pass re-classifies.
            return None

        close = self._best_visible(classification, snapshot, FieldPurpose.CLOSE)
        if close is not None and await self._click(close, "close_modal", snapshot):
            return None

        logger.info("No close button found; dismissing dialog with Escape")
        self.state.record_action("escape")
        await self.session.press_key("Escape")
        return None

    async def _handle_signup(
        self, classification: PageClassification, snapshot: DocumentSnapshot
    ) -> Optional[NavigationResult]:
        if has_guest_option(classification):
            guest = self._best_visible(classification, snapshot, FieldPurpose.GUEST) or self._best_visible(
                classification, snapshot, FieldPurpose.SKIP
            )
            if guest is not None:
                logger.info("Found guest/skip option")
                await self._click(guest, "guest_option", snapshot)
                return None

        logger.info("Account creation required")
        return NavigationResult(
            success=False,
            reason=NavigationReason.ACCOUNT_REQUIRED,
            message=MESSAGES["account_required"],
            final_classification=classification,
        )

    async def _handle_intermediate(
        self,
        classification: PageClassification,
        snapshot: DocumentSnapshot,
        apply: Optional[DetectedField] = None,
    ) -> Optional[NavigationResult]:
        apply = apply or self._best_visible(classification, snapshot, FieldPurpose.APPLY)
        if apply is None:
            logger.info("No Apply button found on intermediate page")
            return None
        logger.info("Clicking Apply button")
        await self._click(apply, "apply_button", snapshot)
        return None

    async def _handle_captcha(
        self, classification: PageClassification, snapshot: DocumentSnapshot
    ) -> Optional[NavigationResult]:
        if is_simple_captcha(classification, snapshot):
            logger.info("Simple checkbox CAPTCHA detected")
            captcha = captcha_field(classification)
            if captcha is not None and captcha.element_kind is ElementKind.CHECKBOX:
                await self._tick_captcha(captcha, snapshot)
            return None

        logger.info("Complex CAPTCHA detected")
        return NavigationResult(
            success=False,
            reason=NavigationReason.COMPLEX_CAPTCHA,
            message=MESSAGES["complex_captcha"],
            final_classification=classification,
        )

    async def _handle_unknown(
        self, classification: PageClassification, snapshot: DocumentSnapshot
    ) -> Optional[NavigationResult]:
        logger.info("Unknown page type at %s", snapshot.url)
        return NavigationResult(
            success=False,
            reason=NavigationReason.UNKNOWN_PAGE,
            message=MESSAGES["unknown_page"],
            final_classification=classification,
        )

    # -- actions --------------------------------------------------------------

    async def _click(self, target: DetectedField, action_type: str, snapshot: DocumentSnapshot, *, force: bool = False) -> bool:
        """Click ``target`` unless this location already saw it; returns whether a click was issued."""
        identity = element_identity(snapshot, snapshot.find(target.node_id), target.node_id)
        if identity in self.state.acted_on:
            logger.info("Already clicked %s, skipping", action_type)
            return False
        self.state.acted_on.add(identity)
        self.state.record_action(action_type)

        if target.element_kind is ElementKind.LINK and followable_href(target.href) and self.notifier:
            self.notifier.navigation_starting(self.job_id, urljoin(snapshot.url, target.href or ""))
        outcome = await self.session.click(target, force=force)
        logger.debug("%s click on %s -> %s", action_type, target.node_id, outcome)
        return True

    async def _tick_captcha(self, captcha: DetectedField, snapshot: DocumentSnapshot) -> None:
        element = snapshot.find(captcha.node_id)
        if element is not None and snapshot.is_checked(element):
            return
        if await self._click(captcha, "captcha_checkbox", snapshot):
            logger.info("Checked CAPTCHA checkbox")

    async def _submit(self, submit: DetectedField, snapshot: DocumentSnapshot) -> bool:
        submit_tag = snapshot.find(submit.node_id)
        form = snapshot.closest(submit_tag, "form") if submit_tag is not None else None
        form_id = snapshot.node_id(form) if form is not None else None
        before = take_submission_snapshot(snapshot, len(self.session.dialog_messages()), form_id)

        if await self.session.form_is_valid(form_id):
            try:
                await self._click(submit, "submit", snapshot)
            except ActionNoEffectError as exc:
                logger.info("Submit click had no visible effect: %s", exc)
            if await self._check_submitted(before, form_id, submit.node_id):
                return True
        else:
            logger.warning("Form validation failed")

        current = await self.session.snapshot()
        if current.find(submit.node_id) is None:
            logger.info("Submit button is gone; skipping forced submit")
            return False
        logger.info("Forcing submit click")
        self.state.record_action("forced_submit")
        await self.session.click(submit, force=True)
        return await self._check_submitted(before, form_id, submit.node_id)

    async def _check_submitted(self, before: SubmissionSnapshot, form_id: Optional[str], submit_id: str) -> bool:
        await self.session.wait_for_settle(self.submit_wait_ms)
        current = await self.session.snapshot()
        return was_submitted(before, current, form_id, submit_id, self.session.dialog_messages())

    # -- lookups --------------------------------------------------------------

    def _best_visible(
        self,
        classification: PageClassification,
        snapshot: DocumentSnapshot,
        purpose: FieldPurpose,
        *,
        in_view: bool = False,
    ) -> Optional[DetectedField]:
        check = snapshot.is_visible_in_viewport if in_view else snapshot.is_visible
        candidates = [action for action in classification.actions if check(snapshot.find(action.node_id))]
        return find_best_action(classification, purpose, candidates)

    def _reveal_control(self, snapshot: DocumentSnapshot) -> Optional[DetectedField]:
        """A visible plain "apply" button or link that opens the options dialog."""
        for control in snapshot.select("button, a"):
            text = snapshot.element_text(control)
            if "apply" not in text.lower() or apply_preference(text) != 3:
                continue
            if not snapshot.is_visible(control):
                continue
            if element_identity(snapshot, control) in self.state.acted_on:
                continue
            return build_field(snapshot, control, FieldPurpose.APPLY, TEXT_MATCH_CONFIDENCE, "reveal-text")
        return None

    def _finish(self, result: NavigationResult) -> NavigationResult:
        logger.info("Navigation finished: success=%s reason=%s", result.success, result.reason.value)
        if self.notifier:
            if result.success:
                self.notifier.navigation_complete(self.job_id, result.message)
            else:
                self.notifier.navigation_failed(self.job_id, result.reason.value, result.message)
        return result


async def intelligent_navigate(session, profile: IdentityProfile, **options: Any) -> NavigationResult:
    return await Navigator(session, profile, **options).intelligent_navigate()

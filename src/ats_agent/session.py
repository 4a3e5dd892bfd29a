"""Live browser session: every Playwright interaction the navigator needs."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from playwright.async_api import Dialog, Error as PlaywrightError, Locator, Page

from .config import (
    ACTION_TIMEOUT_MS,
    CLICK_RETRIES,
    LINK_NAV_TIMEOUT_MS,
    SCROLL_SETTLE_MS,
    SETTLE_QUIET_MS,
    SETTLE_TIMEOUT_MS,
)
from .document import NODE_ATTR, DocumentSnapshot
from .models import DetectedField, ElementKind, ResumeFile
from .perception import capture_document
from .robustness import (
    ActionNoEffectError,
    ElementNotInteractableError,
    wait_for_dom_settled,
    wait_for_navigation_or_settle,
    wait_for_url_change,
    with_retries,
)

logger = logging.getLogger(__name__)


_INTERACTABLE_SCRIPT = """
    (el) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        let ariaHidden = false;
        for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
            if (node.getAttribute('aria-hidden') === 'true') { ariaHidden = true; break; }
        }
        const vw = window.innerWidth || document.documentElement.clientWidth;
        const vh = window.innerHeight || document.documentElement.clientHeight;
        return {
            sized: rect.width > 0 && rect.height > 0,
            styleHidden: !style || style.display === 'none' || style.visibility === 'hidden' || Number(style.opacity) === 0,
            ariaHidden,
            inView: rect.bottom > 0 && rect.right > 0 && rect.top < vh && rect.left < vw,
        };
    }
"""

# Fires the notification sequence the host page's own validation listens for.
_NOTIFY_SCRIPT = """
    (el) => {
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
        el.dispatchEvent(new Event('blur', { bubbles: true }));
    }
"""

_FORCE_VISIBLE_SCRIPT = """
    (el) => {
        el.__atsSavedStyle = el.getAttribute('style');
        el.style.setProperty('display', 'block', 'important');
        el.style.setProperty('visibility', 'visible', 'important');
        el.style.setProperty('opacity', '1', 'important');
        el.style.setProperty('position', 'absolute', 'important');
        el.style.setProperty('left', '-10000px', 'important');
    }
"""

_RESTORE_STYLE_SCRIPT = """
    (el) => {
        const saved = el.__atsSavedStyle;
        if (saved === null || saved === undefined) el.removeAttribute('style');
        else el.setAttribute('style', saved);
        delete el.__atsSavedStyle;
    }
"""

_VALIDITY_SCRIPT = """
    (form) => {
        if (typeof form.checkValidity !== 'function') return true;
        const valid = form.checkValidity();
        if (!valid && typeof form.reportValidity === 'function') form.reportValidity();
        return valid;
    }
"""

# Trusted input that does not fall inside an engine action window counts as user activity.
_ACTIVITY_SCRIPT = """
    (() => {
        if (window.__atsActivityInstalled) return;
        window.__atsActivityInstalled = true;
        window.__atsEngineActionAt = 0;
        window.__atsUserInputAt = 0;
        const record = (event) => {
            if (!event.isTrusted) return;
            if (Date.now() - window.__atsEngineActionAt < 1500) return;
            window.__atsUserInputAt = Date.now();
        };
        ['mousedown', 'keydown', 'touchstart', 'wheel'].forEach((type) => {
            window.addEventListener(type, record, { capture: true, passive: true });
        });
    })()
"""


class BrowserSession:
    """Wraps one Playwright page. Element references are ``data-ats-node`` ids from the latest snapshot."""

    def __init__(
        self,
        page: Page,
        *,
        action_timeout_ms: int = ACTION_TIMEOUT_MS,
        settle_quiet_ms: int = SETTLE_QUIET_MS,
        settle_timeout_ms: int = SETTLE_TIMEOUT_MS,
        link_nav_timeout_ms: int = LINK_NAV_TIMEOUT_MS,
        click_retries: int = CLICK_RETRIES,
        scroll_settle_ms: int = SCROLL_SETTLE_MS,
    ) -> None:
        self.page = page
        self.action_timeout_ms = action_timeout_ms
        self.settle_quiet_ms = settle_quiet_ms
        self.settle_timeout_ms = settle_timeout_ms
        self.link_nav_timeout_ms = link_nav_timeout_ms
        self.click_retries = click_retries
        self.scroll_settle_ms = scroll_settle_ms
        self._dialog_messages: List[str] = []
        page.on("dialog", self._handle_dialog)

    async def start(self) -> None:
        """Install page hooks; call once before navigating."""
        try:
            await self.page.add_init_script(_ACTIVITY_SCRIPT)
            await self.page.evaluate(_ACTIVITY_SCRIPT)
        except PlaywrightError as exc:
            logger.debug("Activity hook unavailable: %s", exc)

    @property
    def url(self) -> str:
        return self.page.url

    async def snapshot(self) -> DocumentSnapshot:
        return await capture_document(self.page)

    def dialog_messages(self) -> List[str]:
        return list(self._dialog_messages)

    async def user_input_detected(self, since_ms: float = 0) -> bool:
        try:
            stamp = await self.page.evaluate("() => window.__atsUserInputAt || 0")
        except PlaywrightError:
            return False
        return bool(stamp) and float(stamp) > since_ms

    # -- actions ------------------------------------------------------------

    async def click(self, field: DetectedField, *, force: bool = False) -> str:
        """Click a detected element; returns "navigated", "mutated" or "idle"."""
        locator = self._locator(field.node_id)
        await self._ensure_interactable(locator, field, force=force)
        await self._mark_engine_action()
        label = f"Click on {field.purpose.value} ({field.node_id})"

        try:
            if field.element_kind is ElementKind.LINK and followable_href(field.href):
                return await self._activate_link(locator, field, force=force)

            if field.element_kind is ElementKind.CHECKBOX:
                before = await self._is_checked(locator)
                await locator.click(timeout=self.action_timeout_ms, force=force)
                if await self._is_checked(locator) == before:
                    await locator.set_checked(not before, timeout=self.action_timeout_ms, force=True)
                return "mutated"
        except PlaywrightError as exc:
            raise ActionNoEffectError(f"{label} failed: {exc}") from exc

        async def attempt() -> str:
            await locator.click(timeout=self.action_timeout_ms, force=force)
            outcome = await wait_for_navigation_or_settle(
                self.page,
                self.settle_quiet_ms,
                self.settle_timeout_ms,
                navigation_timeout_ms=self.settle_timeout_ms,
            )
            if outcome == "idle" and not force:
                raise ActionNoEffectError(f"{label} had no visible effect")
            return outcome

        return await with_retries(attempt, retries=self.click_retries, description=label)

    async def press_key(self, key: str) -> None:
        await self._mark_engine_action()
        await self.page.keyboard.press(key)
        await wait_for_dom_settled(self.page, self.settle_quiet_ms, self.settle_timeout_ms)

    async def fill_text(self, node_id: str, value: str) -> None:
        locator = self._locator(node_id)
        await locator.fill(value, timeout=self.action_timeout_ms)
        await locator.evaluate(_NOTIFY_SCRIPT)

    async def select_option(self, node_id: str, value: str) -> None:
        locator = self._locator(node_id)
        await locator.select_option(value=value, timeout=self.action_timeout_ms)
        await locator.evaluate(_NOTIFY_SCRIPT)

    async def set_checked(self, node_id: str, checked: bool) -> None:
        locator = self._locator(node_id)
        await locator.set_checked(checked, timeout=self.action_timeout_ms, force=True)
        await locator.evaluate(_NOTIFY_SCRIPT)

    async def attach_file(self, node_id: str, resume: ResumeFile, *, force_visible: bool = False) -> None:
        locator = self._locator(node_id)
        if force_visible:
            await locator.evaluate(_FORCE_VISIBLE_SCRIPT)
        try:
            await locator.set_input_files(
                {"name": resume.name, "mimeType": resume.mime_type, "buffer": resume.data},
                timeout=self.action_timeout_ms,
            )
            await locator.evaluate(_NOTIFY_SCRIPT)
        finally:
            if force_visible:
                await locator.evaluate(_RESTORE_STYLE_SCRIPT)

    async def form_is_valid(self, node_id: Optional[str]) -> bool:
        if not node_id:
            return True
        try:
            return bool(await self._locator(node_id).evaluate(_VALIDITY_SCRIPT))
        except PlaywrightError as exc:
            logger.debug("Validity check unavailable: %s", exc)
            return True

    # -- waits ----------------------------------------------------------------

    async def wait_for_settle(self, timeout_ms: Optional[int] = None) -> bool:
        return await wait_for_dom_settled(self.page, self.settle_quiet_ms, timeout_ms or self.settle_timeout_ms)

    async def wait_for_page_change(self) -> str:
        """Unbounded wait for navigation raced against a bounded DOM settle."""
        return await wait_for_navigation_or_settle(
            self.page,
            self.settle_quiet_ms,
            self.settle_timeout_ms,
            navigation_timeout_ms=None,
        )

    # -- internals ------------------------------------------------------------

    def _locator(self, node_id: str) -> Locator:
        return self.page.locator(f'[{NODE_ATTR}="{node_id}"]').first

    async def _ensure_interactable(self, locator: Locator, field: DetectedField, *, force: bool) -> None:
        try:
            state = await locator.evaluate(_INTERACTABLE_SCRIPT, timeout=self.action_timeout_ms)
        except PlaywrightError as exc:
            raise ElementNotInteractableError(f"{field.purpose.value} element {field.node_id} is gone: {exc}") from exc
        if not force and (not state.get("sized") or state.get("styleHidden") or state.get("ariaHidden")):
            raise ElementNotInteractableError(f"{field.purpose.value} element {field.node_id} is not rendered")
        if not state.get("inView"):
            try:
                await locator.scroll_into_view_if_needed(timeout=self.action_timeout_ms)
            except PlaywrightError as exc:
                logger.debug("Scroll into view failed for %s: %s", field.node_id, exc)
            await asyncio.sleep(self.scroll_settle_ms / 1000.0)

    async def _activate_link(self, locator: Locator, field: DetectedField, *, force: bool) -> str:
        start_url = self.page.url
        await locator.click(timeout=self.action_timeout_ms, force=force)
        if await wait_for_url_change(self.page, start_url, self.link_nav_timeout_ms):
            return "navigated"
        target = await locator.evaluate("(el) => el.href || ''") if field.href else ""
        if target and target != start_url:
            logger.info("Link click did not navigate; setting location to %s", target)
            await self.page.evaluate("(href) => { window.location.href = href; }", target)
            if await wait_for_url_change(self.page, start_url, self.action_timeout_ms):
                return "navigated"
        return "mutated" if await self.wait_for_settle() else "idle"

    async def _is_checked(self, locator: Locator) -> bool:
        try:
            return await locator.is_checked(timeout=self.action_timeout_ms)
        except PlaywrightError:
            return False

    async def _mark_engine_action(self) -> None:
        try:
            await self.page.evaluate("() => { window.__atsEngineActionAt = Date.now(); }")
        except PlaywrightError:
            pass

    def _handle_dialog(self, dialog: Dialog) -> None:
        self._dialog_messages.append(dialog.message)
        logger.info("Page raised a %s dialog: %s", dialog.type, dialog.message)
        asyncio.ensure_future(_accept_dialog(dialog))


async def _accept_dialog(dialog: Dialog) -> None:
    try:
        await dialog.accept()
    except PlaywrightError as exc:
        logger.debug("Dialog already handled: %s", exc)


def followable_href(href: Optional[str]) -> bool:
    if not href:
        return False
    lowered = href.strip().lower()
    return not (lowered.startswith("#") or lowered.startswith("javascript:"))

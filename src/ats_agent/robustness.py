"""Wait primitives and retry helpers shared by the browser session."""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

T = TypeVar("T")

DEFAULT_BACKOFFS_MS: Sequence[int] = (300, 700, 1500)

logger = logging.getLogger(__name__)


class ElementNotInteractableError(RuntimeError):
    """Raised when a click target has no size, is hidden, or sits under an aria-hidden ancestor."""


class ActionNoEffectError(RuntimeError):
    """Raised when an action produced neither a navigation nor a DOM mutation."""


# Mutations caused by our own node stamping are ignored.
_SETTLE_SCRIPT = """
    ({ token, quietMs, timeoutMs }) => new Promise((resolve) => {
        const w = window;
        w.__atsWaits = w.__atsWaits || {};
        let mutated = false;
        let quietTimer = null;
        let deadline = null;
        const finish = (settled) => {
            const entry = w.__atsWaits[token];
            if (!entry) return;
            delete w.__atsWaits[token];
            entry.observer.disconnect();
            clearTimeout(quietTimer);
            clearTimeout(deadline);
            resolve({ mutated, settled });
        };
        const observer = new MutationObserver((records) => {
            const relevant = records.some(
                (record) => !(record.type === "attributes" && (record.attributeName || "").startsWith("data-ats-"))
            );
            if (!relevant) return;
            mutated = true;
            clearTimeout(quietTimer);
            quietTimer = setTimeout(() => finish(true), quietMs);
        });
        w.__atsWaits[token] = { observer, cancel: () => finish(false) };
        observer.observe(document.documentElement, { subtree: true, childList: true, attributes: true, characterData: true });
        quietTimer = setTimeout(() => finish(true), quietMs);
        deadline = setTimeout(() => finish(false), timeoutMs);
    })
"""

_CANCEL_SCRIPT = """
    (token) => {
        const entry = window.__atsWaits && window.__atsWaits[token];
        if (entry) entry.cancel();
        return Boolean(entry);
    }
"""


async def wait_for_dom_settled(page: Page, quiet_ms: int, timeout_ms: int) -> bool:
    """Wait until the DOM stops mutating for ``quiet_ms``, bounded by ``timeout_ms``.

    Returns True when any mutation (or a navigation that destroyed the
    document) was observed.
    """
    token = secrets.token_hex(6)
    try:
        result = await page.evaluate(
            _SETTLE_SCRIPT,
            {"token": token, "quietMs": quiet_ms, "timeoutMs": timeout_ms},
        )
    except asyncio.CancelledError:
        await cancel_dom_wait(page, token)
        raise
    except PlaywrightError as exc:
        logger.debug("Settle wait interrupted: %s", exc)
        return True
    return bool((result or {}).get("mutated"))


async def cancel_dom_wait(page: Page, token: str) -> None:
    try:
        await page.evaluate(_CANCEL_SCRIPT, token)
    except PlaywrightError:
        pass


async def wait_for_url_change(page: Page, from_url: str, timeout_ms: Optional[int]) -> bool:
    """Wait for the main frame to commit a different URL. ``None`` waits without a timeout."""
    if page.url != from_url:
        return True

    def _changed(frame) -> bool:
        return frame == page.main_frame and frame.url != from_url

    try:
        await page.wait_for_event("framenavigated", predicate=_changed, timeout=timeout_ms or 0)
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError as exc:
        logger.debug("Navigation wait interrupted: %s", exc)
        return page.url != from_url
    return True


async def wait_for_navigation_or_settle(
    page: Page,
    quiet_ms: int,
    settle_timeout_ms: int,
    navigation_timeout_ms: Optional[int] = None,
) -> str:
    """Race a location change against a DOM settle; returns "navigated", "mutated" or "idle"."""
    start_url = page.url
    navigation = asyncio.ensure_future(wait_for_url_change(page, start_url, navigation_timeout_ms))
    settle = asyncio.ensure_future(wait_for_dom_settled(page, quiet_ms, settle_timeout_ms))
    try:
        done, _ = await asyncio.wait({navigation, settle}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (navigation, settle):
            if not task.done():
                task.cancel()
        await asyncio.gather(navigation, settle, return_exceptions=True)

    if navigation in done and not navigation.cancelled() and navigation.result():
        return "navigated"
    if page.url != start_url:
        return "navigated"
    if settle in done and not settle.cancelled() and settle.result():
        return "mutated"
    return "idle"


async def wait_for_element(page: Page, selector: str, timeout_ms: int) -> bool:
    try:
        await page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError:
        return False
    return True


async def with_retries(
    async_op: Callable[[], Awaitable[T]],
    retries: int,
    backoffs_ms: Optional[Sequence[int]] = None,
    *,
    description: str = "action",
) -> T:
    """Run ``async_op`` until it succeeds, backing off between no-effect or driver failures.

    Any other exception is raised immediately. A driver error that survives the
    last attempt is surfaced as ``ActionNoEffectError`` so callers deal with a
    single failure type.
    """
    attempts = max(1, retries)
    delays = list(backoffs_ms or DEFAULT_BACKOFFS_MS)

    for attempt in range(attempts):
        try:
            return await async_op()
        except (ActionNoEffectError, PlaywrightError) as exc:
            if attempt == attempts - 1:
                if isinstance(exc, PlaywrightError):
                    raise ActionNoEffectError(f"{description} failed after {attempts} attempts: {exc}") from exc
                raise
            delay = delays[attempt] if attempt < len(delays) else delays[-1]
            logger.debug("%s attempt %s failed (%s); retrying in %sms", description, attempt + 1, exc, delay)
            await asyncio.sleep(delay / 1000.0)
    raise RuntimeError("async_op completed without returning a value")

"""Run one application: launch the browser, open the entry URL, navigate, record."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, async_playwright

from .capturer import capture_final_state
from .config import DEFAULT_BROWSER, MAX_ATTEMPTS, OUTPUT_ROOT, USER_DATA_DIR, VIEWPORT
from .models import IdentityProfile, NavigationResult
from .navigator import Navigator
from .notifications import EventChannel, TelemetryWriter
from .robustness import ActionNoEffectError, ElementNotInteractableError, wait_for_dom_settled, wait_for_element
from .session import BrowserSession

logger = logging.getLogger(__name__)

ACTION_FAILED = "action_failed"
GOTO_TIMEOUT_MS = 30000


async def run_application(
    url: str,
    profile: IdentityProfile,
    *,
    job_id: Optional[str] = None,
    entry_selector: Optional[str] = None,
    headless: bool = False,
    browser: Optional[str] = None,
    profile_dir: Optional[str] = None,
    max_attempts: int = MAX_ATTEMPTS,
    out_dir: Optional[str] = None,
    notifier: Optional[EventChannel] = None,
) -> NavigationResult:
    """Navigate one job application end to end.

    Click failures that exhaust their retries, and driver errors raised while
    navigating, are reported as ``NAVIGATION_FAILED`` with reason
    ``action_failed`` and re-raised.
    """
    run_dir = _run_directory(out_dir, job_id)
    telemetry = TelemetryWriter(run_dir / "run.jsonl")
    channel = notifier or EventChannel()
    channel.sink = channel.sink or telemetry
    telemetry.write({"event": "run_start", "url": url, "job_id": job_id})

    result: Optional[NavigationResult] = None
    async with async_playwright() as pw:
        context = await _launch_browser(
            pw,
            browser_choice=(browser or DEFAULT_BROWSER).lower(),
            headless=headless,
            profile_dir=profile_dir,
        )
        page: Optional[Page] = None
        navigator: Optional[Navigator] = None
        try:
            page = context.pages[0] if context.pages else await context.new_page()
            _attach_page_telemetry(page, telemetry)
            session = BrowserSession(page)
            await session.start()

            await page.goto(url, wait_until="domcontentloaded", timeout=GOTO_TIMEOUT_MS)
            await _inject_reduced_motion(page)
            await wait_for_dom_settled(page, session.settle_quiet_ms, session.settle_timeout_ms)
            if entry_selector:
                await _open_entry_point(page, session, entry_selector)

            navigator = Navigator(session, profile, notifier=channel, job_id=job_id, max_attempts=max_attempts)
            try:
                result = await navigator.intelligent_navigate()
            except (ElementNotInteractableError, ActionNoEffectError, PlaywrightError) as exc:
                logger.error("Navigation aborted: %s", exc)
                channel.navigation_failed(job_id, ACTION_FAILED, str(exc))
                await capture_final_state(page, run_dir, None, navigator.history_summary(), error=str(exc))
                raise

            telemetry.write({"event": "result", "payload": result.model_dump(mode="json", exclude={"final_classification"})})
            await capture_final_state(page, run_dir, result, navigator.history_summary())
            logger.info("Run finished: %s (%s)", result.reason.value, result.message)
            return result
        finally:
            telemetry.write({"event": "run_end", "success": bool(result and result.success)})
            telemetry.close()
            await context.close()


async def _open_entry_point(page: Page, session: BrowserSession, selector: str) -> None:
    if not await wait_for_element(page, selector, session.action_timeout_ms):
        logger.warning("Entry selector %s not found; starting from the current page", selector)
        return
    try:
        await page.locator(selector).first.click(timeout=session.action_timeout_ms)
    except PlaywrightError as exc:
        logger.warning("Entry click on %s failed: %s", selector, exc)
        return
    await session.wait_for_page_change()


def _attach_page_telemetry(page: Page, telemetry: TelemetryWriter) -> None:
    def handle_console(message) -> None:
        if message.type in {"error", "warning"}:
            telemetry.write({"event": "console", "payload": {"type": message.type, "text": message.text}})

    def handle_page_error(exc) -> None:
        telemetry.write({"event": "pageerror", "payload": {"message": str(exc)}})

    page.on("console", handle_console)
    page.on("pageerror", handle_page_error)


async def _inject_reduced_motion(page: Page) -> None:
    styles = """
        *, *::before, *::after {
            transition-duration: 0s !important;
            animation-duration: 0s !important;
            scroll-behavior: auto !important;
        }
    """
    try:
        await page.add_style_tag(content=styles)
    except PlaywrightError:
        pass


async def _launch_browser(
    playwright,
    browser_choice: str,
    headless: bool,
    profile_dir: Optional[str],
) -> BrowserContext:
    launch_kwargs: Dict[str, Any] = {"headless": headless}
    engine = browser_choice
    if browser_choice == "chrome":
        engine = "chromium"
        launch_kwargs["channel"] = "chrome"
    browser_type = getattr(playwright, engine, None)
    if browser_type is None:
        raise ValueError(f"Unsupported browser engine: {browser_choice}")

    if profile_dir:
        user_data_dir = _prepare_user_data_dir(profile_dir, browser_choice)
        return await browser_type.launch_persistent_context(
            user_data_dir=str(user_data_dir),
            viewport=VIEWPORT,
            reduced_motion="reduce",
            **launch_kwargs,
        )

    browser = await browser_type.launch(**launch_kwargs)
    return await browser.new_context(viewport=VIEWPORT, reduced_motion="reduce")


def _prepare_user_data_dir(profile_dir: str, browser_choice: str) -> Path:
    dest = Path(profile_dir).expanduser() if profile_dir != "default" else USER_DATA_DIR / browser_choice
    dest.mkdir(parents=True, exist_ok=True)
    logger.info("Using %s profile directory: %s", browser_choice, dest)
    return dest


def _run_directory(out_dir: Optional[str], job_id: Optional[str]) -> Path:
    root = Path(out_dir) if out_dir else OUTPUT_ROOT
    stamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
    run_dir = root / f"{job_id or 'run'}-{stamp}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir

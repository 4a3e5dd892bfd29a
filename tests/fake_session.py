"""In-memory stand-in for BrowserSession used by navigator and filler tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ats_agent.document import DocumentSnapshot  # noqa: E402
from ats_agent.models import DetectedField, ResumeFile  # noqa: E402
from ats_agent.robustness import ActionNoEffectError, ElementNotInteractableError  # noqa: E402


class FakeSession:
    """Serves a scripted sequence of ``(url, html)`` pages.

    By default every click moves to the next page (staying on the last one).
    With ``refuse_hidden`` an unforced click on a hidden target fails the way the
    live session does.
    """

    def __init__(
        self,
        pages: Sequence[Tuple[str, str]],
        *,
        advance_on_click: bool = True,
        valid: bool = True,
        no_effect_on_submit: bool = False,
        click_error: Optional[Exception] = None,
        refuse_hidden: bool = False,
    ) -> None:
        self.pages = list(pages)
        self.index = 0
        self.advance_on_click = advance_on_click
        self.valid = valid
        self.no_effect_on_submit = no_effect_on_submit
        self.click_error = click_error
        self.refuse_hidden = refuse_hidden

        self.clicks: List[Tuple[DetectedField, bool]] = []
        self.keys: List[str] = []
        self.filled: Dict[str, str] = {}
        self.selected: Dict[str, str] = {}
        self.checked: Dict[str, bool] = {}
        self.attached: List[Tuple[str, str, bool]] = []
        self.page_change_waits = 0
        self.dialogs: List[str] = []
        self.user_input = False

    @property
    def url(self) -> str:
        return self.pages[self.index][0]

    async def snapshot(self) -> DocumentSnapshot:
        url, html = self.pages[self.index]
        return DocumentSnapshot(html, url=url)

    async def click(self, field: DetectedField, *, force: bool = False) -> str:
        if self.refuse_hidden and not force:
            current = await self.snapshot()
            if not current.is_visible(current.find(field.node_id)):
                raise ElementNotInteractableError(f"{field.purpose.value} element {field.node_id} is not rendered")
        self.clicks.append((field, force))
        if self.click_error is not None:
            raise self.click_error
        if self.no_effect_on_submit and not force and field.purpose.value == "submit":
            raise ActionNoEffectError("submit had no visible effect")
        if self.advance_on_click and self.index < len(self.pages) - 1:
            self.index += 1
            return "navigated"
        return "idle"

    async def press_key(self, key: str) -> None:
        self.keys.append(key)

    async def fill_text(self, node_id: str, value: str) -> None:
        self.filled[node_id] = value

    async def select_option(self, node_id: str, value: str) -> None:
        self.selected[node_id] = value

    async def set_checked(self, node_id: str, checked: bool) -> None:
        self.checked[node_id] = checked

    async def attach_file(self, node_id: str, resume: ResumeFile, *, force_visible: bool = False) -> None:
        self.attached.append((node_id, resume.name, force_visible))

    async def form_is_valid(self, node_id: Optional[str]) -> bool:
        return self.valid

    async def wait_for_settle(self, timeout_ms: Optional[int] = None) -> bool:
        return False

    async def wait_for_page_change(self) -> str:
        self.page_change_waits += 1
        return "idle"

    def dialog_messages(self) -> List[str]:
        return list(self.dialogs)

    async def user_input_detected(self, since_ms: float = 0) -> bool:
        return self.user_input

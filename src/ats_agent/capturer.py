"""Diagnostic capture of the page a run ended on."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError, Page

from .models import NavigationResult


async def capture_final_state(
    page: Page,
    out_dir: Path,
    result: Optional[NavigationResult],
    history: Optional[List[Dict[str, Any]]] = None,
    name: str = "final",
    error: Optional[str] = None,
) -> Path:
    """Write ``<name>.png``, ``<name>.html`` and ``<name>.json`` under ``out_dir``."""
    out_dir.mkdir(parents=True, exist_ok=True)

    metadata: Dict[str, Any] = {
        "url": page.url,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "result": result.model_dump(mode="json", exclude={"final_classification"}) if result else None,
        "page_type": result.final_classification.type.value if result and result.final_classification else None,
        "history": history or [],
    }
    if error:
        metadata["error"] = error

    try:
        await page.screenshot(path=str(out_dir / f"{name}.png"), full_page=True)
    except PlaywrightError as exc:
        metadata["screenshot_error"] = str(exc)

    try:
        (out_dir / f"{name}.html").write_text(await page.content(), encoding="utf-8")
    except PlaywrightError as exc:
        metadata["html_error"] = str(exc)

    meta_path = out_dir / f"{name}.json"
    meta_path.write_text(json.dumps(metadata, indent=2, default=str), encoding="utf-8")
    return meta_path

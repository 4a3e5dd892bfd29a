"""Capture live documents as annotated snapshots."""

from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError, Page

from .document import DocumentSnapshot

logger = logging.getLogger(__name__)


_CAPTURE_SCRIPT = r"""
() => {
  const w = window;
  if (!w.__atsDocToken) {
    w.__atsDocToken = Math.random().toString(36).slice(2, 8);
    w.__atsNodeCounter = 0;
  }

  const originals = Array.from(document.documentElement.querySelectorAll('*'));
  originals.forEach((el) => {
    if (!el.hasAttribute('data-ats-node')) {
      w.__atsNodeCounter += 1;
      el.setAttribute('data-ats-node', `${w.__atsDocToken}-${w.__atsNodeCounter}`);
    }
  });

  const clone = document.documentElement.cloneNode(true);
  const copies = Array.from(clone.querySelectorAll('*'));
  const vw = w.innerWidth || document.documentElement.clientWidth;
  const vh = w.innerHeight || document.documentElement.clientHeight;
  const valueTags = new Set(['INPUT', 'TEXTAREA', 'SELECT']);

  originals.forEach((el, idx) => {
    const copy = copies[idx];
    if (!copy) return;
    const style = w.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const visible = Boolean(style)
      && style.display !== 'none'
      && style.visibility !== 'hidden'
      && Number(style.opacity) !== 0
      && rect.width > 0
      && rect.height > 0;
    const inView = rect.bottom > 0 && rect.right > 0 && rect.top < vh && rect.left < vw;
    copy.setAttribute('data-ats-visible', visible ? '1' : '0');
    copy.setAttribute('data-ats-inview', inView ? '1' : '0');
    if (style && style.position && style.position !== 'static') {
      copy.setAttribute('data-ats-position', style.position);
    }
    if (valueTags.has(el.tagName) && !(el.tagName === 'INPUT' && el.type === 'password')) {
      copy.setAttribute('data-ats-value', el.value == null ? '' : String(el.value));
    }
    if (el.tagName === 'INPUT') {
      copy.setAttribute('data-ats-checked', el.checked ? '1' : '0');
      if (el.files) copy.setAttribute('data-ats-files', String(el.files.length));
    }
    if ('disabled' in el) {
      copy.setAttribute('data-ats-disabled', el.disabled ? '1' : '0');
    }
  });

  return {
    url: w.location.href,
    title: document.title,
    html: clone.outerHTML,
    viewport: { width: vw, height: vh },
  };
}
"""


async def capture_document(page: Page) -> DocumentSnapshot:
    """Stamp node ids on the live document and return an annotated snapshot of it."""
    try:
        data = await page.evaluate(_CAPTURE_SCRIPT)
    except PlaywrightError as exc:
        # The document was replaced mid-capture; the caller re-classifies next iteration.
        logger.warning("Document capture failed: %s", exc)
        return DocumentSnapshot("", url=page.url)
    data = data or {}
    return DocumentSnapshot(
        data.get("html") or "",
        url=data.get("url") or page.url,
        title=data.get("title"),
        viewport=data.get("viewport"),
    )

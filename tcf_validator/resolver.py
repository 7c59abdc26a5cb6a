"""Locate and click a consent-accepting control."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from .errors import NoConsentControlFound

logger = logging.getLogger(__name__)


async def resolve_and_click(
    page: Page,
    selectors: str | Sequence[str],
    frame: str | None = None,
    timeout_ms: int = 30000,
) -> str:
    """Click the first selector that becomes visible, trying them in order.

    Each selector gets its own ``timeout_ms`` to become visible and the same
    budget to be clicked. A selector that never shows up is skipped without a
    click; a visible one is clicked to completion before moving on. If ``frame``
    is given, every lookup runs inside that iframe's document.

    Returns the selector that was clicked.
    """
    candidates = [selectors] if isinstance(selectors, str) else list(selectors)
    scope = page.frame_locator(frame) if frame else page

    for selector in candidates:
        locator = scope.locator(selector).first
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Consent control %s not visible within %dms", selector, timeout_ms)
            continue
        logger.debug("Found: %s", selector)
        try:
            await locator.click(timeout=timeout_ms)
        except PlaywrightError as e:
            logger.warning("Click on %s failed: %s", selector, e)
            continue
        logger.info("Clicked consent control %s%s", selector, f" in {frame}" if frame else "")
        return selector

    raise NoConsentControlFound(candidates)

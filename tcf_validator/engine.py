"""Site validation engine.

Visits each site in turn inside one shared browser context: clears cookies,
opens a fresh page, navigates, detects the TCF API, identifies the CMP, runs
its consent procedure and records whether the vendor received consent. Every
site yields exactly one SiteValidationResult; a failure on one site is recorded
on that site's result and the run moves on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from .cmps import StrategyDispatcher
from .config import ValidatorConfig
from .errors import NavigationFailure, ValidationError
from .models import SiteValidationResult, ValidationRun
from .tcf import TCFClient
from .utils import clean_error, now_iso

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, SiteValidationResult], None]

_CLEAR_STORAGE_SCRIPT = """
() => {
    try { window.localStorage.clear(); } catch (e) {}
    try { window.sessionStorage.clear(); } catch (e) {}
}
"""


async def _navigate(page: Page, site: str, timeout_ms: int) -> None:
    try:
        await page.goto(site, timeout=timeout_ms, wait_until="domcontentloaded")
    except PlaywrightTimeoutError as e:
        raise NavigationFailure(f"Timeout loading {site} after {timeout_ms}ms") from e
    except PlaywrightError as e:
        raise NavigationFailure(f"Could not load {site}: {e}") from e


async def _release_page(page: Page) -> None:
    """Clear storage in every frame the page touched, then close it."""
    for frame in page.frames:
        try:
            await frame.evaluate(_CLEAR_STORAGE_SCRIPT)
        except PlaywrightError as e:
            logger.debug("Could not clear storage in frame %s: %s", frame.url, e)
    try:
        await page.close()
    except PlaywrightError as e:
        logger.debug("Closing page failed: %s", e)


async def validate_site(
    context: BrowserContext,
    site: str,
    vendor_id: int,
    config: ValidatorConfig,
    tcf: TCFClient,
    dispatcher: StrategyDispatcher,
) -> SiteValidationResult:
    """Validate one site. Never raises for site-local failures."""
    result = SiteValidationResult(site=site, vendor_id=vendor_id)
    timeouts = config.timeouts

    # Run-fatal: a context that cannot reset or open a page aborts the run.
    await context.clear_cookies()
    page = await context.new_page()
    try:
        await _navigate(page, site, timeouts.navigation_ms)

        result.has_tcf = await tcf.detect_api(page, timeouts.tcf_detect_ms)
        if not result.has_tcf:
            result.vendor_is_present = False
            return result

        result.cmp_id = await tcf.identify_cmp(page, timeouts.cmp_ping_ms)
        result.vendor_is_present = await dispatcher.dispatch(result.cmp_id, page, vendor_id)

    except ValidationError as e:
        logger.warning("Validation failed on %s: %s", site, e)
        result.error = clean_error(str(e)) or type(e).__name__
    except PlaywrightError as e:
        logger.error("Browser error on %s: %s", site, e)
        result.error = clean_error(str(e)) or type(e).__name__
    finally:
        await _release_page(page)
        result.finalize()

    return result


async def validate_sites(
    browser: Browser,
    sites: Sequence[str],
    vendor_id: int,
    config: ValidatorConfig,
    on_result: ResultCallback | None = None,
) -> ValidationRun:
    """Validate every site sequentially in one reused browser context.

    Results come back in input order. Errors creating the context propagate.
    """
    run = ValidationRun(vendor_id=vendor_id, started_at=now_iso())
    tcf = TCFClient(config.timeouts)
    dispatcher = StrategyDispatcher(tcf, config.timeouts)

    context = await browser.new_context(
        locale=config.browser.locale,
        viewport={
            "width": config.browser.viewport.width,
            "height": config.browser.viewport.height,
        },
        user_agent=config.browser.user_agent or None,
    )
    try:
        for index, site in enumerate(sites):
            logger.info("Validating %s for TCF vendor %d", site, vendor_id)
            result = await validate_site(context, site, vendor_id, config, tcf, dispatcher)
            run.results.append(result)
            if on_result:
                on_result(index, result)
    finally:
        try:
            await context.close()
        except PlaywrightError as e:
            logger.debug("Closing context failed: %s", e)

    run.completed_at = now_iso()
    return run

"""Client for the IAB TCF v2 in-page API (``window.__tcfapi``).

Every wait here goes through utils.poll_until: a page script is evaluated on a
fixed interval until it yields a value or the deadline passes. Scripts that
call into __tcfapi carry their own short callback deadline, since some CMPs
accept a command and never invoke the callback.
"""

from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError, Page

from .config import TimeoutSettings
from .errors import (
    ConsentEventTimeout,
    MissingVendorConsents,
    NativeApiFailure,
    ProtocolTimeout,
)
from .models import ConsentVector, PingResponse
from .utils import poll_until

logger = logging.getLogger(__name__)

DETECT_API_SCRIPT = "() => typeof window.__tcfapi === 'function'"

PING_SCRIPT = """
(waitMs) => new Promise((resolve) => {
    const timer = setTimeout(() => resolve(null), waitMs);
    try {
        window.__tcfapi('ping', 2, (ping) => {
            clearTimeout(timer);
            resolve(ping ? {
                cmpId: ping.cmpId ?? null,
                cmpLoaded: !!ping.cmpLoaded,
                cmpStatus: ping.cmpStatus ?? null,
                displayStatus: ping.displayStatus ?? null,
                gdprApplies: ping.gdprApplies ?? null,
            } : null);
        });
    } catch (e) {
        clearTimeout(timer);
        resolve(null);
    }
})
"""

# Records the first 'useractioncomplete' payload on window so it can be read
# back by polling. Registering twice on the same page is a no-op.
ARM_LISTENER_SCRIPT = """
() => {
    if (window.__tcfValidator) return true;
    window.__tcfValidator = {decision: null};
    window.__tcfapi('addEventListener', 2, (tcData, success) => {
        if (!success || !tcData || tcData.eventStatus !== 'useractioncomplete') return;
        if (window.__tcfValidator.decision) return;
        window.__tcfValidator.decision = {
            consents: (tcData.vendor && tcData.vendor.consents) || null,
        };
    });
    return true;
}
"""

READ_DECISION_SCRIPT = """
() => (window.__tcfValidator && window.__tcfValidator.decision) || null
"""

GLOBAL_DEFINED_SCRIPT = "(name) => typeof window[name] !== 'undefined'"

NATIVE_CALL_SCRIPT = """
async ([globalName, procedure]) => {
    const value = await window[globalName][procedure]();
    if (Array.isArray(value)) {
        return value.map((v) => (v !== null && typeof v === 'object') ? v.id : v);
    }
    return value;
}
"""


class TCFClient:
    """Speaks the TCF v2 runtime protocol against a Playwright page."""

    def __init__(self, timeouts: TimeoutSettings):
        self._timeouts = timeouts
        self._interval = timeouts.ping_interval_ms

    async def _evaluate(self, page: Page, script: str, arg=None):
        """Evaluate a probe script, treating page-side failures as no answer."""
        try:
            return await page.evaluate(script, arg)
        except PlaywrightError as e:
            logger.debug("Probe failed on %s: %s", page.url, e)
            return None

    async def detect_api(self, page: Page, timeout_ms: int | None = None) -> bool:
        """Wait for window.__tcfapi to become callable. Absence is not an error."""
        timeout_ms = self._timeouts.tcf_detect_ms if timeout_ms is None else timeout_ms

        async def probe():
            return True if await self._evaluate(page, DETECT_API_SCRIPT) else None

        found = await poll_until(probe, timeout_ms, self._interval)
        if not found:
            logger.info("No __tcfapi on %s after %dms", page.url, timeout_ms)
        return bool(found)

    async def ping(self, page: Page) -> PingResponse | None:
        payload = await self._evaluate(page, PING_SCRIPT, self._interval)
        return PingResponse.from_payload(payload)

    async def identify_cmp(self, page: Page, timeout_ms: int | None = None) -> int:
        """Ping until the CMP reports a non-zero id.

        CMPs often install __tcfapi before their configuration has loaded and
        answer early pings with cmpId 0 or nothing at all.
        """
        timeout_ms = self._timeouts.cmp_ping_ms if timeout_ms is None else timeout_ms

        async def probe():
            response = await self.ping(page)
            if response and response.cmp_id:
                return response
            return None

        response = await poll_until(probe, timeout_ms, self._interval)
        if response is None:
            raise ProtocolTimeout(
                f"TCF ping returned no CMP ID within timeout of {timeout_ms}ms"
            )
        logger.info(
            "CMP %d on %s (status=%s, display=%s)",
            response.cmp_id, page.url, response.cmp_status, response.display_status,
        )
        return response.cmp_id

    async def arm_consent_listener(self, page: Page) -> None:
        """Register the consent event listener ahead of a consent action."""
        await page.evaluate(ARM_LISTENER_SCRIPT)

    async def await_consent_decision(
        self, page: Page, timeout_ms: int | None = None,
    ) -> ConsentVector:
        """Wait for the user-action-complete event and return its vendor consents."""
        timeout_ms = self._timeouts.consent_event_ms if timeout_ms is None else timeout_ms
        await self.arm_consent_listener(page)

        async def probe():
            return await self._evaluate(page, READ_DECISION_SCRIPT)

        decision = await poll_until(probe, timeout_ms, self._interval)
        if decision is None:
            raise ConsentEventTimeout(
                f"No useractioncomplete event within timeout of {timeout_ms}ms"
            )
        consents = decision.get("consents")
        if not isinstance(consents, dict):
            raise MissingVendorConsents(
                "Failed to get vendor consents after consent button click"
            )
        return ConsentVector.from_tcf(consents)

    async def wait_for_global(self, page: Page, name: str, timeout_ms: int) -> bool:
        async def probe():
            return True if await self._evaluate(page, GLOBAL_DEFINED_SCRIPT, name) else None

        return bool(await poll_until(probe, timeout_ms, self._interval))

    async def read_consent_vector(
        self, page: Page, global_name: str, procedure: str,
    ) -> ConsentVector:
        """Read vendor state through a CMP's own API instead of the TCF event."""
        label = f"{global_name}.{procedure}"
        try:
            payload = await page.evaluate(NATIVE_CALL_SCRIPT, [global_name, procedure])
        except PlaywrightError as e:
            raise NativeApiFailure(f"{global_name} API: {procedure} failed: {e}") from e
        try:
            return ConsentVector.from_native(payload, source=label)
        except TypeError as e:
            raise NativeApiFailure(f"{global_name} API: {procedure} failed: {e}") from e

"""Known CMPs and how to give consent on each of them.

The registry is keyed by the IAB CMP id reported by ``__tcfapi('ping')``.
Each entry is one of three procedures:

- ClickAndVerify: click the accept button (optionally inside an iframe), then
  read the vendor consents from the TCF 'useractioncomplete' event.
- ShadowPierceClickAndVerify: the accept button lives under a closed shadow
  root; find it over CDP by attribute and invoke click() on it directly, then
  verify as above.
- NativeApiCheck: skip the banner and ask the CMP's own JS API which vendors
  it carries.

An id missing from the registry is an UnsupportedCmp error, never a guess.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from playwright.async_api import Page

from .config import TimeoutSettings
from .devtools import ShadowDomInspector
from .errors import ElementNotFound, NativeApiFailure, UnsupportedCmp
from .resolver import resolve_and_click
from .tcf import TCFClient
from .utils import poll_until

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickAndVerify:
    name: str
    selectors: tuple[str, ...]
    frame: str | None = None


@dataclass(frozen=True)
class ShadowPierceClickAndVerify:
    name: str
    attribute: str
    value: str


@dataclass(frozen=True)
class NativeApiCheck:
    name: str
    global_name: str
    procedure: str


CMPStrategy = ClickAndVerify | ShadowPierceClickAndVerify | NativeApiCheck


# ─── CMP registry (IAB CMP id -> procedure) ─────────────────────────────────
CMP_STRATEGIES: Mapping[int, CMPStrategy] = MappingProxyType({
    5: ShadowPierceClickAndVerify(
        name="usercentrics",
        attribute="data-testid",
        value="uc-accept-all-button",
    ),
    6: ClickAndVerify(
        name="sourcepoint",
        selectors=(".sp_choice_type_11",),
        frame='[id^="sp_message_iframe"]',
    ),
    7: NativeApiCheck(
        name="didomi",
        global_name="Didomi",
        procedure="getRequiredVendors",
    ),
    10: ClickAndVerify(
        name="quantcast",
        selectors=(".qc-cmp2-summary-buttons button[mode=primary]",),
    ),
    28: ClickAndVerify(
        name="onetrust",
        selectors=("#onetrust-accept-btn-handler",),
    ),
    31: ClickAndVerify(
        name="consentmanager",
        selectors=(".cmptxt_btn_yes",),
    ),
    68: ClickAndVerify(
        name="unic",
        selectors=(".unic-modal-content button:nth-of-type(2)",),
    ),
    300: ClickAndVerify(
        name="google_funding_choices",
        selectors=(".fc-cta-consent",),
    ),
    374: ClickAndVerify(
        name="cookie_script",
        selectors=("#cookiescript_accept",),
    ),
    401: ClickAndVerify(
        name="cookieyes",
        selectors=(".cky-notice-btn-wrapper .cky-btn-accept",),
    ),
})


def lookup_strategy(cmp_id: int) -> CMPStrategy:
    try:
        return CMP_STRATEGIES[cmp_id]
    except KeyError:
        raise UnsupportedCmp(cmp_id) from None


class StrategyDispatcher:
    """Runs the registered consent procedure for a CMP and reports the vendor."""

    def __init__(self, tcf: TCFClient, timeouts: TimeoutSettings):
        self._tcf = tcf
        self._timeouts = timeouts

    async def dispatch(self, cmp_id: int, page: Page, vendor_id: int) -> bool:
        """Give consent on ``page`` and return whether ``vendor_id`` received it."""
        strategy = lookup_strategy(cmp_id)
        logger.info("Dispatching CMP %d (%s) on %s", cmp_id, strategy.name, page.url)

        if isinstance(strategy, ClickAndVerify):
            return await self._click_and_verify(strategy, page, vendor_id)
        if isinstance(strategy, ShadowPierceClickAndVerify):
            return await self._shadow_click_and_verify(strategy, page, vendor_id)
        if isinstance(strategy, NativeApiCheck):
            return await self._native_api_check(strategy, page, vendor_id)
        raise UnsupportedCmp(cmp_id)

    async def _verify(self, page: Page, vendor_id: int) -> bool:
        vector = await self._tcf.await_consent_decision(page, self._timeouts.consent_event_ms)
        present = vector.grants(vendor_id)
        logger.info(
            "Vendor %d %s in %d consents on %s",
            vendor_id, "present" if present else "absent", len(vector.consents), page.url,
        )
        return present

    async def _click_and_verify(
        self, strategy: ClickAndVerify, page: Page, vendor_id: int,
    ) -> bool:
        await self._tcf.arm_consent_listener(page)
        await resolve_and_click(
            page, strategy.selectors, strategy.frame, self._timeouts.consent_button_ms,
        )
        return await self._verify(page, vendor_id)

    async def _shadow_click_and_verify(
        self, strategy: ShadowPierceClickAndVerify, page: Page, vendor_id: int,
    ) -> bool:
        await self._tcf.arm_consent_listener(page)
        inspector = await ShadowDomInspector.attach(page)
        try:
            node_id = await poll_until(
                lambda: inspector.find_by_attribute(strategy.attribute, strategy.value),
                self._timeouts.shadow_lookup_ms,
                self._timeouts.ping_interval_ms,
            )
            if node_id is None:
                raise ElementNotFound(
                    f'No element with [{strategy.attribute}="{strategy.value}"] '
                    f"found in document or shadow roots"
                )
            await inspector.invoke(node_id, "click")
            logger.info(
                "Clicked [%s=%s] through CDP (%s)",
                strategy.attribute, strategy.value, strategy.name,
            )
        finally:
            await inspector.detach()
        return await self._verify(page, vendor_id)

    async def _native_api_check(
        self, strategy: NativeApiCheck, page: Page, vendor_id: int,
    ) -> bool:
        timeout_ms = self._timeouts.native_api_ms
        if not await self._tcf.wait_for_global(page, strategy.global_name, timeout_ms):
            raise NativeApiFailure(
                f"{strategy.global_name} API: timed out after {timeout_ms}ms waiting for API"
            )
        vector = await self._tcf.read_consent_vector(
            page, strategy.global_name, strategy.procedure,
        )
        return vector.grants(vendor_id)

"""In-memory stand-ins for the Playwright objects the validator drives.

FakePage answers the validator's page scripts (matched by identity against
the constants in tcf_validator.tcf) from plain Python state, so tests can
script what the TCF runtime, the consent buttons and the DOM look like.
"""

from __future__ import annotations

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from tcf_validator import tcf
from tcf_validator.config import TimeoutSettings, ValidatorConfig
from tcf_validator.engine import _CLEAR_STORAGE_SCRIPT


class FakeLocator:
    def __init__(self, page: FakePage, scope: str | None, selector: str):
        self._page = page
        self._scope = scope
        self._selector = selector

    @property
    def first(self) -> FakeLocator:
        return self

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self._page.calls.append(("wait", self._scope, self._selector))
        if self._selector not in self._page.visible.get(self._scope, set()):
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded waiting for {self._selector}"
            )

    async def click(self, timeout: float | None = None) -> None:
        self._page.calls.append(("click", self._scope, self._selector))
        if self._selector in self._page.unclickable:
            raise PlaywrightError(f"Element {self._selector} is not clickable")
        self._page.clicked.append(self._selector)
        effect = self._page.on_click.get(self._selector)
        if effect:
            effect()


class FakeFrameLocator:
    def __init__(self, page: FakePage, frame: str):
        self._page = page
        self._frame = frame

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self._page, self._frame, selector)


class FakeFrame:
    def __init__(self, page: FakePage, url: str = "about:blank"):
        self._page = page
        self.url = url

    async def evaluate(self, script, arg=None):
        if script == _CLEAR_STORAGE_SCRIPT:
            self._page.storage_cleared += 1
            return None
        return await self._page.evaluate(script, arg)


class FakeCDPSession:
    def __init__(self, page: FakePage):
        self._page = page
        self.detached = False
        page.cdp_sessions.append(self)

    async def send(self, method: str, params: dict | None = None):
        params = params or {}
        self._page.calls.append(("cdp", None, method))
        if method == "DOM.getDocument":
            assert params.get("pierce") is True
            return {"root": self._page.dom_tree}
        if method == "DOM.resolveNode":
            node_id = params["nodeId"]
            if node_id not in self._page.resolvable_nodes:
                raise PlaywrightError("Protocol error (DOM.resolveNode): No node with given id found")
            return {"object": {"objectId": f"object-{node_id}"}}
        if method == "Runtime.callFunctionOn":
            self._page.invoked.append((params["objectId"], params["arguments"][0]["value"]))
            effect = self._page.on_invoke.get(params["objectId"])
            if effect:
                effect()
            return {"result": {"type": "undefined"}}
        raise AssertionError(f"unexpected CDP call {method}")

    async def detach(self) -> None:
        self.detached = True


class FakePage:
    def __init__(self, context: FakeContext | None = None):
        self.context = context
        self.url = "about:blank"
        self.closed = False
        self.calls: list[tuple] = []
        self.goto_error: Exception | None = None

        # TCF runtime
        self.tcf_defined = False
        self.defined_after_polls = 0
        self.detect_polls = 0
        self.ping_responses: list[dict | None] = []
        self.ping_error: Exception | None = None
        self.pings = 0
        self.listener_armed = False
        self.decision: dict | None = None

        # CMP-native globals: {"Didomi": {"getRequiredVendors": payload or exception}}
        self.native_globals: dict[str, dict] = {}

        # Consent controls: scope None is the top document, otherwise a frame selector
        self.visible: dict[str | None, set[str]] = {None: set()}
        self.unclickable: set[str] = set()
        self.clicked: list[str] = []
        self.on_click: dict[str, callable] = {}

        # CDP
        self.dom_tree: dict = {"nodeId": 1, "nodeType": 9, "nodeName": "#document", "children": []}
        self.resolvable_nodes: set[int] = set()
        self.invoked: list[tuple[str, str]] = []
        self.on_invoke: dict[str, callable] = {}
        self.cdp_sessions: list[FakeCDPSession] = []

        self.storage_cleared = 0
        self.frames = [FakeFrame(self)]

    def fire_consent(self, consents: dict | None) -> None:
        """Emit a 'useractioncomplete' event to the armed listener."""
        if self.listener_armed and self.decision is None:
            self.decision = {"consents": consents}

    async def goto(self, url: str, timeout: float | None = None, wait_until: str | None = None):
        self.calls.append(("goto", None, url))
        if self.goto_error:
            raise self.goto_error
        self.url = url
        self.frames[0].url = url
        if self.context and url in self.context.site_setups:
            self.context.site_setups[url](self)

    async def evaluate(self, script, arg=None):
        if script == tcf.DETECT_API_SCRIPT:
            self.detect_polls += 1
            return self.tcf_defined and self.detect_polls > self.defined_after_polls
        if script == tcf.PING_SCRIPT:
            if self.ping_error:
                raise self.ping_error
            if not self.ping_responses:
                return None
            payload = self.ping_responses[min(self.pings, len(self.ping_responses) - 1)]
            self.pings += 1
            return payload
        if script == tcf.ARM_LISTENER_SCRIPT:
            if not self.tcf_defined:
                raise PlaywrightError("ReferenceError: __tcfapi is not defined")
            self.calls.append(("arm", None, None))
            self.listener_armed = True
            return True
        if script == tcf.READ_DECISION_SCRIPT:
            return self.decision if self.listener_armed else None
        if script == tcf.GLOBAL_DEFINED_SCRIPT:
            return arg in self.native_globals
        if script == tcf.NATIVE_CALL_SCRIPT:
            global_name, procedure = arg
            if global_name not in self.native_globals:
                raise PlaywrightError(f"TypeError: Cannot read properties of undefined ({global_name})")
            value = self.native_globals[global_name][procedure]
            if isinstance(value, Exception):
                raise value
            return value
        raise AssertionError(f"unexpected script: {script[:60]}")

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, None, selector)

    def frame_locator(self, frame: str) -> FakeFrameLocator:
        return FakeFrameLocator(self, frame)

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self):
        self.pages: list[FakePage] = []
        self.site_setups: dict[str, callable] = {}
        self.cookies_cleared = 0
        self.closed = False

    async def clear_cookies(self) -> None:
        self.cookies_cleared += 1

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def new_cdp_session(self, page: FakePage) -> FakeCDPSession:
        return FakeCDPSession(page)

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, context: FakeContext):
        self.context = context
        self.context_kwargs: dict | None = None
        self.closed = False

    async def new_context(self, **kwargs) -> FakeContext:
        self.context_kwargs = kwargs
        return self.context

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    """Stands in for ``async_playwright()``; ``chromium.launch`` returns the fake browser."""

    def __init__(self, browser: FakeBrowser):
        self.browser = browser
        self.chromium = self
        self.launch_kwargs: dict | None = None

    async def launch(self, **kwargs) -> FakeBrowser:
        self.launch_kwargs = kwargs
        return self.browser

    async def __aenter__(self) -> FakePlaywright:
        return self

    async def __aexit__(self, *exc) -> None:
        return None


def element(node_id: int, name: str, **attributes) -> dict:
    flat: list[str] = []
    for key, value in attributes.items():
        flat += [key.replace("_", "-"), value]
    return {"nodeId": node_id, "nodeType": 1, "nodeName": name.upper(), "attributes": flat}


FAST_TIMEOUTS = TimeoutSettings(
    navigation_ms=100,
    tcf_detect_ms=40,
    cmp_ping_ms=40,
    ping_interval_ms=5,
    consent_button_ms=20,
    consent_event_ms=40,
    shadow_lookup_ms=40,
    native_api_ms=40,
)


@pytest.fixture
def timeouts() -> TimeoutSettings:
    return FAST_TIMEOUTS


@pytest.fixture
def config() -> ValidatorConfig:
    return ValidatorConfig(timeouts=FAST_TIMEOUTS)


@pytest.fixture
def fake_context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def fake_page(fake_context) -> FakePage:
    page = FakePage(fake_context)
    page.url = "https://example.test"
    return page


@pytest.fixture
def fake_browser(fake_context) -> FakeBrowser:
    return FakeBrowser(fake_context)


@pytest.fixture
def make_element():
    return element


@pytest.fixture
def fake_playwright(fake_browser) -> FakePlaywright:
    return FakePlaywright(fake_browser)

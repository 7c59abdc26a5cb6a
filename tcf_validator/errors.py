"""Failures that end a single site visit.

Every error here is local to one site: the orchestrator records the message in
the site's result and moves on to the next site.
"""

from __future__ import annotations

from collections.abc import Sequence


class ValidationError(Exception):
    """Base class for site-local validation failures."""


class NavigationFailure(ValidationError):
    """The site could not be loaded within the navigation timeout."""


class ProtocolTimeout(ValidationError):
    """__tcfapi('ping') never reported a CMP id."""


class ConsentEventTimeout(ValidationError):
    """No 'useractioncomplete' event fired after the consent action."""


class MissingVendorConsents(ValidationError):
    """The consent event fired but carried no vendor consents."""


class NoConsentControlFound(ValidationError):
    def __init__(self, selectors: Sequence[str]):
        self.selectors = list(selectors)
        super().__init__(
            f"No consent button found with selectors: {' | '.join(self.selectors)}"
        )


class ElementNotFound(ValidationError):
    """A shadow-piercing lookup found no matching node."""


class UnsupportedCmp(ValidationError):
    def __init__(self, cmp_id: int):
        self.cmp_id = cmp_id
        super().__init__(f"CMP ID {cmp_id} not yet added")


class NativeApiFailure(ValidationError):
    """A CMP-specific API never loaded or its vendor query threw."""

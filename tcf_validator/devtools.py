"""Shadow-piercing DOM access over the Chrome DevTools Protocol.

Playwright locators cannot see into closed shadow roots. CDP's DOM domain can:
``DOM.getDocument`` with ``pierce=true`` returns every node, including those
under closed shadow roots and inside iframes, and a node id can be resolved to
a live JS object to call methods on. This module keeps the raw protocol calls
in one place so strategies only deal with node ids and attributes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from playwright.async_api import CDPSession, Error as PlaywrightError, Page

from .errors import ElementNotFound

logger = logging.getLogger(__name__)

_INVOKE_FUNCTION = "function(method) { return this[method](); }"


@dataclass
class DomNode:
    node_id: int
    node_name: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


def _attribute_map(flat: list[str] | None) -> dict[str, str]:
    # CDP sends attributes as [name1, value1, name2, value2, ...]
    if not flat:
        return {}
    return dict(zip(flat[::2], flat[1::2]))


def flatten_dom(root: dict) -> list[DomNode]:
    """Walk a pierced CDP document tree into a flat list of element nodes."""
    nodes: list[DomNode] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if "nodeId" in node and node.get("nodeType", 1) == 1:
            nodes.append(DomNode(
                node_id=node["nodeId"],
                node_name=node.get("nodeName", ""),
                attributes=_attribute_map(node.get("attributes")),
            ))
        children = list(node.get("children") or [])
        children += node.get("shadowRoots") or []
        if node.get("contentDocument"):
            children.append(node["contentDocument"])
        # Reversed so document order is preserved when popping
        stack.extend(reversed(children))
    return nodes


class ShadowDomInspector:
    """Find and activate elements anywhere in a page, shadow roots included."""

    def __init__(self, session: CDPSession):
        self._session = session

    @classmethod
    async def attach(cls, page: Page) -> ShadowDomInspector:
        session = await page.context.new_cdp_session(page)
        return cls(session)

    async def detach(self) -> None:
        try:
            await self._session.detach()
        except PlaywrightError as e:
            logger.debug("CDP session detach failed: %s", e)

    async def flattened_nodes(self) -> list[DomNode]:
        document = await self._session.send(
            "DOM.getDocument", {"depth": -1, "pierce": True},
        )
        return flatten_dom(document["root"])

    async def find_by_attribute(self, attribute: str, value: str) -> int | None:
        """Return the node id of the first element whose attribute equals value."""
        for node in await self.flattened_nodes():
            if node.attributes.get(attribute) == value:
                return node.node_id
        return None

    async def invoke(self, node_id: int, method: str) -> None:
        """Call ``method`` on the live element behind ``node_id``.

        Bypasses visibility checks: shadow-hosted controls often do not count
        as visible to regular locators.
        """
        try:
            resolved = await self._session.send("DOM.resolveNode", {"nodeId": node_id})
            object_id = resolved["object"]["objectId"]
            await self._session.send("Runtime.callFunctionOn", {
                "objectId": object_id,
                "functionDeclaration": _INVOKE_FUNCTION,
                "arguments": [{"value": method}],
            })
        except (PlaywrightError, KeyError) as e:
            raise ElementNotFound(f"Could not invoke {method}() on node {node_id}: {e}") from e

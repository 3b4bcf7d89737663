"""Browser Control Surface contract and its Playwright implementation."""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from replaylens.logging import get_logger

log = get_logger(__name__)

EventCallback = Callable[[dict[str, Any]], Any]

_BINDING_NAME = "__replaylensCapture"

# Playwright's accepted wait_until values
_WAIT_UNTIL = {"load", "domcontentloaded", "networkidle", "commit"}

_JS_CAPTURE = r"""
(() => {
    if (window.__replaylensInstalled) return;
    window.__replaylensInstalled = true;

    function cssPath(el) {
        if (!(el instanceof Element)) return '';
        if (el.id) return '#' + CSS.escape(el.id);
        const parts = [];
        while (el && el.nodeType === 1 && parts.length < 5) {
            let part = el.tagName.toLowerCase();
            if (el.id) { parts.unshift('#' + CSS.escape(el.id)); break; }
            const cls = Array.from(el.classList).slice(0, 2);
            if (cls.length) part += '.' + cls.map(c => CSS.escape(c)).join('.');
            const parent = el.parentElement;
            if (parent) {
                const same = Array.from(parent.children).filter(c => c.tagName === el.tagName);
                if (same.length > 1) part += ':nth-of-type(' + (same.indexOf(el) + 1) + ')';
            }
            parts.unshift(part);
            el = parent;
        }
        return parts.join(' > ');
    }

    function context(el) {
        const form = el.closest ? el.closest('form') : null;
        return {
            tagName: el.tagName ? el.tagName.toLowerCase() : '',
            id: el.id || undefined,
            testId: el.getAttribute ? (el.getAttribute('data-testid') || undefined) : undefined,
            type: el.getAttribute ? (el.getAttribute('type') || undefined) : undefined,
            href: el.getAttribute ? (el.getAttribute('href') || undefined) : undefined,
            textContent: (el.textContent || '').trim().slice(0, 200) || undefined,
            form: form ? (form.id || form.getAttribute('name') || cssPath(form)) : undefined,
            url: location.href,
        };
    }

    function report(type, action, el, data) {
        try {
            window.__replaylensCapture({
                type: type,
                action: action,
                target: cssPath(el),
                timestamp: Date.now(),
                data: data || {},
                context: context(el),
            });
        } catch (e) { /* binding gone */ }
    }

    document.addEventListener('click', e => report('click', 'click', e.target, {}), true);
    document.addEventListener('change', e => {
        const el = e.target;
        if (el && 'value' in el) report('input', 'type', el, { value: String(el.value) });
    }, true);
    document.addEventListener('mouseover', e => report('click', 'hover', e.target, { trigger: 'hover' }), true);

    let lastScroll = 0;
    document.addEventListener('scroll', e => {
        const now = Date.now();
        if (now - lastScroll < 500) return;
        lastScroll = now;
        const el = e.target === document ? document.documentElement : e.target;
        report('click', 'scroll', el, { trigger: 'scroll' });
    }, true);
})();
"""


def split_selector_list(selector: str) -> list[str]:
    """Split a comma-separated selector list, ignoring commas inside
    quotes, brackets or parentheses."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: str | None = None
    for ch in selector:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch in "[(":
            depth += 1
        elif ch in "])":
            depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


@runtime_checkable
class BrowserControlSurface(Protocol):
    """
    Primitive browser actions the ExecutionEngine dispatches to.

    Each call is one request resolved by exactly one response; timeouts are
    applied by the caller.  ``subscribe`` is optional and only used while
    recording.
    """

    async def navigate(self, url: str, wait_for: str = "load") -> dict[str, Any]: ...

    async def click(self, selector: str, options: dict[str, Any]) -> dict[str, Any]: ...

    async def input(self, selector: str, value: str, options: dict[str, Any]) -> dict[str, Any]: ...

    async def check_condition(self, condition: str, options: dict[str, Any]) -> bool: ...

    async def extract(self, selector: str | None, attribute: str | None) -> Any: ...

    async def validate(self, condition: str, options: dict[str, Any]) -> Any: ...


class PlaywrightControlSurface:
    """BrowserControlSurface over a live ``playwright.async_api.Page``."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._callback: EventCallback | None = None
        self._binding_installed = False

    @property
    def page(self) -> Page:
        return self._page

    async def _locate(self, selector: str) -> Locator | None:
        """First alternative of *selector* that matches at least one element."""
        for alternative in split_selector_list(selector):
            loc = self._page.locator(alternative).first
            try:
                if await loc.count() > 0:
                    return loc
            except PlaywrightError:
                # Unparseable alternative; try the next one
                continue
        return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def navigate(self, url: str, wait_for: str = "load") -> dict[str, Any]:
        wait_until = wait_for if wait_for in _WAIT_UNTIL else "load"
        try:
            await self._page.goto(url, wait_until=wait_until)
        except PlaywrightError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "url": self._page.url}

    async def click(self, selector: str, options: dict[str, Any]) -> dict[str, Any]:
        loc = await self._locate(selector)
        if loc is None:
            return {"success": False, "error": f"Element not found: {selector}"}
        trigger = options.get("trigger", "click")
        try:
            if trigger == "hover":
                await loc.hover()
            elif trigger == "scroll":
                await loc.scroll_into_view_if_needed()
            else:
                await loc.click(
                    button=options.get("button", "left"),
                    click_count=int(options.get("clickCount", 1)),
                )
        except PlaywrightError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "element": selector}

    async def input(self, selector: str, value: str, options: dict[str, Any]) -> dict[str, Any]:
        loc = await self._locate(selector)
        if loc is None:
            return {"success": False, "error": f"Element not found: {selector}"}
        try:
            if options.get("clear", True):
                await loc.fill(value)
            else:
                await loc.press_sequentially(value)
            if options.get("validate"):
                actual = await loc.input_value()
                if value not in actual:
                    return {"success": False, "error": f"Input value mismatch: {actual!r}"}
        except PlaywrightError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "value": value}

    async def check_condition(self, condition: str, options: dict[str, Any]) -> bool:
        try:
            if condition == "element_visible":
                loc = await self._locate(options.get("selector") or "")
                return loc is not None and await loc.is_visible()
            if condition == "page_load":
                return await self._page.evaluate("document.readyState") == "complete"
            if condition == "text_present":
                text = options.get("text") or ""
                body = await self._page.locator("body").inner_text()
                return bool(text) and text in body
        except PlaywrightError as exc:
            log.debug("condition_check_failed", condition=condition, error=str(exc))
            return False
        log.warning("unknown_wait_condition", condition=condition)
        return False

    async def extract(self, selector: str | None, attribute: str | None) -> Any:
        if not selector:
            return {"selector": None, "url": self._page.url, "title": await self._page.title()}
        loc = await self._locate(selector)
        if loc is None:
            return {"selector": selector, "attribute": attribute, "value": None}
        if attribute:
            value = await loc.get_attribute(attribute)
        else:
            value = await loc.inner_text()
        return {"selector": selector, "attribute": attribute, "value": value}

    async def validate(self, condition: str, options: dict[str, Any]) -> Any:
        selector = options.get("selector")
        expected = options.get("expected")
        actual: Any = None

        if condition in ("exists", "visible"):
            loc = await self._locate(selector) if selector else None
            actual = loc is not None and (condition == "exists" or await loc.is_visible())
            valid = actual is (expected if isinstance(expected, bool) else True)
        elif condition in ("text_equals", "text_contains"):
            loc = await self._locate(selector) if selector else None
            actual = (await loc.inner_text()).strip() if loc is not None else None
            if actual is None:
                valid = False
            elif condition == "text_equals":
                valid = actual == str(expected)
            else:
                valid = str(expected) in actual
        elif condition == "url_contains":
            actual = self._page.url
            valid = str(expected) in actual
        elif condition == "title_equals":
            actual = await self._page.title()
            valid = actual == str(expected)
        else:
            return {"condition": condition, "valid": False, "error": "Unknown condition"}

        return {"condition": condition, "expected": expected, "actual": actual, "valid": valid}

    # ------------------------------------------------------------------
    # Capture stream
    # ------------------------------------------------------------------

    async def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Stream raw interaction events to *callback* until unsubscribed."""
        self._callback = callback

        if not self._binding_installed:
            await self._page.expose_binding(_BINDING_NAME, self._on_binding)
            await self._page.add_init_script(_JS_CAPTURE)
            self._binding_installed = True
        await self._page.evaluate(_JS_CAPTURE)

        def on_navigated(frame: Any) -> None:
            if frame != self._page.main_frame or self._callback is None:
                return
            self._callback(
                {
                    "type": "navigation",
                    "action": "page_load",
                    "target": frame.url,
                    "data": {"url": frame.url},
                    "context": {"url": frame.url},
                }
            )

        self._page.on("framenavigated", on_navigated)

        def unsubscribe() -> None:
            self._callback = None
            self._page.remove_listener("framenavigated", on_navigated)

        return unsubscribe

    def _on_binding(self, source: Any, event: dict[str, Any]) -> None:
        if self._callback is not None:
            self._callback(event)



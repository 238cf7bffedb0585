"""Engine driver backed by patchright (Playwright-compatible Chromium automation)."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from patchright.async_api import Error as PlaywrightError
from patchright.async_api import TimeoutError as PlaywrightTimeoutError
from patchright.async_api import async_playwright

from kiosk.engine.base import LaunchOptions
from kiosk.errors import FileInputNotFound, LaunchFailure, NavigationTimeout, StaleTarget

logger = logging.getLogger(__name__)

_FILE_INPUT_SELECTOR = 'input[type="file"]'

# Fire input/change so the page notices the new file, then click any
# associated label to mimic a real selection.
_NOTIFY_FILE_INPUT_JS = """
(el) => {
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    const label = el.closest('label') || (el.id && document.querySelector(`label[for="${el.id}"]`));
    if (label) { label.click(); }
}
"""

T = TypeVar("T")


def _page_operation(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Map driver errors on a page call to the core's typed failures."""

    @wraps(func)
    async def wrapper(self: "PatchrightPage", *args: Any, **kwargs: Any) -> T:
        if self.is_closed():
            raise StaleTarget(f"Page closed before {func.__name__}")
        try:
            return await func(self, *args, **kwargs)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"{func.__name__} timed out: {e}") from e
        except PlaywrightError as e:
            if self.is_closed():
                raise StaleTarget(f"Page closed during {func.__name__}") from e
            raise

    return wrapper


class CdpControlChannel:
    """ControlChannel over a patchright CDPSession."""

    def __init__(self, cdp_session: Any) -> None:
        self._cdp = cdp_session

    def on(self, event: str, handler: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        self._cdp.on(event, handler)

    async def send(self, method: str, params: dict[str, Any] | None = None) -> Any:
        return await self._cdp.send(method, params or {})

    async def detach(self) -> None:
        await self._cdp.detach()


class PatchrightPage:
    """A launched Chromium process, its isolated context and the page it drives."""

    def __init__(self, browser: Any, context: Any, page: Any) -> None:
        self._browser = browser
        self._context = context
        self._page = page

    # -- Properties ----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._page.url

    @property
    def viewport(self) -> tuple[int, int]:
        size = self._page.viewport_size or {}
        return size.get("width", 0), size.get("height", 0)

    def is_closed(self) -> bool:
        return self._page.is_closed()

    # -- Navigation ----------------------------------------------------------

    @_page_operation
    async def goto(
        self, url: str, timeout: float, wait_until: str = "domcontentloaded"
    ) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout * 1000)

    @_page_operation
    async def go_back(self, timeout: float) -> None:
        await self._page.go_back(wait_until="domcontentloaded", timeout=timeout * 1000)

    @_page_operation
    async def go_forward(self, timeout: float) -> None:
        await self._page.go_forward(wait_until="domcontentloaded", timeout=timeout * 1000)

    @_page_operation
    async def reload(self, timeout: float) -> None:
        await self._page.reload(wait_until="domcontentloaded", timeout=timeout * 1000)

    # -- State ---------------------------------------------------------------

    @_page_operation
    async def screenshot(self) -> bytes:
        return await self._page.screenshot(type="png", full_page=False)

    @_page_operation
    async def cookies(self) -> list[dict[str, Any]]:
        return await self._context.cookies()

    @_page_operation
    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        await self._context.add_cookies(cookies)

    # -- Mouse ---------------------------------------------------------------

    @_page_operation
    async def mouse_move(self, x: float, y: float) -> None:
        await self._page.mouse.move(x, y)

    @_page_operation
    async def mouse_down(self, button: str = "left") -> None:
        await self._page.mouse.down(button=button)

    @_page_operation
    async def mouse_up(self, button: str = "left") -> None:
        await self._page.mouse.up(button=button)

    @_page_operation
    async def click(self, x: float, y: float, button: str = "left") -> None:
        await self._page.mouse.click(x, y, button=button)

    @_page_operation
    async def scroll(self, delta_x: float, delta_y: float) -> None:
        await self._page.mouse.wheel(delta_x, delta_y)

    # -- Keyboard ------------------------------------------------------------

    @_page_operation
    async def key_down(self, key: str, text: str | None = None) -> None:
        await self._page.keyboard.down(key)
        # keyboard.down already types single characters and Space
        if text and len(key) > 1 and key != "Space":
            await self._page.keyboard.insert_text(text)

    @_page_operation
    async def key_up(self, key: str) -> None:
        await self._page.keyboard.up(key)

    @_page_operation
    async def insert_text(self, text: str) -> None:
        await self._page.keyboard.insert_text(text)

    @_page_operation
    async def type_text(self, text: str) -> None:
        await self._page.keyboard.type(text)

    @_page_operation
    async def press_key(self, key: str) -> None:
        await self._page.keyboard.press(key)

    # -- Files ---------------------------------------------------------------

    @_page_operation
    async def upload_file(self, path: str, timeout: float, settle: float = 1.0) -> None:
        """Set *path* on the page's file input.

        Hidden inputs count; a visible, enabled input is preferred when the
        page has several.
        """
        try:
            await self._page.wait_for_selector(
                _FILE_INPUT_SELECTOR, state="attached", timeout=timeout * 1000
            )
        except PlaywrightTimeoutError as e:
            raise FileInputNotFound(
                "No file input found on page. Navigate to a page with a file upload field."
            ) from e

        inputs = await self._page.query_selector_all(_FILE_INPUT_SELECTOR)
        if not inputs:
            raise FileInputNotFound("No file input found on page")
        logger.debug(f"Found {len(inputs)} file input(s) on page")

        target = inputs[0]
        for candidate in inputs:
            try:
                if await candidate.is_visible() and await candidate.is_enabled():
                    target = candidate
                    break
            except PlaywrightError as e:
                logger.debug(f"Skipping file input that could not be inspected: {e}")

        await target.set_input_files(path)
        await target.evaluate(_NOTIFY_FILE_INPUT_JS)
        # Give the page a moment to react to the selection
        await asyncio.sleep(settle)
        logger.info(f"Uploaded {path} to file input")

    # -- Control channel -----------------------------------------------------

    @_page_operation
    async def open_control_channel(self) -> CdpControlChannel:
        cdp_session = await self._context.new_cdp_session(self._page)
        return CdpControlChannel(cdp_session)

    # -- Lifecycle -----------------------------------------------------------

    async def close(self) -> None:
        """Close the context and terminate the browser process."""
        try:
            await self._context.close()
        except PlaywrightError as e:
            logger.debug(f"Context close error: {e}")
        await self._browser.close()


class PatchrightDriver:
    """EngineDriver that launches one Chromium process per session.

    The patchright runtime itself is started lazily and shared by every
    browser it launches.
    """

    def __init__(
        self,
        executable_path: str | None = None,
        headless: bool = True,
        args: list[str] | None = None,
    ) -> None:
        self._executable_path = executable_path
        self._headless = headless
        self._args = list(args or [])
        self._playwright: Any = None
        self._lock = asyncio.Lock()

    async def _runtime(self) -> Any:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright

    def _launch_kwargs(self) -> dict[str, Any]:
        launch_opts: dict[str, Any] = {"headless": self._headless, "args": self._args}
        if self._executable_path:
            launch_opts["executable_path"] = self._executable_path
        # Suppress "Google API keys are missing" infobar.
        # Patchright's env param replaces process.env entirely, so
        # we must merge into a copy of the current environment.
        env = dict(os.environ)
        env.setdefault("GOOGLE_API_KEY", "no")
        env.setdefault("GOOGLE_DEFAULT_CLIENT_ID", "no")
        launch_opts["env"] = env
        return launch_opts

    async def launch(self, options: LaunchOptions) -> PatchrightPage:
        browser = None
        try:
            playwright = await self._runtime()
            browser = await playwright.chromium.launch(**self._launch_kwargs())

            context_opts: dict[str, Any] = {
                "viewport": {
                    "width": options.viewport_width,
                    "height": options.viewport_height,
                }
            }
            if options.user_agent:
                context_opts["user_agent"] = options.user_agent
            context = await browser.new_context(**context_opts)
            page = await context.new_page()
        except (PlaywrightError, OSError) as e:
            if browser is not None:
                try:
                    await browser.close()
                except PlaywrightError:
                    pass
            raise LaunchFailure(f"Failed to launch browser: {e}") from e

        logger.info(
            f"Launched Chromium ({options.viewport_width}x{options.viewport_height})"
        )
        return PatchrightPage(browser, context, page)

    async def close(self) -> None:
        async with self._lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

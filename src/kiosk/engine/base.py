"""Engine driver protocol: the narrow surface the session core needs from a browser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

BLANK_URL = "about:blank"


@dataclass
class LaunchOptions:
    viewport_width: int = 1920
    viewport_height: int = 1080
    user_agent: str | None = None


class ControlChannel(Protocol):
    """Low-level bidirectional channel to the engine (a CDP session)."""

    def on(self, event: str, handler: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        """Register an async handler for a protocol event."""
        ...

    async def send(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a protocol command and wait for its result."""
        ...

    async def detach(self) -> None:
        ...


class EnginePage(Protocol):
    """One launched browser process with the single page it controls.

    Page operations raise ``StaleTarget`` once the page has been closed and
    ``NavigationTimeout`` when a navigation exceeds its bound.  Timeouts are
    in seconds.
    """

    @property
    def url(self) -> str: ...

    @property
    def viewport(self) -> tuple[int, int]:
        """Current (width, height) of the page viewport."""
        ...

    def is_closed(self) -> bool: ...

    async def goto(self, url: str, timeout: float, wait_until: str = "domcontentloaded") -> None: ...

    async def go_back(self, timeout: float) -> None: ...

    async def go_forward(self, timeout: float) -> None: ...

    async def reload(self, timeout: float) -> None: ...

    async def screenshot(self) -> bytes:
        """PNG of the current viewport."""
        ...

    async def cookies(self) -> list[dict[str, Any]]:
        """Full live cookie jar of the page's context."""
        ...

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None: ...

    async def mouse_move(self, x: float, y: float) -> None: ...

    async def mouse_down(self, button: str = "left") -> None: ...

    async def mouse_up(self, button: str = "left") -> None: ...

    async def click(self, x: float, y: float, button: str = "left") -> None: ...

    async def key_down(self, key: str, text: str | None = None) -> None:
        """Press *key*; *text* is the character it produces, if any."""
        ...

    async def key_up(self, key: str) -> None: ...

    async def insert_text(self, text: str) -> None: ...

    async def type_text(self, text: str) -> None: ...

    async def press_key(self, key: str) -> None: ...

    async def scroll(self, delta_x: float, delta_y: float) -> None: ...

    async def upload_file(self, path: str, timeout: float) -> None: ...

    async def open_control_channel(self) -> ControlChannel: ...

    async def close(self) -> None:
        """Terminate the browser process."""
        ...


class EngineDriver(Protocol):
    """Factory for engine instances."""

    async def launch(self, options: LaunchOptions) -> EnginePage:
        """Start a browser process and return its page.

        Raises:
            LaunchFailure: if the engine could not be started.
        """
        ...

    async def close(self) -> None:
        """Release driver-wide resources."""
        ...

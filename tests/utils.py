"""In-memory Playwright double that simulates the video call demo."""
import asyncio
import io
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from callharness.config import Settings
from callharness.services.health_checks import PERMISSION_QUERY_SCRIPT
from callharness.services.video_call_page import (
    LAYOUTS,
    LOCAL_IDS_SCRIPT,
    REMOTE_IDS_SCRIPT,
    VIDEO_STATE_SCRIPT,
    PageLayout,
)

PLAYING = {
    "elementId": "video_track",
    "isVisible": True,
    "readyState": 4,
    "videoWidth": 640,
    "videoHeight": 480,
    "paused": False,
}
NOT_READY = dict(PLAYING, readyState=0, videoWidth=0, videoHeight=0, paused=True)


def png_bytes(color=(0, 128, 0), size=(64, 48)) -> bytes:
    """Encode a solid-color PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeCallServer:
    """Backend of the demo: which pages are joined, grouped by appId and channel."""

    def __init__(self, rejected_app_ids=("invalid",), acknowledge: bool = True):
        self.rejected_app_ids = set(rejected_app_ids)
        self.acknowledge = acknowledge
        self.members: List["FakePage"] = []

    def join(self, page: "FakePage") -> bool:
        if page.app_id in self.rejected_app_ids:
            return False
        self.members.append(page)
        return True

    def leave(self, page: "FakePage") -> None:
        if page in self.members:
            self.members.remove(page)

    def peers(self, page: "FakePage") -> List["FakePage"]:
        return [
            other for other in self.members
            if other is not page and other.channel_key == page.channel_key
        ]


class FakeResponseWaiter:
    """Stand-in for the context manager returned by page.expect_response."""

    def __init__(self, page: "FakePage", predicate):
        self.page = page
        self.predicate = predicate

    async def __aenter__(self):
        self.page.last_response = None
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    @property
    def value(self):
        return self._resolve()

    async def _resolve(self):
        response = self.page.last_response
        if response is None or not self.predicate(response):
            raise PlaywrightTimeoutError("Timeout waiting for response")
        return response


class FakeLocator:
    """Locator over the simulated video elements and regions."""

    def __init__(self, page: "FakePage", selector: str, index: Optional[int] = None):
        self.page = page
        self.selector = selector
        self.index = index

    def _states(self) -> List[Dict]:
        states = self.page.element_states(self.selector)
        if self.index is None:
            return states
        return states[self.index:self.index + 1]

    @property
    def first(self) -> "FakeLocator":
        return self if self.index is not None else FakeLocator(self.page, self.selector, 0)

    async def all(self) -> List["FakeLocator"]:
        return [FakeLocator(self.page, self.selector, i) for i in range(len(self._states()))]

    async def count(self) -> int:
        return len(self._states())

    async def is_visible(self) -> bool:
        states = self._states()
        return bool(states) and states[0]["isVisible"]

    async def evaluate(self, script, arg=None, timeout=None):
        assert script == VIDEO_STATE_SCRIPT
        states = self._states()
        if not states:
            raise PlaywrightTimeoutError(f"Timeout waiting for locator('{self.selector}')")
        self.page.evaluations += 1
        if self.selector == self.page.layout.local_video and self.page.local_warmup > 0:
            self.page.local_warmup -= 1
            return dict(NOT_READY)
        return dict(states[0])

    async def wait_for(self, state="visible", timeout=None):
        # Hidden means detached or present but not visible
        visible = any(s["isVisible"] for s in self._states())
        if state == "hidden" and visible:
            raise PlaywrightTimeoutError(f"Timeout waiting for locator('{self.selector}') to be hidden")
        if state == "visible" and not visible:
            raise PlaywrightTimeoutError(f"Timeout waiting for locator('{self.selector}') to be visible")

    async def screenshot(self, **kwargs) -> bytes:
        self.page.screenshots.append((self.selector, kwargs))
        return png_bytes(self.page.screen_color)


class FakeRoleLocator:
    """get_by_role() locator for the form fields, buttons and alerts."""

    def __init__(self, page: "FakePage", role: str, name: Optional[str] = None):
        self.page = page
        self.role = role
        self.name = name

    @property
    def first(self) -> "FakeRoleLocator":
        return self

    def filter(self, has_text=None) -> "FakeRoleLocator":
        return FakeRoleLocator(self.page, self.role, has_text)

    async def fill(self, value: str) -> None:
        self.page.fields[self.name] = value

    async def click(self) -> None:
        if self.name == self.page.layout.join_button:
            self.page.click_join()
        elif self.name == self.page.layout.leave_button:
            self.page.click_leave()

    async def is_visible(self) -> bool:
        if self.role == "alert" or self.name == self.page.layout.leave_button:
            return self.page.joined
        return not self.page.closed


class FakePage:
    """One participant's tab running the simulated demo."""

    def __init__(self, context: "FakeContext", server: FakeCallServer, layout: PageLayout, endpoint: str):
        self.context = context
        self.server = server
        self.layout = layout
        self.endpoint = endpoint
        self.url: Optional[str] = None
        self.fields: Dict[str, str] = {}
        self.joined = False
        self.closed = False
        self.last_response = None
        self.local_video_state = dict(PLAYING)
        self.local_warmup = 0
        self.local_video_lingers = False
        self._lingering = False
        self.evaluations = 0
        self.screen_color = (0, 128, 0)
        self.screenshots: List = []

    @property
    def app_id(self) -> Optional[str]:
        return self.fields.get(self.layout.app_id_field)

    @property
    def participant_id(self) -> Optional[str]:
        return self.fields.get(self.layout.user_id_field)

    @property
    def channel_key(self):
        return self.app_id, self.fields.get(self.layout.channel_field)

    async def goto(self, url: str) -> None:
        self.url = url

    def get_by_role(self, role: str, name: Optional[str] = None, exact: bool = False) -> FakeRoleLocator:
        return FakeRoleLocator(self, role, name)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def expect_response(self, predicate, timeout=None) -> FakeResponseWaiter:
        return FakeResponseWaiter(self, predicate)

    def is_closed(self) -> bool:
        return self.closed

    async def evaluate(self, script, arg=None):
        if script == PERMISSION_QUERY_SCRIPT:
            return arg in self.context.permissions
        if script == REMOTE_IDS_SCRIPT:
            return [str(peer.participant_id) for peer in self.server.peers(self)]
        if script == LOCAL_IDS_SCRIPT:
            return [str(self.participant_id)] if self.joined else []
        raise NotImplementedError(script)

    async def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> bytes:
        image = png_bytes(self.screen_color)
        if path:
            Path(path).write_bytes(image)
        self.screenshots.append(("page", {"path": path, "full_page": full_page}))
        return image

    def click_join(self) -> None:
        if self.server.acknowledge:
            self.last_response = SimpleNamespace(
                url=f"https://{self.endpoint}",
                request=SimpleNamespace(method="POST"),
                status=200,
            )
        self.joined = self.server.join(self)

    def click_leave(self) -> None:
        self.joined = False
        self._lingering = self.local_video_lingers
        self.server.leave(self)

    def element_states(self, selector: str) -> List[Dict]:
        if self.closed:
            return []
        layout = self.layout
        if selector == layout.local_video:
            return [dict(self.local_video_state)] if self.joined or self._lingering else []
        if selector == layout.video_grid:
            return [dict(PLAYING)]
        peers = self.server.peers(self) if self.joined else []
        if selector == layout.remote_video:
            return [dict(PLAYING) for _ in peers]
        for peer in peers:
            if selector == layout.participant_video(peer.participant_id):
                return [dict(PLAYING)]
        return []


class FakeContext:
    def __init__(self, browser: "FakeBrowser", permissions=None, viewport=None):
        self.browser = browser
        self.permissions = list(permissions or []) if browser.browser_type.grant_permissions else []
        self.viewport = viewport
        self.pages: List[FakePage] = []
        self.closed = False
        self.fail_close = False

    async def new_page(self) -> FakePage:
        browser_type = self.browser.browser_type
        if browser_type.fail_new_page:
            raise RuntimeError("new_page failed")
        page = FakePage(self, browser_type.server, browser_type.layout, browser_type.endpoint)
        self.pages.append(page)
        return page

    async def grant_permissions(self, permissions) -> None:
        self.permissions.extend(permissions)

    async def close(self) -> None:
        if self.fail_close:
            raise RuntimeError("context close failed")
        if self.closed:
            return
        self.closed = True
        for page in self.pages:
            page.closed = True
            page.joined = False
            self.browser.browser_type.server.leave(page)


class FakeBrowser:
    def __init__(self, browser_type: "FakeBrowserType", headless=True, args=None):
        self.browser_type = browser_type
        self.headless = headless
        self.args = list(args or [])
        self.contexts: List[FakeContext] = []
        self.closed = False

    async def new_context(self, **kwargs) -> FakeContext:
        context = FakeContext(self, kwargs.get("permissions"), kwargs.get("viewport"))
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True
        for context in self.contexts:
            await context.close()


class FakeBrowserType:
    """Launches fake browsers and keeps count of what is still open."""

    def __init__(self, server: FakeCallServer, settings: Settings):
        self.server = server
        self.layout = LAYOUTS[settings.page_layout]
        self.endpoint = settings.connection_endpoint
        self.browsers: List[FakeBrowser] = []
        self.grant_permissions = True
        self.fail_new_page = False

    async def launch(self, headless=True, args=None) -> FakeBrowser:
        # Suspend once like a real launch so overlapping opens interleave
        await asyncio.sleep(0)
        browser = FakeBrowser(self, headless=headless, args=args)
        self.browsers.append(browser)
        return browser

    @property
    def contexts(self) -> List[FakeContext]:
        return [context for browser in self.browsers for context in browser.contexts]

    @property
    def open_contexts(self) -> int:
        return sum(1 for context in self.contexts if not context.closed)

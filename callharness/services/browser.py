"""Browser allocation for simulated participants."""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import DefaultDict, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, BrowserType, Page

from callharness.config import Settings

logger = logging.getLogger(__name__)

FAKE_MEDIA_ARGS = (
    "--use-fake-device-for-media-stream",
    "--use-fake-ui-for-media-stream",
)
MEDIA_PERMISSIONS = ["camera", "microphone"]


@dataclass
class BrowserResource:
    """An isolated context and its page, owned by exactly one participant."""
    context: BrowserContext
    page: Page
    media_source: Optional[Path] = None


class BrowserProvider:
    """
    Hands out isolated browser contexts for participants.

    The fake-capture file is a launch flag, so one browser is launched per
    distinct media source and shared; each participant still gets its own
    context and page.
    """

    def __init__(self, browser_type: BrowserType, settings: Settings):
        self.browser_type = browser_type
        self.settings = settings
        self._browsers: Dict[Optional[str], Browser] = {}
        self._launch_locks: DefaultDict[Optional[str], asyncio.Lock] = defaultdict(asyncio.Lock)

    def launch_args(self, media_source: Optional[Path] = None) -> List[str]:
        """Chromium flags for fake media devices."""
        args = list(FAKE_MEDIA_ARGS)
        if self.settings.disable_gpu:
            args.append("--disable-gpu")
        if media_source is not None:
            args.append(f"--use-file-for-fake-video-capture={media_source}")
        return args

    async def _browser_for(self, media_source: Optional[Path]) -> Browser:
        key = str(media_source) if media_source is not None else None
        # Overlapping opens for one source must share a single launch
        async with self._launch_locks[key]:
            browser = self._browsers.get(key)
            if browser is None:
                logger.info(f"Launching browser for media source: {media_source or 'default fake device'}")
                browser = await self.browser_type.launch(
                    headless=self.settings.headless,
                    args=self.launch_args(media_source),
                )
                self._browsers[key] = browser
        return browser

    async def open_resource(self, media_source: Optional[Path] = None) -> BrowserResource:
        """Create a fresh context and page for one participant."""
        browser = await self._browser_for(media_source)
        context = await browser.new_context(
            permissions=MEDIA_PERMISSIONS,
            viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
        )
        try:
            page = await context.new_page()
        except BaseException:
            await context.close()
            raise
        return BrowserResource(context=context, page=page, media_source=media_source)

    async def release(self, resource: BrowserResource) -> None:
        """Close the participant's context; its page goes with it."""
        await resource.context.close()

    async def close(self) -> None:
        """Close every browser launched by this provider."""
        browsers = list(self._browsers.values())
        self._browsers.clear()
        for browser in browsers:
            try:
                await browser.close()
            except Exception as e:
                logger.error(f"Error closing browser: {e}")

    @property
    def browser_count(self) -> int:
        return len(self._browsers)

"""Page adapter that drives one participant's video call page."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import urljoin

from playwright.async_api import Locator, Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from callharness.config import PageLayoutName, Settings
from callharness.schemas.session import CallConfig
from callharness.services.poller import Poller
from callharness.services.snapshots import SnapshotComparison, SnapshotService

logger = logging.getLogger(__name__)

VIDEO_STATE_SCRIPT = """
(el) => ({
    elementId: el.id || el.className || 'N/A',
    isVisible: el.offsetParent !== null && !el.hidden && getComputedStyle(el).display !== 'none',
    readyState: el.readyState,
    videoWidth: el.videoWidth,
    videoHeight: el.videoHeight,
    paused: el.paused,
})
"""

REMOTE_IDS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector))
    .map((el) => el.id.replace('player-wrapper-', ''))
"""

LOCAL_IDS_SCRIPT = """
([playerSelector, nameSelector]) => {
    const player = document.querySelector(playerSelector);
    if (!player || !player.querySelector('video')) return [];
    const label = document.querySelector(nameSelector);
    const match = label ? label.textContent.match(/\\d+/) : null;
    return [match ? match[0] : player.id];
}
"""


class JoinTimeoutError(Exception):
    """Exception raised when the join acknowledgment does not arrive in time."""

    def __init__(self, participant_id, channel_name: str, timeout: float):
        self.participant_id = participant_id
        self.channel_name = channel_name
        self.timeout = timeout
        super().__init__(
            f"Join acknowledgment for participant {participant_id} on channel "
            f"'{channel_name}' not received within {timeout:.1f}s"
        )


class LeaveTimeoutError(Exception):
    """Exception raised when the local video is still shown after leaving."""
    pass


@dataclass(frozen=True)
class PageLayout:
    """Selectors and labels for one markup version of the call page."""
    name: str
    url_path: str
    local_player: str
    local_player_name: str
    local_video: str
    remote_video: str
    remote_wrappers: str
    remote_participant_video: str
    video_grid: str
    app_id_field: str = "Enter the appid"
    token_field: str = "Enter the app token"
    channel_field: str = "Enter the channel name"
    user_id_field: str = "Enter the user ID"
    join_button: str = "Join"
    leave_button: str = "Leave"
    success_alert_text: str = "Joined room successfully"

    def participant_video(self, participant_id: Union[int, str]) -> str:
        return self.remote_participant_video.format(participant_id=participant_id)


LAYOUTS = {
    PageLayoutName.BASIC: PageLayout(
        name="basic",
        url_path="/basicVideoCall/index.html",
        local_player="#local-player",
        local_player_name="#local-player-name",
        local_video="#local-player video.agora_video_player",
        remote_video="#remote-playerlist video.agora_video_player",
        remote_wrappers='#remote-playerlist > div[id^="player-wrapper-"]',
        remote_participant_video="#player-wrapper-{participant_id} video.agora_video_player",
        video_grid=".video-group",
    ),
    PageLayoutName.GRID: PageLayout(
        name="grid",
        url_path="",
        local_player="#local-player",
        local_player_name="#local-player-name",
        local_video="#local-player .agora_video_player",
        remote_video="#remote-playerlist .agora_video_player",
        remote_wrappers='#remote-playerlist > div[id^="player-wrapper-"]',
        remote_participant_video="#player-wrapper-{participant_id} .agora_video_player",
        video_grid=".video-group",
    ),
}


class VideoCallPage:
    """Call controls and video-state assertions for one participant page."""

    def __init__(
        self,
        page: Page,
        settings: Settings,
        layout: Optional[PageLayout] = None,
        poller: Optional[Poller] = None,
        snapshots: Optional[SnapshotService] = None,
    ):
        self.page = page
        self.settings = settings
        self.layout = layout or LAYOUTS[settings.page_layout]
        self.poller = poller or Poller.from_settings(settings)
        self.snapshots = snapshots or SnapshotService(settings)

    @property
    def url(self) -> str:
        return urljoin(self.settings.base_url, self.layout.url_path)

    @property
    def local_videos(self) -> Locator:
        return self.page.locator(self.layout.local_video)

    @property
    def remote_videos(self) -> Locator:
        return self.page.locator(self.layout.remote_video)

    @property
    def video_grid(self) -> Locator:
        return self.page.locator(self.layout.video_grid)

    def remote_participant_video(self, participant_id: Union[int, str]) -> Locator:
        return self.page.locator(self.layout.participant_video(participant_id))

    def _textbox(self, name: str) -> Locator:
        return self.page.get_by_role("textbox", name=name)

    def _button(self, name: str) -> Locator:
        return self.page.get_by_role("button", name=name, exact=True)

    def _is_join_acknowledgment(self, response: Response) -> bool:
        return (
            self.settings.connection_endpoint in response.url
            and response.request.method.upper() == "POST"
        )

    async def join(self, config: CallConfig, participant_id: Optional[Union[int, str]] = None) -> Response:
        """
        Fill the connection form and join, waiting for the negotiation POST.

        Args:
            config: Credentials and channel to join
            participant_id: Optional user id typed into the form

        Returns:
            The acknowledgment response

        Raises:
            JoinTimeoutError: If the acknowledgment is not observed in time
        """
        logger.debug(f"Navigating to video call page: {self.url}")
        await self.page.goto(self.url)
        await self._textbox(self.layout.app_id_field).fill(config.app_id)
        await self._textbox(self.layout.token_field).fill(config.token)
        await self._textbox(self.layout.channel_field).fill(config.channel_name)
        if participant_id is not None:
            await self._textbox(self.layout.user_id_field).fill(str(participant_id))

        logger.debug(f"Joining channel '{config.channel_name}' and waiting for acknowledgment")
        try:
            async with self.page.expect_response(
                self._is_join_acknowledgment,
                timeout=self.settings.join_timeout * 1000,
            ) as response_info:
                await self._button(self.layout.join_button).click()
            response = await response_info.value
        except PlaywrightTimeoutError as e:
            raise JoinTimeoutError(participant_id, config.channel_name, self.settings.join_timeout) from e

        logger.info(f"Participant {participant_id} join acknowledged (status {response.status})")
        return response

    async def leave(self) -> bool:
        """
        Leave the call if currently joined.

        Waits for the local video to be hidden, which a detached element also
        satisfies; an element left in the DOM but invisible counts as gone.

        Returns:
            True if a leave was performed, False if there was nothing to leave

        Raises:
            LeaveTimeoutError: If the local video does not disappear in time
        """
        leave_button = self._button(self.layout.leave_button)
        if not await leave_button.is_visible():
            logger.debug("Leave control not visible, nothing to leave")
            return False

        logger.debug("Leaving call")
        await leave_button.click()
        try:
            await self.local_videos.first.wait_for(
                state="hidden",
                timeout=self.settings.leave_timeout * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise LeaveTimeoutError(
                f"Local video still shown {self.settings.leave_timeout:.1f}s after leaving"
            ) from e
        return True

    async def is_video_element_active(self, video: Locator) -> bool:
        """A video counts as playing when visible, decodable, sized and not paused."""
        try:
            state = await video.evaluate(VIDEO_STATE_SCRIPT, timeout=self.settings.element_timeout * 1000)
        except PlaywrightTimeoutError:
            logger.debug("Video element disappeared before it could be inspected")
            return False

        logger.debug(f"Video state check: {state}")
        return bool(
            state["isVisible"]
            and state["readyState"] >= self.settings.video_min_ready_state
            and state["videoWidth"] > 0
            and state["videoHeight"] > 0
            and not state["paused"]
        )

    async def _expect_videos_active(self, videos: Locator, expected: int, where: str, timeout: Optional[float]) -> None:
        async def check():
            elements = await videos.all()
            if len(elements) != expected:
                raise AssertionError(f"Expected {expected} {where} videos, found {len(elements)}")
            for index, element in enumerate(elements, start=1):
                if not await self.is_video_element_active(element):
                    raise AssertionError(f"{where.capitalize()} video {index} of {expected} is not playing")

        await self.poller.until(
            check,
            timeout=self.settings.video_timeout if timeout is None else timeout,
            description=f"{expected} {where} videos playing",
        )

    async def _expect_no_videos_active(self, videos: Locator, where: str, timeout: Optional[float]) -> None:
        async def check():
            elements = await videos.all()
            for index, element in enumerate(elements, start=1):
                if await self.is_video_element_active(element):
                    raise AssertionError(f"{where.capitalize()} video {index} of {len(elements)} is still playing")

        await self.poller.until(
            check,
            timeout=self.settings.no_video_timeout if timeout is None else timeout,
            description=f"no {where} videos playing",
        )

    async def expect_local_video_count(self, count: int, timeout: Optional[float] = None) -> None:
        await self._expect_videos_active(self.local_videos, count, "local", timeout)

    async def expect_remote_video_count(self, count: int, timeout: Optional[float] = None) -> None:
        await self._expect_videos_active(self.remote_videos, count, "remote", timeout)

    async def expect_no_local_video(self, timeout: Optional[float] = None) -> None:
        await self._expect_no_videos_active(self.local_videos, "local", timeout)

    async def expect_no_remote_video(self, timeout: Optional[float] = None) -> None:
        await self._expect_no_videos_active(self.remote_videos, "remote", timeout)

    async def expect_remote_participant_video(
        self,
        participant_id: Union[int, str],
        present: bool = True,
        timeout: Optional[float] = None,
    ) -> None:
        """Assert that one remote participant's video is (or is not) playing."""
        video = self.remote_participant_video(participant_id)

        async def check():
            active = await video.count() > 0 and await self.is_video_element_active(video.first)
            if active != present:
                state = "not playing" if present else "still playing"
                raise AssertionError(f"Remote video for participant {participant_id} is {state}")

        if timeout is None:
            timeout = self.settings.video_timeout if present else self.settings.no_video_timeout
        await self.poller.until(
            check,
            timeout=timeout,
            description=f"remote video of {participant_id} {'playing' if present else 'gone'}",
        )
        logger.info(f"Remote video for participant {participant_id} is {'playing' if present else 'not playing'}")

    async def expect_success_alert(self, timeout: Optional[float] = None) -> None:
        alert = self.page.get_by_role("alert").filter(has_text=self.layout.success_alert_text)

        async def check():
            if not await alert.first.is_visible():
                raise AssertionError("Join success alert is not visible")

        await self.poller.until(
            check,
            timeout=self.settings.alert_timeout if timeout is None else timeout,
            description="join success alert",
        )

    async def list_active_remote_participant_ids(self) -> List[str]:
        return await self.page.evaluate(REMOTE_IDS_SCRIPT, self.layout.remote_wrappers)

    async def list_active_local_participant_ids(self) -> List[str]:
        return await self.page.evaluate(
            LOCAL_IDS_SCRIPT,
            [self.layout.local_player, self.layout.local_player_name],
        )

    async def capture_grid_snapshot(self, label: Optional[str] = None) -> SnapshotComparison:
        """
        Compare the rendered video layout with its baseline.

        Only the local player is captured while nobody else is in the call;
        otherwise the whole grid is.
        """
        remote_ids = await self.list_active_remote_participant_ids()
        name = f"video-grid-{label}.png" if label else "video-grid-snapshot.png"
        target = self.video_grid if remote_ids else self.local_videos.first
        logger.debug(f"Taking snapshot {name} with {len(remote_ids)} remote participants: {remote_ids}")

        async def check():
            image = await target.screenshot(
                animations="disabled",
                caret="hide",
                scale="css",
                timeout=self.settings.snapshot_timeout * 1000,
            )
            return self.snapshots.assert_matches(name, image)

        comparison = await self.poller.until(
            check,
            timeout=self.settings.snapshot_timeout,
            description=f"snapshot {name}",
        )
        logger.info(f"Snapshot completed: {name}")
        return comparison


def create_video_call_page(page: Page, settings: Settings, **kwargs) -> VideoCallPage:
    """Build the adapter for the markup variant selected in settings."""
    return VideoCallPage(page, settings, layout=LAYOUTS[settings.page_layout], **kwargs)

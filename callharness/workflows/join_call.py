"""Virtual-user flow for load tests: join a call, verify video, leave."""
import logging
from typing import Any, Dict, Optional, Protocol

from playwright.async_api import Page

from callharness.config import Settings
from callharness.services.browser import FAKE_MEDIA_ARGS, MEDIA_PERMISSIONS
from callharness.services.video_call_page import create_video_call_page

logger = logging.getLogger(__name__)

USER_JOINED = "webrtc.user.joined"
LOCAL_VIDEO_SUCCESS = "webrtc.local_video.success"
ERROR = "webrtc.error"

# Arrival schedule for the external load driver: seconds, new users per second
LOAD_PHASES = (
    {"name": "Warm up", "duration": 10, "arrival_rate": 1},
    {"name": "Load", "duration": 10, "arrival_rate": 2},
    {"name": "Ramp up", "duration": 10, "arrival_rate": 5},
    {"name": "Heavy Load", "duration": 10, "arrival_rate": 10},
    {"name": "Spike", "duration": 5, "arrival_rate": 15},
    {"name": "Recovery", "duration": 10, "arrival_rate": 2},
)

# Minimum success rates per counter (maximum for errors)
ENSURE_THRESHOLDS = {
    USER_JOINED: 0.95,
    LOCAL_VIDEO_SUCCESS: 0.95,
    ERROR: 0.05,
}


class EventEmitter(Protocol):
    def emit(self, kind: str, name: str, value: int) -> Any:
        ...


def load_test_launch_options(settings: Settings) -> Dict[str, Any]:
    """Browser launch options for virtual users, all sharing the silent clip."""
    args = list(FAKE_MEDIA_ARGS)
    if settings.disable_gpu:
        args.append("--disable-gpu")
    args.append(f"--use-file-for-fake-video-capture={settings.random_users_dir / 'silent_qcif.y4m'}")
    return {"headless": settings.headless, "args": args}


async def join_call_flow(
    page: Page,
    vu_context: Dict[str, Any],
    events: EventEmitter,
    settings: Optional[Settings] = None,
) -> None:
    """
    Join the configured call as one virtual user and leave again.

    Args:
        page: Page provided by the load driver
        vu_context: Driver context; vars["vuId"] or vuId names the user
        events: Counter sink of the load driver
        settings: Defaults to Settings() from the environment

    Raises:
        Whatever step failed, after a screenshot and an error counter
    """
    settings = settings or Settings()
    vu_id = vu_context.get("vuId") or vu_context.get("vars", {}).get("vuId", "0")
    user_id = f"test-user-{vu_id}"
    ui = create_video_call_page(page, settings)

    try:
        await page.context.grant_permissions(MEDIA_PERMISSIONS)
        await ui.join(settings.call_config, user_id)

        await ui.expect_success_alert()
        events.emit("counter", USER_JOINED, 1)

        await ui.expect_local_video_count(1)
        events.emit("counter", LOCAL_VIDEO_SUCCESS, 1)

        await ui.leave()
        await ui.expect_no_local_video()
    except Exception as e:
        logger.error(f"Join call flow failed for {user_id}: {e}")
        screenshot = settings.reports_dir / "performance" / f"error-{user_id}.png"
        screenshot.parent.mkdir(parents=True, exist_ok=True)
        try:
            await page.screenshot(path=str(screenshot), full_page=True)
        except Exception as screenshot_error:
            logger.warning(f"Could not capture failure screenshot for {user_id}: {screenshot_error}")
        events.emit("counter", ERROR, 1)
        raise

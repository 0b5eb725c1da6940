"""Factory and registry for the calls of one test run."""
import logging
import random
from pathlib import Path
from typing import List, Optional, Sequence

from faker import Faker

from callharness.config import Settings
from callharness.schemas.session import CallConfig, User
from callharness.services.browser import BrowserProvider
from callharness.services.health_checks import HealthCheckRegistry
from callharness.services.video_call_page import create_video_call_page
from callharness.session.call import Call, PageFactory

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Creates calls and synthetic participants, and tears them all down.

    Constructed once per test run and handed to tests through fixtures; it
    can be reused after cleanup().
    """

    def __init__(
        self,
        browser: BrowserProvider,
        config: CallConfig,
        settings: Settings,
        media_sources: Sequence[Path] = (),
        health_checks: Optional[HealthCheckRegistry] = None,
        page_factory: PageFactory = create_video_call_page,
        faker: Optional[Faker] = None,
    ):
        self.browser = browser
        self.config = config
        self.settings = settings
        self.media_sources = tuple(media_sources)
        self.health_checks = health_checks
        self.page_factory = page_factory
        self.faker = faker or Faker()
        self._calls: List[Call] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        browser: BrowserProvider,
        health_checks: Optional[HealthCheckRegistry] = None,
        **kwargs,
    ) -> "SessionManager":
        """Manager using the configured credentials and random-user clips."""
        media_sources = settings.media_source_pool()
        logger.info(f"Session manager using {len(media_sources)} media sources from {settings.random_users_dir}")
        return cls(
            browser=browser,
            config=settings.call_config,
            settings=settings,
            media_sources=media_sources,
            health_checks=health_checks,
            **kwargs,
        )

    def new_call(self, config: Optional[CallConfig] = None) -> Call:
        """Create and track a call on the default config or an override."""
        call = Call(
            browser=self.browser,
            config=config or self.config,
            settings=self.settings,
            media_sources=self.media_sources,
            health_checks=self.health_checks,
            page_factory=self.page_factory,
        )
        self._calls.append(call)
        return call

    def create_users(self, count: int, base_name: str = "User") -> List[User]:
        """
        Generate participants with random ids and numbered names.

        Ids are drawn from the configured range without checking earlier
        allocations.
        """
        if count <= 0:
            return []

        users = [
            User(
                user_id=self.faker.random_int(min=self.settings.user_id_min, max=self.settings.user_id_max),
                display_name=f"{base_name}{index}",
                media_source_override=random.choice(self.media_sources) if self.media_sources else None,
            )
            for index in range(1, count + 1)
        ]
        logger.info(f"Generated {count} users with IDs {[user.user_id for user in users]}")
        return users

    async def cleanup(self) -> None:
        """Clean up every tracked call, continuing past failures."""
        calls = list(self._calls)
        logger.info(f"SessionManager cleaning up {len(calls)} calls")
        for call in calls:
            try:
                failures = await call.cleanup()
            except Exception:
                logger.exception(f"Cleanup of call on channel '{call.config.channel_name}' failed")
                continue
            for failure in failures:
                logger.warning(f"Teardown {failure.stage} failed for user {failure.user.label}: {failure.error}")
        self._calls = []
        logger.info("SessionManager cleanup complete")

    def get_calls(self) -> List[Call]:
        return list(self._calls)

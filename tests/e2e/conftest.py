import pytest
from playwright.async_api import async_playwright

from callharness.config import Settings
from callharness.logging_config import configure_logging
from callharness.services.browser import BrowserProvider
from callharness.services.health_checks import media_permission_checks
from callharness.session.manager import SessionManager
from callharness.session.users import predefined_users


@pytest.fixture(scope="session")
def e2e_settings() -> Settings:
    """Settings from the environment; live tests need real credentials."""
    settings = Settings()
    if not settings.has_credentials:
        pytest.skip("AGORA_APP_ID, AGORA_TOKEN and AGORA_CHANNEL must be set for end-to-end tests")
    configure_logging(settings)
    return settings


@pytest.fixture
async def session_manager(e2e_settings):
    """Session manager driving real Chromium with fake media devices."""
    async with async_playwright() as playwright:
        provider = BrowserProvider(playwright.chromium, e2e_settings)
        manager = SessionManager.from_settings(
            e2e_settings,
            provider,
            health_checks=media_permission_checks(),
        )
        yield manager
        await manager.cleanup()
        await provider.close()


@pytest.fixture
def users(e2e_settings):
    """Bob, Alice, Claire and MissAm with their own capture clips."""
    return predefined_users(e2e_settings)

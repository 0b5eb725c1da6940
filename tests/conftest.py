"""Test configuration and fixtures."""
import sys
from pathlib import Path

import pytest
from faker import Faker

# Add the parent directory to the Python path when running from a checkout
current_dir = Path(__file__).parent.parent
if str(current_dir) not in sys.path:
    sys.path.insert(0, str(current_dir))

from callharness.config import Settings
from callharness.services.browser import BrowserProvider
from callharness.services.health_checks import media_permission_checks
from callharness.session.manager import SessionManager
from tests.utils import FakeBrowserType, FakeCallServer


# Test Settings
@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Test-specific settings with short timeouts and throwaway paths."""
    return Settings(
        _env_file=None,
        agora_app_id="X",
        agora_token="Y",
        agora_channel="Z",
        ci=False,
        app_env="test",
        base_url="https://webdemo.example.test/basicVideoCall/index.html",
        join_timeout=0.2,
        leave_timeout=0.2,
        video_timeout=0.3,
        no_video_timeout=0.3,
        alert_timeout=0.3,
        element_timeout=0.1,
        snapshot_timeout=0.3,
        poll_intervals=[0.01, 0.02, 0.05],
        videos_dir=tmp_path / "videos",
        snapshots_dir=tmp_path / "snapshots",
        results_dir=tmp_path / "test-results",
        reports_dir=tmp_path / "reports",
    )


# Browser double fixtures
@pytest.fixture
def call_server() -> FakeCallServer:
    """Simulated demo backend shared by every fake page."""
    return FakeCallServer()


@pytest.fixture
def browser_type(call_server, test_settings) -> FakeBrowserType:
    return FakeBrowserType(call_server, test_settings)


@pytest.fixture
def browser_provider(browser_type, test_settings) -> BrowserProvider:
    return BrowserProvider(browser_type, test_settings)


@pytest.fixture
async def session_manager(browser_provider, test_settings):
    """Session manager with permission health checks, cleaned up after the test."""
    manager = SessionManager(
        browser=browser_provider,
        config=test_settings.call_config,
        settings=test_settings,
        health_checks=media_permission_checks(),
        faker=Faker(),
    )
    yield manager
    await manager.cleanup()
    await browser_provider.close()

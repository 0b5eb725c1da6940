"""Media device health checks run against a participant page before joining."""
import logging
from typing import Awaitable, Callable, List, Tuple

from playwright.async_api import Page

logger = logging.getLogger(__name__)

HealthCheck = Callable[[Page], Awaitable[bool]]

PERMISSION_QUERY_SCRIPT = """
async (name) => {
    try {
        const { state } = await navigator.permissions.query({ name });
        return state === 'granted';
    } catch (e) {
        return false;
    }
}
"""


class HealthCheckError(Exception):
    """Exception raised when a media health check fails."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} check failed")


class HealthCheckRegistry:
    """Ordered list of named checks, passed explicitly to whoever runs them."""

    def __init__(self):
        self._checks: List[Tuple[str, HealthCheck]] = []

    def add(self, name: str, check: HealthCheck) -> "HealthCheckRegistry":
        self._checks.append((name, check))
        return self

    @property
    def checks(self) -> Tuple[Tuple[str, HealthCheck], ...]:
        return tuple(self._checks)

    def __len__(self) -> int:
        return len(self._checks)

    async def run(self, page: Page) -> None:
        """
        Run every check in registration order.

        Raises:
            HealthCheckError: On the first check reporting unhealthy
        """
        logger.info("Running media device health checks")
        for name, check in self._checks:
            logger.debug(f"Checking {name}...")
            try:
                healthy = await check(page)
            except Exception as e:
                logger.error(f"{name} health check failed: {e}")
                raise
            if not healthy:
                logger.error(f"{name} health check failed")
                raise HealthCheckError(name)
            logger.info(f"{name} is healthy")


def permission_check(permission: str) -> HealthCheck:
    """Build a check that the page has been granted a browser permission."""

    async def check(page: Page) -> bool:
        return bool(await page.evaluate(PERMISSION_QUERY_SCRIPT, permission))

    return check


def media_permission_checks() -> HealthCheckRegistry:
    """Registry with the camera and microphone permission checks."""
    return (
        HealthCheckRegistry()
        .add("Camera Permission", permission_check("camera"))
        .add("Microphone Permission", permission_check("microphone"))
    )

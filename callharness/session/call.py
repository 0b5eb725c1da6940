"""A call: the participants sharing one set of connection parameters."""
import enum
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Sequence, Set

from playwright.async_api import BrowserContext, Page

from callharness.config import Settings
from callharness.schemas.session import CallConfig, User
from callharness.services.browser import BrowserProvider, BrowserResource
from callharness.services.health_checks import HealthCheckRegistry
from callharness.services.video_call_page import VideoCallPage, create_video_call_page

logger = logging.getLogger(__name__)

PageFactory = Callable[[Page, Settings], VideoCallPage]


class ParticipantState(enum.Enum):
    """Lifecycle of a participant within a call."""
    ABSENT = "absent"
    JOINING = "joining"
    JOINED = "joined"
    LEAVING = "leaving"


ALLOWED_TRANSITIONS = {
    ParticipantState.ABSENT: {ParticipantState.JOINING},
    ParticipantState.JOINING: {ParticipantState.JOINED, ParticipantState.ABSENT},
    ParticipantState.JOINED: {ParticipantState.LEAVING},
    ParticipantState.LEAVING: {ParticipantState.ABSENT},
}


class InvalidTransitionError(Exception):
    """Exception raised on a participant state change the lifecycle forbids."""
    pass


class AddUserError(Exception):
    """Exception raised when a participant cannot be added to a call."""

    def __init__(self, user: User, config: CallConfig, cause: BaseException):
        self.user = user
        self.config = config
        self.cause = cause
        reason = str(cause) or type(cause).__name__
        super().__init__(
            f"Failed to add user {user.label} to channel '{config.channel_name}' "
            f"(appId: {config.app_id}): {reason}"
        )


class TeardownFailure(NamedTuple):
    """A per-session error caught while tearing a call down."""
    user: User
    stage: str
    error: Exception


@dataclass
class UserSession:
    """One participant bound to its own browser context, page and page adapter."""
    user: User
    resource: BrowserResource
    ui: VideoCallPage
    state: ParticipantState = field(default=ParticipantState.ABSENT)

    @property
    def context(self) -> BrowserContext:
        return self.resource.context

    @property
    def page(self) -> Page:
        return self.resource.page

    @property
    def media_source(self) -> Optional[Path]:
        return self.resource.media_source

    def transition(self, new_state: ParticipantState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"User {self.user.label} cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug(f"User {self.user.label}: {self.state.value} -> {new_state.value}")
        self.state = new_state


class Call:
    """Owns the sessions of every participant who joined with one CallConfig."""

    def __init__(
        self,
        browser: BrowserProvider,
        config: CallConfig,
        settings: Settings,
        media_sources: Sequence[Path] = (),
        health_checks: Optional[HealthCheckRegistry] = None,
        page_factory: PageFactory = create_video_call_page,
    ):
        self.browser = browser
        self.config = config
        self.settings = settings
        self.media_sources = tuple(media_sources)
        self.health_checks = health_checks
        self.page_factory = page_factory
        self._sessions: List[UserSession] = []
        self._pending_ids: Set[int] = set()

    def _resolve_media_source(self, user: User) -> Optional[Path]:
        if user.media_source_override is not None:
            return user.media_source_override
        if self.media_sources:
            return random.choice(self.media_sources)
        return None

    def _find(self, user_id: int) -> Optional[UserSession]:
        for session in self._sessions:
            if session.user.user_id == user_id:
                return session
        return None

    async def _release(self, user: User, resource: BrowserResource) -> Optional[Exception]:
        try:
            await self.browser.release(resource)
            logger.info(f"Closed context for user: {user.label}")
        except Exception as e:
            logger.error(f"Error closing context for user {user.label}: {e}")
            return e
        return None

    async def add_user(self, user: User, verify: bool = True) -> UserSession:
        """
        Provision a browser for the user and join the call.

        Args:
            user: Participant to add
            verify: Also wait for the success alert and local video before registering

        Returns:
            The registered UserSession

        Raises:
            AddUserError: If the id is already in the call or being added, or if any
                step fails; the browser context is released first
        """
        if user.user_id in self._pending_ids or self._find(user.user_id) is not None:
            raise AddUserError(user, self.config, ValueError(f"user id {user.user_id} is already in this call"))

        self._pending_ids.add(user.user_id)
        try:
            session = await self._join(user, verify)
        finally:
            self._pending_ids.discard(user.user_id)

        session.transition(ParticipantState.JOINED)
        self._sessions.append(session)
        return session

    async def _join(self, user: User, verify: bool) -> UserSession:
        media_source = self._resolve_media_source(user)
        resource = None
        session = None
        try:
            resource = await self.browser.open_resource(media_source)
            ui = self.page_factory(resource.page, self.settings)
            session = UserSession(user=user, resource=resource, ui=ui)
            session.transition(ParticipantState.JOINING)

            if self.health_checks is not None:
                await self.health_checks.run(resource.page)

            logger.info(f"Adding user {user.label} to channel '{self.config.channel_name}'")
            await ui.join(self.config, user.user_id)
            if verify:
                await ui.expect_success_alert()
                await ui.expect_local_video_count(1)
        except BaseException as e:
            # Cancellation also releases the context; only errors are wrapped
            if resource is not None:
                await self._release(user, resource)
            if session is not None:
                session.transition(ParticipantState.ABSENT)
            if isinstance(e, Exception):
                raise AddUserError(user, self.config, e) from e
            raise
        return session

    async def _leave_gracefully(self, session: UserSession) -> Optional[Exception]:
        try:
            await session.ui.leave()
            await session.ui.expect_no_local_video()
        except Exception as e:
            logger.warning(f"Error while user {session.user.label} was leaving the call: {e}")
            return e
        return None

    async def remove_user(self, user_id: int) -> None:
        """Leave (best effort) and release one participant. Unknown ids are ignored."""
        session = self._find(user_id)
        if session is None:
            logger.warning(f"Attempted to remove user with ID {user_id}, but they were not found in the call")
            return

        session.transition(ParticipantState.LEAVING)
        try:
            await self._leave_gracefully(session)
        finally:
            await self._release(session.user, session.resource)
            self._sessions.remove(session)
            session.transition(ParticipantState.ABSENT)

    async def cleanup(self) -> List[TeardownFailure]:
        """
        Tear down every session, isolating failures per session.

        Returns:
            The errors caught along the way, one entry per failed step
        """
        sessions = list(self._sessions)
        logger.info(f"Cleaning up {len(sessions)} users for call on channel '{self.config.channel_name}'")
        failures: List[TeardownFailure] = []

        for session in sessions:
            session.transition(ParticipantState.LEAVING)
            if not session.page.is_closed():
                error = await self._leave_gracefully(session)
                if error is not None:
                    failures.append(TeardownFailure(session.user, "leave", error))

            error = await self._release(session.user, session.resource)
            if error is not None:
                failures.append(TeardownFailure(session.user, "release", error))
            session.transition(ParticipantState.ABSENT)

        self._sessions = []
        logger.info("Call cleanup complete")
        return failures

    def get_users(self) -> List[UserSession]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

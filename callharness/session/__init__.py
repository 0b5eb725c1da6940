"""Call and participant session orchestration."""

from callharness.session.call import (
    AddUserError,
    Call,
    InvalidTransitionError,
    ParticipantState,
    TeardownFailure,
    UserSession,
)
from callharness.session.manager import SessionManager
from callharness.session.users import predefined_users

__all__ = [
    "AddUserError",
    "Call",
    "InvalidTransitionError",
    "ParticipantState",
    "SessionManager",
    "TeardownFailure",
    "UserSession",
    "predefined_users",
]

"""Named participants with fixed ids and their own fake-capture clips."""
from typing import Dict

from callharness.config import Settings
from callharness.schemas.session import User

PREDEFINED_USERS = (
    ("Bob", 10101, "foreman_qcif.y4m"),
    ("Alice", 20202, "akiyo_qcif.y4m"),
    ("Claire", 30303, "claire_qcif.y4m"),
    ("MissAm", 40404, "miss_am_qcif.y4m"),
)


def predefined_users(settings: Settings) -> Dict[str, User]:
    return {
        name: User(
            user_id=user_id,
            display_name=name,
            media_source_override=settings.predefined_users_dir / clip,
        )
        for name, user_id, clip in PREDEFINED_USERS
    }

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A simulated participant identity."""

    user_id: int = Field(..., ge=0)
    display_name: Optional[str] = None
    media_source_override: Optional[Path] = None

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        """Identifier used in log and error messages."""
        if self.display_name:
            return f"{self.display_name} (ID: {self.user_id})"
        return f"ID: {self.user_id}"


class CallConfig(BaseModel):
    """Connection parameters shared by every participant of a call."""

    app_id: str
    token: str
    channel_name: str

    model_config = ConfigDict(frozen=True)

import enum
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator

from callharness.schemas.session import CallConfig


class PageLayoutName(str, enum.Enum):
    """Markup variants of the video call page."""
    BASIC = "basic"
    GRID = "grid"


class SnapshotUpdateMode(str, enum.Enum):
    """When baseline screenshots get (re)written."""
    MISSING = "missing"
    ALL = "all"
    NONE = "none"


class Settings(BaseSettings):
    # Agora credentials
    agora_app_id: str = Field(default="", description="Agora App ID used for the default call")
    agora_token: str = Field(default="", description="Agora token for the default channel")
    agora_channel: str = Field(default="", description="Default channel name")

    # Environment classification
    ci: bool = Field(default=False, description="Running under CI")
    app_env: Optional[str] = Field(default=None, description="Explicit environment: test or production")

    # Target application
    base_url: str = Field(
        default="https://webdemo.agora.io/basicVideoCall/index.html",
        description="URL of the call-entry page (grid layout) or site root (basic layout)"
    )
    connection_endpoint: str = Field(
        default="webrtc2-ap-web-1.agora.io/api/v2/transpond/webrtc",
        description="URL fragment of the POST issued when a join is negotiated"
    )
    page_layout: PageLayoutName = Field(default=PageLayoutName.GRID, description="Markup variant: basic or grid")

    # Browser settings
    headless: bool = Field(default=True, description="Launch browsers headless")
    disable_gpu: bool = Field(default=True, description="Pass --disable-gpu to the browser")
    viewport_width: int = Field(default=1280, description="Viewport width of each participant context")
    viewport_height: int = Field(default=720, description="Viewport height of each participant context")

    # Timeouts (seconds)
    join_timeout: float = Field(default=30.0, description="Wait for the join acknowledgment")
    leave_timeout: float = Field(default=10.0, description="Wait for the local video to disappear after leave")
    video_timeout: float = Field(default=15.0, description="Convergence timeout for playing-video assertions")
    no_video_timeout: float = Field(default=10.0, description="Convergence timeout for no-video assertions")
    alert_timeout: float = Field(default=10.0, description="Wait for the join success alert")
    element_timeout: float = Field(default=2.0, description="Timeout for a single element evaluation")
    snapshot_timeout: float = Field(default=10.0, description="Time allowed for a screenshot to match its baseline")
    poll_intervals: list[float] = Field(
        default=[1.0, 2.0, 3.0],
        description="Wait schedule between poll attempts; the last value repeats"
    )

    # Video playback definition
    video_min_ready_state: int = Field(
        default=3,
        description="Minimum HTMLMediaElement.readyState counted as playing (3=HAVE_FUTURE_DATA, 4=HAVE_ENOUGH_DATA)"
    )

    # Paths
    videos_dir: Path = Field(default=Path("videos"), description="Root of the fake-capture media fixtures")
    snapshots_dir: Path = Field(default=Path("snapshots"), description="Root of the baseline screenshots")
    results_dir: Path = Field(default=Path("test-results"), description="Where actual/diff images are written")
    reports_dir: Path = Field(default=Path("reports"), description="Where load-test artifacts are written")

    # Snapshot comparison
    snapshot_threshold: float = Field(default=0.3, description="Per-pixel color distance tolerated (0..1)")
    snapshot_max_diff_pixel_ratio: float = Field(default=0.2, description="Share of differing pixels tolerated")
    update_snapshots: SnapshotUpdateMode = Field(
        default=SnapshotUpdateMode.MISSING,
        description="Baseline write mode: missing, all or none"
    )

    # Synthetic participant ids
    user_id_min: int = Field(default=10000, description="Lowest generated participant id")
    user_id_max: int = Field(default=99999, description="Highest generated participant id")

    log_level: str = Field(default="INFO", description="Root logging level")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("video_min_ready_state")
    @classmethod
    def validate_ready_state(cls, v):
        """Only HAVE_CURRENT_DATA and above can render a frame."""
        if v not in (2, 3, 4):
            raise ValueError(f"video_min_ready_state must be 2, 3 or 4, got {v}")
        return v

    @field_validator("poll_intervals")
    @classmethod
    def validate_poll_intervals(cls, v):
        if not v or any(interval <= 0 for interval in v):
            raise ValueError("poll_intervals must be a non-empty list of positive numbers")
        return v

    @model_validator(mode="after")
    def validate_user_id_range(self):
        if self.user_id_min >= self.user_id_max:
            raise ValueError(
                f"user_id_min ({self.user_id_min}) must be lower than user_id_max ({self.user_id_max})"
            )
        return self

    @property
    def environment(self) -> str:
        """Classify the run as local, ci, test or production."""
        if self.ci:
            return "ci"
        if self.app_env == "test":
            return "test"
        if self.app_env == "production":
            return "production"
        return "local"

    @property
    def has_credentials(self) -> bool:
        return bool(self.agora_app_id and self.agora_token and self.agora_channel)

    @property
    def call_config(self) -> CallConfig:
        """Default connection parameters for new calls."""
        return CallConfig(
            app_id=self.agora_app_id,
            token=self.agora_token,
            channel_name=self.agora_channel,
        )

    @property
    def random_users_dir(self) -> Path:
        return self.videos_dir / "randomUsers"

    @property
    def predefined_users_dir(self) -> Path:
        return self.videos_dir / "predefinedUsers"

    def media_source_pool(self) -> tuple[Path, ...]:
        """Fake-capture clips handed out to generated participants."""
        if not self.random_users_dir.is_dir():
            return ()
        return tuple(sorted(self.random_users_dir.glob("*.y4m")))

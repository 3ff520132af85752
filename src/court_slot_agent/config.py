"""Configuration objects for the court slot agent."""

from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_CHROME_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
]

# Ordered; the first template returning a non-empty payload wins.
DEFAULT_PROBE_TEMPLATES = [
    "/api/clubs/availability?tenant_id={tenant_id}&date={date}&sport_id={sport_id}",
    "/api/clubs/availability?tenant_id={tenant_id}&date={date}",
    "/api/clubs/availability?tenantId={tenant_id}&date={date}&sportId={sport_id}",
    "/api/v1/availability?tenant_id={tenant_id}&sport_id={sport_id}"
    "&local_start_min={date}T00:00:00&local_start_max={date}T23:59:59",
]

DEFAULT_TRACKER_FRAGMENTS = [
    "google-analytics.com",
    "googletagmanager.com",
    "doubleclick.net",
    "facebook.net",
    "connect.facebook.com",
    "hotjar.com",
    "segment.io",
    "sentry.io",
]


class Settings(BaseSettings):
    """Runtime configuration pulled from environment variables."""

    base_url: str = Field(default="https://playtomic.com", validation_alias="COURT_AGENT_BASE_URL")
    venue_path: str = Field(default="/clubs/{slug}", validation_alias="COURT_AGENT_VENUE_PATH")
    availability_path: str = Field(
        default="/api/clubs/availability",
        validation_alias="COURT_AGENT_AVAILABILITY_PATH",
        description="URL fragment identifying the availability endpoint in network traffic.",
    )
    sport_id: str = Field(default="PADEL", validation_alias="COURT_AGENT_SPORT_ID")
    timezone: str = Field(default="Europe/Tallinn", validation_alias="COURT_AGENT_TIMEZONE")
    locale: str = Field(default="en-US", validation_alias="COURT_AGENT_LOCALE")
    accept_language: str = Field(default="en-US,en;q=0.9,et;q=0.8", validation_alias="COURT_AGENT_ACCEPT_LANGUAGE")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, validation_alias="COURT_AGENT_USER_AGENT")
    viewport_width: int = Field(default=1366, validation_alias="COURT_AGENT_VIEWPORT_WIDTH")
    viewport_height: int = Field(default=900, validation_alias="COURT_AGENT_VIEWPORT_HEIGHT")
    headless: bool = Field(default=True, validation_alias="COURT_AGENT_HEADLESS")
    chrome_args: List[str] = Field(default_factory=lambda: list(DEFAULT_CHROME_ARGS), validation_alias="COURT_AGENT_CHROME_ARGS")

    navigation_timeout_seconds: float = Field(default=60, validation_alias="COURT_AGENT_NAVIGATION_TIMEOUT_SECONDS")
    hydration_timeout_seconds: float = Field(default=15, validation_alias="COURT_AGENT_HYDRATION_TIMEOUT_SECONDS")
    commit_timeout_seconds: float = Field(default=8, validation_alias="COURT_AGENT_COMMIT_TIMEOUT_SECONDS")
    settle_window_seconds: float = Field(default=2.5, validation_alias="COURT_AGENT_SETTLE_WINDOW_SECONDS")
    popover_timeout_seconds: float = Field(default=4.5, validation_alias="COURT_AGENT_POPOVER_TIMEOUT_SECONDS")
    verify_deadline_seconds: float = Field(default=45, validation_alias="COURT_AGENT_VERIFY_DEADLINE_SECONDS")
    max_month_clicks: int = Field(default=24, validation_alias="COURT_AGENT_MAX_MONTH_CLICKS")
    max_scroll_sweeps: int = Field(default=24, validation_alias="COURT_AGENT_MAX_SCROLL_SWEEPS")
    hydration_min_divs: int = Field(default=80, validation_alias="COURT_AGENT_HYDRATION_MIN_DIVS")

    probe_templates: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PROBE_TEMPLATES),
        validation_alias="COURT_AGENT_PROBE_TEMPLATES",
    )
    blocked_resource_types: List[str] = Field(
        default_factory=lambda: ["image", "font", "media"],
        validation_alias="COURT_AGENT_BLOCKED_RESOURCE_TYPES",
    )
    blocked_url_fragments: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TRACKER_FRAGMENTS),
        validation_alias="COURT_AGENT_BLOCKED_URL_FRAGMENTS",
    )

    price_placeholder: str = Field(default="n/a", validation_alias="COURT_AGENT_PRICE_PLACEHOLDER")
    error_detail_limit: int = Field(default=300, validation_alias="COURT_AGENT_ERROR_DETAIL_LIMIT")
    html_snippet_length: int = Field(default=2048, validation_alias="COURT_AGENT_HTML_SNIPPET_LENGTH")

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def venue_url(self, slug: str) -> str:
        """Construct the public page URL for a venue."""
        return f"{self.base_url.rstrip('/')}{self.venue_path.format(slug=slug)}"

    @property
    def navigation_timeout_ms(self) -> float:
        return self.navigation_timeout_seconds * 1000

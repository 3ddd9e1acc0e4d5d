"""Configuration constants for the park catalog scraper"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import Destination

# Landing pages - the attractions pages trigger the finder API auth cookies
LANDING_URLS: Dict[Destination, str] = {
    Destination.WDW: "https://disneyworld.disney.go.com/attractions/",
    Destination.DLR: "https://disneyland.disney.go.com/attractions/",
}

# Private (credentialed) finder API
FINDER_API_URLS: Dict[Destination, str] = {
    Destination.WDW: "https://disneyworld.disney.go.com/finder/api/v1/explorer-service",
    Destination.DLR: "https://disneyland.disney.go.com/finder/api/v1/explorer-service",
}

# Public fallback API
WIKI_BASE_URL = "https://api.themeparks.wiki/v1"
WIKI_DESTINATION_UUIDS: Dict[Destination, str] = {
    Destination.WDW: "e957da41-3552-4cf6-b636-5babc5cbc4e5",
    Destination.DLR: "bfc89fd6-314d-44b4-b89e-df1a89cf991e",
}

DESTINATION_INFO: Dict[Destination, Dict[str, str]] = {
    Destination.WDW: {
        "name": "Walt Disney World Resort",
        "location": "Orlando, FL",
        "timezone": "America/New_York",
    },
    Destination.DLR: {
        "name": "Disneyland Resort",
        "location": "Anaheim, CA",
        "timezone": "America/Los_Angeles",
    },
}

# (id, name, slug)
PARK_INFO: Dict[Destination, List[Tuple[str, str, str]]] = {
    Destination.WDW: [
        ("80007944", "Magic Kingdom Park", "magic-kingdom"),
        ("80007838", "EPCOT", "epcot"),
        ("80007998", "Disney's Hollywood Studios", "hollywood-studios"),
        ("80007823", "Disney's Animal Kingdom Theme Park", "animal-kingdom"),
    ],
    Destination.DLR: [
        ("330339", "Disneyland Park", "disneyland"),
        ("336894", "Disney California Adventure Park", "california-adventure"),
    ],
}

# ThemeParks.wiki park UUID -> operator park id, used when a PARK entity
# carries no externalId
WIKI_PARK_IDS: Dict[str, str] = {
    "75ea578a-adc8-4116-a54d-dccb60765ef9": "80007944",
    "47f90d2c-e191-4239-a466-5892ef59a88b": "80007838",
    "288747d1-8b4f-4a64-867e-ea7c9b27bad8": "80007998",
    "1c84a229-8862-4648-9c71-378ddd2c7693": "80007823",
    "7340550b-c14d-4def-80bb-acdb51d49a66": "330339",
    "832fcd51-ea19-4e77-85c7-75d5843b127c": "336894",
}

LOCALES: Dict[Destination, str] = {
    Destination.WDW: "en-US",
    Destination.DLR: "en-US",
}

TIMEZONES: Dict[Destination, str] = {
    dest: info["timezone"] for dest, info in DESTINATION_INFO.items()
}

# Cookie consent banner (OneTrust) - first match wins
CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    '[data-testid="cookie-accept"]',
    'button[aria-label*="Accept"]',
]

# Cookie names
BEARER_COOKIE = "__d"
FINDER_EXPIRY_COOKIE = "finderPublicTokenExpireTime"
SESSION_ID_COOKIE = "SWID"

# Firefox UA to match Camoufox / curl_cffi impersonation
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:135.0) "
    "Gecko/20100101 Firefox/135.0"
)
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}

# Session lifecycle
DEFAULT_SESSION_HOURS = 8  # Matches the upstream token TTL
REFRESH_BUFFER_MINUTES = 60
COOKIE_POLL_ATTEMPTS = 15
COOKIE_POLL_INTERVAL = 1.0  # Seconds
CONSENT_WAIT = 2.0  # Seconds before looking for the banner
CONSENT_CLICK_TIMEOUT = 2.0
MAX_CONSECUTIVE_ERRORS = 3  # Session state flips to "error" at this count

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 1.0  # Seconds
MAX_JITTER = 1.0  # Seconds
NON_RETRYABLE_STATUS_CODES = (400, 401, 403, 404)
AUTH_STATUS_CODES = (401, 403)

# Timeouts
DEFAULT_REQUEST_TIMEOUT = 30.0  # Seconds
DEFAULT_NAVIGATION_TIMEOUT = 30.0

# Browser backends
DEFAULT_BROWSER_BACKEND = "camoufox"
DEFAULT_CDP_ENDPOINT = "http://127.0.0.1:9222"
IMPERSONATE = "firefox135"

# Storage
DEFAULT_DATA_DIR = Path("./.data")
CACHE_TTL_HOURS = 24

ENV_PREFIX = "MOUSE_SCRAPER_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ScraperConfig:
    """Runtime configuration, defaults from the module constants"""

    landing_urls: Dict[Destination, str] = field(default_factory=lambda: dict(LANDING_URLS))
    locales: Dict[Destination, str] = field(default_factory=lambda: dict(LOCALES))
    timezones: Dict[Destination, str] = field(default_factory=lambda: dict(TIMEZONES))
    consent_selectors: List[str] = field(default_factory=lambda: list(CONSENT_SELECTORS))
    consent_wait: float = CONSENT_WAIT
    cookie_poll_attempts: int = COOKIE_POLL_ATTEMPTS
    cookie_poll_interval: float = COOKIE_POLL_INTERVAL
    default_session_hours: float = DEFAULT_SESSION_HOURS
    refresh_buffer_minutes: float = REFRESH_BUFFER_MINUTES
    navigation_timeout: float = DEFAULT_NAVIGATION_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = MAX_RETRIES
    base_delay: float = BASE_DELAY
    max_jitter: float = MAX_JITTER
    non_retryable_status_codes: Tuple[int, ...] = NON_RETRYABLE_STATUS_CODES
    browser_backend: str = DEFAULT_BROWSER_BACKEND
    cdp_endpoint: str = DEFAULT_CDP_ENDPOINT
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    data_dir: Path = DEFAULT_DATA_DIR
    cache_ttl_hours: float = CACHE_TTL_HOURS
    fallback_on_any_error: bool = False
    verbose: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "ScraperConfig":
        """Build a config from MOUSE_SCRAPER_* environment variables"""
        config = cls(
            refresh_buffer_minutes=float(
                _env("REFRESH_BUFFER", str(REFRESH_BUFFER_MINUTES))
            ),
            request_timeout=float(_env("TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))),
            navigation_timeout=float(
                _env("NAVIGATION_TIMEOUT", str(DEFAULT_NAVIGATION_TIMEOUT))
            ),
            default_session_hours=float(
                _env("SESSION_HOURS", str(DEFAULT_SESSION_HOURS))
            ),
            cookie_poll_attempts=int(_env("POLL_ATTEMPTS", str(COOKIE_POLL_ATTEMPTS))),
            cookie_poll_interval=float(_env("POLL_INTERVAL", str(COOKIE_POLL_INTERVAL))),
            max_retries=int(_env("MAX_RETRIES", str(MAX_RETRIES))),
            base_delay=float(_env("BASE_DELAY", str(BASE_DELAY))),
            browser_backend=_env("BROWSER", DEFAULT_BROWSER_BACKEND).lower(),
            cdp_endpoint=_env("CDP_ENDPOINT", DEFAULT_CDP_ENDPOINT),
            headless=not _env_bool("SHOW_BROWSER", False),
            data_dir=Path(_env("DATA_DIR", str(DEFAULT_DATA_DIR))),
            cache_ttl_hours=float(_env("CACHE_TTL_HOURS", str(CACHE_TTL_HOURS))),
            fallback_on_any_error=_env_bool("FALLBACK_ON_ANY_ERROR", False),
            verbose=_env("LOG_LEVEL", "INFO").upper() == "DEBUG",
        )

        codes = _env("NON_RETRYABLE")
        if codes:
            config.non_retryable_status_codes = tuple(
                int(c) for c in codes.split(",") if c.strip()
            )

        selectors = _env("CONSENT_SELECTORS")
        if selectors:
            config.consent_selectors = [s.strip() for s in selectors.split("|") if s.strip()]

        for key, value in overrides.items():
            setattr(config, key, value)

        return config

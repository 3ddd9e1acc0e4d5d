"""Data models and enums for the park catalog scraper"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Destination(str, Enum):
    """Supported resort destinations"""

    WDW = "wdw"
    DLR = "dlr"


class SessionState(str, Enum):
    """Session lifecycle states"""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    EXPIRED = "expired"
    ERROR = "error"


class EntityKind(str, Enum):
    """Entity families the orchestrator can fetch"""

    ATTRACTIONS = "attractions"
    DINING = "dining"
    SHOWS = "shows"


class EntityType(str, Enum):
    """Entity type tag carried by every normalized record"""

    ATTRACTION = "ATTRACTION"
    RESTAURANT = "RESTAURANT"
    SHOW = "SHOW"


class DataSource(str, Enum):
    """Provenance metadata, carried next to (never inside) entities"""

    DISNEY = "disney"
    THEMEPARKS_WIKI = "themeparks-wiki"


class AcquisitionState(Enum):
    """States of a single acquisition attempt"""

    NOT_ATTEMPTED = "not_attempted"
    PRIMARY_IN_FLIGHT = "primary_in_flight"
    PRIMARY_SUCCEEDED = "primary_succeeded"  # Terminal
    PRIMARY_AUTH_FAILED = "primary_auth_failed"
    PRIMARY_OTHER_FAILED = "primary_other_failed"  # Terminal
    FALLBACK_IN_FLIGHT = "fallback_in_flight"
    FALLBACK_SUCCEEDED = "fallback_succeeded"  # Terminal
    FALLBACK_FAILED = "fallback_failed"  # Terminal


class ErrorType(Enum):
    """Error categories for different handling strategies"""

    TRANSIENT = "transient"  # Retry
    RATE_LIMIT = "rate_limit"  # Backoff and retry
    AUTH_FAILURE = "auth_failure"  # Need fresh credentials / fallback
    PERMANENT = "permanent"  # Don't retry


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass
class SessionCookie:
    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float = -1  # Epoch seconds, -1 for session cookies
    http_only: bool = False
    secure: bool = False
    same_site: str = "Lax"

    @classmethod
    def from_browser(cls, raw: Dict[str, Any]) -> "SessionCookie":
        """Build from a Playwright cookie dict"""
        return cls(
            name=raw["name"],
            value=raw.get("value", ""),
            domain=raw.get("domain", ""),
            path=raw.get("path", "/"),
            expires=raw.get("expires", -1),
            http_only=raw.get("httpOnly", False),
            secure=raw.get("secure", False),
            same_site=raw.get("sameSite", "Lax"),
        )


@dataclass
class SessionTokens:
    session_id: Optional[str] = None
    auth_token: Optional[str] = None
    csrf_token: Optional[str] = None


@dataclass
class Session:
    """Browser-derived credentials for one destination"""

    destination: Destination
    state: SessionState
    cookies: List[SessionCookie]
    tokens: SessionTokens
    created_at: str  # ISO-8601 UTC
    refreshed_at: str
    expires_at: str
    error_count: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["destination"] = self.destination.value
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            destination=Destination(data["destination"]),
            state=SessionState(data.get("state", SessionState.ACTIVE.value)),
            cookies=[SessionCookie(**c) for c in data.get("cookies", [])],
            tokens=SessionTokens(**data.get("tokens", {})),
            created_at=data["created_at"],
            refreshed_at=data["refreshed_at"],
            expires_at=data["expires_at"],
            error_count=int(data.get("error_count", 0)),
            last_error=data.get("last_error"),
        )


@dataclass
class SessionStatus:
    """Read-only health snapshot"""

    has_session: bool
    is_valid: bool
    expires_at: Optional[str]
    error_count: int
    last_error: Optional[str] = None


# ---------------------------------------------------------------------------
# Normalized entities
# ---------------------------------------------------------------------------


@dataclass
class GeoLocation:
    latitude: float
    longitude: float


@dataclass
class HeightRequirement:
    inches: int
    centimeters: int
    description: str


@dataclass
class LightningLaneInfo:
    tier: str  # "individual" | "multi-pass"
    available: bool


@dataclass
class PriceRange:
    symbol: str  # "$" .. "$$$$"
    description: str


@dataclass
class ParkRef:
    id: str
    name: str
    slug: Optional[str]


@dataclass
class DestinationRecord:
    id: Destination
    name: str
    location: str
    timezone: str
    parks: List[ParkRef]
    other_venues: List[ParkRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["id"] = self.id.value
        return data


@dataclass
class _EntityBase:
    id: str
    name: str
    slug: Optional[str]
    destination_id: Destination
    park_id: Optional[str]
    park_name: Optional[str]
    location: Optional[GeoLocation]
    url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, keeping None values so 'unknown' is explicit"""
        data = asdict(self)
        data["destination_id"] = self.destination_id.value
        data["entity_type"] = self.entity_type.value
        return data


@dataclass
class Attraction(_EntityBase):
    height_requirement: Optional[HeightRequirement] = None
    thrill_level: Optional[str] = None
    experience_type: Optional[str] = None
    duration: Optional[str] = None
    lightning_lane: Optional[LightningLaneInfo] = None
    single_rider: Optional[bool] = None
    rider_swap: Optional[bool] = None
    photopass: Optional[bool] = None
    virtual_queue: Optional[bool] = None
    wheelchair_accessible: Optional[bool] = None
    tags: List[str] = field(default_factory=list)
    entity_type: EntityType = EntityType.ATTRACTION


@dataclass
class Dining(_EntityBase):
    service_type: Optional[str] = None
    meal_periods: List[str] = field(default_factory=list)
    cuisine_types: List[str] = field(default_factory=list)
    price_range: Optional[PriceRange] = None
    mobile_order: Optional[bool] = None
    reservations_required: Optional[bool] = None
    reservations_accepted: Optional[bool] = None
    character_dining: Optional[bool] = None
    disney_dining_plan: Optional[bool] = None
    tags: List[str] = field(default_factory=list)
    entity_type: EntityType = EntityType.RESTAURANT


@dataclass
class Show(_EntityBase):
    show_type: Optional[str] = None
    duration: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    entity_type: EntityType = EntityType.SHOW


NormalizedEntity = Union[Attraction, Dining, Show]


@dataclass
class AcquisitionResult:
    """Outcome of one orchestrated fetch"""

    entities: List[NormalizedEntity]
    source: Optional[DataSource]
    state: AcquisitionState
    error: Optional[Exception] = None

"""Primary client: the credentialed finder API"""

import time
from typing import Any, Callable, Dict, List, Optional

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession
from loguru import logger

from .config import (
    AUTH_STATUS_CODES,
    DESTINATION_INFO,
    FINDER_API_URLS,
    IMPERSONATE,
    PARK_INFO,
    ScraperConfig,
)
from .exceptions import AuthClassifiedError, TransientUpstreamError
from .models import (
    Attraction,
    Destination,
    DestinationRecord,
    Dining,
    EntityKind,
    NormalizedEntity,
    ParkRef,
    Show,
)
from .normalize import (
    optional_bool,
    parse_height,
    parse_lightning_lane,
    parse_location,
    parse_meal_periods,
    parse_price_range,
    parse_service_type,
    parse_show_type,
    parse_thrill_level,
    safe_field,
    slugify,
)
from .retry import retry_with_backoff, run_with_timeout
from .session_manager import SessionManager

# Finder API "type" segment per entity family
FINDER_TYPES = {
    EntityKind.ATTRACTIONS: "attraction",
    EntityKind.DINING: "dining",
    EntityKind.SHOWS: "entertainment",
}


def park_names(destination: Destination) -> Dict[str, str]:
    return {park_id: name for park_id, name, _ in PARK_INFO[destination]}


def static_destinations() -> List[DestinationRecord]:
    """Destinations and their parks; static, no network"""
    records = []
    for destination in Destination:
        info = DESTINATION_INFO[destination]
        records.append(
            DestinationRecord(
                id=destination,
                name=info["name"],
                location=info["location"],
                timezone=info["timezone"],
                parks=[
                    ParkRef(id=park_id, name=name, slug=slug)
                    for park_id, name, slug in PARK_INFO[destination]
                ],
            )
        )
    return records


def _common_fields(
    raw: Dict[str, Any], destination: Destination, parks: Dict[str, str]
) -> Dict[str, Any]:
    park_id = raw.get("ancestorThemeParkId")
    return {
        "id": str(raw["id"]),
        "name": raw["name"],
        "slug": raw.get("urlFriendlyId") or slugify(raw["name"]),
        "destination_id": destination,
        "park_id": park_id,
        "park_name": parks.get(park_id) if park_id else None,
        "location": safe_field("location", parse_location, raw.get("coordinates")),
        "url": (raw.get("links") or {}).get("self"),
    }


def _facet_ids(raw: Dict[str, Any]) -> List[str]:
    return [f["id"] for f in raw.get("facets") or [] if isinstance(f, dict) and "id" in f]


def normalize_attraction(
    raw: Dict[str, Any], destination: Destination, parks: Dict[str, str]
) -> Attraction:
    return Attraction(
        **_common_fields(raw, destination, parks),
        height_requirement=safe_field(
            "height_requirement", parse_height, raw.get("heightRequirement")
        ),
        thrill_level=safe_field("thrill_level", parse_thrill_level, raw.get("thrillLevel")),
        experience_type=raw.get("experienceType"),
        duration=raw.get("duration"),
        lightning_lane=parse_lightning_lane(
            bool(raw.get("lightningLaneIndividual")),
            bool(raw.get("lightningLane") or raw.get("geniePlus")),
        ),
        single_rider=optional_bool(raw.get("singleRider")),
        rider_swap=optional_bool(raw.get("riderSwap")),
        photopass=optional_bool(raw.get("photoPass")),
        virtual_queue=optional_bool(raw.get("virtualQueue")),
        wheelchair_accessible=optional_bool(raw.get("wheelchairAccessible")),
        tags=safe_field("tags", _facet_ids, raw) or [],
    )


def normalize_dining(
    raw: Dict[str, Any], destination: Destination, parks: Dict[str, str]
) -> Dining:
    return Dining(
        **_common_fields(raw, destination, parks),
        service_type=safe_field("service_type", parse_service_type, raw.get("serviceType")),
        meal_periods=safe_field(
            "meal_periods", parse_meal_periods, raw.get("mealPeriods") or []
        )
        or [],
        cuisine_types=list(raw.get("cuisineTypes") or []),
        price_range=safe_field("price_range", parse_price_range, raw.get("priceRange")),
        mobile_order=optional_bool(raw.get("mobileOrder")),
        reservations_required=optional_bool(raw.get("reservationsRequired")),
        reservations_accepted=optional_bool(raw.get("reservationsAccepted")),
        character_dining=optional_bool(raw.get("characterDining")),
        disney_dining_plan=optional_bool(raw.get("disneyDiningPlan")),
        tags=safe_field("tags", _facet_ids, raw) or [],
    )


def normalize_show(
    raw: Dict[str, Any], destination: Destination, parks: Dict[str, str]
) -> Show:
    return Show(
        **_common_fields(raw, destination, parks),
        show_type=safe_field(
            "show_type",
            parse_show_type,
            raw.get("showType") or raw.get("entertainmentType"),
            raw["name"],
        ),
        duration=raw.get("duration"),
        tags=safe_field("tags", _facet_ids, raw) or [],
    )


NORMALIZERS: Dict[EntityKind, Callable[..., NormalizedEntity]] = {
    EntityKind.ATTRACTIONS: normalize_attraction,
    EntityKind.DINING: normalize_dining,
    EntityKind.SHOWS: normalize_show,
}


def normalize_results(
    kind: EntityKind, results: List[Dict[str, Any]], destination: Destination
) -> List[NormalizedEntity]:
    """Normalize a finder payload, skipping records without id or name"""
    normalizer = NORMALIZERS[kind]
    parks = park_names(destination)

    entities = []
    for raw in results:
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("name"):
            logger.warning(f"Skipping malformed {kind.value} record: {str(raw)[:80]}")
            continue
        entities.append(normalizer(raw, destination, parks))
    return entities


class FinderClient:
    """
    Client for the private finder API.

    - Credentials come from the SessionManager as ready-made headers
    - curl_cffi with Firefox impersonation to match the Camoufox session
    - Every attempt is time-boxed; the retry budget wraps the attempts
    - 401/403 and missing credentials raise AuthClassifiedError
    """

    def __init__(
        self,
        session_manager: SessionManager,
        config: Optional[ScraperConfig] = None,
        impersonate: str = IMPERSONATE,
    ):
        self.session_manager = session_manager
        self.config = config or ScraperConfig()
        self.impersonate = impersonate

        logger.debug(f"Finder client initialized (impersonate: {self.impersonate})")

    async def fetch(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str] = None,
    ) -> List[NormalizedEntity]:
        """Fetch and normalize one entity family for a destination"""
        url = self._build_url(kind, destination, park_id)

        headers = await self.session_manager.get_auth_headers(destination)
        if "Cookie" not in headers:
            raise AuthClassifiedError(
                "No valid session", status_code=401, endpoint=url
            )

        data = await retry_with_backoff(
            self._request_once,
            url,
            headers,
            max_retries=self.config.max_retries,
            base_delay=self.config.base_delay,
            max_jitter=self.config.max_jitter,
            non_retryable_status_codes=self.config.non_retryable_status_codes,
        )

        results = data.get("results") if isinstance(data, dict) else None
        if results is None:
            logger.warning(f"Finder response for {url} has no results")
            results = []

        entities = normalize_results(kind, results, destination)
        logger.info(f"Finder returned {len(entities)} {kind.value} for {destination.value}")
        return entities

    async def get_attractions(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return await self.fetch(EntityKind.ATTRACTIONS, destination, park_id)

    async def get_dining(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return await self.fetch(EntityKind.DINING, destination, park_id)

    async def get_shows(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return await self.fetch(EntityKind.SHOWS, destination, park_id)

    def _build_url(
        self, kind: EntityKind, destination: Destination, park_id: Optional[str]
    ) -> str:
        finder_type = FINDER_TYPES[kind]
        if park_id:
            endpoint = f"/list/ancestor/{park_id}/type/{finder_type}"
        else:
            endpoint = f"/list/destination/{destination.value}/type/{finder_type}"
        return f"{FINDER_API_URLS[destination]}{endpoint}"

    async def _send(self, url: str, headers: Dict[str, str]):
        async with AsyncSession(impersonate=self.impersonate) as session:
            return await session.get(
                url, headers=headers, timeout=self.config.request_timeout
            )

    async def _request_once(self, url: str, headers: Dict[str, str]) -> Dict[str, Any]:
        """A single time-boxed attempt"""
        start_time = time.time()
        try:
            response = await run_with_timeout(
                self._send(url, headers), self.config.request_timeout, endpoint=url
            )
        except CurlError as e:
            raise TransientUpstreamError(f"Finder request failed: {e}", endpoint=url) from e

        duration = time.time() - start_time
        status = response.status_code
        logger.debug(f"   ← Finder {status} ({duration:.2f}s) {url}")

        if status in AUTH_STATUS_CODES:
            raise AuthClassifiedError(
                f"Finder API rejected credentials: {status}", status_code=status, endpoint=url
            )
        if status >= 400:
            raise TransientUpstreamError(
                f"Finder API error: {status}", status_code=status, endpoint=url
            )

        content_type = response.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            # Expired sessions get bounced to the login page with a 200
            raise AuthClassifiedError(
                "Finder API returned HTML (session bounced to login)",
                status_code=status,
                endpoint=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"Finder API returned invalid JSON: {e}", status_code=status, endpoint=url
            ) from e

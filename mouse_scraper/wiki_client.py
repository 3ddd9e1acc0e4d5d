"""Fallback client: the public, unauthenticated ThemeParks.wiki API

Entities there carry their metadata as a list of ``{key, value}`` tags. The
tag table below maps them onto the same normalized schema the finder
client produces.
"""

import time
from typing import Any, Dict, List, Optional, Tuple

import httpx
from loguru import logger

from .config import (
    DESTINATION_INFO,
    PARK_INFO,
    WIKI_BASE_URL,
    WIKI_DESTINATION_UUIDS,
    WIKI_PARK_IDS,
    ScraperConfig,
)
from .exceptions import ApiError, AuthClassifiedError, TransientUpstreamError
from .models import (
    Attraction,
    Destination,
    DestinationRecord,
    Dining,
    EntityKind,
    EntityType,
    NormalizedEntity,
    ParkRef,
    Show,
)
from .normalize import (
    MEAL_PERIODS,
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

WIKI_ENTITY_TYPES = {
    EntityKind.ATTRACTIONS: EntityType.ATTRACTION.value,
    EntityKind.DINING: EntityType.RESTAURANT.value,
    EntityKind.SHOWS: EntityType.SHOW.value,
}

# operator park id -> (name, slug)
OPERATOR_PARKS: Dict[str, Tuple[str, str]] = {
    park_id: (name, slug) for parks in PARK_INFO.values() for park_id, name, slug in parks
}


def extract_tags(tags: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    """Flatten ``[{key, value}, ...]`` into an ordered mapping"""
    mapping: Dict[str, str] = {}
    for tag in tags or []:
        if isinstance(tag, dict) and "key" in tag:
            mapping[tag["key"]] = tag.get("value")
    return mapping


def _present(tags: Dict[str, str], key: str) -> Optional[bool]:
    """Tags only ever assert facts; absence means unknown"""
    return True if key in tags else None


def park_ids_from_entities(entities: List[Dict[str, Any]]) -> Dict[str, str]:
    """Map wiki park UUIDs to operator park ids

    A PARK entity's ``externalId`` (e.g. ``80007944;entityType=theme-park``)
    wins over the static table.
    """
    park_ids = dict(WIKI_PARK_IDS)
    for entity in entities:
        if entity.get("entityType") != "PARK" or not entity.get("id"):
            continue
        external = str(entity.get("externalId") or "").split(";")[0].strip()
        if external in OPERATOR_PARKS:
            park_ids[entity["id"]] = external
    return park_ids


def operator_park_id(raw: Dict[str, Any], park_ids: Dict[str, str]) -> Optional[str]:
    """Operator park id of an entity; None when its park is unknown"""
    for key in ("parentId", "parkId"):
        park_id = park_ids.get(raw.get(key))
        if park_id:
            return park_id
    return None


def _common_fields(
    raw: Dict[str, Any], destination: Destination, park_ids: Dict[str, str]
) -> Dict[str, Any]:
    park_id = operator_park_id(raw, park_ids)
    return {
        "id": str(raw["id"]),
        "name": raw["name"],
        "slug": slugify(raw["name"]),
        "destination_id": destination,
        "park_id": park_id,
        "park_name": OPERATOR_PARKS[park_id][0] if park_id else None,
        "location": safe_field("location", parse_location, raw.get("location")),
        "url": None,
    }


def normalize_attraction(
    raw: Dict[str, Any], destination: Destination, park_ids: Dict[str, str]
) -> Attraction:
    tags = extract_tags(raw.get("tags"))
    return Attraction(
        **_common_fields(raw, destination, park_ids),
        height_requirement=safe_field(
            "height_requirement", parse_height, tags.get("heightRequirement")
        ),
        thrill_level=safe_field("thrill_level", parse_thrill_level, tags.get("thrillLevel")),
        experience_type=tags.get("attractionType"),
        duration=tags.get("duration"),
        lightning_lane=parse_lightning_lane(
            "lightningLaneIndividual" in tags,
            "lightningLane" in tags or "geniePlus" in tags,
        ),
        single_rider=_present(tags, "singleRider"),
        rider_swap=_present(tags, "riderSwap"),
        photopass=_present(tags, "photoPass"),
        virtual_queue=_present(tags, "virtualQueue"),
        wheelchair_accessible=False if "mustTransfer" in tags else None,
        tags=list(tags),
    )


def normalize_dining(
    raw: Dict[str, Any], destination: Destination, park_ids: Dict[str, str]
) -> Dining:
    tags = extract_tags(raw.get("tags"))
    cuisine = tags.get("cuisine")
    reservations_accepted = _present(tags, "reservationsAccepted") or _present(
        tags, "reservationsRequired"
    )
    return Dining(
        **_common_fields(raw, destination, park_ids),
        service_type=safe_field("service_type", parse_service_type, tags.get("serviceType")),
        meal_periods=parse_meal_periods(k for k in tags if k in MEAL_PERIODS),
        cuisine_types=[c.strip() for c in cuisine.split(",") if c.strip()] if cuisine else [],
        price_range=safe_field("price_range", parse_price_range, tags.get("priceRange")),
        mobile_order=_present(tags, "mobileOrder"),
        reservations_required=_present(tags, "reservationsRequired"),
        reservations_accepted=reservations_accepted,
        character_dining=_present(tags, "characterDining"),
        disney_dining_plan=_present(tags, "diningPlan"),
        tags=list(tags),
    )


def normalize_show(
    raw: Dict[str, Any], destination: Destination, park_ids: Dict[str, str]
) -> Show:
    tags = extract_tags(raw.get("tags"))
    return Show(
        **_common_fields(raw, destination, park_ids),
        show_type=safe_field("show_type", parse_show_type, tags.get("showType"), raw["name"]),
        duration=tags.get("duration"),
        tags=list(tags),
    )


NORMALIZERS = {
    EntityType.ATTRACTION.value: normalize_attraction,
    EntityType.RESTAURANT.value: normalize_dining,
    EntityType.SHOW.value: normalize_show,
}


class WikiClient:
    """
    Client for the public ThemeParks.wiki API.

    Used when the finder API cannot be reached with credentials. Some
    metadata (height requirements, Lightning Lane) may be missing there;
    those fields come back as None.
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        base_url: str = WIKI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ScraperConfig()
        self.base_url = base_url
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.request_timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def fetch(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str] = None,
    ) -> List[NormalizedEntity]:
        """Fetch and normalize one entity family for a destination"""
        entities = await self.get_entities_for_destination(destination)
        wanted = WIKI_ENTITY_TYPES[kind]

        selected = [e for e in entities if e.get("entityType") == wanted]
        park_ids = park_ids_from_entities(entities)
        if park_id:
            selected = [e for e in selected if operator_park_id(e, park_ids) == park_id]

        normalized = self._normalize_all(selected, destination, park_ids)
        logger.info(
            f"ThemeParks.wiki returned {len(normalized)} {kind.value} for {destination.value}"
        )
        return normalized

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

    async def get_destinations(self) -> List[DestinationRecord]:
        """Destinations with their parks as listed by the wiki"""
        response = await self._get_json("/destinations")
        by_id = {d.get("id"): d for d in response.get("destinations", [])}

        records = []
        for destination, uuid in WIKI_DESTINATION_UUIDS.items():
            wiki_dest = by_id.get(uuid)
            if not wiki_dest:
                continue
            info = DESTINATION_INFO[destination]
            records.append(
                DestinationRecord(
                    id=destination,
                    name=info["name"],
                    location=info["location"],
                    timezone=info["timezone"],
                    parks=self._park_refs(wiki_dest.get("parks", [])),
                )
            )
        return records

    async def get_entity_by_id(self, entity_id: str) -> Optional[NormalizedEntity]:
        """Look an entity up across all destinations; None if unknown"""
        for destination in Destination:
            try:
                entities = await self.get_entities_for_destination(destination)
            except ApiError as e:
                logger.warning(f"Could not list {destination.value} entities: {e}")
                continue

            raw = next((e for e in entities if e.get("id") == entity_id), None)
            if raw is None:
                continue

            normalizer = NORMALIZERS.get(raw.get("entityType"))
            if normalizer is None:
                return None
            return normalizer(raw, destination, park_ids_from_entities(entities))

        return None

    async def get_entities_for_destination(
        self, destination: Destination
    ) -> List[Dict[str, Any]]:
        uuid = WIKI_DESTINATION_UUIDS[destination]
        response = await self._get_json(f"/entity/{uuid}/children")
        return response.get("children", [])

    @staticmethod
    def _park_refs(wiki_parks: List[Dict[str, Any]]) -> List[ParkRef]:
        park_ids = park_ids_from_entities(
            [{"entityType": "PARK", **p} for p in wiki_parks]
        )
        refs = []
        for park in wiki_parks:
            park_id = park_ids.get(park.get("id"))
            if park_id is None:
                logger.debug(f"Unmapped wiki park {park.get('name')} ({park.get('id')})")
                continue
            name, slug = OPERATOR_PARKS[park_id]
            refs.append(ParkRef(id=park_id, name=name, slug=slug))
        return refs

    def _normalize_all(
        self, raws: List[Dict[str, Any]], destination: Destination, park_ids: Dict[str, str]
    ) -> List[NormalizedEntity]:
        entities = []
        for raw in raws:
            if not raw.get("id") or not raw.get("name"):
                logger.warning(f"Skipping malformed wiki record: {str(raw)[:80]}")
                continue
            entities.append(NORMALIZERS[raw["entityType"]](raw, destination, park_ids))
        return entities

    async def _get_json(self, endpoint: str) -> Dict[str, Any]:
        return await retry_with_backoff(
            self._request_once,
            endpoint,
            max_retries=self.config.max_retries,
            base_delay=self.config.base_delay,
            max_jitter=self.config.max_jitter,
            non_retryable_status_codes=self.config.non_retryable_status_codes,
        )

    async def _request_once(self, endpoint: str) -> Dict[str, Any]:
        """A single time-boxed attempt"""
        start_time = time.time()
        try:
            response = await run_with_timeout(
                self._http().get(endpoint), self.config.request_timeout, endpoint=endpoint
            )
        except httpx.TransportError as e:
            raise TransientUpstreamError(
                f"ThemeParks.wiki request failed: {e}", endpoint=endpoint
            ) from e

        logger.debug(
            f"   ← ThemeParks.wiki {response.status_code} "
            f"({time.time() - start_time:.2f}s) {endpoint}"
        )

        if response.status_code in (401, 403):
            raise AuthClassifiedError(
                f"ThemeParks.wiki API error: {response.status_code}",
                status_code=response.status_code,
                endpoint=endpoint,
            )
        if response.status_code >= 400:
            raise TransientUpstreamError(
                f"ThemeParks.wiki API error: {response.status_code}",
                status_code=response.status_code,
                endpoint=endpoint,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"ThemeParks.wiki returned invalid JSON: {e}", endpoint=endpoint
            ) from e

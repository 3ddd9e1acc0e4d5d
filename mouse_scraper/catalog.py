"""Cache-first catalog lookups on top of the acquisition orchestrator"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from .config import ScraperConfig
from .finder_client import static_destinations
from .models import DataSource, Destination, DestinationRecord, EntityKind
from .orchestrator import AcquisitionOrchestrator
from .session_manager import SessionManager
from .storage import CacheStore
from .wiki_client import WikiClient


def cache_key(kind: str, destination: Destination, park_id: Optional[str] = None) -> str:
    key = f"{kind}:{destination.value}"
    return f"{key}:{park_id}" if park_id else key


@dataclass
class CatalogPage:
    """Serialized entities plus where they came from"""

    entities: List[Dict[str, Any]]
    source: str
    cached: bool


class CatalogService:
    def __init__(
        self,
        orchestrator: AcquisitionOrchestrator,
        cache: CacheStore,
        session_manager: SessionManager,
        fallback: WikiClient,
        config: Optional[ScraperConfig] = None,
    ):
        self.orchestrator = orchestrator
        self.cache = cache
        self.session_manager = session_manager
        self.fallback = fallback
        self.config = config or ScraperConfig()

    async def get_entities(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str] = None,
        use_cache: bool = True,
    ) -> CatalogPage:
        key = cache_key(kind.value, destination, park_id)

        if use_cache:
            entry = await self.cache.get(key)
            if entry is not None:
                logger.debug(f"Cache hit: {key} ({entry['source']})")
                return CatalogPage(entities=entry["data"], source=entry["source"], cached=True)

        result = await self.orchestrator.fetch(kind, destination, park_id)
        entities = [e.to_dict() for e in result.entities]
        source = result.source.value

        await self.cache.set(key, entities, ttl_hours=self.config.cache_ttl_hours, source=source)
        return CatalogPage(entities=entities, source=source, cached=False)

    async def get_attractions(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> CatalogPage:
        return await self.get_entities(EntityKind.ATTRACTIONS, destination, park_id)

    async def get_dining(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> CatalogPage:
        return await self.get_entities(EntityKind.DINING, destination, park_id)

    async def get_shows(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> CatalogPage:
        return await self.get_entities(EntityKind.SHOWS, destination, park_id)

    def get_destinations(self) -> List[DestinationRecord]:
        return static_destinations()

    async def get_entity_by_id(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """Single-entity lookup through the public source"""
        key = f"entity:{entity_id}"
        entry = await self.cache.get(key)
        if entry is not None:
            return entry["data"]

        entity = await self.fallback.get_entity_by_id(entity_id)
        if entity is None:
            logger.info(f"Entity not found: {entity_id}")
            return None

        data = entity.to_dict()
        await self.cache.set(
            key,
            data,
            ttl_hours=self.config.cache_ttl_hours,
            source=DataSource.THEMEPARKS_WIKI.value,
        )
        return data

    async def get_health(self) -> Dict[str, Dict[str, Any]]:
        """Session health for every destination; no network"""
        health = {}
        for destination in Destination:
            status = await self.session_manager.get_session_status(destination)
            health[destination.value] = asdict(status)
        return health

    async def close(self) -> None:
        await self.fallback.aclose()
        await self.session_manager.shutdown()

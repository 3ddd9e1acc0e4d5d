"""Session and cache stores with async I/O

Both stores write one small JSON document per key using aiofiles + orjson so
the event loop is never blocked. The in-memory variants share the same
interface and are used by tests and one-off runs.
"""

import asyncio
import hashlib
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import aiofiles
import orjson
from dateutil.parser import isoparse
from loguru import logger

from .config import MAX_CONSECUTIVE_ERRORS, REFRESH_BUFFER_MINUTES
from .models import Destination, Session, SessionState
from .token_extractor import to_iso, utc_now


def is_session_expired(
    session: Session,
    buffer_minutes: float = REFRESH_BUFFER_MINUTES,
    now: Optional[datetime] = None,
) -> bool:
    """True when the session expires within ``buffer_minutes``"""
    now = now or utc_now()
    try:
        expires_at = isoparse(session.expires_at)
    except (TypeError, ValueError):
        return True
    return expires_at - now <= timedelta(minutes=buffer_minutes)


class SessionStore(Protocol):
    """Persistence for per-destination sessions"""

    async def load(self, destination: Destination) -> Optional[Session]: ...

    async def load_all(self) -> List[Session]: ...

    async def save(self, session: Session) -> None: ...

    def is_expired(self, session: Session, buffer_minutes: float) -> bool: ...

    async def update_error(self, destination: Destination, message: str) -> None: ...

    async def reset_errors(self, destination: Destination) -> None: ...


class _SessionStoreBase:
    """Shared health-tracking logic over load/save"""

    def __init__(self):
        self.lock = asyncio.Lock()

    def is_expired(self, session: Session, buffer_minutes: float) -> bool:
        return is_session_expired(session, buffer_minutes)

    async def update_error(self, destination: Destination, message: str) -> None:
        async with self.lock:
            session = await self.load(destination)
            if session is None:
                logger.debug(f"No session to record error on for {destination.value}")
                return

            session.error_count += 1
            session.last_error = message
            if session.error_count >= MAX_CONSECUTIVE_ERRORS:
                session.state = SessionState.ERROR
            await self.save(session)
            logger.debug(
                f"Session error recorded for {destination.value} "
                f"(count={session.error_count}): {message}"
            )

    async def reset_errors(self, destination: Destination) -> None:
        async with self.lock:
            session = await self.load(destination)
            if session is None:
                return
            if session.error_count == 0 and session.last_error is None:
                return

            session.error_count = 0
            session.last_error = None
            session.state = SessionState.ACTIVE
            await self.save(session)


class MemorySessionStore(_SessionStoreBase):
    """Simple in-memory store. Not persistent."""

    def __init__(self):
        super().__init__()
        self._sessions: Dict[Destination, Dict[str, Any]] = {}

    async def load(self, destination: Destination) -> Optional[Session]:
        data = self._sessions.get(destination)
        return Session.from_dict(data) if data else None

    async def load_all(self) -> List[Session]:
        return [Session.from_dict(d) for d in self._sessions.values()]

    async def save(self, session: Session) -> None:
        self._sessions[session.destination] = session.to_dict()


class JsonSessionStore(_SessionStoreBase):
    """One JSON document per destination under ``<data_dir>/sessions``"""

    def __init__(self, data_dir: Path):
        super().__init__()
        self.session_dir = data_dir / "sessions"
        self.session_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, destination: Destination) -> Path:
        return self.session_dir / f"{destination.value}.json"

    async def load(self, destination: Destination) -> Optional[Session]:
        path = self._path(destination)
        if not path.exists():
            logger.debug(f"No session found for {destination.value}")
            return None

        try:
            async with aiofiles.open(path, "rb") as f:
                data = orjson.loads(await f.read())
            return Session.from_dict(data)
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse session for {destination.value}: {e}")
            return None

    async def load_all(self) -> List[Session]:
        sessions = []
        for destination in Destination:
            session = await self.load(destination)
            if session:
                sessions.append(session)
        logger.debug(f"Loaded {len(sessions)} sessions")
        return sessions

    async def save(self, session: Session) -> None:
        path = self._path(session.destination)
        tmp = path.with_suffix(".tmp")

        async with aiofiles.open(tmp, "wb") as f:
            await f.write(orjson.dumps(session.to_dict(), option=orjson.OPT_INDENT_2))
        tmp.replace(path)

        logger.debug(f"💾 Saved session for {session.destination.value} ({session.state.value})")


# ---------------------------------------------------------------------------
# Cache store
# ---------------------------------------------------------------------------


class CacheStore(Protocol):
    """TTL cache used by the catalog layer"""

    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    async def set(self, key: str, data: Any, ttl_hours: float, source: str) -> None: ...


def _cache_entry(data: Any, ttl_hours: float, source: str) -> Dict[str, Any]:
    now = utc_now()
    return {
        "data": data,
        "source": source,
        "cached_at": to_iso(now),
        "expires_at": to_iso(now + timedelta(hours=ttl_hours)),
    }


def _is_fresh(entry: Dict[str, Any]) -> bool:
    try:
        return isoparse(entry["expires_at"]) > utc_now()
    except (KeyError, TypeError, ValueError):
        return False


class MemoryCacheStore:
    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry and _is_fresh(entry):
            return entry
        self._entries.pop(key, None)
        return None

    async def set(self, key: str, data: Any, ttl_hours: float, source: str) -> None:
        self._entries[key] = _cache_entry(data, ttl_hours, source)


class JsonCacheStore:
    """File-backed cache; expired entries are ignored on read"""

    def __init__(self, data_dir: Path):
        self.cache_dir = data_dir / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
        safe = key.replace(":", "_").replace("/", "_")
        return self.cache_dir / f"{safe}_{digest}.json"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None

        try:
            async with aiofiles.open(path, "rb") as f:
                entry = orjson.loads(await f.read())
        except orjson.JSONDecodeError as e:
            logger.warning(f"Corrupt cache entry {key}: {e}")
            return None

        if not _is_fresh(entry):
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry

    async def set(self, key: str, data: Any, ttl_hours: float, source: str) -> None:
        entry = _cache_entry(data, ttl_hours, source)
        async with aiofiles.open(self._path(key), "wb") as f:
            await f.write(orjson.dumps(entry))
        logger.debug(f"💾 Cached {key} ({source}, ttl={ttl_hours}h)")

"""Session lifecycle: browser-derived credentials per destination"""

import asyncio
from datetime import datetime
from typing import Dict, Optional

from loguru import logger

from .browser_backends import BrowserBackend, BrowserContextHandle
from .config import BEARER_COOKIE, FINDER_EXPIRY_COOKIE, ScraperConfig
from .exceptions import CredentialEstablishmentError
from .models import (
    Destination,
    Session,
    SessionCookie,
    SessionState,
    SessionStatus,
)
from .storage import SessionStore
from .token_extractor import compute_expiration, extract_tokens, to_iso, utc_now

READY_COOKIES = (BEARER_COOKIE, FINDER_EXPIRY_COOKIE)


class SessionManager:
    """
    Establishes, caches and refreshes one credentialed session per destination.

    Sessions come from a headless browser visiting the destination's landing
    page. Concurrent refreshes for the same destination share a single
    in-flight task, so the browser is never driven twice for one destination.
    Establishment failures are recorded as health data and surface as None.
    """

    def __init__(
        self,
        store: SessionStore,
        backend: BrowserBackend,
        config: Optional[ScraperConfig] = None,
    ):
        """
        Initialize session manager.

        Args:
            store: Session persistence collaborator
            backend: Browser backend owning the shared browser process
            config: Runtime configuration
        """
        self.store = store
        self.backend = backend
        self.config = config or ScraperConfig()

        self._refresh_tasks: Dict[Destination, "asyncio.Task[Optional[Session]]"] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Load persisted sessions and report which ones are stale"""
        if self._initialized:
            return

        logger.info("Initializing session manager")
        sessions = await self.store.load_all()

        for session in sessions:
            if self.store.is_expired(session, self.config.refresh_buffer_minutes):
                logger.info(
                    f"Session for {session.destination.value} needs refresh "
                    f"(expires {session.expires_at})"
                )
                await self._mark_expired(session)
            else:
                logger.debug(
                    f"Session for {session.destination.value} valid until {session.expires_at}"
                )

        self._initialized = True
        logger.info(f"Session manager initialized ({len(sessions)} sessions)")

    async def get_session(self, destination: Destination) -> Optional[Session]:
        """
        Get a valid session, establishing a new one if needed.

        Returns:
            The session, or None if establishment failed (use the fallback source)
        """
        session = await self.store.load(destination)
        if session and not self.store.is_expired(
            session, self.config.refresh_buffer_minutes
        ):
            return session
        if session:
            await self._mark_expired(session)

        return await self.refresh_session(destination)

    async def _mark_expired(self, session: Session) -> None:
        """Persist EXPIRED on a stale ACTIVE session; ERROR is left as is"""
        if session.state == SessionState.ACTIVE:
            session.state = SessionState.EXPIRED
            await self.store.save(session)

    async def refresh_session(self, destination: Destination) -> Optional[Session]:
        """Establish a fresh session, joining an in-flight refresh if one exists"""
        task = self._refresh_tasks.get(destination)
        if task is not None:
            logger.debug(f"Joining in-flight refresh for {destination.value}")
        else:
            task = asyncio.ensure_future(self._run_refresh(destination))
            self._refresh_tasks[destination] = task

        # A cancelled waiter must not cancel the shared refresh
        return await asyncio.shield(task)

    async def _run_refresh(self, destination: Destination) -> Optional[Session]:
        try:
            return await self._establish_session(destination)
        finally:
            if self._refresh_tasks.get(destination) is asyncio.current_task():
                del self._refresh_tasks[destination]

    async def get_auth_headers(self, destination: Destination) -> Dict[str, str]:
        """Headers for the credentialed API; empty when no session is available"""
        session = await self.get_session(destination)
        if not session:
            return {}

        headers = {
            "Cookie": "; ".join(f"{c.name}={c.value}" for c in session.cookies),
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if session.tokens.csrf_token:
            headers["X-CSRF-Token"] = session.tokens.csrf_token

        return headers

    async def report_success(self, destination: Destination) -> None:
        """Reset error tracking after a successful API call"""
        await self.store.reset_errors(destination)

    async def report_error(self, destination: Destination, error: BaseException) -> None:
        """Record an API or establishment failure for health tracking"""
        await self.store.update_error(destination, str(error) or type(error).__name__)

    async def get_session_status(self, destination: Destination) -> SessionStatus:
        session = await self.store.load(destination)
        if not session:
            return SessionStatus(
                has_session=False, is_valid=False, expires_at=None, error_count=0
            )

        return SessionStatus(
            has_session=True,
            is_valid=not self.store.is_expired(
                session, self.config.refresh_buffer_minutes
            ),
            expires_at=session.expires_at,
            error_count=session.error_count,
            last_error=session.last_error,
        )

    async def shutdown(self) -> None:
        """Release the shared browser"""
        logger.info("Shutting down session manager")
        await self.backend.close()

    # --- Establishment ---

    async def _establish_session(self, destination: Destination) -> Optional[Session]:
        logger.info(f"🔐 Establishing session for {destination.value}")
        start_time = datetime.now()

        try:
            handle = await self.backend.new_context(
                locale=self.config.locales[destination],
                timezone_id=self.config.timezones[destination],
                user_agent=self.config.user_agent,
            )
            try:
                await handle.goto(
                    self.config.landing_urls[destination],
                    timeout=self.config.navigation_timeout,
                )
                await self._accept_cookie_consent(handle)
                await self._wait_for_session_cookies(handle)

                session = await self._extract_session(handle, destination)
                await self.store.save(session)
            finally:
                await handle.close()

        except Exception as e:
            logger.error(f"❌ Failed to establish session for {destination.value}: {e}")
            try:
                await self.report_error(destination, e)
            except Exception as report_exc:
                logger.warning(f"Could not record session error: {report_exc}")
            return None

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.success(
            f"✅ Session for {destination.value} established in {elapsed:.1f}s "
            f"({len(session.cookies)} cookies, expires {session.expires_at})"
        )
        return session

    async def _accept_cookie_consent(self, handle: BrowserContextHandle) -> bool:
        """Dismiss the consent banner if one shows up"""
        await handle.pause(self.config.consent_wait)

        selector = await handle.click_first(self.config.consent_selectors)
        if selector:
            logger.debug(f"   ✓ Cookie consent accepted ({selector})")
            await handle.pause(1.0)
            return True

        logger.debug("   No cookie consent banner found")
        return False

    async def _wait_for_session_cookies(self, handle: BrowserContextHandle) -> bool:
        """Poll for a credential-ready cookie; proceed either way"""
        attempts = self.config.cookie_poll_attempts

        for attempt in range(attempts):
            names = {c["name"] for c in await handle.cookies()}
            ready = next((n for n in READY_COOKIES if n in names), None)
            if ready:
                logger.debug(f"   ✓ {ready} cookie detected (attempt {attempt + 1})")
                return True

            await asyncio.sleep(self.config.cookie_poll_interval)

        logger.warning(
            f"⚠️ Auth cookies not detected after {attempts} attempts, "
            "continuing with the cookies we have"
        )
        return False

    async def _extract_session(
        self, handle: BrowserContextHandle, destination: Destination
    ) -> Session:
        cookies = [SessionCookie.from_browser(c) for c in await handle.cookies()]
        if not cookies:
            raise CredentialEstablishmentError("Browser produced no cookies")

        local_storage = await handle.local_storage()
        tokens = extract_tokens(cookies, local_storage)
        expires_at = compute_expiration(
            cookies, default_hours=self.config.default_session_hours
        )

        now = to_iso(utc_now())
        return Session(
            destination=destination,
            state=SessionState.ACTIVE,
            cookies=cookies,
            tokens=tokens,
            created_at=now,
            refreshed_at=now,
            expires_at=expires_at,
            error_count=0,
        )

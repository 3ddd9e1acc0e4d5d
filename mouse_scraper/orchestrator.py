"""Primary/fallback acquisition with explicit state transitions"""

from typing import List, Optional, Protocol

from loguru import logger

from .config import ScraperConfig
from .exceptions import AuthClassifiedError
from .models import (
    AcquisitionResult,
    AcquisitionState,
    DataSource,
    Destination,
    EntityKind,
    ErrorType,
    NormalizedEntity,
)
from .retry import classify_error
from .session_manager import SessionManager


class DataClient(Protocol):
    async def fetch(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str] = None,
    ) -> List[NormalizedEntity]: ...


def is_auth_failure(error: BaseException) -> bool:
    return isinstance(error, AuthClassifiedError) or (
        classify_error(error) == ErrorType.AUTH_FAILURE
    )


class AcquisitionOrchestrator:
    """
    Fetches one entity family, primary source first.

    NOT_ATTEMPTED -> PRIMARY_IN_FLIGHT -> PRIMARY_SUCCEEDED
                                       -> PRIMARY_AUTH_FAILED -> FALLBACK_IN_FLIGHT
                                              -> FALLBACK_SUCCEEDED | FALLBACK_FAILED
                                       -> PRIMARY_OTHER_FAILED

    Only auth-classified primary failures go to the fallback source unless
    ``config.fallback_on_any_error`` is set. Health notifications to the
    session manager never affect the outcome.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        primary: DataClient,
        fallback: DataClient,
        config: Optional[ScraperConfig] = None,
    ):
        self.session_manager = session_manager
        self.primary = primary
        self.fallback = fallback
        self.config = config or ScraperConfig()

    async def fetch(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str] = None,
    ) -> AcquisitionResult:
        """
        Run one acquisition attempt.

        Returns:
            AcquisitionResult in PRIMARY_SUCCEEDED or FALLBACK_SUCCEEDED

        Raises:
            The primary error (PRIMARY_OTHER_FAILED) or the fallback error
            (FALLBACK_FAILED)
        """
        label = f"{kind.value}/{destination.value}" + (f"/{park_id}" if park_id else "")
        state = self._transition(
            label, AcquisitionState.NOT_ATTEMPTED, AcquisitionState.PRIMARY_IN_FLIGHT
        )

        try:
            entities = await self.primary.fetch(kind, destination, park_id)
        except Exception as primary_error:
            if not self._should_fall_back(primary_error):
                self._transition(label, state, AcquisitionState.PRIMARY_OTHER_FAILED)
                await self._notify_error(destination, primary_error)
                logger.error(f"❌ Primary fetch failed for {label}: {primary_error}")
                raise

            state = self._transition(label, state, AcquisitionState.PRIMARY_AUTH_FAILED)
            await self._notify_error(destination, primary_error)
            logger.warning(
                f"⚠️ Primary source unavailable for {label} "
                f"({primary_error}), using ThemeParks.wiki"
            )
            return await self._run_fallback(
                kind, destination, park_id, label, state, primary_error
            )

        self._transition(label, state, AcquisitionState.PRIMARY_SUCCEEDED)
        await self._notify_success(destination)
        return AcquisitionResult(
            entities=entities,
            source=DataSource.DISNEY,
            state=AcquisitionState.PRIMARY_SUCCEEDED,
        )

    async def get_attractions(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return (await self.fetch(EntityKind.ATTRACTIONS, destination, park_id)).entities

    async def get_dining(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return (await self.fetch(EntityKind.DINING, destination, park_id)).entities

    async def get_shows(
        self, destination: Destination, park_id: Optional[str] = None
    ) -> List[NormalizedEntity]:
        return (await self.fetch(EntityKind.SHOWS, destination, park_id)).entities

    async def _run_fallback(
        self,
        kind: EntityKind,
        destination: Destination,
        park_id: Optional[str],
        label: str,
        state: AcquisitionState,
        primary_error: Exception,
    ) -> AcquisitionResult:
        state = self._transition(label, state, AcquisitionState.FALLBACK_IN_FLIGHT)
        try:
            entities = await self.fallback.fetch(kind, destination, park_id)
        except Exception as fallback_error:
            self._transition(label, state, AcquisitionState.FALLBACK_FAILED)
            logger.error(
                f"❌ Fallback fetch failed for {label}: {fallback_error} "
                f"(primary: {primary_error})"
            )
            raise

        self._transition(label, state, AcquisitionState.FALLBACK_SUCCEEDED)
        return AcquisitionResult(
            entities=entities,
            source=DataSource.THEMEPARKS_WIKI,
            state=AcquisitionState.FALLBACK_SUCCEEDED,
            error=primary_error,
        )

    def _should_fall_back(self, error: Exception) -> bool:
        return self.config.fallback_on_any_error or is_auth_failure(error)

    @staticmethod
    def _transition(
        label: str, current: AcquisitionState, new: AcquisitionState
    ) -> AcquisitionState:
        logger.debug(f"   {label}: {current.value} → {new.value}")
        return new

    async def _notify_success(self, destination: Destination) -> None:
        try:
            await self.session_manager.report_success(destination)
        except Exception as e:
            logger.warning(f"Could not record success for {destination.value}: {e}")

    async def _notify_error(self, destination: Destination, error: Exception) -> None:
        try:
            await self.session_manager.report_error(destination, error)
        except Exception as e:
            logger.warning(f"Could not record error for {destination.value}: {e}")

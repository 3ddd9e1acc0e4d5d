import pytest

from mouse_scraper.config import ScraperConfig
from mouse_scraper.exceptions import AuthClassifiedError, TransientUpstreamError
from mouse_scraper.models import (
    AcquisitionState,
    DataSource,
    Destination,
    EntityKind,
)
from mouse_scraper.orchestrator import AcquisitionOrchestrator


class FakeClient:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else []
        self.error = error
        self.calls = []

    async def fetch(self, kind, destination, park_id=None):
        self.calls.append((kind, destination, park_id))
        if self.error:
            raise self.error
        return self.result


class FakeSessionManager:
    def __init__(self, broken=False):
        self.broken = broken
        self.successes = []
        self.errors = []

    async def report_success(self, destination):
        if self.broken:
            raise OSError("disk full")
        self.successes.append(destination)

    async def report_error(self, destination, error):
        if self.broken:
            raise OSError("disk full")
        self.errors.append((destination, error))


def make_orchestrator(primary, fallback, sessions=None, **config):
    return AcquisitionOrchestrator(
        sessions or FakeSessionManager(), primary, fallback, ScraperConfig(**config)
    )


@pytest.mark.asyncio
async def test_primary_success_reports_health():
    sessions = FakeSessionManager()
    primary = FakeClient(result=["space-mountain"])
    fallback = FakeClient(result=["unused"])
    orchestrator = make_orchestrator(primary, fallback, sessions)

    result = await orchestrator.fetch(EntityKind.ATTRACTIONS, Destination.WDW, "80007944")

    assert result.entities == ["space-mountain"]
    assert result.source == DataSource.DISNEY
    assert result.state == AcquisitionState.PRIMARY_SUCCEEDED
    assert primary.calls == [(EntityKind.ATTRACTIONS, Destination.WDW, "80007944")]
    assert fallback.calls == []
    assert sessions.successes == [Destination.WDW]


@pytest.mark.asyncio
async def test_auth_failure_falls_back():
    sessions = FakeSessionManager()
    auth_error = AuthClassifiedError("HTTP 401", status_code=401)
    primary = FakeClient(error=auth_error)
    fallback = FakeClient(result=["wiki-entity"])
    orchestrator = make_orchestrator(primary, fallback, sessions)

    result = await orchestrator.fetch(EntityKind.DINING, Destination.DLR)

    assert result.entities == ["wiki-entity"]
    assert result.source == DataSource.THEMEPARKS_WIKI
    assert result.state == AcquisitionState.FALLBACK_SUCCEEDED
    assert result.error is auth_error
    assert fallback.calls == [(EntityKind.DINING, Destination.DLR, None)]
    assert sessions.errors == [(Destination.DLR, auth_error)]


@pytest.mark.asyncio
async def test_server_error_propagates_without_fallback():
    sessions = FakeSessionManager()
    primary = FakeClient(error=TransientUpstreamError("HTTP 500", status_code=500))
    fallback = FakeClient(result=["wiki-entity"])
    orchestrator = make_orchestrator(primary, fallback, sessions)

    with pytest.raises(TransientUpstreamError):
        await orchestrator.fetch(EntityKind.SHOWS, Destination.WDW)

    assert fallback.calls == []
    assert len(sessions.errors) == 1


@pytest.mark.asyncio
async def test_fallback_on_any_error_widens_policy():
    primary = FakeClient(error=TransientUpstreamError("HTTP 500", status_code=500))
    fallback = FakeClient(result=["wiki-entity"])
    orchestrator = make_orchestrator(primary, fallback, fallback_on_any_error=True)

    result = await orchestrator.fetch(EntityKind.SHOWS, Destination.WDW)

    assert result.source == DataSource.THEMEPARKS_WIKI
    assert len(fallback.calls) == 1


@pytest.mark.asyncio
async def test_fallback_failure_raises_fallback_error():
    primary = FakeClient(error=AuthClassifiedError("No valid session", status_code=401))
    fallback = FakeClient(error=TransientUpstreamError("wiki down", status_code=502))
    orchestrator = make_orchestrator(primary, fallback)

    with pytest.raises(TransientUpstreamError, match="wiki down"):
        await orchestrator.fetch(EntityKind.ATTRACTIONS, Destination.WDW)


@pytest.mark.asyncio
async def test_health_notification_failures_do_not_change_outcome():
    sessions = FakeSessionManager(broken=True)

    ok = make_orchestrator(FakeClient(result=["a"]), FakeClient(), sessions)
    assert await ok.get_attractions(Destination.WDW) == ["a"]

    fell_back = make_orchestrator(
        FakeClient(error=AuthClassifiedError("forbidden", status_code=403)),
        FakeClient(result=["b"]),
        sessions,
    )
    assert await fell_back.get_dining(Destination.WDW) == ["b"]

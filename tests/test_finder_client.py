import pytest

from mouse_scraper.config import ScraperConfig
from mouse_scraper.exceptions import AuthClassifiedError, TransientUpstreamError
from mouse_scraper.finder_client import FinderClient, static_destinations
from mouse_scraper.models import Destination, EntityKind, EntityType


class FakeSessionManager:
    def __init__(self, headers):
        self.headers = headers

    async def get_auth_headers(self, destination):
        return dict(self.headers)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content_type="application/json"):
        self.status_code = status_code
        self._payload = payload
        self.headers = {"content-type": content_type}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


HEADERS = {"Cookie": "__d=abc; SWID={x}", "Accept": "application/json"}


def make_client(monkeypatch, responses, headers=HEADERS):
    """FinderClient whose HTTP layer replays ``responses`` in order"""
    client = FinderClient(
        FakeSessionManager(headers), ScraperConfig(max_retries=2, base_delay=0, max_jitter=0)
    )
    calls = []

    async def fake_send(url, sent_headers):
        calls.append((url, sent_headers))
        return responses[min(len(calls), len(responses)) - 1]

    monkeypatch.setattr(client, "_send", fake_send)
    return client, calls


@pytest.mark.asyncio
async def test_missing_credentials_fail_before_any_request(monkeypatch):
    client, calls = make_client(monkeypatch, [FakeResponse()], headers={})

    with pytest.raises(AuthClassifiedError) as exc_info:
        await client.get_attractions(Destination.WDW)

    assert exc_info.value.status_code == 401
    assert calls == []


@pytest.mark.asyncio
async def test_401_is_auth_classified_and_not_retried(monkeypatch):
    client, calls = make_client(monkeypatch, [FakeResponse(status_code=401)])

    with pytest.raises(AuthClassifiedError):
        await client.get_dining(Destination.DLR)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_500_is_retried_then_propagated(monkeypatch):
    client, calls = make_client(monkeypatch, [FakeResponse(status_code=500)])

    with pytest.raises(TransientUpstreamError) as exc_info:
        await client.get_attractions(Destination.WDW)

    assert exc_info.value.status_code == 500
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_login_page_response_is_auth_classified(monkeypatch):
    client, calls = make_client(
        monkeypatch, [FakeResponse(payload={}, content_type="text/html; charset=utf-8")]
    )

    with pytest.raises(AuthClassifiedError):
        await client.get_shows(Destination.WDW)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_success_normalizes_results(monkeypatch):
    payload = {
        "results": [
            {
                "id": "80010190",
                "name": "Space Mountain",
                "ancestorThemeParkId": "80007944",
                "heightRequirement": "44 in",
                "lightningLane": True,
            },
            {"id": "broken"},
        ]
    }
    client, calls = make_client(
        monkeypatch, [FakeResponse(status_code=503), FakeResponse(payload=payload)]
    )

    entities = await client.fetch(EntityKind.ATTRACTIONS, Destination.WDW, "80007944")

    url, sent_headers = calls[-1]
    assert url.endswith("/list/ancestor/80007944/type/attraction")
    assert sent_headers["Cookie"] == HEADERS["Cookie"]
    assert len(entities) == 1
    assert entities[0].entity_type == EntityType.ATTRACTION
    assert entities[0].park_name == "Magic Kingdom Park"
    assert entities[0].height_requirement.centimeters == 112
    assert entities[0].lightning_lane.tier == "multi-pass"


@pytest.mark.asyncio
async def test_destination_wide_shows_endpoint(monkeypatch):
    client, calls = make_client(monkeypatch, [FakeResponse(payload={"results": []})])

    assert await client.get_shows(Destination.DLR) == []
    assert calls[0][0] == (
        "https://disneyland.disney.go.com/finder/api/v1/explorer-service"
        "/list/destination/dlr/type/entertainment"
    )


def test_static_destinations():
    records = {r.id: r for r in static_destinations()}

    assert set(records) == {Destination.WDW, Destination.DLR}
    assert [p.id for p in records[Destination.DLR].parks] == ["330339", "336894"]
    assert records[Destination.WDW].timezone == "America/New_York"

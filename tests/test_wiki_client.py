import httpx
import pytest

from mouse_scraper.config import WIKI_BASE_URL, WIKI_DESTINATION_UUIDS, ScraperConfig
from mouse_scraper.exceptions import TransientUpstreamError
from mouse_scraper.models import Destination, EntityType
from mouse_scraper.wiki_client import WikiClient

MAGIC_KINGDOM = "75ea578a-adc8-4116-a54d-dccb60765ef9"
EPCOT = "47f90d2c-e191-4239-a466-5892ef59a88b"

WDW_CHILDREN = [
    {"id": MAGIC_KINGDOM, "name": "Magic Kingdom Park", "entityType": "PARK"},
    {"id": EPCOT, "name": "EPCOT", "entityType": "PARK"},
    {
        "id": "space-mountain",
        "name": "Space Mountain",
        "entityType": "ATTRACTION",
        "parentId": MAGIC_KINGDOM,
        "tags": [{"key": "heightRequirement", "value": "44 in"}],
    },
    {
        "id": "test-track",
        "name": "Test Track",
        "entityType": "ATTRACTION",
        "parentId": EPCOT,
        "tags": [{"key": "singleRider", "value": "true"}],
    },
    {
        "id": "happily-ever-after",
        "name": "Happily Ever After",
        "entityType": "SHOW",
        "parentId": MAGIC_KINGDOM,
        "tags": [{"key": "showType", "value": "Fireworks"}],
    },
]

DLR_CHILDREN = [
    {
        "id": "blue-bayou",
        "name": "Blue Bayou Restaurant",
        "entityType": "RESTAURANT",
        "parentId": "disneyland",
        "tags": [{"key": "serviceType", "value": "Table Service"}],
    },
]


def make_client(handler, **config):
    http = httpx.AsyncClient(base_url=WIKI_BASE_URL, transport=httpx.MockTransport(handler))
    settings = {"max_retries": 1, "base_delay": 0, "max_jitter": 0}
    settings.update(config)
    return WikiClient(ScraperConfig(**settings), http_client=http)


def catalog_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith(f"/entity/{WIKI_DESTINATION_UUIDS[Destination.WDW]}/children"):
        return httpx.Response(200, json={"children": WDW_CHILDREN})
    if request.url.path.endswith(f"/entity/{WIKI_DESTINATION_UUIDS[Destination.DLR]}/children"):
        return httpx.Response(200, json={"children": DLR_CHILDREN})
    if request.url.path.endswith("/destinations"):
        return httpx.Response(
            200,
            json={
                "destinations": [
                    {
                        "id": WIKI_DESTINATION_UUIDS[Destination.WDW],
                        "name": "Walt Disney World® Resort",
                        "parks": [
                            {"id": MAGIC_KINGDOM, "name": "Magic Kingdom Park"},
                            {"id": EPCOT, "name": "EPCOT"},
                        ],
                    }
                ]
            },
        )
    return httpx.Response(404)


@pytest.mark.asyncio
async def test_attractions_filtered_by_type_and_park():
    client = make_client(catalog_handler)

    everything = await client.get_attractions(Destination.WDW)
    magic_kingdom = await client.get_attractions(Destination.WDW, "80007944")

    assert [e.id for e in everything] == ["space-mountain", "test-track"]
    assert [e.id for e in magic_kingdom] == ["space-mountain"]
    assert magic_kingdom[0].park_id == "80007944"
    assert magic_kingdom[0].park_name == "Magic Kingdom Park"
    assert everything[1].park_id == "80007838"
    assert magic_kingdom[0].height_requirement.inches == 44
    assert everything[1].single_rider is True


@pytest.mark.asyncio
async def test_shows_and_dining():
    client = make_client(catalog_handler)

    shows = await client.get_shows(Destination.WDW)
    dining = await client.get_dining(Destination.DLR)

    assert shows[0].show_type == "fireworks"
    assert shows[0].entity_type == EntityType.SHOW
    assert dining[0].service_type == "table-service"
    assert dining[0].destination_id == Destination.DLR


@pytest.mark.asyncio
async def test_get_entity_by_id_searches_all_destinations():
    client = make_client(catalog_handler)

    entity = await client.get_entity_by_id("blue-bayou")

    assert entity.name == "Blue Bayou Restaurant"
    assert entity.destination_id == Destination.DLR
    assert await client.get_entity_by_id("nope") is None


@pytest.mark.asyncio
async def test_get_destinations():
    client = make_client(catalog_handler)

    records = await client.get_destinations()

    assert len(records) == 1
    assert records[0].id == Destination.WDW
    assert [p.id for p in records[0].parks] == ["80007944", "80007838"]
    assert [p.slug for p in records[0].parks] == ["magic-kingdom", "epcot"]


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised():
    calls = []

    def failing(request):
        calls.append(request.url.path)
        return httpx.Response(502)

    client = make_client(failing)

    with pytest.raises(TransientUpstreamError) as exc_info:
        await client.get_dining(Destination.WDW)

    assert exc_info.value.status_code == 502
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_transport_errors_become_transient():
    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(refused, max_retries=0)

    with pytest.raises(TransientUpstreamError):
        await client.get_shows(Destination.DLR)


@pytest.mark.asyncio
async def test_park_ids_come_from_external_ids():
    children = [
        {
            "id": "wiki-mk",
            "name": "Magic Kingdom Park",
            "entityType": "PARK",
            "externalId": "80007944;entityType=theme-park",
        },
        {"id": "a1", "name": "Jungle Cruise", "entityType": "ATTRACTION", "parentId": "wiki-mk"},
        {"id": "a2", "name": "Mystery Ride", "entityType": "ATTRACTION", "parentId": "wiki-??"},
    ]

    def handler(request):
        return httpx.Response(200, json={"children": children})

    client = make_client(handler)

    in_park = await client.get_attractions(Destination.WDW, "80007944")
    everything = await client.get_attractions(Destination.WDW)

    assert [e.id for e in in_park] == ["a1"]
    assert in_park[0].park_id == "80007944"
    assert in_park[0].park_name == "Magic Kingdom Park"
    assert everything[1].park_id is None
    assert everything[1].park_name is None
    assert await client.get_attractions(Destination.WDW, "wiki-mk") == []

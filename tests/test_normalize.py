from mouse_scraper import finder_client, wiki_client
from mouse_scraper.models import (
    Destination,
    EntityKind,
    HeightRequirement,
    LightningLaneInfo,
    PriceRange,
)
from mouse_scraper.normalize import (
    parse_height,
    parse_meal_periods,
    parse_service_type,
    parse_show_type,
    parse_thrill_level,
    slugify,
)

WDW_PARKS = finder_client.park_names(Destination.WDW)


def finder_ride(**fields):
    raw = {
        "id": "80010190",
        "name": "Space Mountain",
        "ancestorThemeParkId": "80007944",
        "urlFriendlyId": "space-mountain",
        "links": {"self": "https://disneyworld.disney.go.com/attractions/magic-kingdom/space-mountain/"},
    }
    raw.update(fields)
    return raw


def wiki_ride(*tags, **fields):
    raw = {
        "id": "b2260923-9315-40fd-9c6b-44dd811dbe64",
        "name": "Space Mountain",
        "entityType": "ATTRACTION",
        "parentId": "75ea578a-adc8-4116-a54d-dccb60765ef9",
        "tags": [{"key": k, "value": v} for k, v in tags],
    }
    raw.update(fields)
    return raw


def test_height_parity_between_sources():
    primary = finder_client.normalize_attraction(
        finder_ride(heightRequirement="44 in"), Destination.WDW, WDW_PARKS
    )
    fallback = wiki_client.normalize_attraction(
        wiki_ride(("heightRequirement", "44 in")), Destination.WDW, {}
    )

    expected = HeightRequirement(inches=44, centimeters=112, description="44 in")
    assert primary.height_requirement == expected
    assert fallback.height_requirement == expected


def test_lightning_lane_and_flags_parity():
    primary = finder_client.normalize_attraction(
        finder_ride(lightningLaneIndividual=True, singleRider=True, thrillLevel="Thrill Ride"),
        Destination.WDW,
        WDW_PARKS,
    )
    fallback = wiki_client.normalize_attraction(
        wiki_ride(
            ("lightningLaneIndividual", "true"),
            ("singleRider", "true"),
            ("thrillLevel", "Thrill Ride"),
        ),
        Destination.WDW,
        {},
    )

    for entity in (primary, fallback):
        assert entity.lightning_lane == LightningLaneInfo(tier="individual", available=True)
        assert entity.single_rider is True
        assert entity.thrill_level == "thrill"
        # Nothing said about these, so unknown rather than False
        assert entity.rider_swap is None
        assert entity.virtual_queue is None


def test_primary_common_fields():
    entity = finder_client.normalize_attraction(
        finder_ride(facets=[{"id": "thrill-rides"}, {"id": "dark"}], geniePlus=True),
        Destination.WDW,
        WDW_PARKS,
    )

    assert entity.slug == "space-mountain"
    assert entity.park_name == "Magic Kingdom Park"
    assert entity.url.endswith("/space-mountain/")
    assert entity.tags == ["thrill-rides", "dark"]
    assert entity.lightning_lane.tier == "multi-pass"


def test_to_dict_keeps_unknown_fields_as_none():
    entity = finder_client.normalize_attraction(finder_ride(), Destination.WDW, WDW_PARKS)

    data = entity.to_dict()

    assert data["entity_type"] == "ATTRACTION"
    assert data["destination_id"] == "wdw"
    assert "height_requirement" in data and data["height_requirement"] is None
    assert "wheelchair_accessible" in data and data["wheelchair_accessible"] is None


def test_malformed_field_degrades_to_none():
    entity = finder_client.normalize_attraction(
        finder_ride(coordinates={"latitude": "north", "longitude": 1}, heightRequirement=44),
        Destination.WDW,
        WDW_PARKS,
    )

    assert entity.location is None
    assert entity.height_requirement is None
    assert entity.name == "Space Mountain"


def test_records_without_id_or_name_are_skipped():
    entities = finder_client.normalize_results(
        EntityKind.ATTRACTIONS,
        [finder_ride(), {"id": "2"}, {"name": "Nameless"}, "garbage"],
        Destination.WDW,
    )

    assert [e.id for e in entities] == ["80010190"]


def test_wiki_dining_tags():
    raw = {
        "id": "r1",
        "name": "Be Our Guest Restaurant",
        "entityType": "RESTAURANT",
        "tags": [
            {"key": "serviceType", "value": "Table Service"},
            {"key": "dinner", "value": "true"},
            {"key": "breakfast", "value": "true"},
            {"key": "cuisine", "value": "French, American"},
            {"key": "priceRange", "value": "$$$ ($35 to $59.99 per adult)"},
            {"key": "reservationsRequired", "value": "true"},
        ],
    }

    dining = wiki_client.normalize_dining(raw, Destination.WDW, {})

    assert dining.service_type == "table-service"
    assert dining.meal_periods == ["breakfast", "dinner"]
    assert dining.cuisine_types == ["French", "American"]
    assert dining.price_range == PriceRange(
        symbol="$$$", description="$$$ ($35 to $59.99 per adult)"
    )
    assert dining.reservations_required is True
    assert dining.reservations_accepted is True
    assert dining.mobile_order is None


def test_wiki_must_transfer_means_not_wheelchair_accessible():
    entity = wiki_client.normalize_attraction(
        wiki_ride(("mustTransfer", "true")), Destination.WDW, {}
    )
    assert entity.wheelchair_accessible is False


def test_parse_height_variants():
    assert parse_height("107 cm (42 in)") == HeightRequirement(42, 107, "107 cm (42 in)")
    assert parse_height("102 cm") == HeightRequirement(40, 102, "102 cm")
    assert parse_height("Any height") is None
    assert parse_height(None) is None


def test_category_parsers():
    assert parse_thrill_level("Family") == "family"
    assert parse_thrill_level("Moderate") == "moderate"
    assert parse_thrill_level("Slow Rides") is None
    assert parse_service_type("Quick Service") == "quick-service"
    assert parse_service_type("Buffet") is None
    assert parse_show_type(None, "Happily Ever After Fireworks") == "fireworks"
    assert parse_show_type("Parade", "Festival of Fantasy") == "parade"
    assert parse_show_type(None, "Meet Mickey Mouse") == "character-meet"
    assert parse_show_type(None, "Fantasmic!") == "other"
    assert parse_meal_periods(["Dinner", "snacks", "brunch"]) == ["dinner", "snacks"]
    assert slugify("Disney's Hollywood Studios") == "disney-s-hollywood-studios"

"""Field parsers shared by the finder and wiki normalizers

Both sources funnel through these so that the same underlying fact yields the
same normalized value regardless of where it came from.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from loguru import logger

from .exceptions import NormalizationError
from .models import GeoLocation, HeightRequirement, LightningLaneInfo, PriceRange

T = TypeVar("T")

_INCHES = re.compile(r"(\d+)\s*(?:in\b|inch|\")", re.IGNORECASE)
_CENTIMETERS = re.compile(r"(\d+)\s*cm\b", re.IGNORECASE)
_PRICE_TIER = re.compile(r"\s*(\$+)")

MEAL_PERIODS = ("breakfast", "lunch", "dinner", "snacks")


def safe_field(field_name: str, parser: Callable[..., T], *args) -> Optional[T]:
    """Run a field parser; a malformed value degrades to None"""
    try:
        return parser(*args)
    except (NormalizationError, TypeError, ValueError, KeyError, AttributeError) as e:
        logger.debug(f"   Dropping field {field_name}: {e}")
        return None


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


def parse_height(text: Optional[str]) -> Optional[HeightRequirement]:
    """Parse strings like "44 in" or "112 cm" """
    if not text:
        return None
    if not isinstance(text, str):
        raise NormalizationError("height_requirement", f"expected text, got {text!r}")

    match = _INCHES.search(text)
    if match:
        inches = int(match.group(1))
        return HeightRequirement(
            inches=inches, centimeters=round(inches * 2.54), description=text
        )

    match = _CENTIMETERS.search(text)
    if match:
        cm = int(match.group(1))
        return HeightRequirement(
            inches=round(cm / 2.54), centimeters=cm, description=text
        )

    return None


def parse_thrill_level(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lower = text.lower()
    if "thrill" in lower:
        return "thrill"
    if "moderate" in lower:
        return "moderate"
    if "family" in lower or "all ages" in lower:
        return "family"
    return None


def parse_service_type(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lower = text.lower()
    if "table" in lower:
        return "table-service"
    if "quick" in lower:
        return "quick-service"
    if "character" in lower:
        return "character-dining"
    if "fine" in lower or "signature" in lower:
        return "fine-signature-dining"
    if "lounge" in lower:
        return "lounge"
    if "cart" in lower:
        return "food-cart"
    return None


def parse_show_type(text: Optional[str], name: str = "") -> str:
    show_type = (text or "").lower()
    name_lower = name.lower()

    if "firework" in show_type or "firework" in name_lower:
        return "fireworks"
    if "parade" in show_type or "parade" in name_lower:
        return "parade"
    if (
        "character" in show_type
        or "meet" in show_type
        or "meet" in name_lower
        or "character greeting" in name_lower
    ):
        return "character-meet"
    if (
        "stage" in show_type
        or "theater" in show_type
        or "show" in name_lower
        or "musical" in name_lower
    ):
        return "stage-show"
    return "other"


def parse_lightning_lane(
    individual: bool, multi_pass: bool
) -> Optional[LightningLaneInfo]:
    if individual:
        return LightningLaneInfo(tier="individual", available=True)
    if multi_pass:
        return LightningLaneInfo(tier="multi-pass", available=True)
    return None


def parse_price_range(text: Optional[str]) -> Optional[PriceRange]:
    """Leading dollar signs are the tier; the rest is description"""
    if not text:
        return None
    match = _PRICE_TIER.match(text)
    symbol = match.group(1)[:4] if match else "$"
    return PriceRange(symbol=symbol, description=text)


def parse_meal_periods(values: Iterable[str]) -> List[str]:
    lowered = {str(v).strip().lower() for v in values}
    return [p for p in MEAL_PERIODS if p in lowered]


def parse_location(raw: Optional[Dict[str, Any]]) -> Optional[GeoLocation]:
    if not raw:
        return None
    return GeoLocation(
        latitude=float(raw["latitude"]), longitude=float(raw["longitude"])
    )


def optional_bool(value: Any) -> Optional[bool]:
    """None stays None (unknown); anything else is coerced"""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)

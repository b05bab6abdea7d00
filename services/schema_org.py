"""schema.org Event parsing and fetching.

Turns the JSON-LD published on ticket pages into a flat SchemaOrgData
projection. Parsing never raises: missing or unusable markup is reported
through the result status instead.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from models import SchemaOrgData, SchemaOrgStatus
from services.errors import HttpError
from services.html_parser import extract_metadata, find_event_node
from services.http import Fetcher, is_internal_url

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 2000

STATE_CODES: dict[str, str] = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY", "DISTRICT OF COLUMBIA": "DC",
}


@dataclass
class ParseResult:
    status: SchemaOrgStatus
    data: SchemaOrgData | None = None
    raw_json_ld: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == "available"


def sanitize_string(value: Any, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    if max_length and len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


def sanitize_url(value: Any) -> str | None:
    text = sanitize_string(value)
    if not text:
        return None
    parsed = urlparse(text)
    if not parsed.scheme or not parsed.netloc:
        return None
    return text


def sanitize_state(value: Any) -> str | None:
    text = sanitize_string(value)
    if not text:
        return None
    text = text.upper()
    if re.fullmatch(r"[A-Z]{2}", text):
        return text
    if text in STATE_CODES:
        return STATE_CODES[text]
    return text[:2] if len(text) >= 2 else None


def parse_date(value: Any) -> datetime | None:
    """ISO date or datetime as a naive wall-clock datetime. "TBD" and junk give None."""
    text = sanitize_string(value)
    if not text or text.lower() == "tbd":
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def parse_price(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    text = str(value).strip().lower().replace(",", "")
    if text == "free":
        return 0.0
    match = re.search(r"\d+(?:\.\d+)?", text)
    if not match:
        return None
    return float(match.group())


def _parse_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _parse_location(location: Any, data: SchemaOrgData) -> None:
    if isinstance(location, str):
        data.venue_name = sanitize_string(location)
        return
    if not isinstance(location, dict):
        return

    if location.get("@type") == "VirtualLocation":
        data.venue_name = "Online Event"
        data.venue_address = sanitize_string(location.get("url"))
        return

    data.venue_name = sanitize_string(location.get("name"))

    address = location.get("address")
    if isinstance(address, str):
        data.venue_address = sanitize_string(address)
        parts = [p.strip() for p in address.split(",")]
        if len(parts) >= 2:
            data.venue_city = parts[-2] or None
            state_match = re.match(r"[A-Za-z\s]+", parts[-1])
            if state_match:
                data.venue_state = sanitize_state(state_match.group())
    elif isinstance(address, dict):
        data.venue_address = sanitize_string(address.get("streetAddress"))
        data.venue_city = sanitize_string(address.get("addressLocality"))
        data.venue_state = sanitize_state(address.get("addressRegion"))

    geo = location.get("geo")
    if isinstance(geo, dict):
        lat = _parse_float(geo.get("latitude"))
        lng = _parse_float(geo.get("longitude"))
        if lat is not None and lng is not None:
            data.venue_lat = lat
            data.venue_lng = lng


def _parse_image(image: Any) -> str | None:
    first = _first(image)
    if isinstance(first, str):
        return sanitize_url(first)
    if isinstance(first, dict):
        return sanitize_url(first.get("url"))
    return None


def _parse_offers(offers: Any, data: SchemaOrgData) -> None:
    if isinstance(offers, dict):
        offers = [offers]
    if not isinstance(offers, list):
        return

    prices: list[float] = []
    for offer in offers:
        if not isinstance(offer, dict):
            continue
        if data.ticket_url is None and offer.get("url"):
            data.ticket_url = sanitize_url(offer["url"])
        for key in ("lowPrice", "highPrice", "price"):
            price = parse_price(offer.get(key))
            if price is not None:
                prices.append(price)

    if prices:
        data.price_min = min(prices)
        data.price_max = max(prices)


def _parse_organizer(organizer: Any, data: SchemaOrgData) -> None:
    if isinstance(organizer, str):
        data.organizer_name = sanitize_string(organizer)
    elif isinstance(organizer, dict):
        data.organizer_name = sanitize_string(organizer.get("name"))
        data.organizer_url = sanitize_url(organizer.get("url"))


def parse_json_ld(raw: Any) -> ParseResult:
    """Project a JSON-LD payload (object, array or @graph document) onto SchemaOrgData."""
    node = find_event_node(raw)
    if node is None:
        return ParseResult(status="not_found", error="No schema.org Event found in JSON-LD")

    raw_json_ld = json.dumps(node, indent=2, default=str)
    name = sanitize_string(node.get("name"))
    if not name:
        return ParseResult(status="invalid", raw_json_ld=raw_json_ld, error="Event markup has no name")

    data = SchemaOrgData(
        name=name,
        description=sanitize_string(node.get("description"), DESCRIPTION_MAX_LENGTH),
        start_date=parse_date(node.get("startDate")),
        end_date=parse_date(node.get("endDate")),
        image_url=_parse_image(node.get("image")),
        event_status=sanitize_string(node.get("eventStatus")),
    )
    _parse_location(_first(node.get("location")), data)
    _parse_offers(node.get("offers"), data)
    _parse_organizer(_first(node.get("organizer")), data)

    return ParseResult(status="available", data=data, raw_json_ld=raw_json_ld)


def fetch_schema_org(url: str, fetcher: Fetcher) -> ParseResult:
    """Fetch a page and parse its schema.org Event markup."""
    if is_internal_url(url):
        return ParseResult(status="error", error="URL is not allowed")

    try:
        response = fetcher.fetch(url)
    except HttpError as e:
        return ParseResult(status="error", error=str(e))

    if not response.ok:
        return ParseResult(status="error", error=f"Failed to fetch page ({response.status})")

    content_type = response.content_type
    if content_type and "text/html" not in content_type and "text/plain" not in content_type:
        return ParseResult(status="error", error="URL does not point to an HTML page")

    metadata = extract_metadata(response.body)
    if metadata.json_ld is None:
        return ParseResult(status="not_found", error="No schema.org Event markup found on page")

    return parse_json_ld(metadata.json_ld)

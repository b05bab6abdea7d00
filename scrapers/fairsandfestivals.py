import logging
import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import clean_text, parse_month_day, slug_from_url
from services.errors import HttpError, ScrapeError, ValidationError
from services.http import fetch_page
from services.schema_org import sanitize_state

logger = logging.getLogger(__name__)

SOURCE_NAME = "fairsandfestivals.net"
BASE_URL = "https://www.fairsandfestivals.net"
DESCRIPTION_MAX_LENGTH = 500


def state_url(state_code: str) -> str:
    return f"{BASE_URL}/states/{state_code.upper()}"


def _field_value(card, label: str):
    for cell in card.select("td.field-name"):
        if cell.get_text(strip=True).rstrip(":").lower() == label.lower():
            return cell.find_next_sibling("td")
    return None


def _parse_card(card, default_state: str, page_url: str) -> CandidateEvent | None:
    heading = card.find("h4")
    name = heading.get_text(strip=True) if heading else ""
    if not name:
        return None

    event_date = None
    date_block = card.select_one("p.date")
    month_elem = card.select_one("span.month")
    if month_elem:
        month = month_elem.get_text(strip=True)
        year_elem = card.select_one("span.year")
        year = year_elem.get_text(strip=True) if year_elem else str(datetime.now().year)
        day = "1"
        if date_block:
            day_match = re.search(rf"{re.escape(month)}\s+(\d{{1,2}})", date_block.get_text(" ", strip=True))
            if day_match:
                day = day_match.group(1)
        event_date = parse_month_day(month, day, year)

    city = state = None
    venue_name = ""
    location = card.select_one("td.location")
    if location:
        city_elem = location.select_one("span.city")
        state_elem = location.select_one("span.state")
        city = city_elem.get_text(strip=True) if city_elem else None
        state = sanitize_state(state_elem.get_text(strip=True)) if state_elem else None
        loose_text = " ".join(location.find_all(string=True, recursive=False))
        venue_name = clean_text(loose_text.replace(",", ""))
    state = state or default_state.upper()

    description = None
    desc_cell = _field_value(card, "Description")
    if desc_cell:
        for link in desc_cell.find_all("a"):
            link.decompose()
        description = clean_text(desc_cell.get_text(" "))
        if len(description) > DESCRIPTION_MAX_LENGTH:
            description = description[: DESCRIPTION_MAX_LENGTH - 3] + "..."

    vendor_types: list[str] = []
    vendor_cell = _field_value(card, "Types of Vendor")
    if vendor_cell:
        vendor_types = vendor_cell.get_text(" ").split()

    detail_url = None
    detail_link = card.find("a", href=re.compile(r"^/events/details/"))
    if detail_link:
        detail_url = BASE_URL + detail_link["href"]

    if detail_url:
        source_id = slug_from_url(detail_url, "/events/details/")
    else:
        source_id = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")

    venue = None
    if venue_name or city:
        venue = VenueDescriptor(name=venue_name or f"{city} Venue", city=city, state=state)

    return CandidateEvent(
        source_id=source_id,
        source_name=SOURCE_NAME,
        source_url=detail_url or page_url,
        name=name,
        start_date=event_date,
        end_date=event_date,
        dates_confirmed=event_date is not None,
        description=description or None,
        venue=venue,
        ticket_url=detail_url,
        vendor_types=vendor_types or None,
        commercial_vendors_allowed=any(t.lower() == "commercial" for t in vendor_types),
    )


def parse_listing(html: str, default_state: str, page_url: str) -> list[CandidateEvent]:
    """Parse a state listing page. Cards that fail to parse are skipped."""
    soup = BeautifulSoup(html, "html.parser")
    events: list[CandidateEvent] = []
    for card in soup.select("div.event"):
        try:
            event = _parse_card(card, default_state, page_url)
        except (AttributeError, KeyError, ValueError) as e:
            logger.warning("Skipping unparseable %s card: %s", SOURCE_NAME, e)
            continue
        if event:
            events.append(event)
    return events


def _scrape_page(url: str, default_state: str) -> list[CandidateEvent]:
    try:
        html = fetch_page(url)
    except HttpError as e:
        raise ScrapeError(f"Failed to fetch {url}: {e}") from e
    events = parse_listing(html, default_state, url)
    logger.info("Scraped %d events from %s", len(events), url)
    return events


def scrape(state_code: str = "ME") -> list[CandidateEvent]:
    """Fetch events for one state listing, e.g. /states/ME."""
    return _scrape_page(state_url(state_code), state_code)


def scrape_url(url: str) -> list[CandidateEvent]:
    """Fetch an arbitrary fairsandfestivals.net listing page."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or not host.endswith("fairsandfestivals.net"):
        raise ValidationError("Custom URL must be a fairsandfestivals.net page")
    state_match = re.search(r"/states/([A-Za-z]{2})", parsed.path)
    default_state = state_match.group(1).upper() if state_match else "ME"
    return _scrape_page(url, default_state)


def parse_details(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    details: dict[str, Any] = {}

    og_image = soup.select_one("meta[property='og:image']")
    if og_image and og_image.get("content"):
        details["image_url"] = og_image["content"]

    desc = soup.select_one("div.event-description")
    if desc:
        text = clean_text(desc.get_text(" "))
        if len(text) > 50:
            details["description"] = text[:2000]

    page_text = soup.get_text(" ")
    range_match = re.search(r"([A-Za-z]+)\s+(\d{1,2})\s*[-–]\s*(\d{1,2}),?\s*(\d{4})", page_text)
    if range_match:
        month, start_day, end_day, year = range_match.groups()
        start = parse_month_day(month, start_day, year)
        end = parse_month_day(month, end_day, year)
        if start:
            details["start_date"] = start
        if end:
            details["end_date"] = end

    label = soup.find(string=re.compile(r"Website:?"))
    if label:
        link = label.find_next("a", href=True)
        if link:
            details["website"] = link["href"]

    return details


def scrape_details(url: str) -> dict[str, Any]:
    """Fetch and parse an event detail page. HttpError propagates to the caller."""
    return parse_details(fetch_page(url))

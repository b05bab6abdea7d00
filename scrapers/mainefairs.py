import logging
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import clean_text, details_from_json_ld, parse_date_range, slug_from_url
from services.errors import HttpError, ScrapeError
from services.http import fetch_page

logger = logging.getLogger(__name__)

SOURCE_NAME = "mainefairs.net"
CALENDAR_URL = "https://mainefairs.net/fairs/fair-calendar/"
EVENT_URL_PATTERN = re.compile(r"^https?://mainefairs\.net/event/")
FAIR_WORDS = re.compile(r"Fair|Festival|Show|Exhibition", re.IGNORECASE)


def _event_container(link):
    for class_name in (
        "tribe-events-calendar-list__event-row",
        "tribe-events-calendar-list__event",
    ):
        container = link.find_parent(class_=class_name)
        if container is not None:
            return container
    return link.parent


def parse_calendar(html: str, year: int | None = None) -> list[CandidateEvent]:
    """Parse the fair calendar list view into candidate events."""
    year = year or datetime.now().year
    soup = BeautifulSoup(html, "html.parser")
    events: list[CandidateEvent] = []
    seen: set[str] = set()

    for link in soup.select("a.tribe-events-calendar-list__event-title-link"):
        url = link.get("href", "")
        name = link.get_text(strip=True)
        if not EVENT_URL_PATTERN.match(url) or not name:
            continue

        source_id = slug_from_url(url, "/event/")
        if source_id in seen:
            continue
        seen.add(source_id)

        container = _event_container(link)
        date_elem = container.select_one(".tribe-events-calendar-list__event-datetime")
        if date_elem is None:
            date_elem = container.select_one("time")
        dates = parse_date_range(date_elem.get_text(" ", strip=True), year) if date_elem else None
        img = container.select_one("img[src]")

        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=SOURCE_NAME,
                source_url=url,
                name=name,
                start_date=dates[0] if dates else None,
                end_date=dates[1] if dates else None,
                dates_confirmed=dates is not None,
                image_url=img["src"] if img else None,
                ticket_url=url,
            )
        )

    if events:
        return events

    # Older calendar markup: fall back to any event link that looks like a fair
    for link in soup.find_all("a", href=EVENT_URL_PATTERN):
        name = link.get_text(strip=True)
        if not name or not FAIR_WORDS.search(name):
            continue
        url = link["href"]
        source_id = slug_from_url(url, "/event/")
        if source_id in seen:
            continue
        seen.add(source_id)
        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=SOURCE_NAME,
                source_url=url,
                name=name,
                dates_confirmed=False,
                ticket_url=url,
            )
        )

    return events


def scrape() -> list[CandidateEvent]:
    """Fetch the mainefairs.net fair calendar."""
    try:
        html = fetch_page(CALENDAR_URL)
    except HttpError as e:
        raise ScrapeError(f"Failed to fetch {SOURCE_NAME} calendar: {e}") from e

    events = parse_calendar(html)
    logger.info("Scraped %d events from %s", len(events), SOURCE_NAME)
    return events


def parse_details(html: str) -> dict[str, Any]:
    """Extract dates, venue, description, image and website from an event page."""
    soup = BeautifulSoup(html, "html.parser")
    details = details_from_json_ld(soup, "mainefairs.net")

    if "description" not in details:
        desc = soup.select_one(".tribe-events-single-event-description")
        if desc:
            details["description"] = clean_text(desc.get_text(" "))[:2000]

    if "venue" not in details:
        venue = soup.select_one(".tribe-venue")
        if venue and venue.get_text(strip=True):
            details["venue"] = VenueDescriptor(name=venue.get_text(strip=True), state="ME")

    if "image_url" not in details:
        og_image = soup.select_one("meta[property='og:image']")
        if og_image and og_image.get("content"):
            details["image_url"] = og_image["content"]

    if "website" not in details:
        website = soup.select_one(".tribe-events-event-url a[href]")
        if website and "mainefairs.net" not in website["href"]:
            details["website"] = website["href"]

    return details


def scrape_details(url: str) -> dict[str, Any]:
    """Fetch and parse an event detail page. HttpError propagates to the caller."""
    return parse_details(fetch_page(url))

import logging
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import (
    clean_text,
    details_from_json_ld,
    og_content,
    parse_clock,
    parse_month_day,
    slug_from_url,
)
from services.errors import HttpError, ScrapeError
from services.http import fetch_page

logger = logging.getLogger(__name__)

SOURCE_NAME = "mainemade.com"
EVENTS_URL = "https://www.mainemade.com/events/"
EVENT_URL_PATTERN = re.compile(r"^https?://www\.mainemade\.com/event/")
MAX_PAGES = 10

MONTHS = r"(January|February|March|April|May|June|July|August|September|October|November|December)"
# "February 7 @ 2:00 PM - 7:00 PM" or "March 21 - March 22"
LISTING_DATE = re.compile(MONTHS + r"\s+(\d{1,2})(.*)", re.IGNORECASE)
END_DATE = re.compile(r"[-–]\s*" + MONTHS + r"\s+(\d{1,2})", re.IGNORECASE)
END_TIME = re.compile(r"[-–]\s*(\d{1,2}:\d{2}\s*(?:AM|PM))", re.IGNORECASE)
WEBSITE_WORDS = re.compile(r"more information|website|visit|register|tickets", re.IGNORECASE)


def page_url(page: int) -> str:
    return EVENTS_URL if page == 1 else f"{EVENTS_URL}page/{page}/"


def parse_listing_dates(text: str, year: int) -> tuple[datetime, datetime] | None:
    match = LISTING_DATE.search(text)
    if not match:
        return None
    month, day, rest = match.groups()
    date = parse_month_day(month, day, year)
    if date is None:
        return None

    start_clock = parse_clock(rest)
    start = date.replace(hour=start_clock[0], minute=start_clock[1]) if start_clock else date.replace(hour=9)

    end_date = END_DATE.search(rest)
    end_time = END_TIME.search(rest)
    end = None
    if end_date:
        end_day = parse_month_day(end_date.group(1), end_date.group(2), year)
        end = end_day.replace(hour=21) if end_day else None
    elif end_time:
        clock = parse_clock(end_time.group(1))
        end = date.replace(hour=clock[0], minute=clock[1]) if clock else None
    return start, end or date.replace(hour=21)


def parse_listing(html: str, year: int | None = None) -> list[CandidateEvent]:
    year = year or datetime.now().year
    soup = BeautifulSoup(html, "html.parser")
    events: list[CandidateEvent] = []
    seen: set[str] = set()

    for link in soup.find_all("a", href=EVENT_URL_PATTERN):
        url = link["href"]
        source_id = slug_from_url(url, "/event/")
        if source_id in seen:
            continue

        heading = link.find(["h2", "h3"]) or link.find("strong")
        name = heading.get_text(strip=True) if heading else ""
        if len(name) < 3:
            continue
        seen.add(source_id)

        dates = parse_listing_dates(link.get_text(" ", strip=True), year)
        img = link.find("img", src=True)
        image_url = img["src"] if img and not img["src"].startswith("data:image") else None

        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=SOURCE_NAME,
                source_url=url,
                name=name,
                start_date=dates[0] if dates else None,
                end_date=dates[1] if dates else None,
                dates_confirmed=dates is not None,
                image_url=image_url,
                ticket_url=url,
            )
        )

    return events


def has_next_page(html: str, page: int) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    if soup.find("a", href=re.compile(rf"/events/page/{page + 1}/")):
        return True
    return soup.find(class_=re.compile("next")) is not None


def scrape() -> list[CandidateEvent]:
    events: list[CandidateEvent] = []
    seen: set[str] = set()

    for page in range(1, MAX_PAGES + 1):
        try:
            html = fetch_page(page_url(page))
        except HttpError as e:
            if page == 1:
                raise ScrapeError(f"Failed to fetch {SOURCE_NAME} events: {e}") from e
            break

        for event in parse_listing(html):
            if event.source_id not in seen:
                seen.add(event.source_id)
                events.append(event)

        if not has_next_page(html, page):
            break

    logger.info("Scraped %d events from %s", len(events), SOURCE_NAME)
    return events


def parse_details(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    details = details_from_json_ld(soup, "mainemade.com")

    if "description" not in details:
        for class_name in ("tribe-events-single-event-description", "entry-content", "event-description"):
            block = soup.find("div", class_=class_name)
            if block:
                text = clean_text(block.get_text(" "))[:2000]
                if text:
                    details["description"] = text
                if len(text) > 50:
                    break

    if "image_url" not in details and og_content(soup, "og:image"):
        details["image_url"] = og_content(soup, "og:image")

    if "description" not in details and og_content(soup, "og:description"):
        details["description"] = og_content(soup, "og:description")

    if "website" not in details:
        for link in soup.find_all("a", href=re.compile(r"^https?://")):
            if "www.mainemade.com" not in link["href"] and WEBSITE_WORDS.search(link.get_text(" ")):
                details["website"] = link["href"]
                break

    if "venue" not in details:
        venue = soup.find("span", class_="tribe-venue")
        if venue and venue.get_text(strip=True):
            details["venue"] = VenueDescriptor(name=venue.get_text(strip=True), state="ME")

    return details


def scrape_details(url: str) -> dict[str, Any]:
    """Fetch and parse an event detail page. HttpError propagates to the caller."""
    return parse_details(fetch_page(url))

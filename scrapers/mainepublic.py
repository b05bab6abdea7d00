import logging
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from models import CandidateEvent
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

SOURCE_NAME = "mainepublic.org"
CALENDAR_URL = "https://www.mainepublic.org/community-calendar"
EVENT_URL_PATTERN = re.compile(r"^https?://www\.mainepublic\.org/community-calendar/event/")
MAX_PAGES = 10

DATE_PATTERN = re.compile(r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+(\d{1,2})(?:\s*,?\s*(\d{4}))?")
TIME_RANGE = re.compile(r"(\d{1,2}:\d{2}\s*(?:AM|PM))\s*[-–]\s*(\d{1,2}:\d{2}\s*(?:AM|PM))", re.IGNORECASE)
# "10:00 AM - 12:00 PM on Tue, 27 Jan 2026"
DETAIL_DATETIME = re.compile(
    r"(\d{1,2}:\d{2}\s*(?:AM|PM))\s*[-–]\s*(\d{1,2}:\d{2}\s*(?:AM|PM))\s+on\s+\w+,\s*(\d{1,2})\s+(\w+)\s+(\d{4})",
    re.IGNORECASE,
)
DETAIL_DATE = re.compile(r"\b[A-Za-z]+,\s*(\d{1,2})\s+([A-Za-z]{3,})\s+(\d{4})\b")
TICKET_WORDS = re.compile(r"ticket|buy|register|website|visit", re.IGNORECASE)


def page_url(page: int) -> str:
    return CALENDAR_URL if page == 1 else f"{CALENDAR_URL}?page={page}&p={page}"


def _container(link):
    article = link.find_parent("article")
    if article is not None:
        return article
    div = link.find_parent("div", class_=re.compile("event"))
    return div if div is not None else link.parent


def _with_time(day: datetime, clock: tuple[int, int] | None, fallback_hour: int) -> datetime:
    if clock is None:
        return day.replace(hour=fallback_hour)
    return day.replace(hour=clock[0], minute=clock[1])


def parse_calendar(html: str, year: int | None = None) -> list[CandidateEvent]:
    """Parse one community calendar page."""
    year = year or datetime.now().year
    soup = BeautifulSoup(html, "html.parser")
    events: list[CandidateEvent] = []
    seen: set[str] = set()

    for link in soup.find_all("a", href=EVENT_URL_PATTERN):
        name = link.get_text(strip=True)
        if len(name) < 3:
            continue
        url = link["href"]
        source_id = slug_from_url(url, "/event/")
        if source_id in seen:
            continue
        seen.add(source_id)

        container = _container(link)
        text = container.get_text(" ", strip=True)

        start = end = None
        date_match = DATE_PATTERN.search(text)
        if date_match:
            month, day, listed_year = date_match.groups()
            date = parse_month_day(month, day, listed_year or year)
            if date:
                time_match = TIME_RANGE.search(text)
                start = _with_time(date, parse_clock(time_match.group(1)) if time_match else None, 9)
                end = _with_time(date, parse_clock(time_match.group(2)) if time_match else None, 21)

        img = container.find("img", src=True)
        image_url = img["src"] if img and not img["src"].startswith("data:image") else None

        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=SOURCE_NAME,
                source_url=url,
                name=name,
                start_date=start,
                end_date=end,
                dates_confirmed=start is not None,
                image_url=image_url,
                ticket_url=url,
            )
        )

    return events


def _has_next_page(html: str, page: int) -> bool:
    return "Next" in html or f"page={page + 1}" in html


def scrape() -> list[CandidateEvent]:
    """Walk the calendar pages until there is no next page or MAX_PAGES is reached."""
    events: list[CandidateEvent] = []
    seen: set[str] = set()

    for page in range(1, MAX_PAGES + 1):
        try:
            html = fetch_page(page_url(page))
        except HttpError as e:
            if page == 1:
                raise ScrapeError(f"Failed to fetch {SOURCE_NAME} calendar: {e}") from e
            logger.warning("Stopping %s at page %d: %s", SOURCE_NAME, page, e)
            break

        for event in parse_calendar(html):
            if event.source_id not in seen:
                seen.add(event.source_id)
                events.append(event)

        if not _has_next_page(html, page):
            break

    logger.info("Scraped %d events from %s", len(events), SOURCE_NAME)
    return events


def _dates_from_text(text: str) -> dict[str, Any]:
    match = DETAIL_DATETIME.search(text)
    if match:
        start_clock, end_clock, day, month, year = match.groups()
        date = parse_month_day(month, day, year)
        start = parse_clock(start_clock)
        if date and start:
            details: dict[str, Any] = {"start_date": _with_time(date, start, 9)}
            end = parse_clock(end_clock)
            if end:
                details["end_date"] = _with_time(date, end, 17)
            return details

    match = DETAIL_DATE.search(text)
    if match:
        day, month, year = match.groups()
        date = parse_month_day(month, day, year)
        if date:
            return {"start_date": date.replace(hour=9), "end_date": date.replace(hour=17)}
    return {}


def parse_details(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    details = details_from_json_ld(soup, "mainepublic.org")

    if "description" not in details:
        for selector in ("div[class*=description]", "div[class*=content]", "p[class*=summary]"):
            block = soup.select_one(selector)
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
            if "www.mainepublic.org" not in link["href"] and TICKET_WORDS.search(link.get_text(" ")):
                details["website"] = link["href"]
                break

    if "start_date" not in details:
        details.update(_dates_from_text(soup.get_text(" ")))

    return details


def scrape_details(url: str) -> dict[str, Any]:
    """Fetch and parse an event detail page. HttpError propagates to the caller."""
    return parse_details(fetch_page(url))

"""Massachusetts Agricultural Fairs Association "fairs by date" page.

The page is a flat run of medium-font spans: a date, then one or more fair
names ("Three County Fair - Northampton"), each optionally followed by a
www. link.
"""

import logging
import re
from datetime import datetime

from bs4 import BeautifulSoup

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import clean_text, parse_date_range, slug_from_name
from services.errors import HttpError, ScrapeError
from services.http import fetch_page

logger = logging.getLogger(__name__)

SOURCE_NAME = "mafa.org"
CALENDAR_URL = "https://www.mafa.org/2026fairsbydate.html"
STATE = "MA"
DATE_START = re.compile(
    r"^(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?\s+\d",
    re.IGNORECASE,
)


def _page_year(url: str) -> int:
    match = re.search(r"(\d{4})fairsbydate", url)
    return int(match.group(1)) if match else datetime.now().year


def _looks_like_fair(text: str) -> bool:
    return "Fair" in text or " - " in text or "4-H" in text


def parse_calendar(html: str, page_url: str = CALENDAR_URL) -> list[CandidateEvent]:
    soup = BeautifulSoup(html, "html.parser")
    year = _page_year(page_url)

    spans = []
    medium = re.compile(r"font-size:\s*medium")
    for span in soup.find_all("span", style=medium):
        if span.find("span", style=medium) is not None:
            continue
        text = clean_text(span.get_text(" "))
        if text and text != "*****":
            spans.append((span, text))

    events: list[CandidateEvent] = []
    seen: set[str] = set()
    dates = None

    for i, (span, text) in enumerate(spans):
        if DATE_START.match(text):
            dates = parse_date_range(text, year) or dates
            continue
        if re.match(r"^(www\.|http)", text, re.IGNORECASE):
            continue
        if not _looks_like_fair(text) or dates is None:
            continue

        website = None
        if i + 1 < len(spans) and spans[i + 1][1].lower().startswith("www."):
            next_span, next_text = spans[i + 1]
            anchor = next_span.find_parent("a")
            website = anchor.get("href") if anchor and anchor.get("href") else f"http://{next_text}"

        source_id = slug_from_name(text)
        if source_id in seen:
            continue
        seen.add(source_id)

        name, _, city = text.partition(" - ")
        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=SOURCE_NAME,
                source_url=page_url,
                name=text,
                start_date=dates[0],
                end_date=dates[1],
                dates_confirmed=True,
                venue=VenueDescriptor(name=name.strip(), city=city.strip() or None, state=STATE),
                website=website,
                ticket_url=website,
            )
        )

    return events


def scrape() -> list[CandidateEvent]:
    try:
        html = fetch_page(CALENDAR_URL)
    except HttpError as e:
        raise ScrapeError(f"Failed to fetch {SOURCE_NAME} calendar: {e}") from e

    events = parse_calendar(html)
    logger.info("Scraped %d events from %s", len(events), SOURCE_NAME)
    return events

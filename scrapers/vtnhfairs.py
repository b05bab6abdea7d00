"""Vermont and New Hampshire Fairs Association listings.

The site is a Wix page: each fair is a large-font heading span followed by
smaller spans for the dates and a contact line, and a "Visit Website" link.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from bs4 import BeautifulSoup

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import clean_text, parse_date_range, slug_from_name
from services.errors import HttpError, ScrapeError
from services.http import fetch_page

logger = logging.getLogger(__name__)

SOURCE_NAME = "vtnhfairs.org"
TEXT_CLASS = "wixui-rich-text__text"
UNCONFIRMED = ("to be determined", "tbd", "no fair")
MONTH_START = re.compile(
    r"^(January|February|March|April|May|June|July|August|September|October|November|December)\s+\d",
    re.IGNORECASE,
)


@dataclass
class FairsPage:
    url: str
    source_name: str
    state: str


VT_PAGE = FairsPage("https://www.vtnhfairs.org/copy-of-fairs", "vtnhfairs.org-vt", "VT")
NH_PAGE = FairsPage("https://www.vtnhfairs.org/copy-of-fairs-1", "vtnhfairs.org-nh", "NH")


def _own_text(tag) -> str:
    return clean_text(" ".join(tag.find_all(string=True, recursive=False)).replace("\u200b", ""))


def _is_heading(span) -> bool:
    return bool(re.search(r"font-size:\s*20px", span.get("style", "")))


def _is_info(span) -> bool:
    style = span.get("style", "")
    return (
        "color_15" in span.get("class", [])
        or re.search(r"font-size:\s*16px", style) is not None
        or re.search(r"letter-spacing:\s*0em", style) is not None
    )


def parse_dates(text: str, year: int) -> tuple[datetime, datetime] | None:
    """Dates like 'April 25-27th' or 'July 29 - August 2'. None for TBD or 'No fair'."""
    cleaned = re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", text, flags=re.IGNORECASE).strip()
    if not cleaned or any(word in cleaned.lower() for word in UNCONFIRMED):
        return None
    return parse_date_range(cleaned, year)


def parse_page(html: str, page: FairsPage) -> list[CandidateEvent]:
    soup = BeautifulSoup(html, "html.parser")
    year = datetime.now().year
    fairs: list[dict] = []

    for tag in soup.find_all(["span", "a"]):
        if tag.name == "a":
            if fairs and "Visit Website" in tag.get_text(" ") and tag.get("href"):
                fairs[-1].setdefault("website", tag["href"])
            continue

        if TEXT_CLASS not in tag.get("class", []):
            continue
        text = _own_text(tag)
        if not text or text == "Visit Website":
            continue

        year_match = re.fullmatch(r"(\d{4})\s+(Fairs?|Events?)", text, re.IGNORECASE)
        if year_match:
            year = int(year_match.group(1))
            continue

        if _is_heading(tag):
            fairs.append({"name": text, "info": []})
        elif _is_info(tag) and fairs:
            fairs[-1]["info"].append(text)

    events: list[CandidateEvent] = []
    for fair in fairs:
        date_text = contact = ""
        for item in fair["info"]:
            if not date_text and MONTH_START.match(item):
                date_text = item
            elif "contact" in item.lower():
                contact = item
            elif not date_text:
                date_text = item

        dates = parse_dates(date_text, year)
        website = fair.get("website")
        name = fair["name"]
        events.append(
            CandidateEvent(
                source_id=slug_from_name(name),
                source_name=page.source_name,
                source_url=page.url,
                name=name,
                start_date=dates[0] if dates else None,
                end_date=dates[1] if dates else None,
                dates_confirmed=dates is not None,
                description=f"Contact: {re.sub(r'(?i)contact:?', '', contact).strip()}" if contact else None,
                venue=VenueDescriptor(name=re.sub(r"\s*\([^)]*\)", "", name).strip(), state=page.state),
                website=website,
                ticket_url=website,
            )
        )
    return events


def scrape_page(page: FairsPage) -> list[CandidateEvent]:
    try:
        html = fetch_page(page.url)
    except HttpError as e:
        raise ScrapeError(f"Failed to fetch {page.source_name} listing: {e}") from e

    events = parse_page(html, page)
    logger.info("Scraped %d events from %s", len(events), page.source_name)
    return events


def scrape_vt() -> list[CandidateEvent]:
    return scrape_page(VT_PAGE)


def scrape_nh() -> list[CandidateEvent]:
    return scrape_page(NH_PAGE)

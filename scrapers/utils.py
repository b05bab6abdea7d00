import json
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup
from dateutil.relativedelta import relativedelta

from models import VenueDescriptor
from services.schema_org import parse_date

OPENING_HOUR = 9
CLOSING_HOUR = 21

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)


def parse_month_day(month: str, day: int | str, year: int | str) -> datetime | None:
    """Build a date from 'June', '11', '2026'. Accepts full names and abbreviations like 'Jun' or 'Sept'."""
    month = month.strip().rstrip(".").lower()
    if len(month) < 3:
        return None
    for number, name in enumerate(MONTH_NAMES, start=1):
        if name.startswith(month):
            try:
                return datetime(int(year), number, int(day))
            except ValueError:
                return None
    return None


def parse_date_range(
    text: str,
    year: int,
    opening_hour: int = OPENING_HOUR,
    closing_hour: int = CLOSING_HOUR,
) -> tuple[datetime, datetime] | None:
    """Parse 'June 11 - June 14', 'June 11-14' or 'June 11' into opening/closing datetimes."""
    range_match = re.search(r"([A-Za-z]+)\.?\s+(\d{1,2})\s*[-–]\s*(?:([A-Za-z]+)\.?\s+)?(\d{1,2})", text)
    if range_match:
        start_month, start_day, end_month, end_day = range_match.groups()
        start = parse_month_day(start_month, start_day, year)
        end = parse_month_day(end_month or start_month, end_day, year)
        if start and end:
            if end < start:
                end = end + relativedelta(years=1)
            return (
                start.replace(hour=opening_hour),
                end.replace(hour=closing_hour),
            )

    single_match = re.search(r"([A-Za-z]+)\.?\s+(\d{1,2})", text)
    if single_match:
        day = parse_month_day(single_match.group(1), single_match.group(2), year)
        if day:
            return day.replace(hour=opening_hour), day.replace(hour=closing_hour)

    return None


def parse_dated_range(
    text: str,
    opening_hour: int,
    closing_hour: int,
) -> tuple[datetime, datetime] | None:
    """Parse 'June 27-28, 2026', 'June 27 & 28, 2026' or 'June 27, 2026' (the year is required)."""
    match = re.search(r"([A-Za-z]+)\.?\s+(\d{1,2})(?:\s*[-–&]\s*(\d{1,2}))?,?\s*(\d{4})", text)
    if not match:
        return None
    month, start_day, end_day, year = match.groups()
    start = parse_month_day(month, start_day, year)
    end = parse_month_day(month, end_day or start_day, year)
    if not start or not end:
        return None
    return start.replace(hour=opening_hour), end.replace(hour=closing_hour)


def parse_clock(text: str) -> tuple[int, int] | None:
    """'3:00 PM' -> (15, 0)."""
    match = re.search(r"(\d{1,2}):(\d{2})\s*(AM|PM)?", text, re.IGNORECASE)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    period = (match.group(3) or "").upper()
    if period == "PM" and hours < 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def slug_from_url(url: str, prefix: str) -> str:
    """Extract the path segment after prefix, e.g. '/event/' -> 'springfield-fair'."""
    match = re.search(rf"{re.escape(prefix)}([^/?#]+)", url)
    if match:
        return match.group(1)
    return re.sub(r"[^a-z0-9]+", "-", url.lower()).strip("-")


def slug_from_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def no_details(url: str) -> dict[str, Any]:
    """Detail scraper for sources whose listing already carries everything."""
    return {}


def _venue_from_location(location: Any, default_state: str) -> VenueDescriptor | None:
    if not isinstance(location, dict) or not location.get("name"):
        return None
    address = location.get("address")
    if isinstance(address, str):
        address = {"streetAddress": address}
    if not isinstance(address, dict):
        return VenueDescriptor(name=location["name"], state=default_state)
    return VenueDescriptor(
        name=location["name"],
        street_address=address.get("streetAddress"),
        city=address.get("addressLocality"),
        state=address.get("addressRegion") or default_state,
        zip=address.get("postalCode"),
    )


def details_from_json_ld(soup: BeautifulSoup, own_host: str, default_state: str = "ME") -> dict[str, Any]:
    """Dates, description, image, venue and external website from the first Event JSON-LD node."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads((script.string or "").strip())
        except json.JSONDecodeError:
            continue

        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            if item.get("@type") != "Event" and not item.get("startDate"):
                continue

            details: dict[str, Any] = {
                "start_date": parse_date(item.get("startDate")),
                "end_date": parse_date(item.get("endDate")),
                "venue": _venue_from_location(item.get("location"), default_state),
            }
            if item.get("description"):
                text = BeautifulSoup(str(item["description"]), "html.parser").get_text(" ")
                details["description"] = clean_text(text)[:2000]
            image = item.get("image")
            if isinstance(image, dict):
                image = image.get("url")
            if isinstance(image, str):
                details["image_url"] = image

            url = item.get("url")
            if isinstance(url, str) and own_host not in url:
                details["website"] = url
            return {k: v for k, v in details.items() if v is not None}
    return {}


def og_content(soup: BeautifulSoup, prop: str) -> str | None:
    tag = soup.select_one(f"meta[property='{prop}']")
    if tag and tag.get("content"):
        return tag["content"]
    return None

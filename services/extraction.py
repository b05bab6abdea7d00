"""AI extraction of event listings from arbitrary web pages.

Sends cleaned page text plus page metadata to Gemini and parses the JSON it
returns. When Gemini is unavailable or answers with something unusable, the
page's own metadata (title, og:image, JSON-LD) is used instead and the
result is marked as degraded.
"""

import json
import logging
import os
import re
import uuid
from dataclasses import dataclass, field, fields
from typing import Any

from google import genai

from services.html_parser import PageMetadata, extract_metadata, extract_text
from services.schema_org import parse_price, sanitize_state, sanitize_string, sanitize_url

logger = logging.getLogger(__name__)

MODEL = "gemini-2.5-flash-lite"
MAX_PROMPT_CONTENT = 20000
DEGRADED_MESSAGE = "Could not extract event data. Please add events manually."


@dataclass
class ExtractedEvent:
    extract_id: str
    name: str | None = None
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    hours_vary_by_day: bool = False
    hours_notes: str | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    venue_city: str | None = None
    venue_state: str | None = None
    ticket_url: str | None = None
    ticket_price_min: float | None = None
    ticket_price_max: float | None = None
    image_url: str | None = None


@dataclass
class Extraction:
    events: list[ExtractedEvent]
    confidence: dict[str, dict[str, str]] = field(default_factory=dict)
    success: bool = True


@dataclass
class Degraded:
    events: list[ExtractedEvent]
    error: str = DEGRADED_MESSAGE
    success: bool = False


def _new_id(prefix: str = "event") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def sanitize_date(value: Any) -> str | None:
    """Normalize to YYYY-MM-DD, accepting full ISO datetimes."""
    text = sanitize_string(value)
    if not text:
        return None
    match = re.match(r"(\d{4})-(\d{2})-(\d{2})", text)
    return "-".join(match.groups()) if match else None


def sanitize_time(value: Any) -> str | None:
    text = sanitize_string(value)
    if not text:
        return None
    match = re.match(r"(\d{1,2}):(\d{2})", text)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def time_from_datetime(value: Any) -> str | None:
    text = sanitize_string(value)
    if not text:
        return None
    match = re.search(r"T(\d{2}:\d{2})", text)
    if not match or match.group(1) == "00:00":
        return None
    return match.group(1)


def _pick(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key):
            return item[key]
    return None


def build_prompt(content: str, metadata: PageMetadata) -> str:
    context = ""
    if metadata.title:
        context += f"Page title: {metadata.title}\n"
        if "|" in metadata.title:
            context += '(Note: Title appears to have parts separated by "|" - parse each part)\n'
    if metadata.description:
        context += f"Page description: {metadata.description}\n"
    if metadata.json_ld:
        context += f"Structured data (JSON-LD):\n{json.dumps(metadata.json_ld, indent=2)}\n\n"

    if len(content) > MAX_PROMPT_CONTENT:
        content = content[:MAX_PROMPT_CONTENT] + "\n[Content truncated...]"

    return f"""Extract ALL events from this webpage. The page may contain one event or multiple events. Return a JSON array of events.

{context}
WEBPAGE CONTENT:
{content}

---
Return a JSON array where each event has these fields (use null for fields not found):

[
  {{
    "name": "event title/name",
    "description": "brief description (max 300 chars)",
    "startDate": "YYYY-MM-DD format",
    "endDate": "YYYY-MM-DD format",
    "startTime": "HH:MM (24-hour) or null - opening time",
    "endTime": "HH:MM (24-hour) or null - closing time",
    "hoursVaryByDay": true/false,
    "hoursNotes": "notes about per-day hours (e.g., 'Fri 5-9pm, Sat-Sun 10am-6pm')",
    "venueName": "venue or location name",
    "venueAddress": "street address",
    "venueCity": "city",
    "venueState": "2-letter state code (Maine=ME)",
    "ticketUrl": "URL for tickets",
    "ticketPriceMin": number or null,
    "ticketPriceMax": number or null,
    "imageUrl": "image URL"
  }}
]

Rules:
- Find ALL events on the page, each as a separate object
- Convert ALL dates to YYYY-MM-DD and ALL times to HH:MM 24-hour format
- If only ONE event exists, still return an array with one element
- Extract the event NAME only (not dates or venue) for the "name" field

Return ONLY valid JSON, no explanation."""


def sanitize_event(item: dict[str, Any], index: int, metadata: PageMetadata) -> ExtractedEvent:
    raw_start = _pick(item, "startDate", "start_date", "date")
    raw_end = _pick(item, "endDate", "end_date")
    event = ExtractedEvent(
        extract_id=_new_id(),
        name=sanitize_string(_pick(item, "name", "title")),
        description=sanitize_string(item.get("description"), 500),
        start_date=sanitize_date(raw_start),
        end_date=sanitize_date(raw_end),
        start_time=sanitize_time(_pick(item, "startTime", "start_time")) or time_from_datetime(raw_start),
        end_time=sanitize_time(_pick(item, "endTime", "end_time")) or time_from_datetime(raw_end),
        hours_vary_by_day=item.get("hoursVaryByDay") is True or item.get("hours_vary_by_day") is True,
        hours_notes=sanitize_string(_pick(item, "hoursNotes", "hours_notes"), 500),
        venue_name=sanitize_string(_pick(item, "venueName", "venue_name", "venue", "location")),
        venue_address=sanitize_string(_pick(item, "venueAddress", "venue_address", "address")),
        venue_city=sanitize_string(_pick(item, "venueCity", "venue_city", "city")),
        venue_state=sanitize_state(_pick(item, "venueState", "venue_state", "state")),
        ticket_url=sanitize_url(_pick(item, "ticketUrl", "ticket_url", "url", "link")),
        ticket_price_min=parse_price(_pick(item, "ticketPriceMin", "ticket_price_min", "price_min", "price")),
        ticket_price_max=parse_price(_pick(item, "ticketPriceMax", "ticket_price_max", "price_max")),
        image_url=sanitize_url(_pick(item, "imageUrl", "image_url", "image")),
    )
    if index == 0 and not event.name and metadata.title:
        event.name = metadata.title
    if not event.image_url and metadata.og_image:
        event.image_url = metadata.og_image
    return event


def fallback_events(metadata: PageMetadata) -> list[ExtractedEvent]:
    """A single event built from page metadata, or [] when there is nothing to go on."""
    if not metadata.title and not metadata.json_ld:
        return []

    event = ExtractedEvent(extract_id=_new_id("fallback"), name=metadata.title, image_url=metadata.og_image)
    ld = metadata.json_ld
    if ld:
        if ld.get("name"):
            event.name = str(ld["name"])
        event.description = sanitize_string(ld.get("description"), 500)
        event.start_date = sanitize_date(ld.get("startDate"))
        event.start_time = time_from_datetime(ld.get("startDate"))
        event.end_date = sanitize_date(ld.get("endDate"))
        event.end_time = time_from_datetime(ld.get("endDate"))
        location = ld.get("location")
        if isinstance(location, dict) and location.get("name"):
            event.venue_name = str(location["name"])

    return [event] if event.name else []


def parse_response(text: str, metadata: PageMetadata) -> list[ExtractedEvent]:
    """Parse Gemini output: an array of events, a single event, or {"events": [...]}."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1].rsplit("```", 1)[0].strip()

    parsed = json.loads(text)
    if isinstance(parsed, dict):
        if isinstance(parsed.get("events"), list):
            parsed = parsed["events"]
        elif parsed.get("name") or parsed.get("title"):
            parsed = [parsed]
        else:
            return []
    if not isinstance(parsed, list):
        return []
    return [sanitize_event(item, i, metadata) for i, item in enumerate(parsed) if isinstance(item, dict)]


def field_confidence(events: list[ExtractedEvent], metadata: PageMetadata) -> dict[str, dict[str, str]]:
    """Per-field confidence: low when missing, high when the page had JSON-LD, medium otherwise."""
    level = "high" if metadata.json_ld else "medium"
    confidence: dict[str, dict[str, str]] = {}
    for event in events:
        confidence[event.extract_id] = {
            f.name: "low" if getattr(event, f.name) is None else level
            for f in fields(event)
            if f.name != "extract_id"
        }
    return confidence


def extract_events(content: str, metadata: PageMetadata, page_url: str | None = None) -> Extraction | Degraded:
    """Ask Gemini for every event on the page. Never raises."""
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        logger.warning("GEMINI_API_KEY not set, using page metadata only")
        return Degraded(events=fallback_events(metadata))

    try:
        client = genai.Client(api_key=api_key)
        response = client.models.generate_content(
            model=MODEL,
            contents=build_prompt(content, metadata),
        )
        events = parse_response(response.text or "", metadata)
    except Exception as e:
        logger.warning("AI extraction failed: %s", e)
        return Degraded(events=fallback_events(metadata))

    if not events:
        return Degraded(events=fallback_events(metadata))

    if page_url:
        for event in events:
            event.ticket_url = event.ticket_url or page_url

    return Extraction(events=events, confidence=field_confidence(events, metadata))


def extract_from_html(html: str, page_url: str | None = None) -> Extraction | Degraded:
    return extract_events(extract_text(html), extract_metadata(html), page_url)

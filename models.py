from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

EventStatus = Literal["DRAFT", "PENDING", "APPROVED", "REJECTED", "CANCELLED"]
SchemaOrgStatus = Literal["available", "not_found", "invalid", "error"]
MatchType = Literal["exact_url", "similar_name_date", "none"]
SyncState = Literal["idle", "running", "done", "capped", "failed"]


@dataclass
class VenueDescriptor:
    name: str
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


@dataclass
class ExistingEventRef:
    id: str
    slug: str
    name: str
    start_date: datetime | None
    status: EventStatus


@dataclass
class DuplicateVerdict:
    is_duplicate: bool
    match_type: MatchType = "none"
    similarity: int | None = None
    existing_event: ExistingEventRef | None = None


@dataclass
class CandidateEvent:
    """An event scraped from a source listing, not yet in the catalog."""

    source_id: str
    source_name: str
    source_url: str
    name: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    dates_confirmed: bool | None = None
    description: str | None = None
    venue: VenueDescriptor | None = None
    image_url: str | None = None
    ticket_url: str | None = None
    website: str | None = None
    ticket_price_min: float | None = None
    ticket_price_max: float | None = None
    commercial_vendors_allowed: bool | None = None
    vendor_types: list[str] | None = None
    # Preview annotations
    exists: bool = False
    existing_id: str | None = None
    duplicate: DuplicateVerdict | None = None


@dataclass
class Promoter:
    id: str
    company_name: str
    slug: str


@dataclass
class Venue:
    id: str
    name: str
    slug: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    status: str = "ACTIVE"
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Event:
    id: str
    name: str
    slug: str
    promoter_id: str
    description: str | None = None
    venue_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    dates_confirmed: bool = True
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    ticket_url: str | None = None
    ticket_price_min: float | None = None
    ticket_price_max: float | None = None
    image_url: str | None = None
    commercial_vendors_allowed: bool = True
    status: EventStatus = "PENDING"
    source_name: str | None = None
    source_url: str | None = None
    source_id: str | None = None
    sync_enabled: bool = False
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SchemaOrgData:
    """Flattened projection of a schema.org Event node."""

    name: str | None = None
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    venue_city: str | None = None
    venue_state: str | None = None
    venue_lat: float | None = None
    venue_lng: float | None = None
    image_url: str | None = None
    ticket_url: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    event_status: str | None = None
    organizer_name: str | None = None
    organizer_url: str | None = None


@dataclass
class SchemaOrgRecord:
    event_id: str
    ticket_url: str
    status: SchemaOrgStatus
    raw_json_ld: str | None = None
    data: SchemaOrgData | None = None
    last_fetched_at: datetime | None = None
    last_error: str | None = None
    fetch_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class VenueMatch:
    id: str
    name: str
    slug: str
    city: str
    state: str
    address: str
    confidence: int


@dataclass
class VenueMatchResult:
    match_found: bool
    best_match: VenueMatch | None = None
    alternatives: list[VenueMatch] = field(default_factory=list)


@dataclass
class EventRef:
    id: str
    slug: str
    name: str


@dataclass
class ImportOutcome:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    venues_created: int = 0
    imported_events: list[EventRef] = field(default_factory=list)
    updated_events: list[EventRef] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """Outcome of one event's structured-data fetch."""

    event_id: str
    event_name: str
    success: bool
    status: SchemaOrgStatus
    error: str | None = None


@dataclass(frozen=True)
class SyncProgress:
    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    not_found: int = 0
    batches: int = 0
    state: SyncState = "idle"
    error: str | None = None
    successful_events: tuple[str, ...] = ()
    failed_events: tuple[str, ...] = ()


@dataclass
class ErrorLogEntry:
    id: str
    timestamp: datetime
    level: str
    message: str
    source: str | None = None
    context: dict | None = None
    stack_trace: str | None = None

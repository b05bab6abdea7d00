"""Preview and import of scraped events into the catalog.

Imports are per-event best effort: one bad listing never stops the rest,
it is reported in ImportOutcome.errors instead. Only a store outage aborts.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from models import CandidateEvent, Event, EventRef, ImportOutcome, Venue, VenueDescriptor
from scrapers.registry import get_details_scraper, get_scraper
from services.config import Settings
from services.dedup import check_duplicate, dedupe_candidates
from services.errors import HttpError, StoreUnavailableError, ValidationError
from services.logger import log_error
from services.similarity import normalize
from services.store import RecordStore
from services.venue_match import match_venue

logger = logging.getLogger(__name__)

IMPORT_CATEGORIES = ["Fair", "Festival"]
SYNCED_FIELDS = ("description", "start_date", "end_date", "image_url")


@dataclass
class Preview:
    source: str
    events: list[CandidateEvent]
    total: int
    new_count: int
    existing_count: int


@dataclass
class SourceSyncOutcome:
    synced: int = 0
    unchanged: int = 0
    errors: list[str] = field(default_factory=list)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "event"


def unique_slug(store: RecordStore, name: str) -> str:
    """First free slug among base, base-1, base-2, ..."""
    base = slugify(name)
    slug = base
    counter = 1
    while store.slug_exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def unique_venue_slug(store: RecordStore, name: str) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while store.venue_slug_exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def find_existing(store: RecordStore, event: CandidateEvent) -> Event | None:
    existing = store.find_event_by_source(event.source_name, event.source_id)
    if existing is None and event.source_url:
        existing = store.find_event_by_source_url(event.source_url)
    return existing


def merge_details(event: CandidateEvent, details: dict[str, Any]) -> CandidateEvent:
    """Overlay non-empty detail-page fields onto a listing candidate."""
    updates = {k: v for k, v in details.items() if v is not None and hasattr(event, k)}
    if "start_date" in updates:
        updates.setdefault("dates_confirmed", True)
    return replace(event, **updates)


def _fetch_details(event: CandidateEvent) -> CandidateEvent:
    scrape_details = get_details_scraper(event.source_name)
    if scrape_details is None or not event.source_url:
        return event
    return merge_details(event, scrape_details(event.source_url))


def _preview_details(store: RecordStore, event: CandidateEvent) -> CandidateEvent:
    try:
        return _fetch_details(event)
    except HttpError as e:
        log_error(
            store,
            f"Failed to fetch details for {event.name}",
            error=e,
            source="importer",
            context={"source_name": event.source_name, "source_url": event.source_url},
            level="warn",
        )
        return event


def preview(
    store: RecordStore,
    source: str,
    state_code: str | None = None,
    custom_url: str | None = None,
    fetch_details: bool = False,
    settings: Settings | None = None,
) -> Preview:
    """Scrape a source listing and mark each candidate as new, existing or a likely duplicate."""
    settings = settings or Settings()
    scraper = get_scraper(source, state_code=state_code, custom_url=custom_url)
    if scraper is None:
        raise ValidationError(f"Unknown source: {source}")

    events = dedupe_candidates(scraper.scrape())
    if fetch_details:
        events = [_preview_details(store, e) for e in events]

    annotated: list[CandidateEvent] = []
    for event in events:
        existing = find_existing(store, event)
        verdict = check_duplicate(
            store,
            source_url=event.source_url,
            name=event.name,
            start_date=event.start_date,
            window_days=settings.duplicate_window_days,
            threshold=settings.duplicate_threshold,
            ignore_years=settings.duplicate_ignore_years,
        )
        annotated.append(
            replace(
                event,
                exists=existing is not None,
                existing_id=existing.id if existing else None,
                duplicate=verdict,
            )
        )

    existing_count = sum(1 for e in annotated if e.exists)
    return Preview(
        source=source,
        events=annotated,
        total=len(annotated),
        new_count=len(annotated) - existing_count,
        existing_count=existing_count,
    )


def resolve_venue(store: RecordStore, descriptor: VenueDescriptor, settings: Settings) -> tuple[Venue, bool]:
    """Reuse a matching venue or create one. Returns (venue, created)."""
    name_key = normalize(descriptor.name)
    state = (descriptor.state or "").upper()
    for venue in store.list_venues():
        if normalize(venue.name) == name_key and venue.state.upper() == state:
            return venue, False

    result = match_venue(store, descriptor.name, descriptor.city, descriptor.state)
    if result.best_match and result.best_match.confidence >= settings.venue_reuse_confidence:
        venue = store.get_venue(result.best_match.id)
        if venue is not None:
            logger.info(
                "Matched venue %r to %r (%d%%)",
                descriptor.name, venue.name, result.best_match.confidence,
            )
            return venue, False

    now = datetime.now()
    venue = Venue(
        id=str(uuid.uuid4()),
        name=descriptor.name,
        slug=unique_venue_slug(store, descriptor.name),
        address=descriptor.street_address or "",
        city=descriptor.city or "",
        state=state,
        zip=descriptor.zip,
        created_at=now,
        updated_at=now,
    )
    return store.insert_venue(venue), True


def _new_event(
    store: RecordStore,
    candidate: CandidateEvent,
    promoter_id: str,
    venue_id: str | None,
    now: datetime,
) -> Event:
    return Event(
        id=str(uuid.uuid4()),
        name=candidate.name,
        slug=unique_slug(store, candidate.name),
        promoter_id=promoter_id,
        description=candidate.description or f"{candidate.name} - imported from {candidate.source_name}",
        venue_id=venue_id,
        start_date=candidate.start_date,
        end_date=candidate.end_date,
        dates_confirmed=candidate.dates_confirmed if candidate.dates_confirmed is not None else candidate.start_date is not None,
        categories=list(IMPORT_CATEGORIES),
        tags=["imported", candidate.source_name],
        ticket_url=candidate.ticket_url or candidate.source_url,
        ticket_price_min=candidate.ticket_price_min,
        ticket_price_max=candidate.ticket_price_max,
        image_url=candidate.image_url,
        commercial_vendors_allowed=candidate.commercial_vendors_allowed is not False,
        status="APPROVED",
        source_name=candidate.source_name,
        source_url=candidate.source_url,
        source_id=candidate.source_id,
        sync_enabled=True,
        last_synced_at=now,
        created_at=now,
        updated_at=now,
    )


def _updated_event(existing: Event, candidate: CandidateEvent, venue_id: str | None, now: datetime) -> Event:
    updates: dict[str, Any] = {"last_synced_at": now, "updated_at": now}
    for name in ("description", "start_date", "end_date", "image_url", "ticket_price_min", "ticket_price_max"):
        value = getattr(candidate, name)
        if value is not None:
            updates[name] = value
    if candidate.ticket_url:
        updates["ticket_url"] = candidate.ticket_url
    if venue_id:
        updates["venue_id"] = venue_id
    return replace(existing, **updates)


def import_events(
    store: RecordStore,
    events: list[CandidateEvent],
    promoter_id: str,
    venue_id: str | None = None,
    fetch_details: bool = False,
    update_existing: bool = False,
    settings: Settings | None = None,
) -> ImportOutcome:
    """Import selected candidates. Per-event failures are collected, not raised."""
    settings = settings or Settings()
    if not events:
        raise ValidationError("No events selected for import")
    if not promoter_id or store.get_promoter(promoter_id) is None:
        raise ValidationError(f"Promoter not found: {promoter_id}")
    if venue_id and store.get_venue(venue_id) is None:
        raise ValidationError(f"Venue not found: {venue_id}")

    outcome = ImportOutcome()

    for candidate in events:
        created_venue: Venue | None = None
        try:
            existing = find_existing(store, candidate)
            if existing is not None and not update_existing:
                outcome.skipped += 1
                continue

            if fetch_details:
                candidate = _fetch_details(candidate)

            event_venue_id = venue_id
            if event_venue_id is None and candidate.venue and candidate.venue.name.strip():
                venue, created = resolve_venue(store, candidate.venue, settings)
                event_venue_id = venue.id
                if created:
                    created_venue = venue
                    outcome.venues_created += 1

            now = datetime.now()
            if existing is not None:
                event = store.update_event(_updated_event(existing, candidate, event_venue_id, now))
                outcome.updated += 1
                outcome.updated_events.append(EventRef(id=event.id, slug=event.slug, name=event.name))
            else:
                event = store.insert_event(_new_event(store, candidate, promoter_id, event_venue_id, now))
                outcome.imported += 1
                outcome.imported_events.append(EventRef(id=event.id, slug=event.slug, name=event.name))

        except StoreUnavailableError:
            raise
        except Exception as e:
            message = f"Failed to import {candidate.name}: {e}"
            if created_venue is not None:
                message += f" (venue '{created_venue.name}' was created)"
            outcome.errors.append(message)
            log_error(
                store,
                message,
                error=e,
                source="importer",
                context={"source_name": candidate.source_name, "source_id": candidate.source_id},
            )

    logger.info(
        "Import finished: %d imported, %d updated, %d skipped, %d errors",
        outcome.imported, outcome.updated, outcome.skipped, len(outcome.errors),
    )
    return outcome


def sync_sources(store: RecordStore) -> SourceSyncOutcome:
    """Re-scrape detail pages of imported events and refresh fields that changed upstream."""
    outcome = SourceSyncOutcome()

    for event in store.list_events():
        if not event.sync_enabled or not event.source_name or not event.source_url:
            continue
        scrape_details = get_details_scraper(event.source_name)
        if scrape_details is None:
            continue

        try:
            details = scrape_details(event.source_url)
            updates = {
                name: details[name]
                for name in SYNCED_FIELDS
                if details.get(name) is not None and details[name] != getattr(event, name)
            }
            now = datetime.now()
            store.update_event(replace(event, last_synced_at=now, updated_at=now if updates else event.updated_at, **updates))
            if updates:
                outcome.synced += 1
            else:
                outcome.unchanged += 1
        except StoreUnavailableError:
            raise
        except Exception as e:
            message = f"Failed to sync {event.name}: {e}"
            outcome.errors.append(message)
            log_error(store, message, error=e, source="importer", context={"event_id": event.id})

    return outcome

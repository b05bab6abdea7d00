"""Record store for catalog events, venues, promoters and schema.org sync records.

MemoryStore keeps everything in dicts guarded by a lock. JsonFileStore adds
persistence to a single JSON file under the data directory.
"""

import json
import logging
import threading
from dataclasses import asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from models import ErrorLogEntry, Event, Promoter, SchemaOrgData, SchemaOrgRecord, Venue
from services.errors import DuplicateSlugError, StoreUnavailableError

logger = logging.getLogger(__name__)

DATETIME_FIELDS = {
    "start_date",
    "end_date",
    "created_at",
    "updated_at",
    "last_synced_at",
    "last_fetched_at",
    "timestamp",
}


class RecordStore(Protocol):
    def get_event(self, event_id: str) -> Event | None: ...
    def list_events(self) -> list[Event]: ...
    def find_event_by_source(self, source_name: str, source_id: str) -> Event | None: ...
    def find_event_by_source_url(self, source_url: str) -> Event | None: ...
    def find_events_between(self, start: datetime, end: datetime) -> list[Event]: ...
    def slug_exists(self, slug: str) -> bool: ...
    def insert_event(self, event: Event) -> Event: ...
    def update_event(self, event: Event) -> Event: ...
    def delete_event(self, event_id: str) -> None: ...
    def get_venue(self, venue_id: str) -> Venue | None: ...
    def list_venues(self) -> list[Venue]: ...
    def venue_slug_exists(self, slug: str) -> bool: ...
    def insert_venue(self, venue: Venue) -> Venue: ...
    def get_promoter(self, promoter_id: str) -> Promoter | None: ...
    def insert_promoter(self, promoter: Promoter) -> Promoter: ...
    def get_schema_org(self, event_id: str) -> SchemaOrgRecord | None: ...
    def list_schema_org(self) -> list[SchemaOrgRecord]: ...
    def upsert_schema_org(self, record: SchemaOrgRecord) -> SchemaOrgRecord: ...
    def insert_error_log(self, entry: ErrorLogEntry) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: dict[str, Event] = {}
        self.venues: dict[str, Venue] = {}
        self.promoters: dict[str, Promoter] = {}
        self.schema_org: dict[str, SchemaOrgRecord] = {}
        self.error_logs: list[ErrorLogEntry] = []

    def _commit(self) -> None:
        """Hook called after every mutation, under the lock."""

    # Events

    def get_event(self, event_id: str) -> Event | None:
        with self._lock:
            return self.events.get(event_id)

    def list_events(self) -> list[Event]:
        with self._lock:
            return list(self.events.values())

    def find_event_by_source(self, source_name: str, source_id: str) -> Event | None:
        with self._lock:
            for event in self.events.values():
                if event.source_name == source_name and event.source_id == source_id:
                    return event
        return None

    def find_event_by_source_url(self, source_url: str) -> Event | None:
        with self._lock:
            for event in self.events.values():
                if event.source_url == source_url:
                    return event
        return None

    def find_events_between(self, start: datetime, end: datetime) -> list[Event]:
        with self._lock:
            matches = [
                e for e in self.events.values()
                if e.start_date is not None and start <= e.start_date <= end
            ]
        return sorted(matches, key=lambda e: e.start_date)

    def slug_exists(self, slug: str) -> bool:
        with self._lock:
            return any(e.slug == slug for e in self.events.values())

    def insert_event(self, event: Event) -> Event:
        with self._lock:
            if any(e.slug == event.slug for e in self.events.values()):
                raise DuplicateSlugError(event.slug)
            self.events[event.id] = event
            self._commit()
        return event

    def update_event(self, event: Event) -> Event:
        with self._lock:
            if event.id not in self.events:
                raise KeyError(event.id)
            self.events[event.id] = event
            self._commit()
        return event

    def delete_event(self, event_id: str) -> None:
        with self._lock:
            self.events.pop(event_id, None)
            self.schema_org.pop(event_id, None)
            self._commit()

    # Venues

    def get_venue(self, venue_id: str) -> Venue | None:
        with self._lock:
            return self.venues.get(venue_id)

    def list_venues(self) -> list[Venue]:
        with self._lock:
            return list(self.venues.values())

    def venue_slug_exists(self, slug: str) -> bool:
        with self._lock:
            return any(v.slug == slug for v in self.venues.values())

    def insert_venue(self, venue: Venue) -> Venue:
        with self._lock:
            if any(v.slug == venue.slug for v in self.venues.values()):
                raise DuplicateSlugError(venue.slug)
            self.venues[venue.id] = venue
            self._commit()
        return venue

    # Promoters

    def get_promoter(self, promoter_id: str) -> Promoter | None:
        with self._lock:
            return self.promoters.get(promoter_id)

    def insert_promoter(self, promoter: Promoter) -> Promoter:
        with self._lock:
            self.promoters[promoter.id] = promoter
            self._commit()
        return promoter

    # schema.org records

    def get_schema_org(self, event_id: str) -> SchemaOrgRecord | None:
        with self._lock:
            return self.schema_org.get(event_id)

    def list_schema_org(self) -> list[SchemaOrgRecord]:
        with self._lock:
            return list(self.schema_org.values())

    def upsert_schema_org(self, record: SchemaOrgRecord) -> SchemaOrgRecord:
        with self._lock:
            self.schema_org[record.event_id] = record
            self._commit()
        return record

    # Error log

    def insert_error_log(self, entry: ErrorLogEntry) -> None:
        with self._lock:
            self.error_logs.append(entry)
            self._commit()


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _from_dict(cls: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            continue
        kwargs[key] = _parse_datetime(value) if key in DATETIME_FIELDS else value
    return cls(**kwargs)


def _record_from_dict(data: dict[str, Any]) -> SchemaOrgRecord:
    record = _from_dict(SchemaOrgRecord, data)
    if isinstance(record.data, dict):
        record.data = _from_dict(SchemaOrgData, record.data)
    return record


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to data/store.json after every write."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"Cannot read store at {self.path}: {e}") from e

        self.events = {e["id"]: _from_dict(Event, e) for e in data.get("events", [])}
        self.venues = {v["id"]: _from_dict(Venue, v) for v in data.get("venues", [])}
        self.promoters = {p["id"]: _from_dict(Promoter, p) for p in data.get("promoters", [])}
        self.schema_org = {
            r["event_id"]: _record_from_dict(r) for r in data.get("schema_org", [])
        }
        self.error_logs = [_from_dict(ErrorLogEntry, e) for e in data.get("error_logs", [])]
        logger.info(
            "Loaded store: %d events, %d venues, %d schema.org records",
            len(self.events), len(self.venues), len(self.schema_org),
        )

    def _commit(self) -> None:
        data = {
            "saved_at": datetime.now().isoformat(),
            "events": [asdict(e) for e in self.events.values()],
            "venues": [asdict(v) for v in self.venues.values()],
            "promoters": [asdict(p) for p in self.promoters.values()],
            "schema_org": [asdict(r) for r in self.schema_org.values()],
            "error_logs": [asdict(e) for e in self.error_logs],
        }
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write store at {self.path}: {e}") from e

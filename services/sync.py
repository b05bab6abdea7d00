"""schema.org sync: refresh structured data from the ticket pages of imported events.

run_batch() handles one page of eligible events, fetching concurrently and
writing records from the calling thread. run_sync() drives batches until the
eligible set is exhausted, the batch cap is reached, or a batch fails.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable

from models import Event, SchemaOrgRecord, SyncProgress, SyncResult
from services.config import Settings
from services.errors import ValidationError
from services.http import Fetcher
from services.logger import log_error
from services.schema_org import ParseResult, fetch_schema_org
from services.store import RecordStore

logger = logging.getLogger(__name__)

# Event field -> SchemaOrgData field
APPLICABLE_FIELDS: dict[str, str] = {
    "name": "name",
    "description": "description",
    "start_date": "start_date",
    "end_date": "end_date",
    "ticket_price_min": "price_min",
    "ticket_price_max": "price_max",
    "image_url": "image_url",
    "ticket_url": "ticket_url",
}
DATE_FIELDS = {"start_date", "end_date"}


@dataclass
class BatchStats:
    processed: int = 0
    success: int = 0
    failed: int = 0
    not_found: int = 0


@dataclass
class BatchResult:
    results: list[SyncResult] = field(default_factory=list)
    stats: BatchStats = field(default_factory=BatchStats)


@dataclass
class FieldDiff:
    field: str
    event_value: Any
    schema_value: Any


@dataclass
class ApplyResult:
    applied_fields: list[str]
    event: Event


def _classify(status: str) -> str:
    if status == "available":
        return "success"
    if status == "not_found":
        return "not_found"
    return "failed"


class SyncOrchestrator:
    def __init__(self, store: RecordStore, fetcher: Fetcher | None = None, settings: Settings | None = None):
        self.store = store
        self.settings = settings or Settings()
        self.fetcher = fetcher or Fetcher(
            timeout=self.settings.fetch_timeout,
            needs_js=self.settings.sync_render_js,
        )

    def eligible_events(
        self,
        only_missing: bool = False,
        only_existing: bool = False,
        event_ids: list[str] | None = None,
    ) -> list[Event]:
        """Events with a ticket URL, in a stable order so offsets page consistently."""
        wanted = set(event_ids) if event_ids else None
        events = []
        for event in self.store.list_events():
            if not event.ticket_url:
                continue
            if wanted is not None and event.id not in wanted:
                continue
            record = self.store.get_schema_org(event.id)
            if only_missing and record is not None:
                continue
            if only_existing and (record is None or record.status != "available"):
                continue
            events.append(event)
        return sorted(events, key=lambda e: (e.created_at or datetime.min, e.id))

    def count_eligible(self, only_missing: bool = False) -> int:
        return len(self.eligible_events(only_missing=only_missing))

    def _save(self, event: Event, parsed: ParseResult, ticket_url: str | None = None) -> SchemaOrgRecord:
        existing = self.store.get_schema_org(event.id)
        now = datetime.now()
        record = SchemaOrgRecord(
            event_id=event.id,
            ticket_url=ticket_url or event.ticket_url,
            status=parsed.status,
            raw_json_ld=existing.raw_json_ld if existing else None,
            data=existing.data if existing else None,
            last_fetched_at=now,
            last_error=parsed.error,
            fetch_count=(existing.fetch_count if existing else 0) + 1,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        if parsed.success:
            record.raw_json_ld = parsed.raw_json_ld
            record.data = parsed.data
        elif parsed.status == "invalid":
            record.raw_json_ld = parsed.raw_json_ld
        return self.store.upsert_schema_org(record)

    def _fetch(self, url: str) -> ParseResult:
        try:
            return fetch_schema_org(url, self.fetcher)
        except Exception as e:
            log_error(self.store, "Unexpected error fetching schema.org data", error=e, source="sync", context={"url": url})
            return ParseResult(status="error", error=str(e))

    def run_batch(
        self,
        only_missing: bool = False,
        only_existing: bool = False,
        event_ids: list[str] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BatchResult:
        """Fetch and record schema.org data for one page of eligible events."""
        events = self.eligible_events(only_missing, only_existing, event_ids)[offset : offset + limit]
        batch = BatchResult()
        if not events:
            return batch

        workers = max(1, min(self.settings.sync_workers, len(events)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._fetch, e.ticket_url): e for e in events}
            for future in as_completed(futures):
                event = futures[future]
                parsed = future.result()
                self._save(event, parsed)

                outcome = _classify(parsed.status)
                batch.results.append(
                    SyncResult(
                        event_id=event.id,
                        event_name=event.name,
                        success=outcome == "success",
                        status=parsed.status,
                        error=parsed.error,
                    )
                )
                batch.stats.processed += 1
                if outcome == "success":
                    batch.stats.success += 1
                elif outcome == "not_found":
                    batch.stats.not_found += 1
                else:
                    batch.stats.failed += 1

        logger.info(
            "Sync batch: %d processed, %d success, %d not found, %d failed",
            batch.stats.processed, batch.stats.success, batch.stats.not_found, batch.stats.failed,
        )
        return batch

    def refresh_event(self, event_id: str, url: str | None = None) -> SchemaOrgRecord:
        """Fetch one event's page now, optionally from a different URL."""
        event = self.store.get_event(event_id)
        if event is None:
            raise ValidationError(f"Event not found: {event_id}")
        target = url or event.ticket_url
        if not target:
            raise ValidationError("Event has no ticket URL")
        return self._save(event, self._fetch(target), ticket_url=target)

    def coverage_stats(self) -> dict[str, Any]:
        events_with_ticket_url = sum(1 for e in self.store.list_events() if e.ticket_url)
        breakdown = Counter(r.status for r in self.store.list_schema_org())
        return {
            "events_with_ticket_url": events_with_ticket_url,
            "events_with_schema_org": breakdown.get("available", 0),
            "status_breakdown": dict(breakdown),
        }


def _same_value(field_name: str, event_value: Any, schema_value: Any) -> bool:
    if field_name in DATE_FIELDS and event_value is not None:
        return event_value.date() == schema_value.date()
    return event_value == schema_value


def compare_fields(event: Event, record: SchemaOrgRecord | None) -> list[FieldDiff]:
    """Fields where the page's structured data disagrees with the catalog."""
    if record is None or record.data is None:
        return []
    diffs = []
    for event_field, schema_field in APPLICABLE_FIELDS.items():
        schema_value = getattr(record.data, schema_field)
        event_value = getattr(event, event_field)
        if schema_value is None or _same_value(event_field, event_value, schema_value):
            continue
        diffs.append(FieldDiff(field=event_field, event_value=event_value, schema_value=schema_value))
    return diffs


def apply_fields(store: RecordStore, event_id: str, fields: list[str]) -> ApplyResult:
    """Copy selected schema.org values onto the event."""
    unknown = [f for f in fields if f not in APPLICABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    event = store.get_event(event_id)
    if event is None:
        raise ValidationError(f"Event not found: {event_id}")
    record = store.get_schema_org(event_id)
    if record is None or record.status != "available" or record.data is None:
        raise ValidationError("No valid schema.org data available for this event")

    updates = {}
    for name in fields:
        value = getattr(record.data, APPLICABLE_FIELDS[name])
        if value is not None:
            updates[name] = value
    if not updates:
        raise ValidationError("No fields to apply")

    updated = store.update_event(replace(event, updated_at=datetime.now(), **updates))
    return ApplyResult(applied_fields=list(updates), event=updated)


def run_sync(
    orchestrator: SyncOrchestrator,
    only_missing: bool = False,
    batch_size: int = 50,
    max_batches: int = 100,
    on_progress: Callable[[SyncProgress], None] | None = None,
) -> SyncProgress:
    """Drive batches until done, capped, or failed. Returns the final progress."""
    if batch_size < 1:
        raise ValidationError("Batch size must be at least 1")

    def notify(progress: SyncProgress) -> SyncProgress:
        if on_progress:
            on_progress(progress)
        return progress

    total = orchestrator.count_eligible(only_missing=only_missing)
    progress = notify(SyncProgress(total=total, state="running"))

    while progress.processed < total:
        if progress.batches >= max_batches:
            logger.warning("Sync stopped after %d batches with %d/%d processed", progress.batches, progress.processed, total)
            return notify(replace(progress, state="capped"))

        limit = min(batch_size, total - progress.processed)
        offset = 0 if only_missing else progress.processed
        try:
            batch = orchestrator.run_batch(only_missing=only_missing, limit=limit, offset=offset)
        except Exception as e:
            log_error(orchestrator.store, "Sync batch failed", error=e, source="sync", context={"batch": progress.batches + 1})
            return notify(replace(progress, state="failed", error=str(e)))

        progress = notify(
            replace(
                progress,
                processed=progress.processed + batch.stats.processed,
                success=progress.success + batch.stats.success,
                failed=progress.failed + batch.stats.failed,
                not_found=progress.not_found + batch.stats.not_found,
                batches=progress.batches + 1,
                successful_events=progress.successful_events
                + tuple(r.event_name for r in batch.results if r.success),
                failed_events=progress.failed_events
                + tuple(f"{r.event_name}: {r.error}" for r in batch.results if r.status in ("error", "invalid")),
            )
        )
        if len(batch.results) < limit:
            break

    return notify(replace(progress, state="done"))

"""Tests for schema.org sync batches and the batch driver."""

import json
from datetime import datetime
from unittest.mock import patch

import pytest

from models import SchemaOrgData, SchemaOrgRecord
from services.errors import HttpError, ValidationError
from services.store import MemoryStore
from services.sync import SyncOrchestrator, apply_fields, compare_fields, run_sync
from tests.factories import FakeFetcher, event_page, html_response, make_event


def ticket(n: int) -> str:
    return f"https://tickets.example.com/event-{n}"


def available_page(name: str) -> str:
    return event_page(json.dumps({"@type": "Event", "name": name, "startDate": "2025-08-20T09:00:00"}))


def seeded_store(count: int) -> MemoryStore:
    store = MemoryStore()
    for n in range(count):
        store.insert_event(
            make_event(f"Fair {n}", ticket_url=ticket(n), created_at=datetime(2025, 1, 1 + n), id=f"event-{n}")
        )
    return store


def all_available(count: int) -> FakeFetcher:
    return FakeFetcher({ticket(n): html_response(available_page(f"Fair {n}")) for n in range(count)})


class TestEligibleEvents:
    def test_requires_ticket_url_and_orders_by_creation(self):
        store = MemoryStore()
        store.insert_event(make_event("Later", ticket_url=ticket(1), created_at=datetime(2025, 3, 1), id="b"))
        store.insert_event(make_event("Earlier", ticket_url=ticket(2), created_at=datetime(2025, 2, 1), id="a"))
        store.insert_event(make_event("No Tickets", created_at=datetime(2025, 1, 1)))

        orchestrator = SyncOrchestrator(store, fetcher=FakeFetcher({}))
        assert [e.name for e in orchestrator.eligible_events()] == ["Earlier", "Later"]

    def test_only_missing_and_only_existing(self):
        store = seeded_store(3)
        store.upsert_schema_org(SchemaOrgRecord(event_id="event-0", ticket_url=ticket(0), status="available"))
        store.upsert_schema_org(SchemaOrgRecord(event_id="event-1", ticket_url=ticket(1), status="not_found"))
        orchestrator = SyncOrchestrator(store, fetcher=FakeFetcher({}))

        assert [e.id for e in orchestrator.eligible_events(only_missing=True)] == ["event-2"]
        assert [e.id for e in orchestrator.eligible_events(only_existing=True)] == ["event-0"]
        assert [e.id for e in orchestrator.eligible_events(event_ids=["event-1", "nope"])] == ["event-1"]


class TestRunBatch:
    def test_classifies_outcomes(self):
        store = seeded_store(4)
        fetcher = FakeFetcher(
            {
                ticket(0): html_response(available_page("Fair 0")),
                ticket(1): html_response(event_page(None)),
                ticket(3): html_response(event_page(json.dumps({"@type": "Event", "startDate": "2025-08-20"}))),
            }
        )

        batch = SyncOrchestrator(store, fetcher=fetcher).run_batch()

        assert batch.stats.processed == 4
        assert batch.stats.success == 1
        assert batch.stats.not_found == 1
        assert batch.stats.failed == 2
        statuses = {r.event_id: r.status for r in batch.results}
        assert statuses == {"event-0": "available", "event-1": "not_found", "event-2": "error", "event-3": "invalid"}
        assert store.get_schema_org("event-0").data.name == "Fair 0"
        assert store.get_schema_org("event-2").last_error == "Failed to fetch page (404)"
        assert store.get_schema_org("event-3").raw_json_ld is not None

    def test_fetch_count_increments(self):
        store = seeded_store(1)
        orchestrator = SyncOrchestrator(store, fetcher=all_available(1))

        orchestrator.run_batch()
        orchestrator.run_batch()

        assert store.get_schema_org("event-0").fetch_count == 2

    def test_failed_refetch_keeps_previous_data(self):
        store = seeded_store(1)
        SyncOrchestrator(store, fetcher=all_available(1)).run_batch()

        failing = FakeFetcher({ticket(0): HttpError("Page took too long to load")})
        SyncOrchestrator(store, fetcher=failing).run_batch()

        record = store.get_schema_org("event-0")
        assert record.status == "error"
        assert record.last_error == "Page took too long to load"
        assert record.data.name == "Fair 0"

    def test_unexpected_errors_become_error_records(self):
        store = seeded_store(1)
        fetcher = FakeFetcher({ticket(0): RuntimeError("socket exploded")})

        batch = SyncOrchestrator(store, fetcher=fetcher).run_batch()

        assert batch.results[0].status == "error"
        assert batch.results[0].error == "socket exploded"
        assert len(store.error_logs) == 1

    def test_limit_and_offset(self):
        store = seeded_store(5)
        fetcher = all_available(5)

        batch = SyncOrchestrator(store, fetcher=fetcher).run_batch(limit=2, offset=2)

        assert sorted(r.event_id for r in batch.results) == ["event-2", "event-3"]
        assert sorted(fetcher.calls) == [ticket(2), ticket(3)]

    def test_empty(self):
        batch = SyncOrchestrator(MemoryStore(), fetcher=FakeFetcher({})).run_batch()
        assert batch.results == []
        assert batch.stats.processed == 0


class TestRunSync:
    def test_batches_until_done(self):
        store = seeded_store(7)
        seen = []

        progress = run_sync(
            SyncOrchestrator(store, fetcher=all_available(7)),
            batch_size=3,
            on_progress=seen.append,
        )

        assert progress.state == "done"
        assert progress.batches == 3
        assert progress.processed == progress.total == 7
        assert progress.success == 7
        assert len(progress.successful_events) == 7
        assert seen[0].state == "running"
        assert seen[0].processed == 0
        assert [p.processed for p in seen[1:4]] == [3, 6, 7]
        assert seen[-1].state == "done"
        assert all(s.processed <= s.total for s in seen)

    def test_only_missing_keeps_offset_at_zero(self):
        store = seeded_store(5)
        orchestrator = SyncOrchestrator(store, fetcher=FakeFetcher({}))

        progress = run_sync(orchestrator, only_missing=True, batch_size=2)

        assert progress.state == "done"
        assert progress.processed == 5
        assert progress.failed == 5
        assert len(store.list_schema_org()) == 5
        assert all(r.fetch_count == 1 for r in store.list_schema_org())
        assert progress.failed_events[0].endswith(": Failed to fetch page (404)")

    def test_capped(self):
        store = seeded_store(7)

        progress = run_sync(SyncOrchestrator(store, fetcher=all_available(7)), batch_size=3, max_batches=2)

        assert progress.state == "capped"
        assert progress.batches == 2
        assert progress.processed == 6

    def test_batch_failure_stops_run(self):
        store = seeded_store(3)
        orchestrator = SyncOrchestrator(store, fetcher=all_available(3))

        with patch.object(orchestrator, "run_batch", side_effect=RuntimeError("database is down")):
            progress = run_sync(orchestrator, batch_size=2)

        assert progress.state == "failed"
        assert progress.error == "database is down"
        assert progress.processed == 0

    def test_nothing_eligible(self):
        progress = run_sync(SyncOrchestrator(MemoryStore(), fetcher=FakeFetcher({})))
        assert progress.state == "done"
        assert progress.total == 0
        assert progress.batches == 0

    def test_invalid_batch_size(self):
        with pytest.raises(ValidationError):
            run_sync(SyncOrchestrator(MemoryStore(), fetcher=FakeFetcher({})), batch_size=0)


class TestRefreshEvent:
    def test_refresh_from_other_url(self):
        store = seeded_store(1)
        other = "https://other.example.com/fair"
        fetcher = FakeFetcher({other: html_response(available_page("Fair Zero"))})

        record = SyncOrchestrator(store, fetcher=fetcher).refresh_event("event-0", url=other)

        assert record.status == "available"
        assert record.ticket_url == other
        assert record.data.name == "Fair Zero"

    def test_unknown_event(self):
        with pytest.raises(ValidationError, match="Event not found"):
            SyncOrchestrator(MemoryStore(), fetcher=FakeFetcher({})).refresh_event("missing")

    def test_event_without_ticket_url(self):
        store = MemoryStore()
        store.insert_event(make_event("Bean Supper", id="supper"))
        with pytest.raises(ValidationError, match="no ticket URL"):
            SyncOrchestrator(store, fetcher=FakeFetcher({})).refresh_event("supper")


class TestCoverageStats:
    def test_counts(self):
        store = seeded_store(3)
        store.insert_event(make_event("No Tickets"))
        store.upsert_schema_org(SchemaOrgRecord(event_id="event-0", ticket_url=ticket(0), status="available"))
        store.upsert_schema_org(SchemaOrgRecord(event_id="event-1", ticket_url=ticket(1), status="not_found"))

        stats = SyncOrchestrator(store, fetcher=FakeFetcher({})).coverage_stats()

        assert stats == {
            "events_with_ticket_url": 3,
            "events_with_schema_org": 1,
            "status_breakdown": {"available": 1, "not_found": 1},
        }


def available_record(event_id: str, **data) -> SchemaOrgRecord:
    return SchemaOrgRecord(event_id=event_id, ticket_url=ticket(0), status="available", data=SchemaOrgData(**data))


class TestCompareFields:
    def test_reports_disagreements_only(self):
        event = make_event(
            "Fryeburg Fair",
            start_date=datetime(2025, 9, 28, 9),
            description="Old copy",
            ticket_price_min=10.0,
        )
        record = available_record(
            event.id,
            name="Fryeburg Fair",
            start_date=datetime(2025, 9, 28, 8),
            description="New copy",
            price_min=15.0,
        )

        diffs = {d.field: (d.event_value, d.schema_value) for d in compare_fields(event, record)}

        assert diffs == {"description": ("Old copy", "New copy"), "ticket_price_min": (10.0, 15.0)}

    def test_no_record(self):
        assert compare_fields(make_event("Fair"), None) == []


class TestApplyFields:
    def test_applies_selected_fields(self):
        store = MemoryStore()
        event = store.insert_event(make_event("Fryeburg Fair", description="Old copy"))
        store.upsert_schema_org(
            available_record(event.id, name="Fryeburg Fair", description="New copy", price_min=5.0, price_max=40.0)
        )

        result = apply_fields(store, event.id, ["description", "ticket_price_min", "ticket_price_max"])

        assert result.applied_fields == ["description", "ticket_price_min", "ticket_price_max"]
        updated = store.get_event(event.id)
        assert updated.description == "New copy"
        assert updated.ticket_price_min == 5.0
        assert updated.ticket_price_max == 40.0

    def test_unknown_field(self):
        with pytest.raises(ValidationError, match="Unknown fields: venue_id"):
            apply_fields(MemoryStore(), "any", ["venue_id"])

    def test_requires_available_record(self):
        store = MemoryStore()
        event = store.insert_event(make_event("Fair"))
        store.upsert_schema_org(SchemaOrgRecord(event_id=event.id, ticket_url=ticket(0), status="not_found"))

        with pytest.raises(ValidationError, match="No valid schema.org data"):
            apply_fields(store, event.id, ["name"])

    def test_nothing_to_apply(self):
        store = MemoryStore()
        event = store.insert_event(make_event("Fair"))
        store.upsert_schema_org(available_record(event.id, name="Fair"))

        with pytest.raises(ValidationError, match="No fields to apply"):
            apply_fields(store, event.id, ["image_url"])

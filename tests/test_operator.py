"""Tests for the operator request handlers."""

import json
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from models import SchemaOrgData, SchemaOrgRecord
from services.config import Settings
from services.errors import HttpError, ScrapeError, StoreUnavailableError
from services.extraction import DEGRADED_MESSAGE
from services.operator import OperatorApi, to_json
from services.rate_limit import RateLimiter
from services.store import MemoryStore
from tests.factories import FakeFetcher, event_page, html_response, make_event, make_promoter, make_venue

TICKET_URL = "https://tickets.example.com/union"


@pytest.fixture
def store():
    store = MemoryStore()
    make_promoter(store)
    return store


@pytest.fixture
def api(store):
    return OperatorApi(store, Settings(), fetcher=FakeFetcher({}))


def candidate_payload(name: str, source_id: str, **extra) -> dict:
    return {
        "sourceId": source_id,
        "sourceName": "mainefairs.net",
        "sourceUrl": f"https://mainefairs.net/event/{source_id}/",
        "name": name,
        **extra,
    }


class TestToJson:
    def test_camel_case_and_datetimes(self):
        record = SchemaOrgRecord(event_id="e1", ticket_url=TICKET_URL, status="available", last_fetched_at=datetime(2025, 5, 1, 12))
        body = to_json(record)
        assert body["eventId"] == "e1"
        assert body["lastFetchedAt"] == "2025-05-01T12:00:00"
        assert body["fetchCount"] == 0


class TestImport:
    def test_import(self, api, store):
        payload = {
            "promoterId": "promoter-1",
            "events": [
                candidate_payload(
                    "Union Fair",
                    "union-fair",
                    startDate="2025-08-20T09:00:00-04:00",
                    venue={"name": "Union Fairgrounds", "city": "Union", "state": "ME"},
                ),
            ],
        }

        status, body = api.import_events(payload)

        assert status == 200
        assert body["success"] is True
        assert body["imported"] == 1
        assert body["venuesCreated"] == 1
        assert body["importedEvents"][0]["slug"] == "union-fair"
        event = store.list_events()[0]
        assert event.start_date == datetime(2025, 8, 20, 9)

    def test_partial_failure_still_200(self, store):
        class Flaky(MemoryStore):
            def insert_event(self, event):
                if event.name == "Broken Fair":
                    raise RuntimeError("constraint violation")
                return super().insert_event(event)

        flaky = Flaky()
        make_promoter(flaky)
        payload = {
            "promoterId": "promoter-1",
            "events": [candidate_payload("Union Fair", "union-fair"), candidate_payload("Broken Fair", "broken")],
        }

        status, body = OperatorApi(flaky, fetcher=FakeFetcher({})).import_events(payload)

        assert status == 200
        assert body["imported"] == 1
        assert body["errors"] == ["Failed to import Broken Fair: constraint violation"]

    def test_blank_venue_name_ignored(self, api, store):
        payload = {
            "promoterId": "promoter-1",
            "events": [candidate_payload("Union Fair", "union-fair", venue={"name": "   ", "city": "Union"})],
        }

        status, body = api.import_events(payload)

        assert status == 200
        assert body["imported"] == 1
        assert body["venuesCreated"] == 0
        assert store.list_events()[0].venue_id is None

    def test_empty_events_rejected(self, api):
        status, body = api.import_events({"promoterId": "promoter-1", "events": []})
        assert status == 400
        assert body["error"] == "Invalid request"
        assert body["details"]

    def test_unknown_promoter(self, api):
        status, body = api.import_events({"promoterId": "nobody", "events": [candidate_payload("A", "a")]})
        assert status == 400
        assert body == {"error": "Promoter not found: nobody"}

    def test_store_outage(self):
        class Offline(MemoryStore):
            def get_promoter(self, promoter_id):
                raise StoreUnavailableError("connection refused")

        status, body = OperatorApi(Offline(), fetcher=FakeFetcher({})).import_events(
            {"promoterId": "promoter-1", "events": [candidate_payload("A", "a")]}
        )
        assert status == 503


class TestPreview:
    @patch("services.importer.get_scraper")
    def test_scrape_failure(self, mock_get_scraper, api):
        mock_get_scraper.return_value = MagicMock(scrape=MagicMock(side_effect=ScrapeError("calendar down")))

        status, body = api.preview({"source": "mainefairs.net"})

        assert status == 500
        assert body == {"error": "calendar down"}

    def test_unknown_source(self, api):
        status, body = api.preview({"source": "example.com"})
        assert status == 400

    def test_missing_source(self, api):
        status, _ = api.preview({})
        assert status == 400


class TestSync:
    def test_run_sync_batch(self, store):
        store.insert_event(make_event("Union Fair", ticket_url=TICKET_URL, id="union"))
        page = event_page(json.dumps({"@type": "Event", "name": "Union Fair"}))
        api = OperatorApi(store, fetcher=FakeFetcher({TICKET_URL: html_response(page)}))

        status, body = api.run_sync({"limit": 10})

        assert status == 200
        assert body["message"] == "Processed 1 events"
        assert body["stats"] == {"processed": 1, "success": 1, "failed": 0, "notFound": 0}
        assert body["results"][0]["eventId"] == "union"

    def test_limit_bounds(self, api):
        assert api.run_sync({"limit": 0})[0] == 400
        assert api.run_sync({"limit": 501})[0] == 400

    def test_stats(self, api, store):
        store.insert_event(make_event("Union Fair", ticket_url=TICKET_URL, id="union"))
        store.upsert_schema_org(SchemaOrgRecord(event_id="union", ticket_url=TICKET_URL, status="not_found"))

        status, body = api.sync_stats()

        assert status == 200
        assert body == {"eventsWithTicketUrl": 1, "eventsWithSchemaOrg": 0, "statusBreakdown": {"not_found": 1}}


class TestSchemaOrgEndpoints:
    def test_status_with_diffs(self, api, store):
        store.insert_event(make_event("Union Fair", ticket_url=TICKET_URL, id="union", description="Old"))
        store.upsert_schema_org(
            SchemaOrgRecord(
                event_id="union",
                ticket_url=TICKET_URL,
                status="available",
                data=SchemaOrgData(name="Union Fair", description="New"),
            )
        )

        status, body = api.schema_org_status("union")

        assert status == 200
        assert body["schemaOrg"]["data"]["description"] == "New"
        assert body["diffs"] == [{"field": "description", "eventValue": "Old", "schemaValue": "New"}]

    def test_status_unknown_event(self, api):
        assert api.schema_org_status("missing") == (404, {"error": "Event not found"})

    def test_refresh_rejects_internal_url(self, api, store):
        store.insert_event(make_event("Union Fair", ticket_url=TICKET_URL, id="union"))
        status, body = api.schema_org_refresh("union", {"url": "http://127.0.0.1/"})
        assert status == 400
        assert body == {"error": "URL is not allowed"}

    def test_refresh(self, store):
        store.insert_event(make_event("Union Fair", ticket_url=TICKET_URL, id="union"))
        api = OperatorApi(store, fetcher=FakeFetcher({TICKET_URL: html_response(event_page(None))}))

        status, body = api.schema_org_refresh("union")

        assert status == 200
        assert body["success"] is False
        assert body["schemaOrg"]["status"] == "not_found"

    def test_apply(self, api, store):
        store.insert_event(make_event("Union Fair", id="union"))
        store.upsert_schema_org(
            SchemaOrgRecord(
                event_id="union",
                ticket_url=TICKET_URL,
                status="available",
                data=SchemaOrgData(name="Union Fair", image_url="https://img.example.com/u.jpg"),
            )
        )

        status, body = api.schema_org_apply("union", {"fields": ["image_url"]})

        assert status == 200
        assert body["appliedFields"] == ["image_url"]
        assert body["event"]["imageUrl"] == "https://img.example.com/u.jpg"

    def test_apply_unknown_field(self, api, store):
        store.insert_event(make_event("Union Fair", id="union"))
        status, body = api.schema_org_apply("union", {"fields": ["promoter_id"]})
        assert status == 400


class TestRateLimitedEndpoints:
    def test_check_duplicate(self, api, store):
        store.insert_event(make_event("Summer County Fair", datetime(2025, 7, 15)))

        status, body = api.check_duplicate({"name": "Summer County Fair 2025", "startDate": "2025-07-17"})

        assert status == 200
        assert body["isDuplicate"] is True
        assert body["matchType"] == "similar_name_date"
        assert body["existingEvent"]["name"] == "Summer County Fair"

    def test_match_venue(self, api, store):
        store.insert_venue(make_venue("Expo Centre", city="Bangor", state="ME"))

        status, body = api.match_venue({"venueName": "Expo Center", "venueCity": "Bangor"})

        assert status == 200
        assert body["matchFound"] is True
        assert body["bestMatch"]["confidence"] == 97

    def test_match_venue_requires_name(self, api):
        assert api.match_venue({"venueName": ""})[0] == 400

    def test_rate_limited_per_caller(self, store):
        api = OperatorApi(store, fetcher=FakeFetcher({}), limiter=RateLimiter(1, 60))

        assert api.check_duplicate({}, caller="10.1.1.1")[0] == 200
        status, body = api.check_duplicate({}, caller="10.1.1.1")
        assert status == 429
        assert body["retryAfter"] >= 1
        assert api.check_duplicate({}, caller="10.1.1.2")[0] == 200


class TestExtract:
    PAGE = "https://harborfest.example.com/"

    def test_internal_url(self, api):
        assert api.extract({"url": "http://localhost/"}) == (400, {"error": "URL is not allowed"})

    def test_fetch_failure(self, store):
        api = OperatorApi(store, fetcher=FakeFetcher({self.PAGE: HttpError("Page took too long to load")}))
        assert api.extract({"url": self.PAGE}) == (502, {"error": "Page took too long to load"})

    def test_bad_status(self, api):
        assert api.extract({"url": self.PAGE}) == (502, {"error": "Failed to fetch page (404)"})

    @patch.dict("os.environ", {}, clear=True)
    def test_degraded(self, store):
        html = "<html><head><title>Harbor Fest</title></head><body>June 5</body></html>"
        api = OperatorApi(store, fetcher=FakeFetcher({self.PAGE: html_response(html)}))

        status, body = api.extract({"url": self.PAGE})

        assert status == 200
        assert body["success"] is False
        assert body["error"] == DEGRADED_MESSAGE
        assert body["events"][0]["name"] == "Harbor Fest"

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_success(self, mock_client_cls, store):
        mock_client_cls.return_value.models.generate_content.return_value = MagicMock(
            text='[{"name": "Harbor Fest", "startDate": "2026-06-05"}]'
        )
        api = OperatorApi(store, fetcher=FakeFetcher({self.PAGE: html_response("<p>Harbor Fest</p>")}))

        status, body = api.extract({"url": self.PAGE})

        assert status == 200
        assert body["success"] is True
        event = body["events"][0]
        assert event["startDate"] == "2026-06-05"
        assert event["ticketUrl"] == self.PAGE
        assert body["confidence"][event["extractId"]]["name"] == "medium"

"""Operator-facing request handlers.

Each handler takes a JSON-like payload and returns (status_code, body) with
camelCase keys, so any web framework (or the CLI) can expose them directly.
"""

import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from functools import wraps
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import CandidateEvent, VenueDescriptor
from services import importer
from services.config import Settings
from services.dedup import check_duplicate
from services.errors import (
    HttpError,
    PipelineError,
    RateLimitError,
    ScrapeError,
    StoreUnavailableError,
    ValidationError,
)
from services.extraction import DEGRADED_MESSAGE, extract_from_html
from services.http import Fetcher, is_internal_url
from services.logger import log_error
from services.rate_limit import RateLimiter
from services.store import RecordStore
from services.sync import SyncOrchestrator, apply_fields, compare_fields
from services.venue_match import match_venue

logger = logging.getLogger(__name__)

Response = tuple[int, dict[str, Any]]


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreviewRequest(Payload):
    source: str = Field(min_length=1)
    state_code: str | None = None
    custom_url: str | None = None
    fetch_details: bool = False


class VenuePayload(Payload):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class CandidatePayload(Payload):
    source_id: str = Field(min_length=1)
    source_name: str = Field(min_length=1)
    source_url: str
    name: str = Field(min_length=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    dates_confirmed: bool | None = None
    description: str | None = None
    venue: VenuePayload | None = None
    image_url: str | None = None
    ticket_url: str | None = None
    website: str | None = None
    ticket_price_min: float | None = Field(default=None, ge=0)
    ticket_price_max: float | None = Field(default=None, ge=0)
    commercial_vendors_allowed: bool | None = None
    vendor_types: list[str] | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_datetime(cls, v: datetime | None) -> datetime | None:
        return v.replace(tzinfo=None) if v else v

    def to_candidate(self) -> CandidateEvent:
        data = self.model_dump(exclude={"venue"})
        venue = VenueDescriptor(**self.venue.model_dump()) if self.venue and self.venue.name else None
        return CandidateEvent(venue=venue, **data)


class ImportRequest(Payload):
    events: list[CandidatePayload] = Field(min_length=1)
    promoter_id: str = Field(min_length=1)
    venue_id: str | None = None
    fetch_details: bool = False
    update_existing: bool = False


class SyncRequest(Payload):
    event_ids: list[str] | None = None
    only_missing: bool = False
    only_existing: bool = False
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class CheckDuplicateRequest(Payload):
    source_url: str | None = None
    name: str | None = None
    start_date: datetime | None = None

    @field_validator("start_date")
    @classmethod
    def naive_datetime(cls, v: datetime | None) -> datetime | None:
        return v.replace(tzinfo=None) if v else v


class MatchVenueRequest(Payload):
    venue_name: str = Field(min_length=1)
    venue_city: str | None = None
    venue_state: str | None = None


class RefreshRequest(Payload):
    url: str | None = None


class ApplyRequest(Payload):
    fields: list[str] = Field(min_length=1)


class ExtractRequest(Payload):
    url: str = Field(min_length=1)


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def to_json(value: Any) -> Any:
    """Dataclasses and dicts to JSON-ready values with camelCase keys."""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {_camel(str(k)): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def handles_errors(handler):
    """Map the exception taxonomy onto HTTP-style status codes."""

    @wraps(handler)
    def wrapper(self, *args, **kwargs) -> Response:
        try:
            return handler(self, *args, **kwargs)
        except pydantic.ValidationError as e:
            return 400, {"error": "Invalid request", "details": e.errors(include_url=False)}
        except ValidationError as e:
            return 400, {"error": str(e)}
        except RateLimitError as e:
            return 429, {"error": "Too many requests", "retryAfter": e.retry_after}
        except StoreUnavailableError as e:
            log_error(None, "Record store unavailable", error=e, source=handler.__name__)
            return 503, {"error": "Record store unavailable"}
        except ScrapeError as e:
            log_error(self.store, "Scrape failed", error=e, source=handler.__name__)
            return 500, {"error": str(e)}
        except PipelineError as e:
            log_error(self.store, "Request failed", error=e, source=handler.__name__)
            return 500, {"error": str(e)}

    return wrapper


class OperatorApi:
    def __init__(
        self,
        store: RecordStore,
        settings: Settings | None = None,
        fetcher: Fetcher | None = None,
        limiter: RateLimiter | None = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.fetcher = fetcher or Fetcher(timeout=self.settings.fetch_timeout)
        self.sync = SyncOrchestrator(store, fetcher=self.fetcher, settings=self.settings)
        self.limiter = limiter or RateLimiter(
            self.settings.rate_limit_requests,
            self.settings.rate_limit_window_seconds,
        )

    @handles_errors
    def preview(self, payload: dict[str, Any]) -> Response:
        request = PreviewRequest.model_validate(payload)
        result = importer.preview(
            self.store,
            request.source,
            state_code=request.state_code,
            custom_url=request.custom_url,
            fetch_details=request.fetch_details,
            settings=self.settings,
        )
        return 200, to_json(result)

    @handles_errors
    def import_events(self, payload: dict[str, Any]) -> Response:
        request = ImportRequest.model_validate(payload)
        outcome = importer.import_events(
            self.store,
            [e.to_candidate() for e in request.events],
            request.promoter_id,
            venue_id=request.venue_id,
            fetch_details=request.fetch_details,
            update_existing=request.update_existing,
            settings=self.settings,
        )
        return 200, {"success": True, **to_json(outcome)}

    @handles_errors
    def run_sync(self, payload: dict[str, Any]) -> Response:
        request = SyncRequest.model_validate(payload)
        batch = self.sync.run_batch(
            only_missing=request.only_missing,
            only_existing=request.only_existing,
            event_ids=request.event_ids,
            limit=request.limit,
            offset=request.offset,
        )
        return 200, {
            "success": True,
            "message": f"Processed {batch.stats.processed} events",
            "results": to_json(batch.results),
            "stats": to_json(batch.stats),
        }

    @handles_errors
    def sync_stats(self) -> Response:
        stats = self.sync.coverage_stats()
        return 200, {
            "eventsWithTicketUrl": stats["events_with_ticket_url"],
            "eventsWithSchemaOrg": stats["events_with_schema_org"],
            "statusBreakdown": stats["status_breakdown"],
        }

    @handles_errors
    def check_duplicate(self, payload: dict[str, Any], caller: str = "anonymous") -> Response:
        self.limiter.check(f"check-duplicate:{caller}")
        request = CheckDuplicateRequest.model_validate(payload)
        verdict = check_duplicate(
            self.store,
            source_url=request.source_url,
            name=request.name,
            start_date=request.start_date,
            window_days=self.settings.duplicate_window_days,
            threshold=self.settings.duplicate_threshold,
            ignore_years=self.settings.duplicate_ignore_years,
        )
        return 200, to_json(verdict)

    @handles_errors
    def match_venue(self, payload: dict[str, Any], caller: str = "anonymous") -> Response:
        self.limiter.check(f"match-venue:{caller}")
        request = MatchVenueRequest.model_validate(payload)
        result = match_venue(self.store, request.venue_name, request.venue_city, request.venue_state)
        return 200, to_json(result)

    @handles_errors
    def schema_org_status(self, event_id: str) -> Response:
        event = self.store.get_event(event_id)
        if event is None:
            return 404, {"error": "Event not found"}
        record = self.store.get_schema_org(event_id)
        return 200, {
            "schemaOrg": to_json(record),
            "diffs": to_json(compare_fields(event, record)),
        }

    @handles_errors
    def schema_org_refresh(self, event_id: str, payload: dict[str, Any] | None = None) -> Response:
        request = RefreshRequest.model_validate(payload or {})
        if request.url and is_internal_url(request.url):
            raise ValidationError("URL is not allowed")
        record = self.sync.refresh_event(event_id, url=request.url)
        return 200, {"success": record.status == "available", "schemaOrg": to_json(record)}

    @handles_errors
    def schema_org_apply(self, event_id: str, payload: dict[str, Any]) -> Response:
        request = ApplyRequest.model_validate(payload)
        result = apply_fields(self.store, event_id, request.fields)
        return 200, {
            "success": True,
            "appliedFields": result.applied_fields,
            "event": to_json(result.event),
        }

    @handles_errors
    def extract(self, payload: dict[str, Any], caller: str = "anonymous") -> Response:
        self.limiter.check(f"extract:{caller}")
        request = ExtractRequest.model_validate(payload)
        if is_internal_url(request.url):
            raise ValidationError("URL is not allowed")
        try:
            response = self.fetcher.fetch(request.url)
        except HttpError as e:
            return 502, {"error": str(e)}
        if not response.ok:
            return 502, {"error": f"Failed to fetch page ({response.status})"}

        result = extract_from_html(response.body, request.url)
        if not result.success:
            return 200, {"success": False, "error": DEGRADED_MESSAGE, "events": to_json(result.events)}
        return 200, {
            "success": True,
            "events": to_json(result.events),
            "confidence": to_json(result.confidence),
        }

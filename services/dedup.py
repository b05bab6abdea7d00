import re
from datetime import datetime, timedelta

from models import CandidateEvent, DuplicateVerdict, Event, ExistingEventRef
from services.similarity import normalize, similarity
from services.store import RecordStore

DEFAULT_WINDOW_DAYS = 7
DEFAULT_THRESHOLD = 0.85

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")


def comparable_name(name: str, ignore_years: bool = True) -> str:
    """Normalized name, with edition years like "2025" removed when asked."""
    normalized = normalize(name)
    if not ignore_years:
        return normalized
    stripped = normalize(YEAR_PATTERN.sub(" ", normalized))
    # A name that is only a year keeps it
    return stripped or normalized


def to_existing_ref(event: Event) -> ExistingEventRef:
    return ExistingEventRef(
        id=event.id,
        slug=event.slug,
        name=event.name,
        start_date=event.start_date,
        status=event.status,
    )


def check_duplicate(
    store: RecordStore,
    source_url: str | None = None,
    name: str | None = None,
    start_date: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    threshold: float = DEFAULT_THRESHOLD,
    ignore_years: bool = True,
) -> DuplicateVerdict:
    """Decide whether a candidate already exists: exact source URL first, then fuzzy name near the date."""
    if source_url:
        existing = store.find_event_by_source_url(source_url)
        if existing is not None:
            return DuplicateVerdict(
                is_duplicate=True,
                match_type="exact_url",
                existing_event=to_existing_ref(existing),
            )

    if not name or start_date is None:
        return DuplicateVerdict(is_duplicate=False)

    candidate = comparable_name(name, ignore_years)
    day = datetime(start_date.year, start_date.month, start_date.day)
    window_start = day - timedelta(days=window_days)
    window_end = day + timedelta(days=window_days + 1) - timedelta(microseconds=1)

    for event in store.find_events_between(window_start, window_end):
        score = similarity(candidate, comparable_name(event.name, ignore_years))
        if score > threshold:
            return DuplicateVerdict(
                is_duplicate=True,
                match_type="similar_name_date",
                similarity=round(score * 100),
                existing_event=to_existing_ref(event),
            )

    return DuplicateVerdict(is_duplicate=False)


def dedupe_candidates(events: list[CandidateEvent]) -> list[CandidateEvent]:
    """Drop repeated listings within one scrape: same source id, or same name on the same day."""
    seen_ids: set[str] = set()
    seen_keys: set[str] = set()
    deduped: list[CandidateEvent] = []

    for event in events:
        date_str = event.start_date.strftime("%Y-%m-%d") if event.start_date else ""
        key = f"{normalize(event.name)}|{date_str}"
        if event.source_id in seen_ids or key in seen_keys:
            continue
        seen_ids.add(event.source_id)
        seen_keys.add(key)
        deduped.append(event)

    return deduped

from models import Venue, VenueMatch, VenueMatchResult
from services.errors import ValidationError
from services.similarity import normalize, similarity
from services.store import RecordStore

MAX_CANDIDATES = 50
MAX_MATCHES = 5
MIN_SCORE = 0.6
CITY_BONUS = 0.15
CITY_THRESHOLD = 0.8
STATE_BONUS = 0.10


def _candidate_pool(venues: list[Venue], first_token: str, state: str | None) -> list[Venue]:
    pool: list[Venue] = []
    for venue in venues:
        name_hit = bool(first_token) and first_token in venue.name.lower()
        state_hit = bool(state) and venue.state == state.upper()
        if name_hit or state_hit:
            pool.append(venue)
            if len(pool) >= MAX_CANDIDATES:
                break
    return pool


def score_venue(
    venue: Venue,
    venue_name: str,
    venue_city: str | None = None,
    venue_state: str | None = None,
) -> float:
    score = similarity(normalize(venue_name), normalize(venue.name))
    if venue_city and venue.city:
        if similarity(normalize(venue_city), normalize(venue.city)) > CITY_THRESHOLD:
            score += CITY_BONUS
    if venue_state and venue.state and venue_state.lower() == venue.state.lower():
        score += STATE_BONUS
    return min(score, 1.0)


def match_venue(
    store: RecordStore,
    venue_name: str,
    venue_city: str | None = None,
    venue_state: str | None = None,
) -> VenueMatchResult:
    """Rank existing venues against a name/city/state, best first."""
    if not venue_name or not venue_name.strip():
        raise ValidationError("Venue name is required")

    tokens = normalize(venue_name).split()
    first_token = tokens[0] if tokens else ""
    pool = _candidate_pool(store.list_venues(), first_token, venue_state)

    scored = [(score_venue(v, venue_name, venue_city, venue_state), v) for v in pool]
    scored = [(s, v) for s, v in scored if s > MIN_SCORE]
    scored.sort(key=lambda pair: pair[0], reverse=True)

    matches = [
        VenueMatch(
            id=v.id,
            name=v.name,
            slug=v.slug,
            city=v.city,
            state=v.state,
            address=v.address,
            confidence=round(s * 100),
        )
        for s, v in scored[:MAX_MATCHES]
    ]

    if not matches:
        return VenueMatchResult(match_found=False)
    return VenueMatchResult(match_found=True, best_match=matches[0], alternatives=matches[1:])

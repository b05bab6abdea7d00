"""Lookup of scrape sources by their operator-facing key.

Keys are either exact ("mainefairs.net", "vtnhfairs.org-nh") or fairsandfestivals.net variants:
"fairsandfestivals.net-NH" for a state listing and
"fairsandfestivals.net-custom" together with a custom listing URL.
"""

import re
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable

from models import CandidateEvent
from scrapers import craftshows, fairsandfestivals, mafa, mainefairs, mainemade, mainepublic, vtnhfairs
from scrapers.utils import no_details
from services.errors import ValidationError

FAIRSANDFESTIVALS_PREFIX = "fairsandfestivals.net"


@dataclass
class ScrapeSource:
    name: str
    scrape: Callable[[], list[CandidateEvent]]
    scrape_details: Callable[[str], dict[str, Any]]


SOURCES: dict[str, ScrapeSource] = {
    source.name: source
    for source in (
        ScrapeSource(mainefairs.SOURCE_NAME, mainefairs.scrape, mainefairs.scrape_details),
        ScrapeSource(mafa.SOURCE_NAME, mafa.scrape, no_details),
        ScrapeSource(vtnhfairs.SOURCE_NAME, vtnhfairs.scrape_vt, no_details),
        ScrapeSource(vtnhfairs.VT_PAGE.source_name, vtnhfairs.scrape_vt, no_details),
        ScrapeSource(vtnhfairs.NH_PAGE.source_name, vtnhfairs.scrape_nh, no_details),
        ScrapeSource(mainepublic.SOURCE_NAME, mainepublic.scrape, mainepublic.scrape_details),
        ScrapeSource(mainemade.SOURCE_NAME, mainemade.scrape, mainemade.scrape_details),
        ScrapeSource(craftshows.NECF_SOURCE_NAME, craftshows.scrape_new_england_craft_fairs, no_details),
        ScrapeSource(craftshows.JOYCES_SOURCE_NAME, craftshows.scrape_joyces_craft_shows, no_details),
    )
}


def list_sources() -> list[str]:
    return sorted(SOURCES) + [
        f"{FAIRSANDFESTIVALS_PREFIX}-XX",
        f"{FAIRSANDFESTIVALS_PREFIX}-custom",
    ]


def get_scraper(
    source: str,
    state_code: str | None = None,
    custom_url: str | None = None,
) -> ScrapeSource | None:
    """Resolve a source key (plus options) to a scraper, or None if unknown."""
    if source in SOURCES:
        return SOURCES[source]

    if not source.startswith(FAIRSANDFESTIVALS_PREFIX):
        return None

    if source == f"{FAIRSANDFESTIVALS_PREFIX}-custom":
        if not custom_url:
            raise ValidationError("A custom URL is required for fairsandfestivals.net-custom")
        listing = partial(fairsandfestivals.scrape_url, custom_url)
    else:
        state_match = re.fullmatch(rf"{re.escape(FAIRSANDFESTIVALS_PREFIX)}-([A-Za-z]{{2}})", source)
        state = state_code or (state_match.group(1) if state_match else "ME")
        listing = partial(fairsandfestivals.scrape, state.upper())

    return ScrapeSource(
        name=fairsandfestivals.SOURCE_NAME,
        scrape=listing,
        scrape_details=fairsandfestivals.scrape_details,
    )


def get_details_scraper(source_name: str | None) -> Callable[[str], dict[str, Any]] | None:
    """Detail-page scraper for an imported event's source name."""
    if not source_name:
        return None
    scraper = get_scraper(source_name)
    return scraper.scrape_details if scraper else None

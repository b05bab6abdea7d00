"""Craft show promoters whose schedules are published as informal pages.

Neither site has markup that can be parsed reliably (one is free-form
text, the other renders client-side), so their seasons are kept here as
tables and turned into candidates. newenglandcraftfairs.com is still
fetched so a dead schedule page shows up as a failed scrape.
"""

import logging
from dataclasses import dataclass

from models import CandidateEvent, VenueDescriptor
from scrapers.utils import parse_dated_range, slug_from_name
from services.errors import HttpError, ScrapeError
from services.http import fetch_page

logger = logging.getLogger(__name__)

NECF_SOURCE_NAME = "newenglandcraftfairs.com"
NECF_URL = "https://www.newenglandcraftfairs.com/maine-craft-fairs.html"

JOYCES_SOURCE_NAME = "joycescraftshows.com"
JOYCES_URL = "https://www.joycescraftshows.com"


@dataclass
class CraftShow:
    name: str
    dates: str
    venue: str
    address: str
    city: str
    state: str
    description: str = ""
    path: str = ""


NECF_SHOWS = [
    CraftShow("Wells 8th Annual Summerfest Arts & Craft Show", "June 27-28, 2026", "Wells Junior High", "1470 Post Rd, Rt 1", "Wells", "ME"),
    CraftShow("Wells 9th Annual Summerfest Arts & Craft Show", "August 8-9, 2026", "Wells Junior High", "1470 Post Rd, Rt 1", "Wells", "ME"),
    CraftShow("Annual Columbus Weekend Arts & Craft Show", "October 10-11, 2026", "Westbrook Community Center", "426 Bridge St", "Westbrook", "ME"),
    CraftShow("41st Annual Harvest Festival of Crafts", "October 24-25, 2026", "Augusta Armory", "179 Western Ave", "Augusta", "ME"),
    CraftShow("22nd Veterans Weekend Craft Show", "November 14-15, 2026", "Augusta Armory", "179 Western Ave", "Augusta", "ME"),
    CraftShow("5th Annual Makers Market Christmas Arts & Craft Show", "November 21-22, 2026", "South Portland High School", "637 Highland Ave", "South Portland", "ME"),
    CraftShow("47th Annual Christmas in New England Arts and Craft Show", "November 28-29, 2026", "Augusta Civic Center", "76 Community Dr", "Augusta", "ME"),
    CraftShow("46th Annual Last Minute Christmas Arts & Craft Show", "December 12-13, 2026", "Augusta Armory", "179 Western Ave", "Augusta", "ME"),
    CraftShow("47th Annual Last Minute Arts & Craft Show - Finale", "December 19-20, 2026", "Augusta Armory", "179 Western Ave", "Augusta", "ME"),
]

NECF_NOTES = "Show hours: Saturday & Sunday 9am-4pm. Admission: Adults $3-$5, children 12 & under free. Free parking."

JOYCES_HOURS = "Saturday 10am-5pm, Sunday 10am-4pm. Free admission, free parking."

JOYCES_SHOWS = [
    CraftShow("Lakes Region Spring Craft Fair", "May 17-18, 2026", "Tanger Outlets", "120 Laconia Rd Rt 3", "Tilton", "NH",
              f"80+ artisans. {JOYCES_HOURS}", "/lakes-region-spring-craft-fair"),
    CraftShow("Memorial Day Weekend Craft Fair", "May 23-24, 2026", "Schouler Park", "1 Norcross Circle Rt 16", "North Conway", "NH",
              f"125+ exhibitors. {JOYCES_HOURS}", "/memorial-day-weekend-craft-fair"),
    CraftShow("4th of July Weekend Gunstock Craft Fair", "July 5-6, 2026", "Gunstock Mountain Resort", "719 Cherry Valley Rd Rt 11A", "Gilford", "NH",
              JOYCES_HOURS, "/4th-of-july-weekend-gunstock-craft-fair"),
    CraftShow("On The Green July Craft Fair", "July 10-12, 2026", "Brewster Academy", "80 Academy Dr", "Wolfeboro", "NH",
              "100+ exhibitors. Friday-Sunday 10am-5pm (Sunday 10am-4pm). Free admission, free parking.", "/on-the-green-july-craft-fair"),
    CraftShow("Mt. Washington Valley July Craft Fair", "July 27-28, 2026", "Schouler Park", "1 Norcross Circle Rt 16", "North Conway", "NH",
              JOYCES_HOURS, "/mt-washington-valley-july-craft-fair"),
    CraftShow("On The Green 2 August Craft Fair", "August 8-10, 2026", "Brewster Academy", "80 Academy Dr", "Wolfeboro", "NH",
              "110+ exhibitors. Friday-Sunday 10am-5pm (Sunday 10am-4pm). Free admission, free parking.", "/on-the-green-2-august-craft-fair"),
    CraftShow("Mt. Washington Valley August Craft Fair", "August 16-17, 2026", "Schouler Park", "1 Norcross Circle Rt 16", "North Conway", "NH",
              JOYCES_HOURS, "/mt-washington-valley-august-craft-fair"),
    CraftShow("Gunstock Labor Day Craft Fair", "August 30-31, 2026", "Gunstock Mountain Resort", "719 Cherry Valley Rd Rt 11A", "Gilford", "NH",
              f"100+ exhibitors. {JOYCES_HOURS}", "/gunstock-labor-day-craft-fair"),
    CraftShow("Falling Leaves Craft Fair at Tanger", "September 20-21, 2026", "Tanger Outlets", "120 Laconia Rd Rt 3", "Tilton", "NH",
              f"90+ artisans. {JOYCES_HOURS}", "/falling-leaves-craft-fair-at-tanger"),
    CraftShow("Mt. Washington Valley Fall Craft Fair", "October 4-5, 2026", "Schouler Park", "1 Norcross Circle Rt 16", "North Conway", "NH",
              JOYCES_HOURS, "/mt-washington-valley-fall-craft-fair"),
    CraftShow("Columbus Day Weekend Gunstock Craft Fair", "October 10-11, 2026", "Gunstock Mountain Resort", "719 Cherry Valley Rd Rt 11A", "Gilford", "NH",
              f"70+ exhibitors. {JOYCES_HOURS}", "/columbus-day-weekend-gunstock-craft-fair"),
    CraftShow("Silver Bells Craft Fair at Tanger", "November 1-2, 2026", "Tanger Outlets", "120 Laconia Rd Rt 3", "Tilton", "NH",
              f"90+ exhibitors. {JOYCES_HOURS}", "/silver-bells-craft-fair-at-tanger"),
    CraftShow("Holly Jolly Craft Fair at DoubleTree", "December 14, 2026", "DoubleTree by Hilton", "", "Nashua", "NH",
              "Saturday 10am-5pm. Free admission, free parking.", "/holly-jolly-craft-fair-at-doubletree"),
]


def to_candidates(
    shows: list[CraftShow],
    source_name: str,
    base_url: str,
    opening_hour: int,
    closing_hour: int,
    notes: str = "",
) -> list[CandidateEvent]:
    events: list[CandidateEvent] = []
    seen: set[str] = set()
    for show in shows:
        dates = parse_dated_range(show.dates, opening_hour, closing_hour)
        source_id = slug_from_name(show.name)
        if dates is None or source_id in seen:
            continue
        seen.add(source_id)

        url = f"{base_url}{show.path}"
        description = f"{show.name} at {show.venue}, {show.city}, {show.state}."
        if show.description or notes:
            description += f" {show.description or notes}"
        events.append(
            CandidateEvent(
                source_id=source_id,
                source_name=source_name,
                source_url=url,
                name=show.name,
                start_date=dates[0],
                end_date=dates[1],
                dates_confirmed=True,
                description=description,
                venue=VenueDescriptor(
                    name=show.venue,
                    street_address=show.address or None,
                    city=show.city,
                    state=show.state,
                ),
                website=url,
                ticket_url=url,
            )
        )
    return events


def scrape_new_england_craft_fairs() -> list[CandidateEvent]:
    try:
        fetch_page(NECF_URL)
    except HttpError as e:
        raise ScrapeError(f"Failed to fetch {NECF_SOURCE_NAME} schedule: {e}") from e

    events = to_candidates(NECF_SHOWS, NECF_SOURCE_NAME, NECF_URL, 9, 16, notes=NECF_NOTES)
    logger.info("Loaded %d events for %s", len(events), NECF_SOURCE_NAME)
    return events


def scrape_joyces_craft_shows() -> list[CandidateEvent]:
    # Shows end at 4pm on Sunday; one-day shows run until 5pm
    events = to_candidates(JOYCES_SHOWS, JOYCES_SOURCE_NAME, JOYCES_URL, 10, 16)
    for event in events:
        if event.start_date.date() == event.end_date.date():
            event.end_date = event.end_date.replace(hour=17)
    logger.info("Loaded %d events for %s", len(events), JOYCES_SOURCE_NAME)
    return events

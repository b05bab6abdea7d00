#!/usr/bin/env python3
"""FairSync: import fair and festival listings and keep them in sync with their ticket pages."""

import argparse
import json
import logging
import os
import sys
import uuid

from models import Promoter, SyncProgress
from services.config import Settings
from services.email import send_import_report, send_sync_report
from services.errors import PipelineError
from scrapers.registry import list_sources
from services.importer import import_events, preview, slugify, sync_sources
from services.operator import OperatorApi
from services.store import JsonFileStore
from services.sync import SyncOrchestrator, run_sync

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


def open_store(settings: Settings) -> JsonFileStore:
    return JsonFileStore(settings.data_dir / "store.json")


def print_json(status: int, body: dict) -> int:
    print(json.dumps(body, indent=2, default=str))
    return 0 if status < 400 else 1


def cmd_preview(args, settings: Settings) -> int:
    store = open_store(settings)
    print(f"Scraping {args.source}...")
    result = preview(
        store,
        args.source,
        state_code=args.state,
        custom_url=args.custom_url,
        fetch_details=args.details,
        settings=settings,
    )
    for event in result.events:
        date_str = event.start_date.strftime("%Y-%m-%d") if event.start_date else "TBD"
        if event.exists:
            marker = "exists"
        elif event.duplicate and event.duplicate.is_duplicate:
            marker = f"duplicate? {event.duplicate.similarity or 100}%"
        else:
            marker = "new"
        print(f"  [{marker:>16}] {date_str}  {event.name}")
    print(f"Found {result.total} events: {result.new_count} new, {result.existing_count} existing")
    return 0


def cmd_import(args, settings: Settings) -> int:
    store = open_store(settings)
    print(f"Scraping {args.source}...")
    result = preview(store, args.source, state_code=args.state, custom_url=args.custom_url, settings=settings)

    selected = [e for e in result.events if args.update or not e.exists]
    if not args.include_duplicates:
        selected = [e for e in selected if e.exists or not (e.duplicate and e.duplicate.is_duplicate)]
    if not selected:
        print(f"Nothing to import ({result.total} events, none new)")
        return 0
    print(f"Importing {len(selected)} of {result.total} events...")

    outcome = import_events(
        store,
        selected,
        args.promoter,
        venue_id=args.venue,
        fetch_details=args.details,
        update_existing=args.update,
        settings=settings,
    )
    print(
        f"Imported {outcome.imported}, updated {outcome.updated}, skipped {outcome.skipped}, "
        f"venues created {outcome.venues_created}"
    )
    for error in outcome.errors:
        print(f"⚠️  {error}")

    to_email = os.environ.get("NOTIFY_EMAIL", "")
    if to_email:
        print("Sending import report...")
        send_import_report(outcome, args.source, to_email, settings.site_url)
    else:
        print("NOTIFY_EMAIL not set, skipping email")
    return 0 if not outcome.errors else 1


def cmd_sync(args, settings: Settings) -> int:
    store = open_store(settings)
    orchestrator = SyncOrchestrator(store, settings=settings)

    def show(progress: SyncProgress) -> None:
        if progress.batches:
            print(
                f"Batch {progress.batches}: {progress.processed}/{progress.total} processed "
                f"({progress.success} ok, {progress.not_found} not found, {progress.failed} failed)"
            )

    print("Syncing schema.org data...")
    progress = run_sync(
        orchestrator,
        only_missing=args.only_missing,
        batch_size=args.batch_size or settings.sync_batch_size,
        max_batches=settings.sync_max_batches,
        on_progress=show,
    )
    print(f"Sync {progress.state}: {progress.processed}/{progress.total} processed")

    to_email = os.environ.get("NOTIFY_EMAIL", "")
    if to_email and progress.total:
        print("Sending sync report...")
        send_sync_report(progress, to_email)
    return 0 if progress.state == "done" else 1


def cmd_sync_sources(args, settings: Settings) -> int:
    store = open_store(settings)
    print("Re-scraping source pages of imported events...")
    outcome = sync_sources(store)
    print(f"Updated {outcome.synced}, unchanged {outcome.unchanged}, errors {len(outcome.errors)}")
    for error in outcome.errors:
        print(f"⚠️  {error}")
    return 0 if not outcome.errors else 1


def cmd_stats(args, settings: Settings) -> int:
    return print_json(*OperatorApi(open_store(settings), settings).sync_stats())


def cmd_check_duplicate(args, settings: Settings) -> int:
    api = OperatorApi(open_store(settings), settings)
    payload = {"sourceUrl": args.url, "name": args.name, "startDate": args.date}
    return print_json(*api.check_duplicate(payload, caller="cli"))


def cmd_match_venue(args, settings: Settings) -> int:
    api = OperatorApi(open_store(settings), settings)
    payload = {"venueName": args.name, "venueCity": args.city, "venueState": args.state}
    return print_json(*api.match_venue(payload, caller="cli"))


def cmd_refresh(args, settings: Settings) -> int:
    api = OperatorApi(open_store(settings), settings)
    return print_json(*api.schema_org_refresh(args.event_id, {"url": args.url}))


def cmd_apply(args, settings: Settings) -> int:
    api = OperatorApi(open_store(settings), settings)
    return print_json(*api.schema_org_apply(args.event_id, {"fields": args.fields}))


def cmd_add_promoter(args, settings: Settings) -> int:
    store = open_store(settings)
    promoter = store.insert_promoter(
        Promoter(id=str(uuid.uuid4()), company_name=args.name, slug=slugify(args.name))
    )
    print(promoter.id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    sources_help = "one of: " + ", ".join(list_sources())
    p = sub.add_parser("preview", help="Scrape a source and show what is new")
    p.add_argument("source", help=sources_help)
    p.add_argument("--state", help="State code for fairsandfestivals.net")
    p.add_argument("--custom-url", help="Listing URL for fairsandfestivals.net-custom")
    p.add_argument("--details", action="store_true", help="Also scrape each detail page")
    p.set_defaults(func=cmd_preview)

    p = sub.add_parser("import", help="Import new events from a source")
    p.add_argument("source", help=sources_help)
    p.add_argument("--promoter", required=True, help="Promoter id owning the imported events")
    p.add_argument("--venue", help="Assign every event to this venue id")
    p.add_argument("--state")
    p.add_argument("--custom-url")
    p.add_argument("--details", action="store_true")
    p.add_argument("--update", action="store_true", help="Update events that already exist")
    p.add_argument("--include-duplicates", action="store_true", help="Import likely duplicates too")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("sync", help="Refresh schema.org data from ticket pages")
    p.add_argument("--only-missing", action="store_true", help="Only events never fetched")
    p.add_argument("--batch-size", type=int)
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("sync-sources", help="Re-scrape source detail pages of imported events")
    p.set_defaults(func=cmd_sync_sources)

    p = sub.add_parser("stats", help="schema.org coverage")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("check-duplicate")
    p.add_argument("--url")
    p.add_argument("--name")
    p.add_argument("--date", help="YYYY-MM-DD")
    p.set_defaults(func=cmd_check_duplicate)

    p = sub.add_parser("match-venue")
    p.add_argument("name")
    p.add_argument("--city")
    p.add_argument("--state")
    p.set_defaults(func=cmd_match_venue)

    p = sub.add_parser("refresh", help="Fetch one event's schema.org data now")
    p.add_argument("event_id")
    p.add_argument("--url", help="Fetch from this URL instead of the ticket URL")
    p.set_defaults(func=cmd_refresh)

    p = sub.add_parser("apply", help="Copy schema.org fields onto an event")
    p.add_argument("event_id")
    p.add_argument("fields", nargs="+")
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser("add-promoter")
    p.add_argument("name")
    p.set_defaults(func=cmd_add_promoter)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    try:
        return args.func(args, settings)
    except PipelineError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

import csv
import io
import logging
import os

import resend

from models import ImportOutcome, SyncProgress

logger = logging.getLogger(__name__)

SENDER = "FairSync <fairsync@resend.dev>"


def outcome_to_csv(outcome: ImportOutcome, site_url: str) -> str:
    """Export an import outcome as Status,Name,URL rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Status", "Name", "URL"])
    for ref in outcome.imported_events:
        writer.writerow(["Imported", ref.name, f"{site_url}/events/{ref.slug}"])
    for ref in outcome.updated_events:
        writer.writerow(["Updated", ref.name, f"{site_url}/events/{ref.slug}"])
    for error in outcome.errors:
        writer.writerow(["Error", error, ""])
    return buffer.getvalue()


def format_import_report(outcome: ImportOutcome, source: str) -> str:
    body_parts = [
        f"# Import from {source}\n",
        f"- Imported: {outcome.imported}",
        f"- Updated: {outcome.updated}",
        f"- Skipped (already in catalog): {outcome.skipped}",
        f"- Venues created: {outcome.venues_created}",
        f"- Errors: {len(outcome.errors)}\n",
    ]
    if outcome.imported_events:
        body_parts.append("## New events\n")
        for ref in outcome.imported_events:
            body_parts.append(f"- {ref.name} ({ref.slug})")
    if outcome.errors:
        body_parts.append("\n## Errors\n")
        for error in outcome.errors:
            body_parts.append(f"- {error}")
    return "\n".join(body_parts)


def send_import_report(outcome: ImportOutcome, source: str, to_email: str, site_url: str) -> None:
    """Email the import summary with the CSV export attached."""
    resend.api_key = os.environ["RESEND_API_KEY"]

    subject = f"FairSync Import - {outcome.imported} new, {outcome.updated} updated, {len(outcome.errors)} errors"
    csv_text = outcome_to_csv(outcome, site_url)

    resend.Emails.send(
        {
            "from": SENDER,
            "to": [to_email],
            "subject": subject,
            "text": format_import_report(outcome, source),
            "attachments": [
                {
                    "filename": "import-results.csv",
                    "content": list(csv_text.encode("utf-8")),
                }
            ],
        }
    )
    logger.info("Sent import report to %s", to_email)


def format_sync_report(progress: SyncProgress) -> str:
    body_parts = [
        "# schema.org Sync\n",
        f"State: {progress.state}",
        f"Processed {progress.processed} of {progress.total} in {progress.batches} batch(es)",
        f"- Success: {progress.success}",
        f"- Not found: {progress.not_found}",
        f"- Failed: {progress.failed}\n",
    ]
    if progress.error:
        body_parts.append(f"**Stopped with error:** {progress.error}\n")
    if progress.failed_events:
        body_parts.append("## Failed events\n")
        for line in progress.failed_events:
            body_parts.append(f"- {line}")
    return "\n".join(body_parts)


def send_sync_report(progress: SyncProgress, to_email: str) -> None:
    """Email a summary of a sync run."""
    resend.api_key = os.environ["RESEND_API_KEY"]

    prefix = "🚨 " if progress.state in ("failed", "capped") or progress.failed else ""
    subject = f"{prefix}FairSync schema.org sync - {progress.success}/{progress.total} updated"

    resend.Emails.send(
        {
            "from": SENDER,
            "to": [to_email],
            "subject": subject,
            "text": format_sync_report(progress),
        }
    )
    logger.info("Sent sync report to %s", to_email)

"""Tests for import and sync report emails."""

import csv
import io
from unittest.mock import patch

from models import EventRef, ImportOutcome, SyncProgress
from services.email import (
    format_import_report,
    format_sync_report,
    outcome_to_csv,
    send_import_report,
    send_sync_report,
)

SITE_URL = "https://meetmeatthefair.com"


def sample_outcome() -> ImportOutcome:
    return ImportOutcome(
        imported=1,
        updated=1,
        skipped=2,
        venues_created=1,
        imported_events=[EventRef(id="1", slug="union-fair", name="Union Fair")],
        updated_events=[EventRef(id="2", slug="windsor-fair", name="Windsor Fair, ME")],
        errors=["Failed to import Oxford Fair: boom"],
    )


class TestImportReport:
    def test_csv_rows(self):
        rows = list(csv.reader(io.StringIO(outcome_to_csv(sample_outcome(), SITE_URL))))

        assert rows == [
            ["Status", "Name", "URL"],
            ["Imported", "Union Fair", f"{SITE_URL}/events/union-fair"],
            ["Updated", "Windsor Fair, ME", f"{SITE_URL}/events/windsor-fair"],
            ["Error", "Failed to import Oxford Fair: boom", ""],
        ]

    def test_body(self):
        body = format_import_report(sample_outcome(), "mainefairs.net")

        assert body.startswith("# Import from mainefairs.net")
        assert "- Skipped (already in catalog): 2" in body
        assert "- Union Fair (union-fair)" in body
        assert "- Failed to import Oxford Fair: boom" in body

    @patch.dict("os.environ", {"RESEND_API_KEY": "re_test"})
    @patch("services.email.resend.Emails.send")
    def test_send(self, mock_send):
        send_import_report(sample_outcome(), "mainefairs.net", "ops@example.com", SITE_URL)

        params = mock_send.call_args.args[0]
        assert params["to"] == ["ops@example.com"]
        assert params["subject"] == "FairSync Import - 1 new, 1 updated, 1 errors"
        attachment = params["attachments"][0]
        assert attachment["filename"] == "import-results.csv"
        assert bytes(attachment["content"]).decode("utf-8").startswith("Status,Name,URL")


class TestSyncReport:
    def test_body_lists_failures(self):
        progress = SyncProgress(
            total=3, processed=3, success=1, failed=1, not_found=1, batches=1, state="done",
            failed_events=("Union Fair: Failed to fetch page (404)",),
        )
        body = format_sync_report(progress)

        assert "Processed 3 of 3 in 1 batch(es)" in body
        assert "- Union Fair: Failed to fetch page (404)" in body

    @patch.dict("os.environ", {"RESEND_API_KEY": "re_test"})
    @patch("services.email.resend.Emails.send")
    def test_clean_run_subject(self, mock_send):
        send_sync_report(SyncProgress(total=2, processed=2, success=2, state="done"), "ops@example.com")
        assert mock_send.call_args.args[0]["subject"] == "FairSync schema.org sync - 2/2 updated"

    @patch.dict("os.environ", {"RESEND_API_KEY": "re_test"})
    @patch("services.email.resend.Emails.send")
    def test_failed_run_flagged(self, mock_send):
        progress = SyncProgress(total=5, state="failed", error="database is down")
        send_sync_report(progress, "ops@example.com")

        params = mock_send.call_args.args[0]
        assert params["subject"].startswith("🚨 ")
        assert "**Stopped with error:** database is down" in params["text"]

"""Tests for AI event extraction."""

import json
from unittest.mock import MagicMock, patch

import pytest

from services.extraction import (
    DEGRADED_MESSAGE,
    Degraded,
    Extraction,
    build_prompt,
    extract_events,
    extract_from_html,
    fallback_events,
    parse_response,
    sanitize_date,
    sanitize_time,
    time_from_datetime,
)
from services.html_parser import PageMetadata

PAGE_URL = "https://harborfest.example.com/events"


def gemini_returning(text: str) -> MagicMock:
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text=text)
    return client


class TestSanitizers:
    @pytest.mark.parametrize(
        "value,expected",
        [("2026-06-05", "2026-06-05"), ("2026-06-05T10:00:00", "2026-06-05"), ("June 5", None), (None, None)],
    )
    def test_sanitize_date(self, value, expected):
        assert sanitize_date(value) == expected

    @pytest.mark.parametrize("value,expected", [("9:30", "09:30"), ("17:00", "17:00"), ("25:00", None), ("noon", None)])
    def test_sanitize_time(self, value, expected):
        assert sanitize_time(value) == expected

    def test_time_from_datetime(self):
        assert time_from_datetime("2026-06-05T10:30:00") == "10:30"
        assert time_from_datetime("2026-06-05T00:00:00") is None
        assert time_from_datetime("2026-06-05") is None


class TestParseResponse:
    def test_array_in_code_fence(self):
        text = '```json\n[{"name": "Harbor Fest", "startDate": "2026-06-05", "venueState": "Maine"}]\n```'
        events = parse_response(text, PageMetadata())

        assert len(events) == 1
        assert events[0].name == "Harbor Fest"
        assert events[0].start_date == "2026-06-05"
        assert events[0].venue_state == "ME"

    def test_single_object(self):
        events = parse_response('{"title": "Harbor Fest", "price": "$10"}', PageMetadata())
        assert events[0].name == "Harbor Fest"
        assert events[0].ticket_price_min == 10.0

    def test_events_wrapper(self):
        events = parse_response('{"events": [{"name": "A"}, {"name": "B"}, "junk"]}', PageMetadata())
        assert [e.name for e in events] == ["A", "B"]

    def test_first_event_named_from_title(self):
        metadata = PageMetadata(title="Harbor Fest 2026", og_image="https://img.example.com/og.jpg")
        events = parse_response('[{"startDate": "2026-06-05"}, {"startDate": "2026-06-06"}]', metadata)

        assert events[0].name == "Harbor Fest 2026"
        assert events[1].name is None
        assert all(e.image_url == "https://img.example.com/og.jpg" for e in events)

    def test_times_from_start_datetime(self):
        events = parse_response('[{"name": "A", "startDate": "2026-06-05T10:00:00"}]', PageMetadata())
        assert events[0].start_time == "10:00"

    def test_unusable_object(self):
        assert parse_response('{"message": "no events"}', PageMetadata()) == []

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_response("Sorry, I can't help with that.", PageMetadata())


class TestFallbackEvents:
    def test_from_json_ld(self):
        metadata = PageMetadata(
            title="Page Title",
            json_ld={
                "@type": "Event",
                "name": "Harbor Fest",
                "startDate": "2026-06-05T10:00:00",
                "location": {"name": "Town Landing"},
            },
        )
        [event] = fallback_events(metadata)

        assert event.name == "Harbor Fest"
        assert event.start_date == "2026-06-05"
        assert event.start_time == "10:00"
        assert event.venue_name == "Town Landing"
        assert event.extract_id.startswith("fallback-")

    def test_from_title(self):
        [event] = fallback_events(PageMetadata(title="Harbor Fest"))
        assert event.name == "Harbor Fest"

    def test_nothing_to_go_on(self):
        assert fallback_events(PageMetadata(description="Just a description")) == []


class TestBuildPrompt:
    def test_includes_context_and_truncates(self):
        metadata = PageMetadata(title="Events | Harbor Town", description="Summer lineup")
        prompt = build_prompt("x" * 30000, metadata)

        assert "Page title: Events | Harbor Town" in prompt
        assert 'separated by "|"' in prompt
        assert "Page description: Summer lineup" in prompt
        assert "[Content truncated...]" in prompt
        assert "x" * 20001 not in prompt


class TestExtractEvents:
    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_success(self, mock_client_cls):
        mock_client_cls.return_value = gemini_returning(
            json.dumps(
                [
                    {"name": "Harbor Fest", "startDate": "2026-06-05", "ticketUrl": "https://tickets.example.com/hf"},
                    {"name": "Lobster Bake", "startDate": "2026-07-04"},
                ]
            )
        )
        metadata = PageMetadata(title="Events", json_ld={"@type": "Event", "name": "Harbor Fest"})

        result = extract_events("Harbor Fest June 5", metadata, PAGE_URL)

        assert isinstance(result, Extraction)
        assert result.success
        assert result.events[0].ticket_url == "https://tickets.example.com/hf"
        assert result.events[1].ticket_url == PAGE_URL
        mock_client_cls.assert_called_once_with(api_key="test-key")
        first = result.confidence[result.events[0].extract_id]
        assert first["name"] == "high"
        assert first["venue_name"] == "low"

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_medium_confidence_without_json_ld(self, mock_client_cls):
        mock_client_cls.return_value = gemini_returning('[{"name": "Harbor Fest"}]')

        result = extract_events("Harbor Fest", PageMetadata(title="Events"))

        assert result.confidence[result.events[0].extract_id]["name"] == "medium"

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_api_error_degrades(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.side_effect = RuntimeError("quota exceeded")

        result = extract_events("content", PageMetadata(title="Harbor Fest"))

        assert isinstance(result, Degraded)
        assert not result.success
        assert result.error == DEGRADED_MESSAGE
        assert [e.name for e in result.events] == ["Harbor Fest"]

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_garbage_response_degrades(self, mock_client_cls):
        mock_client_cls.return_value = gemini_returning("not json at all")
        assert isinstance(extract_events("content", PageMetadata()), Degraded)

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_empty_array_degrades(self, mock_client_cls):
        mock_client_cls.return_value = gemini_returning("[]")
        result = extract_events("content", PageMetadata())
        assert isinstance(result, Degraded)
        assert result.events == []

    @patch.dict("os.environ", {}, clear=True)
    @patch("services.extraction.genai.Client")
    def test_missing_api_key(self, mock_client_cls):
        result = extract_events("content", PageMetadata(title="Harbor Fest"))

        assert isinstance(result, Degraded)
        mock_client_cls.assert_not_called()

    @patch.dict("os.environ", {"GEMINI_API_KEY": "test-key"})
    @patch("services.extraction.genai.Client")
    def test_extract_from_html(self, mock_client_cls):
        mock_client_cls.return_value = gemini_returning('[{"name": "Harbor Fest"}]')
        html = "<html><head><title>Harbor Town Events</title></head><body><p>Harbor Fest June 5</p></body></html>"

        result = extract_from_html(html, PAGE_URL)

        assert result.success
        prompt = mock_client_cls.return_value.models.generate_content.call_args.kwargs["contents"]
        assert "Page title: Harbor Town Events" in prompt
        assert "Harbor Fest June 5" in prompt

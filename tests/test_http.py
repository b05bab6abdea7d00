"""Tests for page fetching and URL safety checks."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from services.errors import HttpError
from services.http import USER_AGENT, Fetcher, FetchResponse, fetch_page, is_internal_url


class TestIsInternalUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost:8000/",
            "http://127.0.0.1/admin",
            "http://10.0.0.5/",
            "http://172.16.3.4/",
            "http://192.168.1.1/",
            "http://169.254.169.254/latest/meta-data",
            "http://0.0.0.0/",
            "http://[::1]/",
            "http://printer.local/",
            "http://db.internal/",
            "ftp://example.com/file",
            "file:///etc/passwd",
            "not a url",
        ],
    )
    def test_blocked(self, url):
        assert is_internal_url(url)

    @pytest.mark.parametrize(
        "url",
        ["https://mainefairs.net/event/union-fair/", "http://8.8.8.8/", "https://tickets.example.com/a?b=c"],
    )
    def test_allowed(self, url):
        assert not is_internal_url(url)


class TestFetchResponse:
    def test_ok_and_content_type(self):
        response = FetchResponse(status=204, headers={"Content-Type": "Text/HTML; charset=UTF-8"})
        assert response.ok
        assert response.content_type == "text/html; charset=utf-8"
        assert not FetchResponse(status=301).ok
        assert FetchResponse(status=200).content_type == ""


class TestFetcher:
    @patch("services.http.httpx.get")
    def test_fetch(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200, headers={"content-type": "text/html"}, text="<html></html>")

        response = Fetcher(timeout=5).fetch("https://mainefairs.net/")

        assert response.status == 200
        assert response.body == "<html></html>"
        mock_get.assert_called_once_with(
            "https://mainefairs.net/",
            follow_redirects=True,
            timeout=5,
            headers={"User-Agent": USER_AGENT},
        )

    @patch("services.http.httpx.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(HttpError, match="Page took too long to load"):
            Fetcher().fetch("https://mainefairs.net/")

    @patch("services.http.httpx.get")
    def test_network_error(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(HttpError, match="connection refused"):
            Fetcher().fetch("https://mainefairs.net/")

    @patch("services.http.httpx.get")
    def test_internal_url_never_requested(self, mock_get):
        with pytest.raises(HttpError):
            Fetcher().fetch("http://localhost/")
        mock_get.assert_not_called()

    @patch("services.http._render")
    def test_js_pages_rendered(self, mock_render):
        mock_render.return_value = FetchResponse(status=200, body="<html>rendered</html>")

        response = Fetcher(timeout=20, needs_js=True).fetch("https://mainefairs.net/")

        assert response.body == "<html>rendered</html>"
        mock_render.assert_called_once_with("https://mainefairs.net/", 20)


class TestFetchPage:
    @patch("services.http.httpx.get")
    def test_non_ok_raises(self, mock_get):
        mock_get.return_value = MagicMock(status_code=503, headers={}, text="")
        with pytest.raises(HttpError, match="503"):
            fetch_page("https://mainefairs.net/")

    @patch("services.http.httpx.get")
    def test_returns_body(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200, headers={}, text="<p>ok</p>")
        assert fetch_page("https://mainefairs.net/") == "<p>ok</p>"

import ipaddress
import logging
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from services.errors import HttpError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; MeetMeAtTheFair/1.0; +https://meetmeatthefair.com)"
BLOCKED_HOST_SUFFIXES = (".local", ".internal")


@dataclass
class FetchResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.lower()
        return ""


def is_internal_url(url: str) -> bool:
    """True for URLs that must never be fetched: non-http schemes, localhost, private ranges."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return True
    if parsed.scheme not in ("http", "https"):
        return True

    host = (parsed.hostname or "").lower()
    if not host or host == "localhost" or host.endswith(BLOCKED_HOST_SUFFIXES):
        return True

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified


def _render(url: str, timeout: float) -> FetchResponse:
    with sync_playwright() as p:
        browser = p.chromium.launch()
        try:
            page = browser.new_page(user_agent=USER_AGENT)
            response = page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
            content = page.content()
        finally:
            browser.close()
    if response is None:
        return FetchResponse(status=200, headers={"content-type": "text/html"}, body=content)
    return FetchResponse(status=response.status, headers=dict(response.headers), body=content)


class Fetcher:
    """Fetches pages over httpx, or through a headless browser for JS-heavy sites."""

    def __init__(self, timeout: float = 15.0, needs_js: bool = False):
        self.timeout = timeout
        self.needs_js = needs_js

    def fetch(self, url: str) -> FetchResponse:
        if is_internal_url(url):
            raise HttpError(f"Refusing to fetch internal URL: {url}")
        logger.debug("Fetching %s (js=%s)", url, self.needs_js)
        try:
            if self.needs_js:
                return _render(url, self.timeout)
            response = httpx.get(
                url,
                follow_redirects=True,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.TimeoutException as e:
            raise HttpError("Page took too long to load") from e
        except httpx.HTTPError as e:
            raise HttpError(f"Failed to fetch page: {e}") from e
        except PlaywrightError as e:
            raise HttpError(f"Failed to render page: {e}") from e
        return FetchResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.text,
        )


def fetch_page(url: str, needs_js: bool = False) -> str:
    """Fetch a page, using Playwright for JS-heavy sites."""
    response = Fetcher(timeout=30.0, needs_js=needs_js).fetch(url)
    if not response.ok:
        raise HttpError(f"Failed to fetch page ({response.status}): {url}")
    return response.body

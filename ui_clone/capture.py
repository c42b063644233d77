import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .errors import CaptureError
from .settings import Settings
from .urls import bs4_parse

DEFAULT_TITLE = "Cloned Website"
DEFAULT_VIEWPORT = "width=device-width, initial-scale=1.0"


@dataclass
class PageInfo:
    title: str = DEFAULT_TITLE
    description: str = ""
    favicon: str = ""
    viewport: str = DEFAULT_VIEWPORT
    base_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CapturedPage:
    html: str
    info: PageInfo


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"name": name})
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def extract_page_info(soup: BeautifulSoup, url: str) -> PageInfo:
    title = soup.title.get_text(strip=True) if soup.title else ""
    favicon = ""
    for link in soup.find_all("link", href=True):
        rels = {r.lower() for r in (link.get("rel") or [])}
        if "icon" in rels:
            favicon = urljoin(url, link["href"])
            break
    return PageInfo(
        title=title or DEFAULT_TITLE,
        description=_meta_content(soup, "description"),
        favicon=favicon,
        viewport=_meta_content(soup, "viewport") or DEFAULT_VIEWPORT,
        base_url=url,
    )


# -------------------- Capture --------------------


class PageCapture:
    def capture(self, url: str) -> CapturedPage:
        raise NotImplementedError

    def close(self) -> None:
        pass


class RequestsCapture(PageCapture):
    def __init__(self, session: requests.Session, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout

    def capture(self, url: str) -> CapturedPage:
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise CaptureError(f"failed to fetch {url}: {e}") from e
        if r.status_code >= 400:
            raise CaptureError(f"failed to fetch {url}: HTTP {r.status_code}")
        ct = (r.headers.get("Content-Type") or "").lower()
        if ct and "text/html" not in ct and "application/xhtml+xml" not in ct:
            raise CaptureError(f"{url} is not an HTML page ({ct})")
        if not r.encoding:
            r.encoding = r.apparent_encoding or "utf-8"
        final_url = r.url or url
        html = r.text
        return CapturedPage(html, extract_page_info(bs4_parse(html), final_url))


class PlaywrightCapture(PageCapture):
    def __init__(
        self,
        wait_until: str = "networkidle",
        timeout_ms: int = 30000,
        user_agent: Optional[str] = None,
    ):
        self.wait_until = wait_until
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self._pl = None
        self._browser = None

    def _ensure_browser(self) -> None:
        if self._pl is not None and self._browser is not None:
            return
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as e:
            raise CaptureError(
                "Playwright not installed. Run: pip install playwright && playwright install"
            ) from e
        self._pl = sync_playwright().start()
        self._browser = self._pl.chromium.launch(
            headless=True, args=["--no-sandbox", "--disable-setuid-sandbox"]
        )

    def capture(self, url: str) -> CapturedPage:
        self._ensure_browser()
        context = self._browser.new_context(user_agent=self.user_agent)
        try:
            page = context.new_page()
            page.goto(url, wait_until=self.wait_until, timeout=self.timeout_ms)
            html = page.content()
            final_url = page.url or url
        except Exception as e:
            raise CaptureError(f"render failed for {url}: {e}") from e
        finally:
            context.close()
        return CapturedPage(html, extract_page_info(bs4_parse(html), final_url))

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._pl is not None:
            self._pl.stop()
            self._pl = None


def get_capture(settings: Settings, session: requests.Session) -> PageCapture:
    if settings.render_js:
        logging.debug("capturing with Playwright (%s)", settings.wait_until)
        return PlaywrightCapture(
            settings.wait_until,
            settings.render_timeout_ms,
            session.headers.get("User-Agent"),
        )
    return RequestsCapture(session, timeout=settings.timeout)

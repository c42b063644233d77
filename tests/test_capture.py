import pytest

from ui_clone.capture import (
    DEFAULT_TITLE,
    DEFAULT_VIEWPORT,
    PlaywrightCapture,
    RequestsCapture,
    extract_page_info,
    get_capture,
)
from ui_clone.errors import CaptureError
from ui_clone.settings import Settings
from ui_clone.urls import bs4_parse


def test_page_info_defaults():
    info = extract_page_info(bs4_parse("<p>x</p>"), "https://example.com/")
    assert info.title == DEFAULT_TITLE
    assert info.viewport == DEFAULT_VIEWPORT
    assert info.description == ""
    assert info.base_url == "https://example.com/"


def test_page_info_from_markup():
    html = (
        "<html><head><title> Shop </title>"
        '<meta name="description" content="Things">'
        '<link rel="shortcut icon" href="/fav.ico"></head></html>'
    )
    info = extract_page_info(bs4_parse(html), "https://example.com/a/")
    assert info.title == "Shop"
    assert info.description == "Things"
    assert info.favicon == "https://example.com/fav.ico"


def test_requests_capture(fake_session):
    url = "https://example.com/"
    sess = fake_session(
        {url: (200, "<html><head><title>Hi</title></head></html>", {"Content-Type": "text/html"})}
    )
    page = RequestsCapture(sess).capture(url)
    assert "<title>Hi</title>" in page.html
    assert page.info.title == "Hi"
    assert page.info.base_url == url


def test_requests_capture_rejects_non_html(fake_session):
    url = "https://example.com/data.json"
    sess = fake_session({url: (200, "{}", {"Content-Type": "application/json"})})
    with pytest.raises(CaptureError):
        RequestsCapture(sess).capture(url)


def test_requests_capture_network_error(fake_session, timeout_error):
    url = "https://example.com/"
    with pytest.raises(CaptureError):
        RequestsCapture(fake_session({url: timeout_error})).capture(url)


def test_get_capture_selects_renderer(fake_session):
    sess = fake_session()
    assert isinstance(get_capture(Settings(), sess), RequestsCapture)
    assert isinstance(get_capture(Settings(render_js=True), sess), PlaywrightCapture)

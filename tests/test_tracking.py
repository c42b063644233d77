import pytest

from ui_clone.tracking import is_tracking, is_tracking_content


@pytest.mark.parametrize(
    "value",
    [
        "https://www.google-analytics.com/analytics.js",
        "https://www.googletagmanager.com/gtag/js?id=G-1",
        "//connect.facebook.net/en_US/fbevents.js",
        "static.hotjar.com",
        "googletagmanager.com",
        "https://cdn.segment.com/analytics.js/v1/x/analytics.min.js",
    ],
)
def test_tracking_hosts(value):
    assert is_tracking(value)


@pytest.mark.parametrize(
    "value",
    [
        "https://example.com/app.js",
        "https://notgoogle-analytics.com/x.js",
        "/js/analytics.js",
        "cdn.jsdelivr.net",
        "",
        None,
    ],
)
def test_not_tracking_hosts(value):
    assert not is_tracking(value)


@pytest.mark.parametrize(
    "text",
    [
        "window.dataLayer = window.dataLayer || []; function gtag(){dataLayer.push(arguments);}",
        "fbq('init', '123'); fbq('track', 'PageView');",
        "ga('create', 'UA-1', 'auto');",
        "(function(h,o,t,j,a,r){h.hj=h.hj||function(){};h._hjSettings={hjid:1};})",
        "mixpanel.init('token');",
    ],
)
def test_tracking_content(text):
    assert is_tracking_content(text)


@pytest.mark.parametrize(
    "text",
    [
        "document.querySelector('.menu').classList.toggle('open');",
        "var omega(x) = 1;",
        "const mega = saga(1);",
        "",
    ],
)
def test_plain_content(text):
    assert not is_tracking_content(text)

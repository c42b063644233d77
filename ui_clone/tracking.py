import re
from typing import Optional

from .urls import host_of

# analytics / social SDK hosts; subdomains match too
TRACKING_HOSTS = frozenset(
    {
        "google-analytics.com",
        "googletagmanager.com",
        "googleadservices.com",
        "googlesyndication.com",
        "doubleclick.net",
        "facebook.net",
        "facebook.com",
        "connect.facebook.net",
        "twitter.com",
        "platform.twitter.com",
        "ads-twitter.com",
        "x.com",
        "linkedin.com",
        "licdn.com",
        "hotjar.com",
        "hotjar.io",
        "mixpanel.com",
        "segment.com",
        "segment.io",
        "clarity.ms",
        "bat.bing.com",
        "hs-analytics.net",
        "hs-scripts.com",
        "fullstory.com",
        "heapanalytics.com",
        "amplitude.com",
        "quantserve.com",
        "scorecardresearch.com",
        "newrelic.com",
        "nr-data.net",
    }
)

TRACKING_CONTENT_SIGNATURES = (
    "gtag(",
    "_gaq",
    "GoogleAnalyticsObject",
    "google-analytics.com",
    "googletagmanager.com",
    "dataLayer",
    "fbq(",
    "connect.facebook.net",
    "twq(",
    "_linkedin_partner_id",
    "mixpanel.",
    "analytics.track(",
    "analytics.load(",
    "_hjSettings",
    "clarity(",
    "heap.load(",
    "amplitude.getInstance(",
)

# short call names only count as whole identifiers ("omega(" is not "ga(")
TRACKING_CALL_RE = re.compile(r"(?<![\w.$])(?:ga|hj|_hmt\.push)\s*\(")


def _host(url_or_host: str) -> str:
    s = (url_or_host or "").strip().lower()
    if "/" in s or ":" in s:
        # scheme-relative references have no scheme for urlparse to key on
        if s.startswith("//"):
            s = "http:" + s
        elif "://" not in s:
            s = "http://" + s
        return host_of(s)
    return s.rstrip(".")


def is_tracking(url_or_host: Optional[str]) -> bool:
    host = _host(url_or_host or "")
    if not host:
        return False
    if host in TRACKING_HOSTS:
        return True
    return any(host.endswith("." + d) for d in TRACKING_HOSTS)


def is_tracking_content(text: Optional[str]) -> bool:
    if not text:
        return False
    if any(sig in text for sig in TRACKING_CONTENT_SIGNATURES):
        return True
    return TRACKING_CALL_RE.search(text) is not None

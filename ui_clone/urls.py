from typing import List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

NOT_FETCHABLE_PREFIXES = (
    "data:",
    "javascript:",
    "#",
    "mailto:",
    "tel:",
    "blob:",
    "about:",
)
FETCHABLE_SCHEMES = {"http", "https"}


def can_fetch_url(u: Optional[str]) -> bool:
    if not u:
        return False
    u = u.strip()
    if not u:
        return False
    return not u.lower().startswith(NOT_FETCHABLE_PREFIXES)


def resolve_url(raw: Optional[str], base: str) -> Optional[str]:
    """Absolute fetchable URL for ``raw`` against ``base``, or None."""
    if not can_fetch_url(raw):
        return None
    try:
        absu, _ = urldefrag(urljoin(base, raw.strip()))
        p = urlparse(absu)
    except ValueError:
        return None
    if p.scheme.lower() not in FETCHABLE_SCHEMES or not p.netloc:
        return None
    return absu


def with_fragment(target: str, raw: str) -> str:
    """``target`` carrying the ``#fragment`` of the original reference ``raw``."""
    try:
        _, frag = urldefrag(raw.strip())
    except ValueError:
        return target
    return f"{target}#{frag}" if frag else target


def is_same_origin(base: str, other: str) -> bool:
    b, o = urlparse(base), urlparse(other)
    return (b.scheme, b.netloc) == (o.scheme, o.netloc)


def host_of(u: str) -> str:
    try:
        return (urlparse(u).hostname or "").lower()
    except ValueError:
        return ""


def is_relative_reference(u: str) -> bool:
    p = urlparse(u)
    return not p.scheme and not p.netloc


# -------------------- HTML utils --------------------


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag and tag.get("href"):
        try:
            return urljoin(fallback, tag["href"].strip())
        except ValueError:
            return fallback
    return fallback


def serialize_html(soup: BeautifulSoup) -> str:
    return soup.decode(formatter="html")


# -------------------- srcset --------------------


def parse_srcset(v: Optional[str]) -> List[Tuple[str, str]]:
    # candidate URLs end at whitespace, so data: URIs keep their commas
    out: List[Tuple[str, str]] = []
    if not v:
        return out
    i, n = 0, len(v)
    while i < n:
        while i < n and (v[i].isspace() or v[i] == ","):
            i += 1
        if i >= n:
            break
        start = i
        while i < n and not v[i].isspace():
            i += 1
        url = v[start:i]
        desc = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            j = v.find(",", i)
            if j == -1:
                j = n
            desc = v[i:j].strip()
            i = j + 1
        if url:
            out.append((url, desc))
    return out


def format_srcset(candidates: List[Tuple[str, str]]) -> str:
    return ", ".join(f"{u} {d}".strip() for u, d in candidates if u)

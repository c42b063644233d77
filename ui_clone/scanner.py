import hashlib
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup, NavigableString, Tag

from .css import IMPORT_REF, iter_css_refs
from .tracking import is_tracking, is_tracking_content
from .urls import effective_base_url, parse_srcset, resolve_url

# asset kinds
STYLESHEET = "stylesheet"
SCRIPT = "script"
IMAGE = "image"
ICON = "icon"
FONT = "font"

# where a reference lives
ATTRIBUTE = "attribute"
INLINE_STYLE = "inline_style"
STYLESHEET_RULE = "stylesheet_rule"

# bundles
STYLE_BUNDLE = "style"
SCRIPT_BUNDLE = "script"

FONT_EXTS = {".woff", ".woff2", ".ttf", ".otf", ".eot"}
ICON_RELS = {"icon", "apple-touch-icon", "apple-touch-icon-precomposed", "mask-icon"}
CLASSIC_SCRIPT_TYPES = {
    "",
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "text/ecmascript",
    "application/ecmascript",
}
STYLE_TYPES = {"", "text/css"}


class InlineCounter:
    """Numbers repeated inline blocks so identical copies stay distinct sources."""

    def __init__(self) -> None:
        self._seen: Dict[Tuple[str, str], int] = {}

    def next(self, tag_name: str, text: str) -> int:
        k = (tag_name, text.strip())
        n = self._seen.get(k, 0)
        self._seen[k] = n + 1
        return n


@dataclass
class ReferenceSite:
    location: str
    owner: Optional[Tag] = field(repr=False, compare=False)
    attr: Optional[str]
    raw_value: str
    kind: str
    absolute_url: Optional[str]


@dataclass
class BundleEntry:
    bundle: str  # style | script
    node: Optional[Tag] = field(repr=False, compare=False)
    url: Optional[str] = None
    text: Optional[str] = None
    base_url: str = ""
    media: Optional[str] = None
    occurrence: int = 0  # earlier inline blocks with the same text

    @property
    def key(self) -> str:
        if self.url is not None:
            return self.url
        return inline_key(self.text or "", self.occurrence)


@dataclass
class ScanResult:
    base_url: str
    sites: List[ReferenceSite] = field(default_factory=list)
    bundle_entries: List[BundleEntry] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    inline_counter: InlineCounter = field(
        default_factory=InlineCounter, repr=False, compare=False
    )

    def add_site(self, *args: Any) -> None:
        self.sites.append(ReferenceSite(*args))

    def urls(self) -> Set[str]:
        return {s.absolute_url for s in self.sites if s.absolute_url}


# -------------------- Node helpers --------------------


def inline_key(text: str, occurrence: int = 0) -> str:
    digest = hashlib.sha1(text.strip().encode("utf-8")).hexdigest()
    return f"inline:{digest}:{occurrence}"


def node_text(tag: Tag) -> str:
    return "".join(str(c) for c in tag.contents if isinstance(c, NavigableString))


def link_rels(tag: Tag) -> Set[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return {r.lower() for r in rel}


def is_stylesheet_link(tag: Tag) -> bool:
    rels = link_rels(tag)
    return "stylesheet" in rels and "alternate" not in rels


def is_icon_link(tag: Tag) -> bool:
    return bool(link_rels(tag) & ICON_RELS)


def script_type(tag: Tag) -> str:
    return (tag.get("type") or "").split(";")[0].strip().lower()


def is_classic_script(tag: Tag) -> bool:
    return script_type(tag) in CLASSIC_SCRIPT_TYPES


def is_bundleable_style(tag: Tag) -> bool:
    return (tag.get("type") or "").strip().lower() in STYLE_TYPES


def node_source_key(
    tag: Tag, base_url: str, occurrence: int = 0
) -> Optional[str]:
    """The key a consolidated bundle records for the source behind ``tag``."""
    if tag.name == "link" and is_stylesheet_link(tag):
        return resolve_url(tag.get("href"), base_url)
    if tag.name == "script" and is_classic_script(tag):
        if tag.get("src") is not None:
            return resolve_url(tag.get("src"), base_url)
        return inline_key(node_text(tag), occurrence)
    if tag.name == "style" and is_bundleable_style(tag):
        return inline_key(node_text(tag), occurrence)
    return None


def kind_for_css_url(absolute_url: str) -> str:
    ext = os.path.splitext(urlparse(absolute_url).path)[1].lower()
    return FONT if ext in FONT_EXTS else IMAGE


# -------------------- Style text --------------------


def scan_stylesheet_text(
    text: str,
    base_url: str,
    owner: Optional[Tag] = None,
    location: str = STYLESHEET_RULE,
) -> List[ReferenceSite]:
    sites: List[ReferenceSite] = []
    for ref in iter_css_refs(text):
        absu = resolve_url(ref.url, base_url)
        if absu is None or is_tracking(absu):
            continue
        if ref.kind == IMPORT_REF:
            kind = STYLESHEET
        else:
            kind = kind_for_css_url(absu)
        attr = "style" if location == INLINE_STYLE else None
        sites.append(ReferenceSite(location, owner, attr, ref.url, kind, absu))
    return sites


# -------------------- Document --------------------


def _scan_link(tag: Tag, base: str, result: ScanResult) -> None:
    href = tag.get("href")
    if is_stylesheet_link(tag):
        kind = STYLESHEET
    elif is_icon_link(tag):
        kind = ICON
    else:
        return
    absu = resolve_url(href, base)
    if absu is None:
        return
    if is_tracking(absu):
        result.dropped.append(absu)
        return
    result.add_site(ATTRIBUTE, tag, "href", href, kind, absu)
    if kind == STYLESHEET:
        result.bundle_entries.append(
            BundleEntry(STYLE_BUNDLE, tag, url=absu, base_url=absu, media=tag.get("media"))
        )


def _scan_style_block(tag: Tag, base: str, result: ScanResult) -> None:
    if not is_bundleable_style(tag):
        return
    text = node_text(tag)
    result.bundle_entries.append(
        BundleEntry(
            STYLE_BUNDLE,
            tag,
            text=text,
            base_url=base,
            media=tag.get("media"),
            occurrence=result.inline_counter.next("style", text),
        )
    )
    result.sites.extend(scan_stylesheet_text(text, base, owner=tag))


def _scan_script(tag: Tag, base: str, result: ScanResult) -> None:
    src = tag.get("src")
    if src is not None:
        absu = resolve_url(src, base)
        if absu is None:
            return
        if is_tracking(absu):
            result.dropped.append(absu)
            return
        if not is_classic_script(tag):
            return
        result.add_site(ATTRIBUTE, tag, "src", src, SCRIPT, absu)
        result.bundle_entries.append(
            BundleEntry(SCRIPT_BUNDLE, tag, url=absu, base_url=absu)
        )
        return
    if not is_classic_script(tag):
        return
    text = node_text(tag)
    if is_tracking_content(text):
        result.dropped.append(inline_key(text))
        return
    result.bundle_entries.append(
        BundleEntry(
            SCRIPT_BUNDLE,
            tag,
            text=text,
            base_url=base,
            occurrence=result.inline_counter.next("script", text),
        )
    )


def _scan_image_attrs(tag: Tag, base: str, result: ScanResult) -> None:
    src = tag.get("src")
    if src is not None:
        absu = resolve_url(src, base)
        if absu is not None:
            if is_tracking(absu):
                result.dropped.append(absu)
            else:
                result.add_site(ATTRIBUTE, tag, "src", src, IMAGE, absu)
    for url, _ in parse_srcset(tag.get("srcset")):
        absu = resolve_url(url, base)
        if absu is None:
            continue
        if is_tracking(absu):
            result.dropped.append(absu)
            continue
        result.add_site(ATTRIBUTE, tag, "srcset", url, IMAGE, absu)


def _scan_style_attr(tag: Tag, base: str, result: ScanResult) -> None:
    for site in scan_stylesheet_text(tag.get("style") or "", base, tag, INLINE_STYLE):
        if site.kind != STYLESHEET:
            result.sites.append(site)


def in_picture(tag: Tag) -> bool:
    return tag.parent is not None and tag.parent.name == "picture"


def scan_document(
    soup: BeautifulSoup, base_url: str, *, skip_noscript: bool = True
) -> ScanResult:
    base = effective_base_url(soup, base_url)
    result = ScanResult(base_url=base)
    for tag in soup.find_all(True):
        if skip_noscript and tag.find_parent("noscript") is not None:
            continue
        name = tag.name
        if name == "link":
            _scan_link(tag, base, result)
        elif name == "style":
            _scan_style_block(tag, base, result)
        elif name == "script":
            _scan_script(tag, base, result)
        elif name == "img" or (name == "source" and in_picture(tag)):
            _scan_image_attrs(tag, base, result)
        if tag.get("style"):
            _scan_style_attr(tag, base, result)
    return result

import logging
import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .capture import PageInfo
from .consolidator import Bundles
from .css import URL_REF, CssRef, sub_css_refs
from .fetcher import AssetRegistry
from .scanner import (
    InlineCounter,
    in_picture,
    is_bundleable_style,
    is_classic_script,
    is_icon_link,
    is_stylesheet_link,
    link_rels,
    node_source_key,
    node_text,
)
from .settings import Settings
from .tracking import is_tracking, is_tracking_content
from .urls import (
    can_fetch_url,
    effective_base_url,
    format_srcset,
    is_relative_reference,
    parse_srcset,
    resolve_url,
    with_fragment,
)

SRI_ATTRS = ("integrity", "crossorigin", "referrerpolicy")
HINT_RELS = {"preload", "prefetch", "modulepreload"}
CONTENT_TYPE_RE = re.compile(r"^\s*content-type\s*$", re.IGNORECASE)
UTF8_CONTENT_TYPE = "text/html; charset=utf-8"


def ensure_head(soup: BeautifulSoup) -> Tag:
    if soup.head is not None:
        return soup.head
    head = soup.new_tag("head")
    html = soup.find("html")
    (html if html is not None else soup).insert(0, head)
    return head


def ensure_body(soup: BeautifulSoup) -> Tag:
    if soup.body is not None:
        return soup.body
    body = soup.new_tag("body")
    html = soup.find("html")
    (html if html is not None else soup).append(body)
    return body


def _tracking_ref(raw: Optional[str], base: str) -> bool:
    absu = resolve_url(raw, base)
    return absu is not None and is_tracking(absu)


def is_hint_link(tag: Tag) -> bool:
    return bool(link_rels(tag) & HINT_RELS)


def is_bundle_ref(
    tag: Tag, style_href: Optional[str], script_src: Optional[str]
) -> bool:
    """True for the tags that load our own bundles."""
    if tag.name == "link" and style_href and is_stylesheet_link(tag):
        return (tag.get("href") or "").strip() == style_href
    if tag.name == "script" and script_src:
        return (tag.get("src") or "").strip() == script_src
    return False


def _strip_sri(tag: Tag) -> None:
    for rm in SRI_ATTRS:
        if rm in tag.attrs:
            del tag.attrs[rm]


# -------------------- 1. removal --------------------


def remove_consolidated_nodes(
    soup: BeautifulSoup,
    base: str,
    bundles: Bundles,
    *,
    strip_noscript: bool,
    style_href: Optional[str] = None,
    script_src: Optional[str] = None,
) -> int:
    removed = 0
    if strip_noscript:
        for tag in soup.find_all("noscript"):
            if not tag.decomposed:
                tag.decompose()
                removed += 1
    inline = InlineCounter()
    for tag in soup.find_all(["base", "link", "style", "script", "iframe"]):
        if tag.decomposed:
            continue
        if is_bundle_ref(tag, style_href, script_src):
            # the page's own file of the same name is merged into ours
            _strip_sri(tag)
            if "media" in tag.attrs:
                del tag.attrs["media"]
            continue
        name = tag.name
        drop = False
        if name == "base":
            drop = True
        elif name == "link":
            if _tracking_ref(tag.get("href"), base):
                drop = True
            elif is_stylesheet_link(tag):
                drop = node_source_key(tag, base) in bundles.style.merged
            elif is_hint_link(tag):
                drop = resolve_url(tag.get("href"), base) in bundles.merged
        elif name == "style":
            if is_bundleable_style(tag):
                occ = inline.next("style", node_text(tag))
                drop = node_source_key(tag, base, occ) in bundles.style.merged
        elif name == "script":
            if tag.get("src") is not None:
                drop = _tracking_ref(tag.get("src"), base)
                if not drop and is_classic_script(tag):
                    drop = node_source_key(tag, base) in bundles.script.merged
            elif is_classic_script(tag):
                text = node_text(tag)
                if is_tracking_content(text):
                    drop = True
                else:
                    occ = inline.next("script", text)
                    drop = node_source_key(tag, base, occ) in bundles.script.merged
        elif name == "iframe":
            drop = _tracking_ref(tag.get("src"), base)
        if drop:
            tag.decompose()
            removed += 1
    return removed


# -------------------- 2. local paths --------------------


def _target_for(
    raw: Optional[str], base: str, registry: AssetRegistry
) -> Optional[str]:
    """Local path of a fetched asset, or the absolute URL of one that was not."""
    if not raw or registry.is_local_path(raw.strip()):
        return None
    absu = resolve_url(raw, base)
    asset = registry.get(absu)
    if asset is None:
        return None
    if asset.fetched:
        if asset.local_path is None:
            return None
        target = asset.local_path
    else:
        target = absu
    target = with_fragment(target, raw)
    return None if target == raw.strip() else target


def _rewrite_attr(tag: Tag, attr: str, base: str, registry: AssetRegistry) -> bool:
    target = _target_for(tag.get(attr), base, registry)
    if target is None:
        return False
    tag[attr] = target
    return True


def _rewrite_srcset(tag: Tag, base: str, registry: AssetRegistry) -> bool:
    if not tag.get("srcset"):
        return False
    changed = False
    out = []
    for url, desc in parse_srcset(tag["srcset"]):
        if _tracking_ref(url, base):
            changed = True
            continue
        target = _target_for(url, base, registry)
        if target is not None:
            url = target
            changed = True
        out.append((url, desc))
    if changed:
        tag["srcset"] = format_srcset(out)
    return changed


def _rewrite_style_attr(tag: Tag, base: str, registry: AssetRegistry) -> bool:
    css = tag.get("style")

    def repl(ref: CssRef) -> Optional[str]:
        if ref.kind != URL_REF:
            return None
        if _tracking_ref(ref.url, base):
            return "none"
        target = _target_for(ref.url, base, registry)
        return None if target is None else ref.render(target)

    new_css = sub_css_refs(css, repl)
    if new_css == css:
        return False
    tag["style"] = new_css
    return True


def localize_references(
    soup: BeautifulSoup,
    base: str,
    registry: AssetRegistry,
    *,
    style_href: Optional[str] = None,
    script_src: Optional[str] = None,
) -> int:
    changed = 0
    for tag in soup.find_all(True):
        if tag.decomposed or is_bundle_ref(tag, style_href, script_src):
            continue
        name = tag.name
        hit = False
        if name == "img" or (name == "source" and in_picture(tag)):
            if _tracking_ref(tag.get("src"), base):
                if name == "img":
                    tag.decompose()
                    changed += 1
                    continue
                del tag["src"]
            hit = _rewrite_attr(tag, "src", base, registry)
            hit = _rewrite_srcset(tag, base, registry) or hit
        elif name == "link" and (
            is_icon_link(tag) or is_stylesheet_link(tag) or is_hint_link(tag)
        ):
            hit = _rewrite_attr(tag, "href", base, registry)
        elif name == "script" and tag.get("src") is not None:
            hit = _rewrite_attr(tag, "src", base, registry)
        if tag.get("style"):
            hit = _rewrite_style_attr(tag, base, registry) or hit
        if hit:
            _strip_sri(tag)
            changed += 1
    return changed


# -------------------- 3. bundles --------------------


def insert_bundle_refs(
    soup: BeautifulSoup, style_href: Optional[str], script_src: Optional[str]
) -> None:
    if style_href and soup.find("link", href=style_href) is None:
        link = soup.new_tag("link", rel="stylesheet", href=style_href)
        ensure_head(soup).append(link)
    if script_src and soup.find("script", src=script_src) is None:
        script = soup.new_tag("script", src=script_src)
        ensure_body(soup).append(script)


# -------------------- 4. links --------------------


def absolutize_links(soup: BeautifulSoup, base: str, *, new_tab: bool) -> int:
    n = 0
    for a in soup.find_all(["a", "area"], href=True):
        href = a["href"].strip()
        if not can_fetch_url(href):
            continue
        try:
            if not is_relative_reference(href):
                continue
            a["href"] = urljoin(base, href)
        except ValueError:
            continue
        if new_tab:
            a["target"] = "_blank"
        n += 1
    return n


# -------------------- 5. meta --------------------


def ensure_meta(soup: BeautifulSoup, info: Optional[PageInfo]) -> None:
    head = ensure_head(soup)
    # index.html is always written as UTF-8
    charset = soup.find("meta", charset=True)
    if charset is not None:
        charset["charset"] = "utf-8"
    for meta in soup.find_all("meta", attrs={"http-equiv": CONTENT_TYPE_RE}):
        if meta.get("content") != UTF8_CONTENT_TYPE:
            meta["content"] = UTF8_CONTENT_TYPE
    if info is None:
        return
    if soup.find("meta", attrs={"name": "viewport"}) is None and info.viewport:
        meta = soup.new_tag("meta", attrs={"name": "viewport", "content": info.viewport})
        head.insert(0, meta)
    if soup.find("meta", attrs={"name": "description"}) is None and info.description:
        meta = soup.new_tag(
            "meta", attrs={"name": "description", "content": info.description}
        )
        head.append(meta)


def rewrite_document(
    soup: BeautifulSoup,
    base_url: str,
    registry: AssetRegistry,
    bundles: Bundles,
    info: Optional[PageInfo] = None,
    settings: Optional[Settings] = None,
) -> BeautifulSoup:
    settings = settings or Settings()
    base = effective_base_url(soup, base_url)
    style_href = None if bundles.style.is_empty() else settings.style_bundle
    script_src = None if bundles.script.is_empty() else settings.script_bundle
    removed = remove_consolidated_nodes(
        soup,
        base,
        bundles,
        strip_noscript=settings.strip_noscript,
        style_href=style_href,
        script_src=script_src,
    )
    localized = localize_references(
        soup, base, registry, style_href=style_href, script_src=script_src
    )
    insert_bundle_refs(soup, style_href, script_src)
    links = absolutize_links(soup, base, new_tab=settings.open_links_in_new_tab)
    ensure_meta(soup, info)
    logging.debug(
        "rewrite: removed %d nodes, localized %d, absolutized %d links",
        removed,
        localized,
        links,
    )
    return soup

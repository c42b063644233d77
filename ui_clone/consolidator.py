import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from .css import IMPORT_REF, CssRef, sub_css_refs
from .fetcher import AssetRegistry
from .scanner import SCRIPT_BUNDLE, STYLE_BUNDLE, STYLESHEET, BundleEntry
from .urls import resolve_url, with_fragment

ALL_MEDIA = {"", "all"}
SCRIPT_SEPARATOR = "\n;\n"
STYLE_SEPARATOR = "\n\n"


@dataclass
class Bundle:
    kind: str
    fragments: List[str] = field(default_factory=list)
    merged: Set[str] = field(default_factory=set)
    # remote @import rules that could not be inlined; they must lead the file
    imports: List[str] = field(default_factory=list)

    def mark(self, key: str) -> bool:
        if key in self.merged:
            return False
        self.merged.add(key)
        return True

    def add(self, text: str) -> None:
        if text.strip():
            self.fragments.append(text.strip("\n"))

    def is_empty(self) -> bool:
        return not self.fragments and not self.imports

    def text(self) -> str:
        if self.is_empty():
            return ""
        sep = SCRIPT_SEPARATOR if self.kind == SCRIPT_BUNDLE else STYLE_SEPARATOR
        parts = []
        if self.imports:
            parts.append("\n".join(self.imports))
        parts.extend(self.fragments)
        return sep.join(parts) + "\n"


@dataclass
class Bundles:
    style: Bundle
    script: Bundle

    @property
    def merged(self) -> Set[str]:
        return self.style.merged | self.script.merged


def wrap_media(css: str, media: Optional[str]) -> str:
    media = (media or "").strip()
    if media.lower() in ALL_MEDIA or not css.strip():
        return css
    return f"@media {media} {{\n{css}\n}}"


def localize_css(
    css: str,
    base_url: str,
    registry: AssetRegistry,
    bundle: Bundle,
    *,
    depth: int = 0,
    max_depth: int = 8,
) -> str:
    """Point url() references at local copies and inline fetched @imports."""

    def repl(ref: CssRef) -> Optional[str]:
        absu = resolve_url(ref.url, base_url)
        if absu is None:
            return None
        if ref.kind == IMPORT_REF:
            asset = registry.get(absu)
            if asset is not None and asset.fetched and asset.kind == STYLESHEET:
                if not bundle.mark(absu):
                    return ""  # already merged earlier in the bundle
                if depth >= max_depth:
                    logging.warning("@import nesting too deep at %s", absu)
                    return ""
                inner = localize_css(
                    asset.text(), absu, registry, bundle, depth=depth + 1
                )
                return wrap_media(inner, ref.media)
            rule = ref.render(absu)
            if rule not in bundle.imports:
                bundle.imports.append(rule)
            return ""
        local = registry.local_path_for(absu)
        if local is not None:
            return ref.render(with_fragment(local, ref.url))
        # remote fallback; the bundle no longer sits next to the source
        return ref.render(with_fragment(absu, ref.url))

    return sub_css_refs(css, repl, drop_charset=True)


def consolidate(entries: List[BundleEntry], registry: AssetRegistry) -> Bundles:
    style = Bundle(STYLE_BUNDLE)
    script = Bundle(SCRIPT_BUNDLE)
    for entry in entries:
        bundle = style if entry.bundle == STYLE_BUNDLE else script
        if entry.url is not None:
            asset = registry.get(entry.url)
            if asset is None or not asset.fetched:
                # left in the document pointing at the remote copy
                continue
            text = asset.text()
        else:
            text = entry.text or ""
        if not bundle.mark(entry.key):
            continue
        if bundle is style:
            text = localize_css(text, entry.base_url, registry, style)
            text = wrap_media(text, entry.media)
        bundle.add(text)
    logging.debug(
        "bundled %d style and %d script sources",
        len(style.fragments),
        len(script.fragments),
    )
    return Bundles(style, script)

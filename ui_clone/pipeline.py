"""Clone one rendered page into a self-contained offline folder.

The original markup is always the one scanned for assets. When a content
rewriter supplies different markup, the URL -> local path mapping built
from the original is applied to that markup instead.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Set, Union

import requests

from .capture import CapturedPage, PageCapture, PageInfo, get_capture
from .consolidator import Bundles, consolidate
from .errors import CloneError
from .fetcher import AssetFetcher, AssetRegistry, ResolvedAsset, build_session
from .output import (
    INDEX_FILE,
    atomic_write_text,
    write_bundle,
    write_manifest,
    write_serve_scripts,
)
from .rewriter import rewrite_document
from .scanner import STYLESHEET, scan_document, scan_stylesheet_text
from .settings import Settings
from .urls import bs4_parse, serialize_html

ContentRewriter = Callable[[str, str], str]


@dataclass
class CloneContext:
    """State owned by a single clone run."""

    settings: Settings
    output_dir: Path
    session: requests.Session
    registry: AssetRegistry = field(default_factory=AssetRegistry)
    fetcher: AssetFetcher = field(init=False)

    def __post_init__(self) -> None:
        self.fetcher = AssetFetcher(
            self.session, self.registry, self.output_dir, self.settings
        )


@dataclass
class CloneResult:
    output_dir: Path
    index_path: Path
    style_path: Optional[Path]
    script_path: Optional[Path]
    info: PageInfo
    assets: Dict[str, ResolvedAsset]
    attempted: int
    fetched: int
    failed: int
    dropped: int
    manifest_path: Optional[Path] = None

    @property
    def assets_count(self) -> int:
        return self.fetched


def expand_stylesheets(ctx: CloneContext, scanned: Set[str]) -> None:
    # fetched stylesheet bodies reference fonts, images and more stylesheets
    for _ in range(ctx.settings.css_passes):
        sites = []
        for asset in ctx.registry.by_kind(STYLESHEET):
            if asset.url in scanned or not asset.fetched:
                continue
            scanned.add(asset.url)
            sites.extend(scan_stylesheet_text(asset.text(), asset.url))
        if not sites:
            break
        ctx.fetcher.fetch_all(sites)


def clone_page(
    page: CapturedPage,
    output_dir: Union[str, Path],
    settings: Optional[Settings] = None,
    *,
    session: Optional[requests.Session] = None,
    rewritten_html: Optional[str] = None,
) -> CloneResult:
    settings = settings or Settings()
    page_url = page.info.base_url if page is not None else ""
    if page is None or not (page.html or "").strip():
        raise CloneError(f"no markup captured for {page_url or 'page'}")

    out = Path(output_dir).resolve()
    out.mkdir(parents=True, exist_ok=True)
    own_session = session is None
    if session is None:
        session = build_session(settings)
    try:
        ctx = CloneContext(settings, out, session)
        soup = bs4_parse(page.html)
        scan = scan_document(soup, page_url, skip_noscript=settings.strip_noscript)
        logging.info(
            "found %d references to %d assets, dropped %d tracking",
            len(scan.sites),
            len(scan.urls()),
            len(scan.dropped),
        )

        ctx.fetcher.fetch_all(scan.sites)
        expand_stylesheets(ctx, set())
        # every fetch has settled from here on
        bundles: Bundles = consolidate(scan.bundle_entries, ctx.registry)

        if rewritten_html is not None:
            target = bs4_parse(rewritten_html)
            rewrite_document(target, scan.base_url, ctx.registry, bundles, page.info, settings)
        else:
            target = soup
            rewrite_document(target, page_url, ctx.registry, bundles, page.info, settings)

        index_path = out / INDEX_FILE
        atomic_write_text(index_path, serialize_html(target))
        style_path = write_bundle(out, settings.style_bundle, bundles.style.text())
        script_path = write_bundle(out, settings.script_bundle, bundles.script.text())
        write_serve_scripts(out)

        stats = ctx.fetcher.stats
        logging.info("downloaded %d/%d assets", stats.fetched, stats.attempted)
        if stats.failed:
            logging.warning("%d assets failed; kept remote references", stats.failed)

        result = CloneResult(
            output_dir=out,
            index_path=index_path,
            style_path=style_path,
            script_path=script_path,
            info=page.info,
            assets=ctx.registry.as_dict(),
            attempted=stats.attempted,
            fetched=stats.fetched,
            failed=stats.failed,
            dropped=len(scan.dropped),
        )
        if settings.write_manifest:
            result.manifest_path = write_manifest(
                out,
                page.info,
                ctx.registry,
                {
                    "style": style_path.name if style_path else None,
                    "script": script_path.name if script_path else None,
                },
                {
                    "attempted": stats.attempted,
                    "fetched": stats.fetched,
                    "failed": stats.failed,
                    "dropped": len(scan.dropped),
                },
            )
        return result
    finally:
        if own_session:
            session.close()


def clone_url(
    url: str,
    output_dir: Union[str, Path],
    settings: Optional[Settings] = None,
    *,
    capture: Optional[PageCapture] = None,
    content_rewriter: Optional[ContentRewriter] = None,
    session: Optional[requests.Session] = None,
) -> CloneResult:
    settings = settings or Settings()
    own_session = session is None
    if session is None:
        session = build_session(settings)
    own_capture = capture is None
    if capture is None:
        capture = get_capture(settings, session)
    try:
        logging.info("GET %s", url)
        try:
            page = capture.capture(url)
        finally:
            if own_capture:
                capture.close()
        if not page.info.base_url:
            page.info.base_url = url

        rewritten: Optional[str] = None
        if content_rewriter is not None:
            logging.info("rewriting page content")
            try:
                rewritten = content_rewriter(page.html, url)
            except Exception as e:
                logging.warning("content rewrite failed, using original markup: %s", e)
            else:
                if not (rewritten or "").strip():
                    logging.warning("content rewrite returned nothing, using original")
                    rewritten = None

        return clone_page(
            page, output_dir, settings, session=session, rewritten_html=rewritten
        )
    finally:
        if own_session:
            session.close()

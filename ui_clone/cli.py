import argparse
import logging
import sys
from typing import List, Optional
from urllib.parse import urlparse

from . import __version__
from .errors import CloneError
from .pipeline import clone_url
from .settings import Settings, load_config_file


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ui-clone",
        description="Clone a rendered page into a self-contained offline folder.",
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    p.add_argument("url", help="http(s) URL")
    p.add_argument(
        "output_folder", nargs="?", default="./cloned-ui", help="output directory"
    )
    p.add_argument(
        "--timeout", type=float, default=10.0, help="asset read timeout seconds"
    )
    p.add_argument(
        "--connect-timeout", type=float, default=5.0, help="connect timeout seconds"
    )
    p.add_argument("--workers", type=int, default=16, help="concurrent downloads")
    p.add_argument(
        "--max-bytes", type=int, default=50_000_000, help="max bytes per asset"
    )
    p.add_argument(
        "--css-passes",
        type=int,
        default=3,
        help="rounds of fetching assets referenced from stylesheets",
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")

    # capture
    p.add_argument(
        "--render-js", action="store_true", help="capture with Playwright if installed"
    )
    p.add_argument(
        "--render-timeout-ms", type=int, default=30000, help="Playwright timeout ms"
    )
    p.add_argument(
        "--wait-until", type=str, default="networkidle", help="Playwright wait_until"
    )

    # output
    p.add_argument(
        "--keep-noscript", action="store_true", help="keep <noscript> blocks"
    )
    p.add_argument(
        "--same-tab-links",
        action="store_true",
        help="do not add target=_blank to absolutized links",
    )
    p.add_argument(
        "--manifest", action="store_true", help="write manifest.json next to index.html"
    )
    p.add_argument(
        "--header",
        action="append",
        default=[],
        help="extra request header 'Name: value'",
    )
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        parser.set_defaults(**load_config_file(preliminary.config))
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        timeout=args.timeout,
        connect_timeout=args.connect_timeout,
        workers=args.workers,
        max_bytes=max(1024, args.max_bytes),
        css_passes=args.css_passes,
        render_js=args.render_js,
        render_timeout_ms=args.render_timeout_ms,
        wait_until=args.wait_until,
        strip_noscript=not args.keep_noscript,
        open_links_in_new_tab=not args.same_tab_links,
        write_manifest=args.manifest,
        extra_headers=list(args.header or []),
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    if urlparse(args.url).scheme not in {"http", "https"}:
        print("Invalid URL. Use http:// or https://")
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    settings = settings_from_args(args)

    print("Reminder: only clone content you own or have permission to copy.")
    try:
        result = clone_url(args.url, args.output_folder, settings)
    except CloneError as e:
        print(f"Cloning failed: {e}")
        sys.exit(1)

    print(f"Output: {result.output_dir}")
    print(f"Assets: {result.fetched}/{result.attempted} downloaded")
    if result.failed:
        print(f"Failed: {result.failed} (remote references kept)")
    print("To serve locally:")
    print(f"  cd {result.output_dir}")
    print("  python serve.py")


if __name__ == "__main__":
    main()

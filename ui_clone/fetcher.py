import hashlib
import logging
import os
import posixpath
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple
from urllib.parse import unquote, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .scanner import FONT, ICON, IMAGE, SCRIPT, STYLESHEET, ReferenceSite
from .settings import DEFAULT_HEADERS, Settings

PENDING = "pending"
FETCHED = "fetched"
FAILED = "failed"

# kinds written to disk, by directory; stylesheets and scripts only live in bundles
KIND_DIRS = {IMAGE: "images", ICON: "images", FONT: "fonts"}
KIND_DEFAULT_NAMES = {
    STYLESHEET: "style",
    SCRIPT: "script",
    IMAGE: "image",
    ICON: "icon",
    FONT: "font",
}
KIND_EXTS = {
    STYLESHEET: ".css",
    SCRIPT: ".js",
    IMAGE: ".png",
    ICON: ".png",
    FONT: ".woff2",
}

UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
MAX_NAME_LEN = 120
CHUNK_SIZE = 64 * 1024


# -------------------- Resolved assets --------------------


@dataclass
class ResolvedAsset:
    url: str
    kind: str
    local_path: Optional[str] = None  # posix, relative to the output dir
    status: str = PENDING
    byte_size: int = 0
    content: Optional[bytes] = field(default=None, repr=False)
    content_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def fetched(self) -> bool:
        return self.status == FETCHED

    @property
    def failed(self) -> bool:
        return self.status == FAILED

    def mark_fetched(
        self, size: int, content: Optional[bytes], content_type: Optional[str]
    ) -> None:
        if self.status != PENDING:
            raise RuntimeError(f"asset already {self.status}: {self.url}")
        self.byte_size = size
        self.content = content
        self.content_type = content_type
        self.status = FETCHED

    def mark_failed(self, reason: str) -> None:
        if self.status != PENDING:
            raise RuntimeError(f"asset already {self.status}: {self.url}")
        self.error = reason
        self.status = FAILED

    def text(self) -> str:
        if self.content is None:
            return ""
        return self.content.decode("utf-8-sig", errors="replace")


# -------------------- Naming --------------------


def short_h(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()[:8]


def sanitize_filename(name: str) -> str:
    name = UNSAFE_FILENAME_CHARS_RE.sub("_", name)
    if name.startswith("."):
        name = "_" + name[1:]
    base, ext = os.path.splitext(name)
    if len(ext) > 10:
        base, ext = name, ""
    return base[: MAX_NAME_LEN - len(ext)] + ext


def local_name_for(url: str, kind: str) -> str:
    path = urlparse(url).path
    name = posixpath.basename(unquote(path))
    name = sanitize_filename(name) if name else ""
    if not name.strip("._"):
        name = KIND_DEFAULT_NAMES.get(kind, "file")
    base, ext = os.path.splitext(name)
    if len(ext) < 2:
        name = base.rstrip(".") + KIND_EXTS.get(kind, "")
    return name


def disambiguate(name: str, url: str, taken: Set[str]) -> str:
    if name.lower() not in taken:
        return name
    base, ext = os.path.splitext(name)
    candidate = f"{base}_{short_h(url)}{ext}"
    n = 2
    while candidate.lower() in taken:
        candidate = f"{base}_{short_h(url)}_{n}{ext}"
        n += 1
    return candidate


# -------------------- Registry --------------------


class AssetRegistry:
    """URL -> ResolvedAsset map for one clone run.

    ``register`` is the only writer of the map and of the reserved file
    names; it runs under one lock, so a URL is registered, and therefore
    fetched, at most once no matter how many sites or threads ask for it.
    """

    def __init__(self) -> None:
        self._assets: Dict[str, ResolvedAsset] = {}
        self._names: Dict[str, Set[str]] = {}
        self._local_paths: Set[str] = set()
        self._lock = Lock()

    def register(self, url: str, kind: str) -> Tuple[ResolvedAsset, bool]:
        with self._lock:
            asset = self._assets.get(url)
            if asset is not None:
                return asset, False
            local_path = None
            subdir = KIND_DIRS.get(kind)
            if subdir is not None:
                taken = self._names.setdefault(subdir, set())
                name = disambiguate(local_name_for(url, kind), url, taken)
                taken.add(name.lower())
                local_path = f"{subdir}/{name}"
                self._local_paths.add(local_path)
            asset = ResolvedAsset(url, kind, local_path)
            self._assets[url] = asset
            return asset, True

    def get(self, url: Optional[str]) -> Optional[ResolvedAsset]:
        if url is None:
            return None
        with self._lock:
            return self._assets.get(url)

    def local_path_for(self, url: Optional[str]) -> Optional[str]:
        asset = self.get(url)
        if asset is None or not asset.fetched:
            return None
        return asset.local_path

    def is_local_path(self, value: str) -> bool:
        with self._lock:
            return value in self._local_paths

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._assets

    def __len__(self) -> int:
        with self._lock:
            return len(self._assets)

    def __iter__(self) -> Iterator[ResolvedAsset]:
        with self._lock:
            assets = list(self._assets.values())
        return iter(assets)

    def by_kind(self, *kinds: str) -> List[ResolvedAsset]:
        return [a for a in self if a.kind in kinds]

    def as_dict(self) -> Dict[str, ResolvedAsset]:
        with self._lock:
            return dict(self._assets)


# -------------------- HTTP --------------------


def build_session(settings: Optional[Settings] = None) -> requests.Session:
    settings = settings or Settings()
    s = requests.Session()
    # one attempt per asset; a failure is final
    retry = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(
        max_retries=retry,
        pool_connections=settings.workers,
        pool_maxsize=settings.workers,
    )
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS)
    apply_extra_headers(s, settings.extra_headers)
    return s


def apply_extra_headers(session: requests.Session, headers: Iterable[str]) -> None:
    for h in headers:
        if ":" not in h:
            logging.warning("invalid header (no colon): %s", h)
            continue
        k, v = h.split(":", 1)
        session.headers[k.strip()] = v.strip()


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


# -------------------- Downloaders --------------------


def fetch_one(
    session: requests.Session,
    asset: ResolvedAsset,
    output_dir: Path,
    settings: Settings,
) -> ResolvedAsset:
    part: Optional[Path] = None
    try:
        with session.get(
            asset.url, timeout=settings.request_timeout, stream=True
        ) as resp:
            if not 200 <= resp.status_code < 300:
                logging.warning("failed %s -> HTTP %s", asset.url, resp.status_code)
                asset.mark_failed(f"HTTP {resp.status_code}")
                return asset
            cl = resp.headers.get("Content-Length")
            if cl and cl.isdigit() and int(cl) > settings.max_bytes:
                logging.warning("skip large file %s (%s bytes)", asset.url, cl)
                asset.mark_failed("too large")
                return asset
            content_type = resp.headers.get("Content-Type")

            written = 0
            if asset.local_path is None:
                buf = bytearray()
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > settings.max_bytes:
                        break
                    buf.extend(chunk)
                body: Optional[bytes] = bytes(buf)
            else:
                target = output_dir / asset.local_path
                ensure_parent_dir(target)
                part = target.with_name(target.name + ".part")
                with open(part, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        written += len(chunk)
                        if written > settings.max_bytes:
                            break
                        f.write(chunk)
                body = None

        if written > settings.max_bytes:
            logging.warning("skip large file %s (over %d bytes)", asset.url, settings.max_bytes)
            asset.mark_failed("too large")
            return asset
        if written == 0:
            logging.warning("empty response %s", asset.url)
            asset.mark_failed("empty response")
            return asset
        if part is not None:
            os.replace(part, output_dir / asset.local_path)
            part = None
        asset.mark_fetched(written, body, content_type)
        logging.debug("downloaded asset: %s -> %s", asset.url, asset.local_path or "bundle")
        return asset
    except requests.RequestException as e:
        logging.warning("error downloading %s: %s", asset.url, e)
        asset.mark_failed(str(e) or type(e).__name__)
        return asset
    except OSError as e:
        logging.warning("error writing %s: %s", asset.url, e)
        asset.mark_failed(str(e))
        return asset
    finally:
        if part is not None:
            part.unlink(missing_ok=True)


@dataclass
class FetchStats:
    attempted: int = 0
    fetched: int = 0
    failed: int = 0
    bytes: int = 0

    def add(self, asset: ResolvedAsset) -> None:
        self.attempted += 1
        if asset.fetched:
            self.fetched += 1
            self.bytes += asset.byte_size
        else:
            self.failed += 1


class AssetFetcher:
    def __init__(
        self,
        session: requests.Session,
        registry: AssetRegistry,
        output_dir: Path,
        settings: Settings,
    ):
        self.session = session
        self.registry = registry
        self.output_dir = output_dir
        self.settings = settings
        self.stats = FetchStats()

    def register_sites(self, sites: Iterable[ReferenceSite]) -> List[ResolvedAsset]:
        new: List[ResolvedAsset] = []
        for site in sites:
            if site.absolute_url is None:
                continue
            asset, is_new = self.registry.register(site.absolute_url, site.kind)
            if is_new:
                new.append(asset)
        return new

    def fetch_all(self, sites: Iterable[ReferenceSite]) -> Dict[str, ResolvedAsset]:
        sites = list(sites)
        # names are reserved here, in scan order, before any request goes out
        pending = self.register_sites(sites)
        if pending:
            workers = min(self.settings.workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                future_map = {
                    pool.submit(
                        fetch_one, self.session, a, self.output_dir, self.settings
                    ): a
                    for a in pending
                }
                for fut in as_completed(future_map):
                    fut.result()
            for a in pending:
                self.stats.add(a)
        out: Dict[str, ResolvedAsset] = {}
        for site in sites:
            asset = self.registry.get(site.absolute_url)
            if asset is not None:
                out[asset.url] = asset
        return out

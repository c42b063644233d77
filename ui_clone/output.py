import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .capture import PageInfo
from .fetcher import ResolvedAsset

INDEX_FILE = "index.html"
SERVE_PY_FILE = "serve.py"
SERVE_BAT_FILE = "serve.bat"
MANIFEST_FILE = "manifest.json"

SERVE_PY = '''#!/usr/bin/env python3
import http.server
import socketserver
import webbrowser
from pathlib import Path

PORT = 8000
DIRECTORY = Path(__file__).parent


class Handler(http.server.SimpleHTTPRequestHandler):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, directory=DIRECTORY, **kwargs)


def main():
    with socketserver.TCPServer(("", PORT), Handler) as httpd:
        print(f"Serving at http://localhost:{PORT}")
        try:
            webbrowser.open(f"http://localhost:{PORT}")
        except Exception:
            pass
        httpd.serve_forever()


if __name__ == "__main__":
    main()
'''

SERVE_BAT = (
    "@echo off\r\n"
    "echo Starting cloned website server...\r\n"
    'cd /d "%~dp0"\r\n'
    "python serve.py\r\n"
    "pause\r\n"
)


def atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    os.replace(tmp, path)


def write_bundle(output_dir: Path, name: str, text: str) -> Optional[Path]:
    p = output_dir / name
    if not text:
        if p.exists():
            # a bundle from an earlier run into the same folder
            p.unlink()
            logging.debug("removed stale bundle %s", p)
        return None
    atomic_write_text(p, text)
    return p


def write_serve_scripts(output_dir: Path) -> None:
    atomic_write_text(output_dir / SERVE_PY_FILE, SERVE_PY)
    atomic_write_text(output_dir / SERVE_BAT_FILE, SERVE_BAT)
    logging.info("created server scripts: %s, %s", SERVE_PY_FILE, SERVE_BAT_FILE)


def write_manifest(
    output_dir: Path,
    info: PageInfo,
    assets: Iterable[ResolvedAsset],
    bundles: Dict[str, Optional[str]],
    counts: Dict[str, int],
) -> Path:
    # RFC3339 UTC timestamp without microseconds
    created_ts = (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
    entries = []
    for a in assets:
        e: Dict[str, Any] = {"url": a.url, "kind": a.kind, "status": a.status}
        if a.local_path and a.fetched:
            e["local_path"] = a.local_path
        if a.fetched:
            e["bytes"] = a.byte_size
        if a.error:
            e["error"] = a.error
        entries.append(e)
    data = {
        "page": info.to_dict(),
        "created_utc": created_ts,
        "index": INDEX_FILE,
        "bundles": bundles,
        "counts": counts,
        "assets": entries,
    }
    p = output_dir / MANIFEST_FILE
    atomic_write_text(p, json.dumps(data, indent=2))
    return p

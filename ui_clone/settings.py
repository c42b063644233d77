from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
}

MAX_WORKERS = 32

CONFIG_GROUPS = ("fetch", "render", "output", "general")


@dataclass
class Settings:
    timeout: float = 10.0
    connect_timeout: float = 5.0
    workers: int = 16
    max_bytes: int = 50_000_000
    css_passes: int = 3

    # Capture
    render_js: bool = False
    render_timeout_ms: int = 30000
    wait_until: str = "networkidle"

    # Rewriting
    strip_noscript: bool = True
    open_links_in_new_tab: bool = True

    # Output
    style_bundle: str = "style.css"
    script_bundle: str = "script.js"
    write_manifest: bool = False

    extra_headers: List[str] = field(default_factory=list)  # "Name: value"

    def __post_init__(self) -> None:
        self.workers = max(1, min(MAX_WORKERS, int(self.workers)))
        self.css_passes = max(0, int(self.css_passes))

    @property
    def request_timeout(self):
        return (self.connect_timeout, self.timeout)


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        import tomllib

        with open(p, "rb") as f:
            data = tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise RuntimeError("Top-level YAML must be a mapping")
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")
    return flatten_config(data)


def flatten_config(data: Dict[str, Any]) -> Dict[str, Any]:
    flat = {k: v for k, v in data.items() if not isinstance(v, dict)}
    for g in CONFIG_GROUPS:
        if isinstance(data.get(g), dict):
            flat.update(data[g])
    return {k.replace("-", "_"): v for k, v in flat.items()}

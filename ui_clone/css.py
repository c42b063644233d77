import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

URL_REF = "url"
IMPORT_REF = "import"

# One left-to-right pass; comments and @charset are matched so that nothing
# inside a comment is reported and @import targets are not reported twice.
CSS_TOKEN_RE = re.compile(
    r"(?P<comment>/\*.*?(?:\*/|\Z))"
    r"|(?P<charset>@charset\s+(?:\"[^\"]*\"|'[^']*')\s*;)"
    r"|(?P<import>@import\s+"
    r"(?:url\(\s*(?:\"(?P<i_dq>[^\"]*)\"|'(?P<i_sq>[^']*)'|(?P<i_bare>[^\s\"')]*))\s*\)"
    r"|\"(?P<s_dq>[^\"]*)\"|'(?P<s_sq>[^']*)')"
    r"(?P<media>[^;{}]*);)"
    r"|(?P<url>(?<![\w-])url\(\s*(?:\"(?P<u_dq>[^\"]*)\"|'(?P<u_sq>[^']*)'|(?P<u_bare>[^\s\"')]*))\s*\))",
    re.IGNORECASE | re.DOTALL,
)

BARE_UNSAFE_RE = re.compile(r"[\s\"'()\\]")


@dataclass
class CssRef:
    kind: str  # url | import
    url: str
    quote: str
    start: int
    end: int
    media: str = ""

    def render(self, url: str) -> str:
        if self.kind == IMPORT_REF:
            media = f" {self.media}" if self.media else ""
            target = format_css_url(url, self.quote or '"')
            return f"@import {target}{media};"
        return format_css_url(url, self.quote)


def format_css_url(url: str, quote: str = "") -> str:
    if not quote and BARE_UNSAFE_RE.search(url):
        quote = '"'
    return f"url({quote}{url}{quote})"


def _ref_from_match(m: re.Match) -> Optional[CssRef]:
    if m.group("import") is not None:
        for name, q in (
            ("i_dq", '"'),
            ("i_sq", "'"),
            ("i_bare", ""),
            ("s_dq", '"'),
            ("s_sq", "'"),
        ):
            if m.group(name) is not None:
                return CssRef(
                    IMPORT_REF,
                    m.group(name).strip(),
                    q,
                    m.start(),
                    m.end(),
                    media=(m.group("media") or "").strip(),
                )
    if m.group("url") is not None:
        for name, q in (("u_dq", '"'), ("u_sq", "'"), ("u_bare", "")):
            if m.group(name) is not None:
                return CssRef(URL_REF, m.group(name).strip(), q, m.start(), m.end())
    return None


def iter_css_refs(text: str) -> Iterator[CssRef]:
    for m in CSS_TOKEN_RE.finditer(text or ""):
        ref = _ref_from_match(m)
        if ref is not None and ref.url:
            yield ref


def sub_css_refs(
    text: str,
    repl: Callable[[CssRef], Optional[str]],
    *,
    drop_charset: bool = False,
) -> str:
    """Rewrite every url()/@import in ``text``; ``repl`` returning None keeps it."""

    def _sub(m: re.Match) -> str:
        if m.group("charset") is not None:
            return "" if drop_charset else m.group(0)
        ref = _ref_from_match(m)
        if ref is None or not ref.url:
            return m.group(0)
        out = repl(ref)
        return m.group(0) if out is None else out

    return CSS_TOKEN_RE.sub(_sub, text or "")

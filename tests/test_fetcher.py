import pytest

from ui_clone.fetcher import (
    FAILED,
    FETCHED,
    AssetFetcher,
    AssetRegistry,
    ResolvedAsset,
    disambiguate,
    local_name_for,
    sanitize_filename,
    short_h,
)
from ui_clone.scanner import ATTRIBUTE, FONT, ICON, IMAGE, SCRIPT, STYLESHEET, ReferenceSite
from ui_clone.settings import Settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def site(url, kind=IMAGE):
    return ReferenceSite(ATTRIBUTE, None, "src", url, kind, url)


def make_fetcher(session, tmp_path, settings=None):
    return AssetFetcher(session, AssetRegistry(), tmp_path, settings or Settings(workers=4))


# -------------------- naming --------------------


def test_local_name_defaults_by_kind():
    assert local_name_for("https://example.com/", IMAGE) == "image.png"
    assert local_name_for("https://example.com/", FONT) == "font.woff2"
    assert local_name_for("https://example.com/", ICON) == "icon.png"
    assert local_name_for("https://example.com/api/img", IMAGE) == "img.png"
    assert local_name_for("https://example.com/a/photo.jpg?w=1", IMAGE) == "photo.jpg"


def test_sanitize_filename():
    assert sanitize_filename("my file (1).png") == "my_file__1_.png"
    assert sanitize_filename(".hidden") == "_hidden"
    assert len(sanitize_filename("a" * 300 + ".png")) == 120


def test_disambiguate_is_case_insensitive():
    taken = {"logo.png"}
    url = "https://b.example.com/LOGO.png"
    assert disambiguate("LOGO.png", url, taken) == f"LOGO_{short_h(url)}.png"


def test_registry_deduplicates_and_names():
    reg = AssetRegistry()
    a, new_a = reg.register("https://a.example.com/logo.png", IMAGE)
    b, new_b = reg.register("https://a.example.com/logo.png", IMAGE)
    c, _ = reg.register("https://b.example.com/logo.png", IMAGE)
    assert a is b and new_a and not new_b
    assert a.local_path == "images/logo.png"
    assert c.local_path == f"images/logo_{short_h('https://b.example.com/logo.png')}.png"
    assert len(reg) == 2


def test_query_variants_get_separate_files():
    reg = AssetRegistry()
    a, _ = reg.register("https://example.com/logo.png?v=1", IMAGE)
    b, _ = reg.register("https://example.com/logo.png?v=2", IMAGE)
    assert a.local_path != b.local_path


def test_bundle_kinds_have_no_local_path():
    reg = AssetRegistry()
    css, _ = reg.register("https://example.com/a.css", STYLESHEET)
    js, _ = reg.register("https://example.com/a.js", SCRIPT)
    font, _ = reg.register("https://example.com/f.woff2", FONT)
    assert css.local_path is None and js.local_path is None
    assert font.local_path == "fonts/f.woff2"


def test_naming_follows_registration_order():
    urls = [f"https://h{i}.example.com/same.png" for i in range(5)]
    paths = []
    for _ in range(2):
        reg = AssetRegistry()
        paths.append([reg.register(u, IMAGE)[0].local_path for u in urls])
    assert paths[0] == paths[1]
    assert paths[0][0] == "images/same.png"


def test_asset_state_moves_once():
    a = ResolvedAsset("https://example.com/x.png", IMAGE)
    a.mark_fetched(3, None, "image/png")
    with pytest.raises(RuntimeError):
        a.mark_failed("late")


# -------------------- fetching --------------------


def test_each_url_fetched_once(fake_session, tmp_path):
    url = "https://example.com/logo.png"
    sess = fake_session({url: PNG})
    fetcher = make_fetcher(sess, tmp_path)
    got = fetcher.fetch_all([site(url), site(url), site(url)])
    assert sess.count(url) == 1
    assert got[url].status == FETCHED
    assert (tmp_path / "images" / "logo.png").read_bytes() == PNG
    assert fetcher.stats.attempted == 1


def test_second_round_does_not_refetch(fake_session, tmp_path):
    url = "https://example.com/logo.png"
    sess = fake_session({url: PNG})
    fetcher = make_fetcher(sess, tmp_path)
    fetcher.fetch_all([site(url)])
    fetcher.fetch_all([site(url)])
    assert sess.count(url) == 1


def test_stylesheet_body_kept_in_memory(fake_session, tmp_path):
    url = "https://example.com/a.css"
    sess = fake_session({url: "body{color:red}"})
    asset = make_fetcher(sess, tmp_path).fetch_all([site(url, STYLESHEET)])[url]
    assert asset.text() == "body{color:red}"
    assert list(tmp_path.iterdir()) == []


def test_http_error_marks_failed(fake_session, tmp_path):
    ok = "https://example.com/ok.png"
    missing = "https://example.com/missing.png"
    sess = fake_session({ok: PNG})
    fetcher = make_fetcher(sess, tmp_path)
    got = fetcher.fetch_all([site(ok), site(missing)])
    assert got[ok].status == FETCHED
    assert got[missing].status == FAILED
    assert got[missing].error == "HTTP 404"
    assert not (tmp_path / "images" / "missing.png").exists()
    assert (fetcher.stats.fetched, fetcher.stats.failed) == (1, 1)


def test_timeout_marks_failed(fake_session, tmp_path, timeout_error):
    url = "https://example.com/slow.png"
    sess = fake_session({url: timeout_error})
    asset = make_fetcher(sess, tmp_path).fetch_all([site(url)])[url]
    assert asset.failed
    assert "timed out" in asset.error


def test_content_length_over_limit(fake_session, tmp_path):
    url = "https://example.com/big.png"
    sess = fake_session({url: (200, PNG, {"Content-Length": "999999"})})
    settings = Settings(workers=2, max_bytes=1024)
    asset = make_fetcher(sess, tmp_path, settings).fetch_all([site(url)])[url]
    assert asset.failed and asset.error == "too large"


def test_streamed_body_over_limit_leaves_no_file(fake_session, tmp_path):
    url = "https://example.com/big.png"
    sess = fake_session({url: b"x" * 2048})
    settings = Settings(workers=2, max_bytes=1024)
    asset = make_fetcher(sess, tmp_path, settings).fetch_all([site(url)])[url]
    assert asset.failed
    assert list((tmp_path / "images").iterdir()) == []


def test_empty_body_marks_failed(fake_session, tmp_path):
    url = "https://example.com/empty.png"
    sess = fake_session({url: b""})
    asset = make_fetcher(sess, tmp_path).fetch_all([site(url)])[url]
    assert asset.failed and asset.error == "empty response"

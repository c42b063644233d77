import pytest

from ui_clone import cli
from ui_clone.errors import CloneError
from ui_clone.settings import MAX_WORKERS, Settings, flatten_config, load_config_file


def test_defaults():
    args = cli.parse_args(["https://example.com"])
    s = cli.settings_from_args(args)
    assert args.output_folder == "./cloned-ui"
    assert s.workers == 16
    assert s.strip_noscript and s.open_links_in_new_tab
    assert not s.write_manifest


def test_toml_config_sets_defaults_and_flags_override(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text(
        "[fetch]\nworkers = 4\ntimeout = 3.5\n\n[output]\nmanifest = true\n",
        encoding="utf-8",
    )
    args = cli.parse_args(["--config", str(cfg), "https://example.com", "--workers", "8"])
    s = cli.settings_from_args(args)
    assert s.workers == 8
    assert s.timeout == 3.5
    assert s.write_manifest


def test_yaml_config(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("fetch:\n  css-passes: 1\nverbose: true\n", encoding="utf-8")
    assert load_config_file(str(cfg)) == {"verbose": True, "css_passes": 1}


def test_yaml_config_must_be_mapping(tmp_path):
    cfg = tmp_path / "config.yml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config_file(str(cfg))


def test_unknown_config_format(tmp_path):
    cfg = tmp_path / "config.ini"
    cfg.write_text("[x]\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config_file(str(cfg))


def test_flatten_config_ignores_unknown_groups():
    assert flatten_config({"render": {"render-js": True}, "other": {"x": 1}}) == {
        "render_js": True
    }


def test_settings_clamped():
    assert Settings(workers=0).workers == 1
    assert Settings(workers=500).workers == MAX_WORKERS
    assert Settings(css_passes=-2).css_passes == 0
    assert Settings(timeout=7, connect_timeout=2).request_timeout == (2, 7)


def test_header_option_repeats():
    args = cli.parse_args(
        ["https://example.com", "--header", "X-A: 1", "--header", "X-B: 2"]
    )
    assert cli.settings_from_args(args).extra_headers == ["X-A: 1", "X-B: 2"]


def test_invalid_url_exits(capsys):
    with pytest.raises(SystemExit) as e:
        cli.main(["ftp://example.com"])
    assert e.value.code == 1
    assert "Invalid URL" in capsys.readouterr().out


def test_clone_error_exits(monkeypatch, capsys, tmp_path):
    def fail(url, output_dir, settings):
        raise CloneError("no markup captured")

    monkeypatch.setattr(cli, "clone_url", fail)
    with pytest.raises(SystemExit) as e:
        cli.main(["https://example.com", str(tmp_path)])
    assert e.value.code == 1
    assert "Cloning failed: no markup captured" in capsys.readouterr().out

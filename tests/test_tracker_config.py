from __future__ import annotations

import json
from pathlib import Path

import pytest

from catchup_errors import ConfigValidationError
from tracker_config import ProviderKind, load_config, parse_config

VALID = {
    "anilistUsername": "reader",
    "manga": [
        {"name": "One Piece", "anilistId": 30013, "siteId": "one-piece", "provider": "viz"},
        {"name": "Example", "anilistId": 42, "siteId": "abc", "provider": "mangadex"},
    ],
}


def _write(tmp_path: Path, content) -> Path:
    target = tmp_path / "config.json"
    if isinstance(content, str):
        target.write_text(content, encoding="utf-8")
    else:
        target.write_text(json.dumps(content), encoding="utf-8")
    return target


def test_load_config_reads_series_in_file_order(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("ANILIST_USERNAME", raising=False)
    config = load_config(_write(tmp_path, VALID))
    assert config.anilist_username == "reader"
    assert [m.name for m in config.manga] == ["One Piece", "Example"]
    assert config.manga[0].provider is ProviderKind.VIZ
    assert config.manga[1].anilist_id == 42
    assert config.manga[1].site_id == "abc"


def test_env_username_overrides_file(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ANILIST_USERNAME", "someone-else")
    assert load_config(_write(tmp_path, VALID)).anilist_username == "someone-else"


def test_missing_file_is_rejected(tmp_path: Path):
    with pytest.raises(ConfigValidationError, match="not found"):
        load_config(tmp_path / "nope.json")


def test_bad_json_is_rejected(tmp_path: Path):
    with pytest.raises(ConfigValidationError, match="not valid JSON"):
        load_config(_write(tmp_path, "{not json"))


@pytest.mark.parametrize(
    "entry",
    [
        {"name": "X", "anilistId": 1, "siteId": "x", "provider": "comick"},
        {"name": "X", "anilistId": 1, "siteId": "", "provider": "viz"},
        {"name": "X", "anilistId": "one", "siteId": "x", "provider": "viz"},
        {"name": "X", "siteId": "x", "provider": "viz"},
    ],
)
def test_invalid_series_entries_are_rejected(entry):
    with pytest.raises(ConfigValidationError):
        parse_config({"anilistUsername": "reader", "manga": [entry]})


def test_missing_username_is_rejected():
    with pytest.raises(ConfigValidationError, match="anilistUsername"):
        parse_config({"manga": []})


def test_non_object_document_is_rejected():
    with pytest.raises(ConfigValidationError):
        parse_config(["not", "a", "config"])


def test_series_config_is_immutable():
    config = parse_config(VALID)
    with pytest.raises(Exception):
        config.manga[0].site_id = "changed"


def test_non_utf8_file_is_rejected(tmp_path: Path):
    target = tmp_path / "config.json"
    target.write_bytes(b"\xff\xfe")
    with pytest.raises(ConfigValidationError, match="UTF-8"):
        load_config(target)


def test_unreadable_path_is_rejected(tmp_path: Path):
    with pytest.raises(ConfigValidationError, match="Couldn't read"):
        load_config(tmp_path)

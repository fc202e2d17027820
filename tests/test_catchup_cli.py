from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import responses

import catchup


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.delenv("ANILIST_USERNAME", raising=False)
    target = tmp_path / "config.json"
    target.write_text(json.dumps({
        "anilistUsername": "reader",
        "manga": [
            {"name": "One Piece", "anilistId": 30013, "siteId": "one-piece", "provider": "viz"},
            {"name": "Example", "anilistId": 42, "siteId": "abc", "provider": "mangadex"},
        ],
    }), encoding="utf-8")
    return target


def test_main_prints_report_and_exports_json(
    responses_mock: responses.RequestsMock,
    config_file: Path,
    tmp_path: Path,
    viz_chapters_html: str,
    mangadex_feed: dict,
    media_list_collection: dict,
    capsys,
):
    responses_mock.add(responses.GET, "https://www.viz.com/shonenjump/chapters/one-piece", body=viz_chapters_html, status=200)
    responses_mock.add(responses.GET, "https://api.mangadex.org/manga/abc/feed", json=mangadex_feed, status=200)
    responses_mock.add(responses.POST, "https://graphql.anilist.co", json=media_list_collection, status=200)
    export = tmp_path / "out" / "report.json"

    code = catchup.main(["--config", str(config_file), "--min-interval", "0", "--export-json", str(export)])

    assert code == 0
    out = capsys.readouterr().out
    assert "Caught up (1): Example" in out
    assert "One Piece: 1100 - " in out
    assert "(https://www.viz.com/shonenjump/one-piece-chapter-1100/chapter/33000?action=read)" in out
    exported = json.loads(export.read_text(encoding="utf-8"))
    assert [row["name"] for row in exported["caught_up"]] == ["Example"]
    assert exported["behind"][0]["chapter"] == 1100


def test_main_stops_before_scraping_on_invalid_config(responses_mock: responses.RequestsMock, tmp_path: Path, capsys):
    bad = tmp_path / "config.json"
    bad.write_text(json.dumps({"anilistUsername": "reader", "manga": [{"name": "X"}]}), encoding="utf-8")
    assert catchup.main(["--config", str(bad)]) == 1
    assert "(X) Invalid config data" in capsys.readouterr().err
    assert len(responses_mock.calls) == 0


def test_main_prints_nothing_when_scrape_fails(responses_mock: responses.RequestsMock, config_file: Path, capsys):
    responses_mock.add(responses.GET, "https://api.mangadex.org/manga/abc/feed", json={"result": "ok", "data": []}, status=200)
    assert catchup.main(["--config", str(config_file), "--min-interval", "0"]) == 1
    captured = capsys.readouterr()
    assert "Caught up" not in captured.out
    assert "Couldn't find chapters for Example" in captured.err


def test_check_id_prints_single_progress(responses_mock: responses.RequestsMock, config_file: Path, capsys):
    responses_mock.add(responses.POST, "https://graphql.anilist.co", json={"data": {"MediaList": {"progress": 1095}}}, status=200)
    assert catchup.main(["--config", str(config_file), "--min-interval", "0", "--check-id", "30013"]) == 0
    assert capsys.readouterr().out.strip() == "30013: 1095"
    sent = json.loads(responses_mock.calls[0].request.body)
    assert sent["variables"] == {"userName": "reader", "mediaId": 30013}


def test_fatal_error_is_reported_once(responses_mock: responses.RequestsMock, tmp_path: Path, capsys, caplog):
    missing = tmp_path / "missing.json"
    with caplog.at_level(logging.ERROR):
        assert catchup.main(["--config", str(missing)]) == 1
    err = capsys.readouterr().err
    assert err.count("Config file not found") == 1
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

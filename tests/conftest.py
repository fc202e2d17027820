import json
from pathlib import Path

import pytest
import responses


class FakeClock:
    """Monotonic clock whose sleep just advances time."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(scope="session")
def viz_chapters_html(fixtures_dir: Path) -> str:
    path = fixtures_dir / "viz" / "chapters.html"
    return path.read_text(encoding="utf-8")


@pytest.fixture(scope="session")
def mangadex_feed(fixtures_dir: Path) -> dict:
    path = fixtures_dir / "mangadex" / "feed.json"
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture(scope="session")
def media_list_collection(fixtures_dir: Path) -> dict:
    path = fixtures_dir / "anilist" / "media_list_collection.json"
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def responses_mock():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps

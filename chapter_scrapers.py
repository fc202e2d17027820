"""Latest-chapter scrapers for the supported providers.

Each scraper turns one series' listing (VIZ HTML page or MangaDex chapter
feed) into a ``ChapterResult``. Anything missing or unparseable raises
``ScrapeError``; there is no retry at this layer.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from catchup_errors import ScrapeError, UnknownProviderError
from tracker_config import (
    MANGADEX_API,
    MANGADEX_SITE,
    REQUEST_TIMEOUT,
    USER_AGENT,
    VIZ_SITE,
    ProviderKind,
    SeriesConfig,
)

LOGGER = logging.getLogger(__name__)

VIZ_RELEASE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%Y-%m-%d", "%m/%d/%Y")


@dataclass(frozen=True)
class ChapterResult:
    name: str
    chapter: int
    release: datetime
    release_relative: str
    url: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round(x: float) -> int:
    return int(x + 0.5)


def relative_time(when: datetime, now: Optional[datetime] = None) -> str:
    """Render ``when`` relative to ``now`` ("3 hours ago", "in 2 days")."""
    if now is None:
        now = _utcnow()
    delta = (now - when).total_seconds()
    seconds = abs(delta)
    minutes = seconds / 60
    hours = minutes / 60
    days = hours / 24

    if seconds < 45:
        phrase = "a few seconds"
    elif seconds < 90:
        phrase = "a minute"
    elif minutes < 45:
        phrase = f"{_round(minutes)} minutes"
    elif minutes < 90:
        phrase = "an hour"
    elif hours < 22:
        phrase = f"{_round(hours)} hours"
    elif hours < 36:
        phrase = "a day"
    elif days < 26:
        phrase = f"{_round(days)} days"
    elif days < 45:
        phrase = "a month"
    elif days < 320:
        phrase = f"{max(2, _round(days / 30.4))} months"
    elif days < 548:
        phrase = "a year"
    else:
        phrase = f"{max(2, _round(days / 365.25))} years"

    return f"in {phrase}" if delta < 0 else f"{phrase} ago"


def parse_viz_release(text: str) -> datetime:
    cleaned = " ".join((text or "").split())
    for fmt in VIZ_RELEASE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ScrapeError(f"Couldn't parse release date {cleaned!r}.")


def parse_iso_timestamp(value: Any) -> datetime:
    if not isinstance(value, str) or not value.strip():
        raise ScrapeError(f"Missing release timestamp: {value!r}")
    raw = value.strip()
    # fromisoformat only learned the Z suffix in 3.11
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError as e:
        raise ScrapeError(f"Invalid release timestamp {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_session() -> requests.Session:
    sess = requests.Session()
    sess.headers.update({"User-Agent": USER_AGENT})
    return sess


class ProviderScraper:
    provider: ProviderKind

    def __init__(self, session: Optional[requests.Session] = None, request_timeout: float = REQUEST_TIMEOUT, now: Optional[Callable[[], datetime]] = None):
        self.sess = session or new_session()
        self.timeout = request_timeout
        self._now = now or _utcnow

    def _get(self, url: str, **kwargs) -> requests.Response:
        if "timeout" not in kwargs:
            kwargs["timeout"] = self.timeout
        try:
            r = self.sess.get(url, **kwargs)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ScrapeError(f"Request to {url} failed: {e}") from e
        return r

    def _result(self, series: SeriesConfig, chapter: int, release: datetime, url: str) -> ChapterResult:
        return ChapterResult(
            name=series.name,
            chapter=chapter,
            release=release,
            release_relative=relative_time(release, self._now()),
            url=url,
        )

    def fetch_latest_chapter(self, series: SeriesConfig) -> ChapterResult:
        raise NotImplementedError


class VizScraper(ProviderScraper):
    provider = ProviderKind.VIZ

    def __init__(self, *args, base_url: str = VIZ_SITE, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = base_url.rstrip("/")

    def series_url(self, series: SeriesConfig) -> str:
        return f"{self.base_url}/shonenjump/chapters/{series.site_id}"

    def parse_listing(self, series: SeriesConfig, html: str) -> ChapterResult:
        soup = BeautifulSoup(html, "html.parser")
        anchors = soup.select("a[id^=ch]")
        if not anchors:
            raise ScrapeError(f"Couldn't find chapters for {series.name}.")
        anchor = anchors[0]

        release_text = "".join(td.get_text() for td in anchor.select("div:first-child td"))
        release = parse_viz_release(release_text)

        chapter_text = "".join(el.get_text() for el in anchor.select(".ch-num-list-spacing > div"))
        digits = re.sub(r"\D", "", chapter_text)
        if not digits:
            raise ScrapeError(f"Couldn't read chapter number for {series.name} from {chapter_text!r}.")

        href = anchor.get("href")
        if not href:
            raise ScrapeError(f"Couldn't get chapter link for {series.name}.")

        return self._result(series, int(digits), release, urljoin(self.base_url + "/", href))

    def fetch_latest_chapter(self, series: SeriesConfig) -> ChapterResult:
        r = self._get(self.series_url(series))
        return self.parse_listing(series, r.text)


class MangaDexScraper(ProviderScraper):
    provider = ProviderKind.MANGADEX

    FEED_PARAMS = {
        "limit": "10",
        "translatedLanguage[]": "en",
        "order[chapter]": "desc",
    }

    def __init__(self, *args, api_url: str = MANGADEX_API, site_url: str = MANGADEX_SITE, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = api_url.rstrip("/")
        self.site_url = site_url.rstrip("/")

    @staticmethod
    def _parse_chapter_number(value: Any, series: SeriesConfig) -> int:
        try:
            # "12.5" style extras count as their parent chapter
            number = int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            raise ScrapeError(f"Invalid chapter number {value!r} for {series.name}.") from None
        if number < 0:
            raise ScrapeError(f"Negative chapter number {value!r} for {series.name}.")
        return number

    def parse_feed(self, series: SeriesConfig, payload: Any) -> ChapterResult:
        chapters = payload.get("data") if isinstance(payload, dict) else None
        if not chapters:
            raise ScrapeError(f"Couldn't find chapters for {series.name}.")
        if not isinstance(chapters, list):
            raise ScrapeError(f"Malformed chapter feed for {series.name}: data is {type(chapters).__name__}.")
        target = chapters[0]
        if not isinstance(target, dict):
            raise ScrapeError(f"Malformed chapter entry for {series.name}: {target!r}")
        attrs = target.get("attributes") or {}
        if not isinstance(attrs, dict):
            raise ScrapeError(f"Malformed chapter attributes for {series.name}: {attrs!r}")
        chapter_id = target.get("id")
        if not chapter_id:
            raise ScrapeError(f"Chapter entry for {series.name} has no id.")

        chapter = self._parse_chapter_number(attrs.get("chapter"), series)
        release = parse_iso_timestamp(attrs.get("readableAt"))
        return self._result(series, chapter, release, f"{self.site_url}/chapter/{chapter_id}")

    def fetch_latest_chapter(self, series: SeriesConfig) -> ChapterResult:
        r = self._get(f"{self.api_url}/manga/{series.site_id}/feed", params=self.FEED_PARAMS)
        try:
            payload = r.json()
        except ValueError as e:
            raise ScrapeError(f"MangaDex feed for {series.name} is not JSON: {e}") from e
        return self.parse_feed(series, payload)


class ChapterScraper:
    """Dispatches each series to the scraper registered for its provider."""

    def __init__(self, scrapers: Optional[Iterable[ProviderScraper]] = None, session: Optional[requests.Session] = None, request_timeout: float = REQUEST_TIMEOUT):
        if scrapers is None:
            sess = session or new_session()
            scrapers = [
                VizScraper(session=sess, request_timeout=request_timeout),
                MangaDexScraper(session=sess, request_timeout=request_timeout),
            ]
        self.scrapers: Dict[ProviderKind, ProviderScraper] = {s.provider: s for s in scrapers}

    def fetch_latest_chapter(self, series: SeriesConfig) -> ChapterResult:
        try:
            kind = ProviderKind(series.provider)
        except ValueError:
            kind = None
        scraper = self.scrapers.get(kind) if kind is not None else None
        if scraper is None:
            raise UnknownProviderError(f"Unknown provider {series.provider!r} for {series.name}.")
        LOGGER.debug("Fetching %s from %s (%s)", series.name, kind.value, series.site_id)
        return scraper.fetch_latest_chapter(series)

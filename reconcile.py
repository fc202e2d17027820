import locale
import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Protocol, Tuple

from anilist_client import ProgressRecord
from chapter_scrapers import ChapterResult
from tracker_config import SeriesConfig, TrackerConfig

LOGGER = logging.getLogger(__name__)


class ChapterSource(Protocol):
    def fetch_latest_chapter(self, series: SeriesConfig) -> ChapterResult: ...


class ProgressSource(Protocol):
    def fetch_user_progress(self, user_name: str) -> List[ProgressRecord]: ...


class TrackedChapter(NamedTuple):
    series: SeriesConfig
    result: ChapterResult


@dataclass
class ClassifiedReport:
    caught_up: List[TrackedChapter] = field(default_factory=list)
    behind: List[TrackedChapter] = field(default_factory=list)
    # Scraped series with no AniList entry; never part of either bucket
    unmatched: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        def row(item: TrackedChapter) -> Dict[str, Any]:
            return {
                "name": item.series.name,
                "anilistId": item.series.anilist_id,
                "provider": item.series.provider.value,
                "chapter": item.result.chapter,
                "release": item.result.release.isoformat(),
                "releaseRelative": item.result.release_relative,
                "url": item.result.url,
            }
        return {
            "caught_up": [row(x) for x in self.caught_up],
            "behind": [row(x) for x in self.behind],
        }


def _fold(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def name_sort_key(name: str) -> Tuple[str, str, str]:
    # Accented letters collate with their base letter
    return (locale.strxfrm(_fold(name)), locale.strxfrm(name.casefold()), name)


def sort_series(series: Iterable[SeriesConfig]) -> List[SeriesConfig]:
    return sorted(series, key=lambda s: name_sort_key(s.name))


def classify(scraped: Iterable[TrackedChapter], progress: Iterable[ProgressRecord]) -> ClassifiedReport:
    by_id: Dict[int, int] = {}
    for rec in progress:
        by_id[rec.media_id] = rec.progress

    report = ClassifiedReport()
    for item in scraped:
        read = by_id.get(item.series.anilist_id)
        if read is None:
            report.unmatched.append(item.series.name)
            continue
        if read >= item.result.chapter:
            report.caught_up.append(item)
        else:
            report.behind.append(item)

    report.caught_up.sort(key=lambda x: name_sort_key(x.series.name))
    report.behind.sort(key=lambda x: x.result.release, reverse=True)
    return report


def reconcile(
    config: TrackerConfig,
    scraper: ChapterSource,
    client: ProgressSource,
    on_progress: Optional[Callable[[int, int, SeriesConfig], None]] = None,
) -> ClassifiedReport:
    """Scrape every configured series, then compare against AniList progress.

    Any exception raised by either source aborts the run.
    """
    targets = sort_series(config.manga)
    scraped: List[TrackedChapter] = []
    for i, series in enumerate(targets, start=1):
        if on_progress is not None:
            on_progress(i, len(targets), series)
        scraped.append(TrackedChapter(series, scraper.fetch_latest_chapter(series)))

    progress = client.fetch_user_progress(config.anilist_username)
    report = classify(scraped, progress)
    if report.unmatched:
        LOGGER.debug("No AniList entry for: %s", ", ".join(report.unmatched))
    return report


def format_report(report: ClassifiedReport) -> str:
    lines = [
        "- - -",
        f"Caught up ({len(report.caught_up)}): " + ", ".join(x.series.name for x in report.caught_up),
        "",
    ]
    for item in report.behind:
        r = item.result
        lines.append(f"{item.series.name}: {r.chapter} - {r.release_relative} ({r.url})")
    return "\n".join(lines)

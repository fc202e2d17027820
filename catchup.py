import argparse
import json
import locale
import logging
import sys
from pathlib import Path
from typing import List, Optional

from anilist_client import AnilistClient, RateLimiter
from catchup_errors import CatchupError
from chapter_scrapers import ChapterScraper
from reconcile import format_report, reconcile
from tracker_config import ANILIST_MIN_INTERVAL, DEFAULT_CONFIG_PATH, DEFAULT_ERROR_DUMP, REQUEST_TIMEOUT, load_config

LOGGER = logging.getLogger("catchup")


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    # urllib3 connection chatter drowns out our own debug lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Compare your AniList manga progress with the latest VIZ / MangaDex chapters.")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config JSON (default: config.json)")
    p.add_argument("--debug", action="store_true", help="Verbose diagnostics (rate limit waits, unmatched series)")
    p.add_argument("--min-interval", type=float, default=ANILIST_MIN_INTERVAL, help="Minimum seconds between AniList calls (default 1.0)")
    p.add_argument("--max-attempts", type=int, help="Give up after this many rate-limited AniList attempts (default: retry forever)")
    p.add_argument("--request-timeout", type=float, default=REQUEST_TIMEOUT, help="HTTP request timeout in seconds (default 12)")
    p.add_argument("--error-dump", type=Path, default=DEFAULT_ERROR_DUMP, help="Where to write details of unknown AniList errors")
    p.add_argument("--export-json", type=Path, help="Also write the classified report to this JSON file")
    p.add_argument("--check-id", type=int, help="Print your AniList progress for this media id and exit")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        LOGGER.debug("Keeping default collation: %s", e)

    try:
        config = load_config(args.config)
        client = AnilistClient(
            limiter=RateLimiter(min_interval=args.min_interval),
            request_timeout=args.request_timeout,
            max_attempts=args.max_attempts,
            error_dump_path=args.error_dump,
        )

        if args.check_id is not None:
            progress = client.fetch_media_progress(config.anilist_username, args.check_id)
            if progress is None:
                print(f"{args.check_id}: not on {config.anilist_username}'s list")
            else:
                print(f"{args.check_id}: {progress}")
            return 0

        scraper = ChapterScraper(request_timeout=args.request_timeout)

        def _progress(i: int, total: int, series) -> None:
            LOGGER.info("Scraping %s (%d / %d) ...", series.name, i, total)

        report = reconcile(config, scraper, client, on_progress=_progress)
    except CatchupError as e:
        print(f"(X) {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    print(format_report(report))

    if args.export_json:
        try:
            args.export_json.parent.mkdir(parents=True, exist_ok=True)
            with args.export_json.open("w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
            print(f"Report written to {args.export_json}")
        except OSError as e:
            print(f"Failed to write --export-json: {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

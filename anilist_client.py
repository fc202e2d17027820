"""AniList GraphQL client with call spacing and 429 handling."""
import json
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from catchup_errors import RemoteServiceError, UnknownRemoteError
from tracker_config import ANILIST_API, ANILIST_MIN_INTERVAL, DEFAULT_ERROR_DUMP, REQUEST_TIMEOUT, USER_AGENT

LOGGER = logging.getLogger(__name__)

USER_MANGA_QUERY = """
query ($userName: String) {
  MediaListCollection(userName: $userName, type: MANGA, status: CURRENT) {
    lists {
      name
      status
      entries {
        progress
        media { id }
      }
    }
  }
}
"""

MEDIA_PROGRESS_QUERY = """
query ($userName: String, $mediaId: Int!) {
  MediaList(userName: $userName, mediaId: $mediaId) {
    progress
  }
}
"""


@dataclass(frozen=True)
class ProgressRecord:
    media_id: int
    progress: int
    list_name: str = ""


def parse_retry_after(value: Optional[str]) -> float:
    """Seconds to wait from a Retry-After header; 0 when absent or not numeric."""
    if value is None:
        return 0.0
    try:
        seconds = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(seconds):
        return 0.0
    return max(0.0, seconds)


class RateLimiter:
    """Enforces a minimum gap between consecutive calls.

    Not thread-safe: one limiter belongs to one client used from one thread.
    """

    def __init__(self, min_interval: float = ANILIST_MIN_INTERVAL, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.min_interval = max(0.0, float(min_interval))
        self.clock = clock
        self.sleep = sleep
        self.last_call = clock()

    def wait(self) -> float:
        elapsed = self.clock() - self.last_call
        if elapsed >= self.min_interval:
            return 0.0
        remaining = self.min_interval - elapsed
        LOGGER.debug("Waiting for %.0fms", remaining * 1000)
        self.sleep(remaining)
        return remaining

    def mark(self) -> None:
        self.last_call = self.clock()


class AnilistClient:
    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        url: str = ANILIST_API,
        session: Optional[requests.Session] = None,
        request_timeout: float = REQUEST_TIMEOUT,
        max_attempts: Optional[int] = None,
        error_dump_path: Path = DEFAULT_ERROR_DUMP,
    ):
        self.limiter = limiter or RateLimiter()
        self.url = url
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT})
        self.sess = session
        self.timeout = request_timeout
        self.max_attempts = max_attempts
        self.error_dump_path = Path(error_dump_path)

    def _dump_unknown_error(self, exc: BaseException, payload: Dict[str, Any]) -> Path:
        detail = {
            "type": type(exc).__name__,
            "message": str(exc),
            "repr": repr(exc),
            "request": {"url": self.url, **payload},
        }
        self.error_dump_path.parent.mkdir(parents=True, exist_ok=True)
        with self.error_dump_path.open("w", encoding="utf-8") as f:
            json.dump(detail, f, indent=2, default=str)
        return self.error_dump_path

    def gql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST a GraphQL query and return the decoded body.

        HTTP 429 is retried with the same payload after honouring Retry-After.
        With ``max_attempts`` unset that retry never gives up.
        """
        payload = {"query": query, "variables": variables if variables is not None else {}}
        attempt = 0
        while True:
            attempt += 1
            self.limiter.wait()
            self.limiter.mark()
            try:
                r = self.sess.post(self.url, json=payload, headers={"Accept": "application/json"}, timeout=self.timeout)
            except requests.RequestException as e:
                path = self._dump_unknown_error(e, payload)
                raise UnknownRemoteError(f"Unknown error talking to AniList: {e}", artifact_path=path) from e

            if r.status_code == 429:
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise RemoteServiceError(429, f"still rate limited after {attempt} attempts")
                retry_after = r.headers.get("Retry-After")
                seconds = parse_retry_after(retry_after)
                if retry_after is not None and seconds > 0:
                    LOGGER.debug("Too many requests, waiting for %s seconds.", seconds)
                    self.limiter.sleep(seconds)
                else:
                    LOGGER.debug('Got "Too Many Requests", trying again.')
                continue

            if r.status_code >= 400:
                raise RemoteServiceError(r.status_code, (r.text or "").replace("\n", " ")[:200])

            try:
                return r.json()
            except ValueError as e:
                path = self._dump_unknown_error(e, payload)
                raise UnknownRemoteError(f"AniList returned an unreadable body: {e}", artifact_path=path) from e

    def fetch_user_progress(self, user_name: str) -> List[ProgressRecord]:
        js = self.gql(USER_MANGA_QUERY, {"userName": user_name})
        data = js.get("data") if isinstance(js, dict) else None
        collection = (data.get("MediaListCollection") if isinstance(data, dict) else None) or {}
        if not isinstance(collection, dict):
            raise UnknownRemoteError(f"Unexpected MediaListCollection shape: {type(collection).__name__}")
        records: List[ProgressRecord] = []
        for lst in collection.get("lists") or []:
            if not isinstance(lst, dict):
                raise UnknownRemoteError(f"Unexpected list entry in MediaListCollection: {lst!r}")
            list_name = lst.get("name") or ""
            for entry in lst.get("entries") or []:
                if not isinstance(entry, dict):
                    raise UnknownRemoteError(f"Unexpected entry in list {list_name!r}: {entry!r}")
                media = entry.get("media") or {}
                media_id = media.get("id") if isinstance(media, dict) else None
                if media_id is None:
                    continue
                try:
                    record = ProgressRecord(
                        media_id=int(media_id),
                        progress=int(entry.get("progress") or 0),
                        list_name=list_name,
                    )
                except (TypeError, ValueError) as e:
                    raise UnknownRemoteError(f"Unreadable progress entry in list {list_name!r}: {entry!r}") from e
                records.append(record)
        LOGGER.debug("Fetched %d progress entries for %s", len(records), user_name)
        return records

    def fetch_media_progress(self, user_name: str, media_id: int) -> Optional[int]:
        """Progress for a single title, or None when it isn't on the user's list."""
        try:
            js = self.gql(MEDIA_PROGRESS_QUERY, {"userName": user_name, "mediaId": media_id})
        except RemoteServiceError as e:
            # AniList answers 404 for titles the user never added
            if e.status == 404:
                return None
            raise
        entry = ((js or {}).get("data") or {}).get("MediaList")
        if not entry:
            return None
        return int(entry.get("progress") or 0)

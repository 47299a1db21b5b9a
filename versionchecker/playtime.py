from __future__ import annotations

import logging
import random
import time
from typing import Callable, List, Optional

import requests

from versionchecker.errors import RemoteRequestFailure
from versionchecker.types import PlaytimeStats

logger = logging.getLogger(__name__)

REVIEWS_BASE = "https://store.steampowered.com/appreviews"
PAGE_SIZE = 100
_RETRY_STATUSES = (429, 500, 502, 503, 504)
DEFAULT_USER_AGENT = "verchk/0.1.0"


def create_reviews_session(cfg: dict) -> requests.Session:
    """HTTP session for the store's review listing; [reviews] user_agent overrides the default."""
    s = requests.Session()
    s.headers["User-Agent"] = cfg.get("reviews", {}).get("user_agent", DEFAULT_USER_AGENT)
    s.headers["Accept"] = "application/json"
    return s


def median_playtime(samples: List[int]) -> int:
    """
    Median as the playtime dialog has always reported it: the oddness test is
    on the middle index, not on the sample count. [10, 20, 30, 40] gives 25,
    but [1, 2, 3, 4, 5, 6] gives 4.
    """
    if not samples:
        return 0
    data = sorted(samples)
    middle = len(data) // 2
    if middle % 2 != 0:
        return data[middle]
    # for a single sample data[-1] is that sample
    return (data[middle - 1] + data[middle]) // 2


class PlaytimeStatsAggregator:
    """Average and median reviewer playtime over every page of an app's reviews."""

    def __init__(
        self,
        session: requests.Session,
        base_url: str = REVIEWS_BASE,
        min_interval: float = 1.0,
        max_retries: int = 3,
        timeout: float = 60,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._session = session
        self.base_url = base_url.rstrip("/")
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self._last_request = 0.0

    def _params(self, cursor: Optional[str]) -> dict:
        params = {
            "json": "1",
            "filter": "recent",
            "num_per_page": str(PAGE_SIZE),
            "language": "all",
            "purchase_type": "all",
            "filter_offtopic_activity": "0",
        }
        if cursor is not None:
            # requests url-encodes the value
            params["cursor"] = cursor
        return params

    def _get(self, url: str, params: dict) -> dict:
        """
        GET with polite throttling and bounded retries on 429/5xx and
        transient network errors, exponential backoff with small jitter.
        """
        last_exc: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                dt = self._clock() - self._last_request
                if dt < self.min_interval:
                    self._sleep(self.min_interval - dt)

                r = self._session.get(url, params=params, timeout=self.timeout)
                self._last_request = self._clock()

                if r.status_code in _RETRY_STATUSES and attempt < self.max_retries:
                    ra = r.headers.get("Retry-After")
                    try:
                        sleep_s = float(ra) if ra is not None else min(30.0, 2 ** attempt) + random.uniform(0.0, 0.5)
                    except ValueError:
                        sleep_s = 1.0
                    logger.info("Reviews retry %d/%d (HTTP %s); sleeping %.1fs",
                                attempt + 1, self.max_retries, r.status_code, sleep_s)
                    self._sleep(sleep_s)
                    continue

                if r.status_code >= 400:
                    raise RemoteRequestFailure(url, r.status_code, r.reason or "")
                return r.json()

            except (
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                requests.exceptions.ChunkedEncodingError,
            ) as e:
                last_exc = e
                if attempt < self.max_retries:
                    sleep_s = min(30.0, 2 ** attempt) + random.uniform(0.0, 0.5)
                    logger.info("Reviews retry %d/%d (network); sleeping %.1fs", attempt + 1, self.max_retries, sleep_s)
                    self._sleep(sleep_s)
                    continue
                raise RemoteRequestFailure(url, type(e).__name__, str(e)) from e

        raise RemoteRequestFailure(url, "failed", str(last_exc or ""))

    def fetch_page(self, remote_id: int, cursor: Optional[str] = None) -> Optional[dict]:
        url = f"{self.base_url}/{remote_id}"
        try:
            data = self._get(url, self._params(cursor))
        except RemoteRequestFailure as e:
            logger.error("Failed to get reviews page %s for %s: %s", cursor, remote_id, e)
            return None
        except ValueError as e:
            logger.error("Failed to parse reviews response for %s: %s", remote_id, e)
            return None

        if not isinstance(data, dict):
            logger.error("Unexpected reviews response for %s: %r", remote_id, data)
            return None
        return data

    def samples(self, remote_id: int) -> List[int]:
        """Collects every reviewer's playtime_forever, page by page."""
        playtimes: List[int] = []
        cursor: Optional[str] = None
        page = 0

        while True:
            data = self.fetch_page(remote_id, cursor)
            if data is None:
                break
            page += 1

            reviews = data.get("reviews") or []
            if not isinstance(reviews, list) or not reviews:
                break

            for review in reviews:
                author = review.get("author") if isinstance(review, dict) else None
                if not isinstance(author, dict):
                    author = {}
                try:
                    playtime = int(author.get("playtime_forever") or 0)
                except (TypeError, ValueError):
                    logger.warning("Unreadable playtime in reviews for %s: %r", remote_id, author.get("playtime_forever"))
                    playtime = 0
                playtimes.append(playtime)

            logger.debug("Reviews page %d for %s: %d samples so far", page, remote_id, len(playtimes))

            next_cursor = data.get("cursor")
            if not next_cursor or next_cursor == cursor:
                # a cursor that does not move would replay the same page forever
                break
            cursor = next_cursor

        return playtimes

    def compute(self, remote_id: int) -> PlaytimeStats:
        playtimes = self.samples(remote_id)
        if not playtimes:
            return PlaytimeStats(average=0, median=0, sample_count=0)

        average = sum(playtimes) // len(playtimes)
        return PlaytimeStats(
            average=average,
            median=median_playtime(playtimes),
            sample_count=len(playtimes),
        )

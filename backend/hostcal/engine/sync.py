"""Feed synchronizer: fetch, parse and normalize external calendar feeds.

Each feed runs in isolation: a fetch, parse, normalization, or timeout
failure in one feed becomes an error ``SyncResult`` for that feed and never
reaches its siblings. Feeds are fetched concurrently, bounded by a
semaphore, each with its own timeout.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from hostcal.config import settings
from hostcal.engine.errors import FeedFetchError, NormalizationError
from hostcal.engine.ics import parse_calendar
from hostcal.engine.intervals import OccupancyInterval, PropertyId, SourceKind
from hostcal.engine.normalizer import normalize_many

logger = logging.getLogger(__name__)

SYNC_STATUS_NEVER = "never"
SYNC_STATUS_OK = "ok"
SYNC_STATUS_ERROR = "error"

_MAX_ERROR_LENGTH = 1000


class FeedSourceLike(Protocol):
    id: Any
    property_id: PropertyId
    url: str
    channel: str
    is_active: bool


@dataclass
class SyncResult:
    """Outcome of one synchronization attempt for one feed."""

    feed_id: str
    property_id: PropertyId
    channel: str
    intervals: list[OccupancyInterval] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False
    normalization_errors: list[NormalizationError] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


class FeedSynchronizer:
    """Runs the fetch → parse → normalize pipeline over a set of feeds.

    Usage::

        synchronizer = FeedSynchronizer()
        results = await synchronizer.sync_feeds(feeds)

    Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (tests inject
    one backed by ``httpx.MockTransport``); otherwise a client is created per
    call and closed afterwards.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float | None = None,
        max_concurrency: int | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.feed_fetch_timeout_seconds
        self.max_concurrency = max_concurrency or settings.feed_max_concurrency
        self.user_agent = user_agent or settings.feed_user_agent
        self._client = client

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": self.user_agent, "Accept": "text/calendar, */*"},
        ) as client:
            yield client

    async def sync_feeds(self, feeds: Iterable[FeedSourceLike]) -> list[SyncResult]:
        """Synchronize every feed and return one result per feed, in input order."""
        feeds = list(feeds)
        if not feeds:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrency)
        async with self._http_client() as client:
            results = await asyncio.gather(*(self._sync_one(client, feed, semaphore) for feed in feeds))

        failed = sum(1 for r in results if r.error is not None)
        logger.info("Synced %d feeds (%d failed)", len(results), failed)
        return list(results)

    async def iter_sync(self, feeds: Iterable[FeedSourceLike]) -> AsyncIterator[SyncResult]:
        """Yield results as feeds complete.

        Closing the iterator early cancels the outstanding fetches; results
        already yielded stay valid.
        """
        feeds = list(feeds)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        async with self._http_client() as client:
            tasks = [asyncio.ensure_future(self._sync_one(client, feed, semaphore)) for feed in feeds]
            try:
                for next_done in asyncio.as_completed(tasks):
                    yield await next_done
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

    async def sync_feed(self, feed: FeedSourceLike) -> SyncResult:
        """Synchronize a single feed."""
        return (await self.sync_feeds([feed]))[0]

    async def fetch(self, client: httpx.AsyncClient, url: str) -> str:
        """GET the calendar document at ``url``.

        Raises:
            FeedFetchError: On transport errors, timeouts, or non-2xx responses.
        """
        try:
            response = await client.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FeedFetchError(f"HTTP {exc.response.status_code} from feed", url=url) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FeedFetchError(f"could not fetch feed: {exc.__class__.__name__}: {exc}", url=url) from exc
        return response.text

    # ------------------------------------------------------------------
    # Per-feed isolation boundary
    # ------------------------------------------------------------------

    async def _sync_one(
        self,
        client: httpx.AsyncClient,
        feed: FeedSourceLike,
        semaphore: asyncio.Semaphore,
    ) -> SyncResult:
        result = SyncResult(
            feed_id=str(feed.id),
            property_id=feed.property_id,
            channel=feed.channel,
            started_at=datetime.now(timezone.utc),
        )
        if not feed.is_active:
            result.skipped = True
            result.finished_at = result.started_at
            logger.debug("Skipping inactive feed %s", feed.id)
            return result

        async with semaphore:
            started = time.monotonic()
            try:
                intervals, errors = await asyncio.wait_for(self._pipeline(client, feed), timeout=self.timeout)
                result.intervals = intervals
                result.normalization_errors = errors
            except asyncio.TimeoutError:
                result.error = f"timed out after {self.timeout:g}s"
            except FeedFetchError as exc:
                result.error = str(exc)
            except Exception as exc:
                logger.exception("Unexpected failure while syncing feed %s", feed.id)
                result.error = f"unexpected error: {exc}"
            result.duration_ms = int((time.monotonic() - started) * 1000)

        result.finished_at = datetime.now(timezone.utc)
        if result.error is not None:
            logger.warning("Feed %s (%s) failed: %s", feed.id, feed.channel, result.error)
        else:
            logger.info(
                "Feed %s (%s) synced: %d intervals, %d skipped records in %dms",
                feed.id,
                feed.channel,
                len(result.intervals),
                len(result.normalization_errors),
                result.duration_ms,
            )
        return result

    async def _pipeline(
        self,
        client: httpx.AsyncClient,
        feed: FeedSourceLike,
    ) -> tuple[list[OccupancyInterval], list[NormalizationError]]:
        payload = await self.fetch(client, feed.url)
        events = parse_calendar(payload)
        intervals, errors = normalize_many(
            events,
            SourceKind.EXTERNAL_EVENT,
            feed.property_id,
            channel=feed.channel,
            feed_source_id=feed.id,
        )
        return _unique_by_uid(intervals), errors


def _unique_by_uid(intervals: list[OccupancyInterval]) -> list[OccupancyInterval]:
    """Drop repeated UIDs within one feed, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for interval in intervals:
        if interval.external_id is not None:
            if interval.external_id in seen:
                continue
            seen.add(interval.external_id)
        unique.append(interval)
    return unique


def record_sync_outcome(feed: Any, result: SyncResult) -> None:
    """Copy a result's outcome onto the feed's ``last_sync_*`` fields."""
    if result.skipped:
        return
    feed.last_sync_at = result.finished_at or datetime.now(timezone.utc)
    if result.ok:
        feed.last_sync_status = SYNC_STATUS_OK
        feed.last_sync_error = None
        feed.last_event_count = len(result.intervals)
    else:
        feed.last_sync_status = SYNC_STATUS_ERROR
        feed.last_sync_error = (result.error or "unknown error")[:_MAX_ERROR_LENGTH]

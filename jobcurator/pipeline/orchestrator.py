"""Session orchestrator: users -> queries -> sites -> extract/sanitize/dedup/score -> store.

Data flow per user:
  1. Build queries from stored preferences
  2. For each query x site: governor checks, fetch with retry
  3. Extract -> sanitize -> quality sample
  4. Dedup against the corpus snapshot and this user's accepted records
  5. Caps: per user, per user per site, per site (governor quota)
  6. Tag, tier and persist
Users run in concurrent batches; fetches within a user are sequential
with delays in between.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Protocol

from jobcurator.core.config import Settings
from jobcurator.core.db import RecordStore
from jobcurator.core.errors import FetchError, QuotaExceeded
from jobcurator.core.retry import retry_async
from jobcurator.core.schemas import (
    EligibleUser,
    FetchResult,
    PersistableJobRecord,
    SanitizedRecord,
    ScrapeSession,
    SearchQuery,
)
from jobcurator.pipeline.dedup import Deduplicator
from jobcurator.pipeline.extractor import extract
from jobcurator.pipeline.governor import Authorization, Governor
from jobcurator.pipeline.quality_metrics import QualityMetrics
from jobcurator.pipeline.queries import build_queries
from jobcurator.pipeline.sanitizer import sanitize_batch
from jobcurator.pipeline.scorer import to_persistable
from jobcurator.sites.registry import SiteRegistry

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ContentFetcher(Protocol):
    """External collaborator that turns a URL into page content."""

    async def fetch(self, url: str) -> FetchResult: ...


class UserResult:
    """Summary of one user's share of a session."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.queries = 0
        self.scraped = 0
        self.invalid = 0
        self.duplicates = 0
        self.saved = 0
        self.skipped = 0
        self.errors: list[str] = []
        self.records: list[PersistableJobRecord] = []
        self.halted = False


class Orchestrator:
    """Runs one session's worth of scraping for every eligible user."""

    def __init__(
        self,
        settings: Settings,
        governor: Governor,
        store: RecordStore,
        fetcher: ContentFetcher,
        metrics: QualityMetrics | None = None,
        registry: SiteRegistry | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings
        self._governor = governor
        self._store = store
        self._fetcher = fetcher
        self._metrics = metrics
        self._registry = registry or SiteRegistry(settings.sites)
        self._sleep = sleep
        self._clock = clock
        self._halt: Authorization | None = None

    @property
    def sites(self) -> list[str]:
        """Sites to query, in registry order. Disabled ones are filtered per check."""
        return self._registry.names

    async def run_session(self, session: ScrapeSession) -> list[UserResult]:
        """Process all eligible users in batches.

        Raises:
            SessionHalted: the governor refused to continue (kill switch,
                quality gate, error budget).
        """
        self._halt = None
        users = self._store.list_eligible_users()
        batch_size = self._governor.config.max_users_per_batch
        _, _, batch_delay = self._governor.delays
        logger.info(
            "Session %s: %d eligible users, batches of %d", session.id, len(users), batch_size,
        )

        results: list[UserResult] = []
        for start in range(0, len(users), batch_size):
            if start:
                await self._sleep(batch_delay)

            auth = self._governor.authorize()
            if not auth.allowed:
                raise auth.to_error()

            batch = users[start:start + batch_size]
            snapshot = self._corpus_snapshot()
            batch_results = await asyncio.gather(
                *(self._run_user_safely(session, user, snapshot) for user in batch)
            )
            results.extend(batch_results)

            if self._halt is not None:
                raise self._halt.to_error()

        logger.info(
            "Session %s: %d users, %d saved, %d skipped, %d duplicates, %d invalid",
            session.id, session.users_processed, session.jobs_saved, session.jobs_skipped,
            session.jobs_duplicate, session.jobs_invalid,
        )
        return results

    async def run_user(
        self,
        session: ScrapeSession,
        user: EligibleUser,
        snapshot: list[PersistableJobRecord],
    ) -> UserResult:
        """Scrape every query x site for one user and persist what survives."""
        result = UserResult(user.user_id)
        prefs = user.preferences
        orch = self._settings.orchestrator
        site_delay, query_delay, _ = self._governor.delays
        dedup = Deduplicator(snapshot, threshold=self._governor.config.duplicate_threshold)

        queries = build_queries(prefs, limit=orch.max_queries_per_user)
        result.queries = len(queries)
        fetches = 0

        for qi, query in enumerate(queries):
            if qi:
                await self._sleep(query_delay)
            for site in self.sites:
                auth = self._governor.authorize()
                if not auth.allowed:
                    logger.warning("Stopping user %s: %s", user.user_id, auth.reason)
                    self._halt = self._halt or auth
                    result.halted = True
                    return self._finish_user(session, result)

                site_check = self._governor.authorize_site(site)
                if not site_check.allowed:
                    logger.debug("Skipping %s for %s: %s", site, user.user_id, site_check.reason)
                    continue
                if self._governor.remaining_for_user(user.user_id, site) == 0:
                    continue

                if fetches:
                    await self._sleep(site_delay)
                fetches += 1

                records = await self._scrape_site(session, site, query)
                if records is None:
                    result.errors.append(f"{site}: fetch failed for '{query.keywords}'")
                    continue
                self._accept(session, user, site, records, dedup, result)

        return self._finish_user(session, result)

    def plan(self, users: list[EligibleUser] | None = None) -> list[tuple[str, str, str]]:
        """(user_id, site, url) for every fetch a session would attempt. No I/O."""
        users = self._store.list_eligible_users() if users is None else users
        planned = []
        for user in users:
            limit = self._settings.orchestrator.max_queries_per_user
            queries = build_queries(user.preferences, limit=limit)
            for query in queries:
                for site in self.sites:
                    if self._governor.authorize_site(site).allowed:
                        planned.append((user.user_id, site, self._search_url(site, query)))
        return planned

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_user_safely(
        self,
        session: ScrapeSession,
        user: EligibleUser,
        snapshot: list[PersistableJobRecord],
    ) -> UserResult:
        try:
            return await self.run_user(session, user, snapshot)
        except Exception as exc:
            logger.exception("Unexpected failure for user %s", user.user_id)
            self._governor.record_error(exc)
            session.error_count += 1
            result = UserResult(user.user_id)
            result.errors.append(str(exc))
            return self._finish_user(session, result)

    async def _scrape_site(
        self,
        session: ScrapeSession,
        site: str,
        query: SearchQuery,
    ) -> list[SanitizedRecord] | None:
        """Fetch, extract and sanitize one site. None means the fetch failed."""
        url = self._search_url(site, query)
        orch = self._settings.orchestrator
        logger.info("Fetching %s: '%s' (%s)", site, query.keywords, url)

        try:
            fetched = await retry_async(
                lambda: self._fetcher.fetch(url),
                attempts=orch.retry_attempts,
                base_delay=orch.retry_base_delay,
                sleep=self._sleep,
                label=f"fetch {site}",
            )
        except Exception as exc:
            error = FetchError(site, url, exc)
            logger.error("%s", error)
            self._governor.record_error(error, site=site)
            session.error_count += 1
            return None

        started = time.perf_counter()
        adapter = self._registry.get(site)
        extraction = extract(
            fetched,
            self._registry.selectors_for(site),
            base_url=adapter.base_url if adapter is not None else "",
        )
        records = sanitize_batch(extraction.fragments, site=site)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if self._metrics is not None and records:
            self._metrics.record(
                session.id, site, records,
                parsing_method=extraction.method,
                processing_time_ms=round(elapsed_ms, 2),
            )
        logger.info(
            "%s: %d parsed via %s, %d valid",
            site, len(records), extraction.method, sum(1 for r in records if r.is_valid),
        )
        return records

    def _accept(
        self,
        session: ScrapeSession,
        user: EligibleUser,
        site: str,
        records: list[SanitizedRecord],
        dedup: Deduplicator,
        result: UserResult,
    ) -> None:
        """Dedup, cap and persist one site's sanitized records for one user."""
        max_per_user = self._settings.orchestrator.max_jobs_per_user
        quota = self._governor.config.max_jobs_per_site
        quota_logged = False
        result.scraped += len(records)
        saved_here = 0

        for record in records:
            if not record.is_valid:
                result.invalid += 1
                logger.debug(
                    "Dropped invalid '%s': %s", record.title[:60], record.validation_errors,
                )
                continue
            if dedup.is_duplicate(record):
                result.duplicates += 1
                continue
            if result.saved >= max_per_user:
                result.skipped += 1
                continue
            if self._governor.claim_quota(site, 1, user_id=user.user_id) == 0:
                if not quota_logged and self._governor.site_count(site) >= quota:
                    logger.info("%s, skipping remaining listings", QuotaExceeded(site))
                    quota_logged = True
                result.skipped += 1
                continue

            persistable = to_persistable(
                record, user.preferences,
                user_id=user.user_id, session_id=session.id, now=self._clock(),
            )
            try:
                self._store.create_record(persistable)
            except Exception as exc:
                self._governor.release_quota(site, 1, user_id=user.user_id)
                logger.error("Failed to save '%s': %s", record.title, exc)
                self._governor.record_error(exc, site=site)
                session.error_count += 1
                result.errors.append(f"save failed: {record.title}")
                continue
            dedup.accept(record)
            result.saved += 1
            result.records.append(persistable)
            saved_here += 1

        if saved_here:
            session.record_site(site, saved_here)

    def _finish_user(self, session: ScrapeSession, result: UserResult) -> UserResult:
        session.users_processed += 1
        session.jobs_found += result.scraped
        session.jobs_saved += result.saved
        session.jobs_skipped += result.skipped
        session.jobs_invalid += result.invalid
        session.jobs_duplicate += result.duplicates
        logger.info(
            "User %s: %d scraped, %d saved, %d skipped, %d duplicates, %d errors",
            result.user_id, result.scraped, result.saved, result.skipped,
            result.duplicates, len(result.errors),
        )
        return result

    def _corpus_snapshot(self) -> list[PersistableJobRecord]:
        window = timedelta(hours=self._governor.config.dedup_window_hours)
        return self._store.list_records(since=self._clock() - window)

    def _search_url(self, site: str, query: SearchQuery) -> str:
        adapter = self._registry.get(site)
        if adapter is None:
            msg = f"No adapter registered for site '{site}'"
            raise ValueError(msg)
        return adapter.build_search_url(query)

"""
Snapshot Cache
Holds one BulkSnapshot per session, guards refreshes and keeps stale loads
from overwriting newer state.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence

from cachetools import TTLCache

from qa_dashboard.core.exceptions import DashboardError
from qa_dashboard.core.models import BulkSnapshot, Issue
from qa_dashboard.utils.issue_normalizer import (
    DEFAULT_EPIC_LINK_FIELD,
    normalize_issues,
    normalize_project,
)

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], BulkSnapshot]

# Expired-session sweep cadence when auto refresh is off
SWEEP_INTERVAL_SECONDS = 300


def load_bulk_snapshot(
    jira_client,
    epic_link_field: str = DEFAULT_EPIC_LINK_FIELD,
    max_issues: int = 1000
) -> BulkSnapshot:
    """
    Load every project and hierarchy issue of a site into one snapshot.

    Args:
        jira_client: JiraClient for the session's site
        epic_link_field: Custom field holding the Epic Link
        max_issues: Upper bound for the bulk search

    Returns:
        BulkSnapshot with normalized projects and issues
    """
    started = time.monotonic()
    projects = [p for p in (normalize_project(raw) for raw in jira_client.get_projects()) if p]
    result = jira_client.fetch_bulk_issues(max_results=max_issues)
    issues, skipped = normalize_issues(result.get("issues", []), epic_link_field)
    elapsed_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        "Loaded snapshot: %d projects, %d issues (%d skipped) in %dms",
        len(projects), len(issues), skipped, elapsed_ms,
    )
    return BulkSnapshot(
        projects=tuple(projects),
        issues=tuple(issues),
        loaded_at=datetime.now(timezone.utc).isoformat(),
        load_time_ms=elapsed_ms,
        skipped=skipped,
        pagination=result.get("pagination", {}),
    )


def resolve_selected_project(projects: Sequence[Issue], stored_key: Optional[str]) -> Optional[str]:
    """The stored project if it still exists, else the first project"""
    keys = [p.key for p in projects]
    if stored_key and stored_key in keys:
        return stored_key
    return keys[0] if keys else None


class SnapshotCache:
    """
    In-memory snapshot store keyed by session id.

    Each session has a refresh guard and a generation counter. invalidate()
    bumps the generation, and a load that started under an older generation
    is handed back to its caller but never stored.
    """

    def __init__(self, maxsize: int = 256, ttl_seconds: int = 3600):
        """
        Initialize snapshot cache.

        Args:
            maxsize: Maximum number of sessions with a cached snapshot
            ttl_seconds: Time-to-live of a snapshot (default: 1 hour)
        """
        self._snapshots: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._generations: Dict[str, int] = {}
        self._refresh_locks: Dict[str, Lock] = {}
        self._lock = Lock()

    def _refresh_lock(self, session_id: str) -> Lock:
        with self._lock:
            return self._refresh_locks.setdefault(session_id, Lock())

    def get(self, session_id: str) -> Optional[BulkSnapshot]:
        with self._lock:
            return self._snapshots.get(session_id)

    def sessions(self) -> List[str]:
        with self._lock:
            return list(self._snapshots.keys())

    def _begin_load(self, session_id: str) -> int:
        with self._lock:
            return self._generations.setdefault(session_id, 0)

    def _commit(self, session_id: str, generation: int, snapshot: BulkSnapshot) -> bool:
        with self._lock:
            # A forgotten session has no generation, so its in-flight loads are dropped
            if self._generations.get(session_id) != generation:
                return False
            self._snapshots[session_id] = snapshot
            return True

    def invalidate(self, session_id: str) -> None:
        """Drop the session's snapshot and orphan any load in flight."""
        with self._lock:
            self._generations[session_id] = self._generations.get(session_id, 0) + 1
            self._snapshots.pop(session_id, None)
        logger.debug("Invalidated snapshot for session")

    def forget(self, session_id: str) -> None:
        """Drop the session's snapshot and all of its bookkeeping (logout, expiry)."""
        with self._lock:
            self._snapshots.pop(session_id, None)
            self._generations.pop(session_id, None)
            self._refresh_locks.pop(session_id, None)

    def tracked_sessions(self) -> List[str]:
        """Sessions with any cache state, cached snapshot or not"""
        with self._lock:
            return sorted(set(self._snapshots.keys()) | set(self._generations) | set(self._refresh_locks))

    def _load(self, session_id: str, loader: SnapshotLoader) -> BulkSnapshot:
        generation = self._begin_load(session_id)
        snapshot = loader()
        if not self._commit(session_id, generation, snapshot):
            logger.info("Discarding snapshot loaded before an invalidation")
        return snapshot

    def get_or_load(self, session_id: str, loader: SnapshotLoader, force: bool = False) -> BulkSnapshot:
        """
        Return the cached snapshot, loading it when missing or forced.

        A refresh while another is in flight does not start a second load:
        it serves the current snapshot if there is one, otherwise it waits for
        the in-flight load and uses its result.

        Args:
            session_id: Session identifier
            loader: Callable that fetches a new snapshot (blocking)
            force: Reload even if a snapshot is cached

        Returns:
            BulkSnapshot
        """
        if not force:
            cached = self.get(session_id)
            if cached is not None:
                return cached

        guard = self._refresh_lock(session_id)
        if guard.acquire(blocking=False):
            try:
                return self._load(session_id, loader)
            finally:
                guard.release()

        cached = self.get(session_id)
        if cached is not None:
            logger.debug("Refresh already in flight, serving current snapshot")
            return cached

        with guard:
            cached = self.get(session_id)
            if cached is not None:
                return cached
            return self._load(session_id, loader)


class SnapshotRefresher:
    """
    Periodically reloads the snapshots of sessions that still hold valid
    credentials, and releases the state of sessions that no longer do.
    """

    def __init__(
        self,
        cache: SnapshotCache,
        session_manager,
        loader_factory: Callable[..., SnapshotLoader],
        interval_seconds: int = 60
    ):
        """
        Args:
            cache: SnapshotCache to refresh
            session_manager: SessionManager holding credentials
            loader_factory: Builds a loader from a session's JiraCredentials
            interval_seconds: Seconds between refresh rounds; 0 disables
        """
        self.cache = cache
        self.session_manager = session_manager
        self.loader_factory = loader_factory
        self.interval_seconds = interval_seconds

    def refresh_all(self) -> int:
        """
        Refresh every cached snapshot once.

        Returns:
            Number of snapshots refreshed
        """
        refreshed = 0
        active = set(self.session_manager.active_session_ids())
        for session_id in self.cache.sessions():
            # Background refreshes do not count as session activity
            creds = self.session_manager.get_credentials(session_id, touch=False) if session_id in active else None
            if creds is None:
                self.cache.forget(session_id)
                continue
            try:
                self.cache.get_or_load(session_id, self.loader_factory(creds), force=True)
                refreshed += 1
            except DashboardError as e:
                logger.warning("Auto refresh failed for site %s: %s", creds.site_name, e.message)
        return refreshed

    def sweep_expired(self) -> int:
        """
        Drop expired sessions and the cache state of every session that
        no longer holds valid credentials.

        Returns:
            Number of sessions whose cache state was released
        """
        self.session_manager.cleanup_expired()
        active = set(self.session_manager.active_session_ids())
        stale = [sid for sid in self.cache.tracked_sessions() if sid not in active]
        for session_id in stale:
            self.cache.forget(session_id)
        return len(stale)

    async def run_forever(self) -> None:
        refreshing = self.interval_seconds > 0
        if refreshing:
            logger.info("Auto refresh every %ds", self.interval_seconds)
        else:
            logger.info("Auto refresh disabled, sweeping expired sessions every %ds", SWEEP_INTERVAL_SECONDS)
        while True:
            await asyncio.sleep(self.interval_seconds if refreshing else SWEEP_INTERVAL_SECONDS)
            released = await asyncio.to_thread(self.sweep_expired)
            if released:
                logger.debug("Released cache state of %d sessions", released)
            if not refreshing:
                continue
            refreshed = await asyncio.to_thread(self.refresh_all)
            if refreshed:
                logger.debug("Auto refreshed %d snapshots", refreshed)

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from collection_sync.domain.entities import SourceConfig, SyncStatus
from .entity_builder import generate_source_id
from .orchestrator import DiscoveryOrchestrator
from .sync_filter import SyncFilter, build_sources_tree, describe_filters, select_sources

MAX_CONCURRENT = 5

SyncOutcome = Literal["success", "partial", "failure"]

_HTTP_STATUS: dict[str, int] = {
    "success": 200,
    "partial": 207,
    "failure": 500,
}


@dataclass(frozen=True)
class SyncResult:
    source_id: str
    success:   bool
    error:     str | None = None


@dataclass(frozen=True)
class SyncReport:
    """Outcome of one selective sync request across every selected source."""
    status:        SyncOutcome
    results:       list[SyncResult] = field(default_factory=list)
    matched:       bool = True
    error_message: str | None = None

    @property
    def http_status(self) -> int:
        if not self.matched:
            return 404
        return _HTTP_STATUS[self.status]


@dataclass(frozen=True)
class SourceStatusView:
    source_id:             str
    env:                   str
    provider:              str
    host_name:             str
    organization:          str
    enabled:               bool
    last_sync_time:        datetime | None
    collections_found:     int
    new_collections_delta: int
    repositories_found:    int
    last_error:            str | None


class SyncApplicationService:
    """
    The top-level use cases: trigger discovery on demand and report status.

    Receives every orchestrator via constructor injection. Knows which
    sources to run and how to summarise their outcome, not how a run works.
    Disabled sources have no orchestrator; they only show up in status().
    """

    def __init__(
        self,
        orchestrators: list[DiscoveryOrchestrator],
        logger: logging.Logger,
        max_concurrent: int = MAX_CONCURRENT,
        disabled_sources: list[SourceConfig] | None = None,
    ) -> None:
        self._orchestrators = orchestrators
        self._disabled      = list(disabled_sources or [])
        self._log           = logger
        self._semaphore     = asyncio.Semaphore(max_concurrent)

    @property
    def sources(self) -> list[SourceConfig]:
        return [o.source for o in self._orchestrators]

    def sources_tree(self) -> dict[str, dict[str, list[str]]]:
        return build_sources_tree(self.sources)

    async def trigger(self, filters: list[SyncFilter] | None = None) -> SyncReport:
        """
        Run every source selected by `filters` once, concurrently.

        Raises InvalidSyncFilter for a malformed filter. Never raises for a
        failing source: its failure is reported in the matching SyncResult.
        """
        filters  = filters or []
        selected = select_sources(self.sources, filters)
        wanted   = {id(s) for s in selected}
        targets  = [o for o in self._orchestrators if id(o.source) in wanted]

        self._log.info("Starting collection sync for %s", describe_filters(filters))

        if not targets:
            message = f"No sources matched {describe_filters(filters)}"
            self._log.warning(message)
            return SyncReport(status="failure", matched=False, error_message=message)

        results = await asyncio.gather(*[self._run_one(o) for o in targets])

        succeeded = sum(1 for r in results if r.success)
        if succeeded == len(results):
            status: SyncOutcome = "success"
        elif succeeded:
            status = "partial"
        else:
            status = "failure"

        self._log.info("Collection sync finished | %s | %d/%d sources succeeded", status, succeeded, len(results))
        return SyncReport(status=status, results=list(results))

    async def _run_one(self, orchestrator: DiscoveryOrchestrator) -> SyncResult:
        source_id = orchestrator.source_id
        # Claimed before waiting on the semaphore so queued triggers see the source as busy
        if not orchestrator.try_claim():
            return SyncResult(source_id=source_id, success=False, error="sync already in progress")

        try:
            async with self._semaphore:
                success = await orchestrator.run(claimed=True)
        except asyncio.CancelledError:
            orchestrator.release()
            raise
        except Exception as exc:
            self._log.error("Sync of %s failed: %s", source_id, exc, exc_info=True)
            return SyncResult(source_id=source_id, success=False, error=str(exc))

        if success:
            return SyncResult(source_id=source_id, success=True)
        return SyncResult(source_id=source_id, success=False, error=orchestrator.get_sync_status().last_error)

    def status(self) -> list[SourceStatusView]:
        pairs = [(o.source, o.get_sync_status()) for o in self._orchestrators]
        pairs += [(s, SyncStatus(source_id=generate_source_id(s), enabled=False)) for s in self._disabled]
        return [
            SourceStatusView(
                source_id             = snapshot.source_id,
                env                   = source.env,
                provider              = source.provider,
                host_name             = source.host_name,
                organization          = source.organization,
                enabled               = snapshot.enabled,
                last_sync_time        = snapshot.last_sync_time,
                collections_found     = snapshot.collections_found,
                new_collections_delta = snapshot.new_collections_delta,
                repositories_found    = snapshot.repositories_found,
                last_error            = snapshot.last_error,
            )
            for source, snapshot in pairs
        ]

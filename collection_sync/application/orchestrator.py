from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone

from collection_sync.domain.entities import (
    CatalogRecord,
    DiscoveryOptions,
    RepositoryInfo,
    RepositoryTally,
    SourceConfig,
    SyncStatus,
)
from collection_sync.domain.errors import NotConnected, RunFailure, SyncInProgress
from collection_sync.domain.interfaces import ICatalogSink, IScheduler
from .crawler import CollectionCrawler
from .deduplicator import InMemoryDeduplicator
from .entity_builder import (
    build_collection_entity,
    build_repository_entity,
    generate_source_id,
)

BATCH_SIZE      = 20
PROVIDER_PREFIX = "CollectionDiscovery"


class DiscoveryOrchestrator:
    """
    Runs discovery for exactly one configured source and reconciles the
    results into the catalog sink.

    All dependencies are injected; this class creates nothing itself:
      - CollectionCrawler → how to find galaxy files (wraps a provider client)
      - ICatalogSink      → where records go (handed over by connect())
      - IScheduler        → who triggers recurring runs (optional)

    One run works through the repository list in fixed-size batches. Each
    batch is pushed to the sink as a delta as soon as it is done, and the
    whole run ends with one full submission that lets the sink retire
    anything no longer found upstream.
    """

    def __init__(
        self,
        source: SourceConfig,
        crawler: CollectionCrawler,
        logger: logging.Logger,
        scheduler: IScheduler | None = None,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self._source     = source
        self._crawler    = crawler
        self._scheduler  = scheduler
        self._batch_size = batch_size
        self._source_id  = generate_source_id(source)
        self._log        = logger.getChild(self._source_id)

        self._sink: ICatalogSink | None = None
        self._running    = False
        self._stop_event = asyncio.Event()
        self._status     = SyncStatus(source_id=self._source_id, enabled=source.enabled)

    @property
    def source(self) -> SourceConfig:
        return self._source

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def provider_name(self) -> str:
        """Location key the sink attributes this source's records to."""
        return f"{PROVIDER_PREFIX}:{self._source_id}"

    @property
    def task_id(self) -> str:
        return f"{self.provider_name}:run"

    @property
    def is_running(self) -> bool:
        return self._running

    async def connect(self, sink: ICatalogSink) -> None:
        self._sink = sink
        self._log.info("Connected %s", self.provider_name)

        if self._scheduler is None:
            return
        schedule = self._source.schedule
        self._scheduler.schedule_recurring(
            task_id       = self.task_id,
            frequency     = schedule.frequency,
            timeout       = schedule.timeout,
            fn            = self._scheduled_run,
            initial_delay = schedule.initial_delay,
        )

    def cancel(self) -> None:
        """Ask a run in flight to stop before its next batch."""
        self._stop_event.set()

    def get_sync_status(self) -> SyncStatus:
        return self._status

    def try_claim(self) -> bool:
        """
        Reserve this source for one run.

        Check and set happen without an await in between, so two callers on
        the same event loop can never both win. A successful claim must be
        followed by run(claimed=True) or release().
        """
        if self._running:
            return False
        self._running = True
        return True

    def release(self) -> None:
        self._running = False

    async def run(self, claimed: bool = False) -> bool:
        """
        Discover and reconcile once. Returns False when the run failed.

        Raises SyncInProgress when another run holds the claim and
        NotConnected before connect().
        """
        if not claimed and not self.try_claim():
            raise SyncInProgress(f"{self.provider_name} is already running")

        try:
            if self._sink is None:
                raise NotConnected(f"{self.provider_name} is not connected to a catalog sink")

            self._stop_event.clear()
            started_at = datetime.now(tz=timezone.utc)
            try:
                collections_found, repository_count = await self._discover_and_reconcile()
            except Exception as exc:
                self._log.error("Discovery run failed: %s", exc, exc_info=True)
                self._status = replace(self._status, last_error=str(exc) or type(exc).__name__)
                return False
        finally:
            self.release()

        previous = self._status
        if previous.last_sync_time is None:
            delta = collections_found
        else:
            delta = collections_found - previous.collections_found

        self._status = replace(
            previous,
            last_sync_time        = datetime.now(tz=timezone.utc),
            collections_found     = collections_found,
            new_collections_delta = delta,
            repositories_found    = repository_count,
            last_error            = None,
        )
        elapsed = (datetime.now(tz=timezone.utc) - started_at).total_seconds()
        self._log.info(
            "Discovery complete | %d collections (%+d) | %d repositories | %.0fs",
            collections_found, delta, repository_count, elapsed,
        )
        return True

    async def _discover_and_reconcile(self) -> tuple[int, int]:
        options = DiscoveryOptions.from_source(self._source)
        repos   = await self._crawler.get_repositories()
        batches = [repos[i: i + self._batch_size] for i in range(0, len(repos), self._batch_size)]

        self._log.info(
            "Starting discovery | %d repositories | %d batches of %d",
            len(repos), len(batches), self._batch_size,
        )

        deduplicator = InMemoryDeduplicator(self._source, self._log)
        collection_records: list[CatalogRecord] = []
        tallies: dict[str, RepositoryTally] = {}
        entity_names: dict[str, str] = {}

        for index, batch in enumerate(batches, start=1):
            if self._stop_event.is_set():
                raise RunFailure(f"run cancelled before batch {index}/{len(batches)}")
            try:
                added = await self._process_batch(batch, options, deduplicator, tallies, entity_names)
                collection_records.extend(added)
                if added:
                    await self._sink.apply_delta(added)
                self._log.info(
                    "Batch %d/%d | +%d collections | total %d",
                    index, len(batches), len(added), len(collection_records),
                )
            except Exception as exc:
                self._log.warning("Batch %d/%d failed, continuing: %s", index, len(batches), exc)

        repository_records = [
            build_repository_entity(t.repository, self._source, t.count, t.entity_names)
            for t in tallies.values()
            if t.count > 0
        ]
        await self._sink.apply_full(collection_records + repository_records)
        return len(collection_records), len(repository_records)

    async def _process_batch(
        self,
        batch: list[RepositoryInfo],
        options: DiscoveryOptions,
        deduplicator: InMemoryDeduplicator,
        tallies: dict[str, RepositoryTally],
        entity_names: dict[str, str],
    ) -> list[CatalogRecord]:
        occurrences = await self._crawler.discover_in_repos(batch, options)
        fresh       = deduplicator.filter_fresh(occurrences)

        added: list[CatalogRecord] = []
        for occurrence in fresh:
            try:
                location = self._crawler.build_source_location(occurrence.repository, occurrence.ref, occurrence.path)
                record = build_collection_entity(occurrence, self._source, location)
            except Exception as exc:
                self._log.warning("Could not build record for %s: %s", occurrence.location, exc)
                continue

            # Distinct identities can sanitize to one name; the sink keeps the later record
            name = record["metadata"]["name"]
            if name in entity_names:
                self._log.warning(
                    "Entity name %s of %s collides with %s, the catalog keeps only one",
                    name, occurrence.location, entity_names[name],
                )
            entity_names[name] = occurrence.location

            repo  = occurrence.repository
            tally = tallies.setdefault(repo.full_path, RepositoryTally(repository=repo))
            tally.entity_names.append(name)
            added.append(record)
        return added

    async def _scheduled_run(self) -> None:
        if not self.try_claim():
            self._log.info("Skipping scheduled run, previous run still in progress")
            return
        try:
            await self.run(claimed=True)
        except Exception as exc:
            self._log.error("Scheduled run raised: %s", exc, exc_info=True)

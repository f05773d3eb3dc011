"""
main.py — Dependency Wiring (Composition Root)
------------------------------------------------
This file has ONE job: wire all the pieces together and run the app.

It does NOT contain any business logic. It just:
  1. Reads the YAML config file and environment variables
  2. Creates one provider client, crawler and orchestrator per source
  3. Picks the catalog sink (PostgreSQL, or in-memory for dry runs)
  4. Either runs the selected sources once, or serves scheduled runs

Dependency graph (what depends on what):
                          main.py  (wires everything)
                             │
              ┌──────────────┼────────────────┐
              ▼              ▼                ▼
    SyncApplicationService  AsyncioScheduler  PostgresCatalogSink
              │                               / InMemoryCatalogSink
              ▼
    DiscoveryOrchestrator  (one per source)
              │
              ▼
    CollectionCrawler ──► IProviderClient (GitHubClient | GitLabClient)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import httpx
import psycopg2

# Application layer
from collection_sync.application.crawler import CollectionCrawler
from collection_sync.application.orchestrator import DiscoveryOrchestrator
from collection_sync.application.sync_filter import SyncFilter
from collection_sync.application.sync_service import SyncApplicationService
from collection_sync.domain.entities import SourceConfig
from collection_sync.domain.errors import ConfigError, InvalidSyncFilter
from collection_sync.domain.interfaces import ICatalogSink

# Infrastructure layer
from collection_sync.infrastructure.client_factory import create_provider_client
from collection_sync.infrastructure.config_reader import (
    Integrations,
    load_config_file,
    read_integrations,
    read_source_configs,
)
from collection_sync.infrastructure.memory_sink import InMemoryCatalogSink
from collection_sync.infrastructure.postgres_sink import PostgresCatalogSink
from collection_sync.infrastructure.scheduler import AsyncioScheduler

DEFAULT_CONFIG = "app-config.yaml"
LOG_FORMAT     = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"

log = logging.getLogger("collection_sync")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    # One line per request is noise at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def build_orchestrators(
    sources: list[SourceConfig],
    integrations: Integrations,
    http_client: httpx.AsyncClient,
    scheduler: AsyncioScheduler | None,
) -> list[DiscoveryOrchestrator]:
    """
    One crawler and orchestrator per enabled source.

    A source whose client cannot be built (unsupported provider, missing
    token) is logged and left out; the others still run.
    """
    orchestrators = []
    for source in sources:
        label = f"{source.env}/{source.provider}/{source.host_name}/{source.organization}"
        if not source.enabled:
            log.info("Source %s is disabled, reporting status only", label)
            continue
        try:
            client = create_provider_client(source, integrations, http_client, log.getChild(source.provider))
        except ConfigError as exc:
            log.error("Cannot set up source %s: %s", label, exc)
            continue

        crawler = CollectionCrawler(client=client, logger=log.getChild("crawler"))
        orchestrators.append(DiscoveryOrchestrator(
            source    = source,
            crawler   = crawler,
            logger    = log.getChild("discovery"),
            scheduler = scheduler,
        ))
    return orchestrators


def make_sink(orchestrator: DiscoveryOrchestrator, conn) -> ICatalogSink:
    sink_log = log.getChild("sink")
    if conn is None:
        return InMemoryCatalogSink(location_key=orchestrator.provider_name, logger=sink_log)
    return PostgresCatalogSink(conn=conn, location_key=orchestrator.provider_name, logger=sink_log)


def build_filters(args: argparse.Namespace) -> list[SyncFilter]:
    if not (args.provider or args.host or args.org):
        return []
    return [SyncFilter(provider=args.provider, host=args.host, organization=args.org)]


async def build_and_run(args: argparse.Namespace, config: dict, db_url: str | None) -> int:
    """
    Wires all dependencies together and executes the requested use case.

    This is the Composition Root: the only place that knows which concrete
    class implements each interface.
    """
    sources      = read_source_configs(config, log.getChild("config"))
    integrations = read_integrations(config)
    filters      = build_filters(args)

    conn = None
    if db_url and not args.dry_run:
        conn = psycopg2.connect(db_url)
        PostgresCatalogSink.ensure_schema(conn)
    else:
        log.info("No database configured, using an in-memory catalog")

    http_client = httpx.AsyncClient()
    scheduler   = None if args.once else AsyncioScheduler(logger=log.getChild("scheduler"))

    try:
        orchestrators = build_orchestrators(sources, integrations, http_client, scheduler)
        if not orchestrators:
            log.error("No usable collection sources configured")
            return 1

        for orchestrator in orchestrators:
            await orchestrator.connect(make_sink(orchestrator, conn))

        service = SyncApplicationService(
            orchestrators    = orchestrators,
            logger           = log.getChild("sync"),
            disabled_sources = [s for s in sources if not s.enabled],
        )

        if args.once:
            try:
                report = await service.trigger(filters)
            except InvalidSyncFilter as exc:
                log.error("Invalid filter: %s", exc)
                return 2

            for result in report.results:
                if result.success:
                    log.info("✅ %s", result.source_id)
                else:
                    log.error("❌ %s | %s", result.source_id, result.error)
            if report.error_message:
                log.error(report.error_message)
            return 0 if report.status == "success" else 1

        log.info("Serving %d sources: %s", len(orchestrators), service.sources_tree())
        await asyncio.Event().wait()
        return 0

    finally:
        # Always clean up connections, even if an exception occurred
        if scheduler is not None:
            await scheduler.shutdown()
        await http_client.aclose()
        if conn is not None:
            conn.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Discover Ansible collections in GitHub/GitLab organizations and sync them into a catalog"
    )
    parser.add_argument(
        "--config",
        default = os.environ.get("COLLECTION_SYNC_CONFIG", DEFAULT_CONFIG),
        help    = f"YAML config file (default: $COLLECTION_SYNC_CONFIG or {DEFAULT_CONFIG})",
    )
    parser.add_argument("--once", action="store_true", help="Run the selected sources once and exit")
    parser.add_argument("--dry-run", action="store_true", help="Keep the catalog in memory even if DATABASE_URL is set")
    parser.add_argument("--provider", choices=["github", "gitlab"], help="Only sync sources of this provider")
    parser.add_argument("--host", help="Only sync sources of this host entry (requires --provider)")
    parser.add_argument("--org", help="Only sync this organization (requires --host)")
    parser.add_argument(
        "--log-level",
        default = os.environ.get("LOG_LEVEL", "INFO"),
        help    = "Logging level (default: $LOG_LEVEL or INFO)",
    )
    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config_file(args.config)
    except ConfigError as exc:
        log.error("%s", exc)
        sys.exit(1)

    try:
        code = asyncio.run(build_and_run(args, config, os.environ.get("DATABASE_URL")))
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli()

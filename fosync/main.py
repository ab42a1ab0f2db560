from __future__ import annotations

import asyncio
import logging
import sys

import httpx
from opentelemetry import trace
from pydantic import ValidationError

from fosync.core.config import ConfigurationError, Settings, get_settings
from fosync.core.telemetry import configure_sync_logging, sync_telemetry
from fosync.jobs.classify import CompletionClient, HeuristicClassifier, LLMClassifier
from fosync.jobs.orchestrator import PipelineOptions, SyncSummary, run_sources
from fosync.jobs.persist import expire_postings
from fosync.services.classifier_client import AnthropicClassifierClient
from fosync.services.repository import PostgresRepository
from fosync.services.store import InMemoryPostingStore, PostingStore
from fosync.sources.registry import build_adapter, load_source_catalog, select_sources

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_store(settings: Settings) -> PostingStore:
    if settings.dry_run:
        return InMemoryPostingStore()
    return PostgresRepository(
        settings.database_url,
        password=settings.database_password,
        table=settings.jobs_table,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_statement_timeout_seconds,
    )


def build_classifier_client(settings: Settings) -> AnthropicClassifierClient:
    return AnthropicClassifierClient(
        settings.anthropic_api_key or "",
        model=settings.classifier_model,
        max_tokens=settings.classifier_max_tokens,
        timeout_seconds=settings.classifier_timeout_seconds,
    )


async def run_sync(
    settings: Settings | None = None,
    *,
    store: PostingStore | None = None,
    classifier_client: CompletionClient | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> SyncSummary:
    settings = settings or get_settings()
    missing = settings.missing_required()
    if missing:
        raise ConfigurationError(f"missing required configuration: {', '.join(missing)}")

    catalog = load_source_catalog(settings.sources_path)
    selected = select_sources(catalog, settings.source_names)
    store = store or build_store(settings)
    owned_client = build_classifier_client(settings) if classifier_client is None else None
    classifiers = {
        "heuristic": HeuristicClassifier(),
        "llm": LLMClassifier(
            classifier_client or owned_client,
            batch_size=settings.classifier_batch_size,
            delay_seconds=settings.classifier_delay_seconds,
        ),
    }
    options = PipelineOptions(
        firm_delay_seconds=settings.firm_delay_seconds,
        dedup_chunk_size=settings.dedup_chunk_size,
        write_batch_size=settings.write_batch_size,
    )

    try:
        with sync_telemetry(settings), tracer.start_as_current_span("sync.run"):
            await store.ping()
            logger.info(
                "starting front office jobs sync sources=%s dry_run=%s",
                ",".join(source.name for source in selected) or "-",
                settings.dry_run,
            )
            async with httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                headers={"User-Agent": settings.http_user_agent},
                follow_redirects=True,
                transport=http_transport,
            ) as http:
                adapters = [adapter for config in selected if (adapter := build_adapter(config, http, settings))]
                stats = await run_sources(adapters, store, classifiers, options=options)
            removed = await expire_postings(store, retention_days=settings.retention_days)
    finally:
        if owned_client is not None:
            await owned_client.close()
        await store.close()

    summary = SyncSummary(sources=stats, removed=removed)
    logger.info(
        "sync complete sources=%s fetched=%s added=%s failed=%s removed=%s",
        len(summary.sources),
        summary.fetched,
        summary.added,
        summary.failed,
        summary.removed,
    )
    return summary


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_sync_logging()
        logger.error("invalid configuration: %s", exc)
        sys.exit(1)

    configure_sync_logging(settings.log_level)
    try:
        asyncio.run(run_sync(settings))
    except ConfigurationError as exc:
        logger.error("configuration error: %s", exc)
        sys.exit(1)
    except Exception:
        logger.exception("fatal error; sync aborted")
        sys.exit(1)


if __name__ == "__main__":
    main()

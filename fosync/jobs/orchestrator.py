from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Mapping, Protocol, Sequence

from opentelemetry import trace

from fosync.jobs.dedup import DEFAULT_CHUNK_SIZE, filter_unseen
from fosync.jobs.persist import DEFAULT_WRITE_BATCH_SIZE, write_postings
from fosync.schemas.postings import CanonicalPosting, Classification
from fosync.schemas.sources import SourceTarget
from fosync.services.repository import RepositoryError
from fosync.services.store import PostingStore
from fosync.sources.base import SourceAdapter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class Classifier(Protocol):
    async def classify(self, postings: Sequence[CanonicalPosting]) -> dict[int, Classification]: ...


@dataclass(slots=True)
class PipelineOptions:
    firm_delay_seconds: float = 0.0
    dedup_chunk_size: int = DEFAULT_CHUNK_SIZE
    write_batch_size: int = DEFAULT_WRITE_BATCH_SIZE


@dataclass(slots=True)
class SourceStats:
    source: str
    fetched: int = 0
    new: int = 0
    added: int = 0
    skipped: int = 0
    rejected: int = 0
    failed: int = 0


@dataclass(slots=True)
class SyncSummary:
    sources: list[SourceStats] = field(default_factory=list)
    removed: int = 0

    @property
    def fetched(self) -> int:
        return sum(stats.fetched for stats in self.sources)

    @property
    def added(self) -> int:
        return sum(stats.added for stats in self.sources)

    @property
    def failed(self) -> int:
        return sum(stats.failed for stats in self.sources)


async def run_sources(
    adapters: Sequence[SourceAdapter],
    store: PostingStore,
    classifiers: Mapping[str, Classifier],
    *,
    options: PipelineOptions | None = None,
) -> list[SourceStats]:
    options = options or PipelineOptions()
    results: list[SourceStats] = []
    for adapter in adapters:
        try:
            stats = await sync_source(adapter, store, classifiers[adapter.config.classifier], options=options)
        except Exception:
            logger.exception("source failed source=%s", adapter.config.name)
            stats = SourceStats(source=adapter.config.name)
        results.append(stats)
    return results


async def sync_source(
    adapter: SourceAdapter,
    store: PostingStore,
    classifier: Classifier,
    *,
    options: PipelineOptions | None = None,
) -> SourceStats:
    options = options or PipelineOptions()
    stats = SourceStats(source=adapter.config.name)
    with tracer.start_as_current_span("sync.source") as span:
        span.set_attribute("source.name", adapter.config.name)
        logger.info("syncing source=%s targets=%s", adapter.config.name, len(adapter.config.targets))
        for position, target in enumerate(adapter.config.targets):
            if position > 0:
                await asyncio.sleep(options.firm_delay_seconds)
            try:
                await _sync_target(adapter, target, store, classifier, stats, options)
            except Exception:
                logger.exception("target failed source=%s target=%r", adapter.config.name, target.name)

        span.set_attribute("source.added", stats.added)
    logger.info(
        "source finished source=%s fetched=%s new=%s added=%s skipped=%s rejected=%s failed=%s",
        stats.source,
        stats.fetched,
        stats.new,
        stats.added,
        stats.skipped,
        stats.rejected,
        stats.failed,
    )
    return stats


async def _sync_target(
    adapter: SourceAdapter,
    target: SourceTarget,
    store: PostingStore,
    classifier: Classifier,
    stats: SourceStats,
    options: PipelineOptions,
) -> None:
    postings = await adapter.fetch_target(target)
    stats.fetched += len(postings)
    titled = [posting for posting in postings if posting.title]
    stats.skipped += len(postings) - len(titled)
    if not titled:
        return

    try:
        unseen = await filter_unseen(store, titled, chunk_size=options.dedup_chunk_size)
    except RepositoryError as exc:
        logger.error("dedup lookup failed source=%s target=%r error=%s", adapter.config.name, target.name, exc)
        stats.failed += len(titled)
        return
    stats.skipped += len(titled) - len(unseen)
    stats.new += len(unseen)
    if not unseen:
        return

    verdicts = await classifier.classify(unseen)
    accepted = [
        posting.accept(verdict)
        for index, posting in enumerate(unseen)
        if (verdict := verdicts.get(index, Classification.rejected())).is_front_office
    ]
    stats.rejected += len(unseen) - len(accepted)
    if not accepted:
        return

    result = await write_postings(store, accepted, batch_size=options.write_batch_size)
    stats.added += result.inserted
    stats.skipped += result.ignored
    stats.failed += result.failed

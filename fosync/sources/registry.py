from __future__ import annotations

import logging
from pathlib import Path

import httpx
import yaml
from pydantic import ValidationError

from fosync.core.config import ENV_PREFIX, ConfigurationError, Settings
from fosync.schemas.sources import SourceCatalog, SourceConfig
from fosync.sources.aggregators import AdzunaAdapter, TheMuseAdapter
from fosync.sources.base import SourceAdapter
from fosync.sources.greenhouse import GreenhouseAdapter
from fosync.sources.icims import ICIMSAdapter
from fosync.sources.lever import LeverAdapter
from fosync.sources.rss import RSSFeedAdapter
from fosync.sources.taleo import TaleoAdapter
from fosync.sources.workday import WorkdayAdapter

logger = logging.getLogger(__name__)

ADAPTER_TYPES: dict[str, type[SourceAdapter]] = {
    adapter.kind: adapter
    for adapter in (
        GreenhouseAdapter,
        LeverAdapter,
        WorkdayAdapter,
        TaleoAdapter,
        ICIMSAdapter,
        RSSFeedAdapter,
        AdzunaAdapter,
        TheMuseAdapter,
    )
}


def load_source_catalog(path: Path) -> SourceCatalog:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read source catalog {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"source catalog {path} is not valid YAML: {exc}") from exc

    try:
        return SourceCatalog.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid source catalog {path}: {exc}") from exc


def select_sources(catalog: SourceCatalog, names: list[str]) -> list[SourceConfig]:
    """Keep catalog order; an empty allow-list selects every source."""
    if not names:
        return list(catalog.sources)

    known = {source.name for source in catalog.sources}
    unknown = [name for name in names if name not in known]
    if unknown:
        logger.warning("ignoring unknown sources: %s", ", ".join(unknown))
    wanted = set(names)
    return [source for source in catalog.sources if source.name in wanted]


def build_adapter(config: SourceConfig, http: httpx.AsyncClient, settings: Settings) -> SourceAdapter | None:
    """Return the adapter for ``config``, or None when its credentials are absent."""
    adapter_type = ADAPTER_TYPES[config.kind]
    if adapter_type is AdzunaAdapter:
        if not settings.adzuna_enabled:
            logger.info(
                "source disabled source=%s reason=missing %sADZUNA_APP_ID/%sADZUNA_APP_KEY",
                config.name,
                ENV_PREFIX,
                ENV_PREFIX,
            )
            return None
        return AdzunaAdapter(
            config,
            http,
            app_id=settings.adzuna_app_id or "",
            app_key=settings.adzuna_app_key or "",
            page_delay_seconds=settings.page_delay_seconds,
        )
    return adapter_type(config, http, page_delay_seconds=settings.page_delay_seconds)

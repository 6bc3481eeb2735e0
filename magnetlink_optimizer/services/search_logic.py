# magnetlink_optimizer/services/search_logic.py

import asyncio
from collections.abc import Sequence

from ..config import AppConfig, EngineConfig, LlmConfig, logger
from ..errors import ConfigurationError, SearchError
from .llm_service import LlmClient
from .scrapers.base_scraper import Scraper
from .scrapers.clmclm import ClmclmScraper
from .scrapers.generic import GenericScraper
from .torrent_data import SearchResult


class SearchCore:
    """
    Runs a query across providers and pages and concatenates the results.

    Dedicated providers go first, one page after another. Every remaining
    provider/page combination is then fetched concurrently, and the results
    are appended in the order the tasks were created. A failing page is
    logged and contributes nothing, whatever it raised; it never aborts the
    search.
    """

    def __init__(self, providers: Sequence[Scraper]) -> None:
        self.providers: tuple[Scraper, ...] = tuple(providers)

    async def search_multi_page(self, query: str, max_pages: int) -> list[SearchResult]:
        if not self.providers:
            raise ConfigurationError("No search providers are enabled.")

        pages = range(1, max_pages + 1)
        dedicated = [p for p in self.providers if p.is_dedicated]
        others = [p for p in self.providers if not p.is_dedicated]

        all_results: list[SearchResult] = []

        # --- Dedicated providers: sequential, page by page ---
        for provider in dedicated:
            for page in pages:
                all_results.extend(await self._search_page_safely(provider, query, page))

        # --- Everything else: one task per provider and page ---
        task_entries: list[tuple[str, int, asyncio.Task[list[SearchResult]]]] = []
        for provider in others:
            for page in pages:
                logger.info(
                    f"[SEARCH] Creating search task for '{provider.name}' page {page} with query: '{query}'"
                )
                task = asyncio.create_task(self._search_page_safely(provider, query, page))
                task_entries.append((provider.name, page, task))

        if task_entries:
            task_results = await asyncio.gather(*(task for _, _, task in task_entries))
            for (name, page, _), page_results in zip(task_entries, task_results):
                logger.debug(f"[SEARCH] {name} page {page} contributed {len(page_results)} results.")
                all_results.extend(page_results)

        logger.info(
            f"[SEARCH] Aggregated {len(all_results)} results for '{query}' "
            f"from {len(self.providers)} provider(s) over {max_pages} page(s)."
        )
        return all_results

    async def _search_page_safely(
        self, provider: Scraper, query: str, page: int
    ) -> list[SearchResult]:
        try:
            return await provider.search(query, page)
        except SearchError as e:
            logger.error(f"[SEARCH] {provider.name} page {page} failed: {e}")
            return []
        except Exception as e:
            logger.error(
                f"[SEARCH] Unexpected error from {provider.name} page {page}: {e}",
                exc_info=True,
            )
            return []


def effective_extraction_config(
    extraction_config: LlmConfig | None, analysis_config: LlmConfig | None
) -> LlmConfig | None:
    """Extraction uses its own settings, else the analysis settings, else none."""
    if extraction_config is not None and extraction_config.enabled:
        return extraction_config
    if analysis_config is not None and analysis_config.enabled:
        return analysis_config
    return None


def create_search_core(
    engines: Sequence[EngineConfig],
    priority_keywords: Sequence[str] = (),
    extraction_config: LlmConfig | None = None,
    analysis_config: LlmConfig | None = None,
    *,
    llm_client: LlmClient | None = None,
    dedicated_base_url: str | None = None,
) -> SearchCore:
    """Builds one provider per enabled engine; disabled engines are ignored."""
    ai_config = effective_extraction_config(extraction_config, analysis_config)
    if ai_config is not None and llm_client is None:
        llm_client = LlmClient()

    providers: list[Scraper] = []
    for engine in engines:
        if not engine.enabled:
            continue
        if engine.is_dedicated:
            providers.append(ClmclmScraper(base_url=dedicated_base_url))
            logger.info(f"[SEARCH] Added dedicated provider '{engine.name}'.")
        else:
            providers.append(
                GenericScraper(
                    engine.name,
                    engine.url_template,
                    llm_client=llm_client if ai_config is not None else None,
                    extraction_config=ai_config,
                    priority_keywords=priority_keywords,
                )
            )
            logger.info(
                f"[SEARCH] Added generic provider '{engine.name}' "
                f"(AI extraction {'on' if ai_config is not None else 'off'})."
            )
    return SearchCore(providers)


# --- Outward search operations ---


async def search_multi_page(
    keyword: str,
    config: AppConfig,
    max_pages: int | None = None,
    *,
    llm_client: LlmClient | None = None,
    dedicated_base_url: str | None = None,
) -> list[SearchResult]:
    """Searches every enabled engine. Raises ConfigurationError if none is enabled."""
    core = create_search_core(
        config.engines,
        config.priority_keywords,
        config.extraction,
        config.analysis,
        llm_client=llm_client,
        dedicated_base_url=dedicated_base_url,
    )
    return await core.search_multi_page(keyword, max_pages or config.max_pages)


async def search_dedicated_first(
    keyword: str,
    config: AppConfig,
    max_pages: int | None = None,
    *,
    dedicated_base_url: str | None = None,
) -> list[SearchResult]:
    """Searches only the dedicated engine; empty when it is disabled."""
    engines = [e for e in config.engines if e.enabled and e.is_dedicated]
    if not engines:
        logger.info("[SEARCH] Dedicated engine is disabled; skipping.")
        return []
    core = create_search_core(engines, dedicated_base_url=dedicated_base_url)
    return await core.search_multi_page(keyword, max_pages or config.max_pages)


async def search_other_engines(
    keyword: str,
    config: AppConfig,
    max_pages: int | None = None,
    *,
    llm_client: LlmClient | None = None,
) -> list[SearchResult]:
    """Searches every enabled generic engine; empty when there are none."""
    engines = [e for e in config.engines if e.enabled and not e.is_dedicated]
    if not engines:
        logger.info("[SEARCH] No other engines are enabled; skipping.")
        return []
    core = create_search_core(
        engines,
        config.priority_keywords,
        config.extraction,
        config.analysis,
        llm_client=llm_client,
    )
    return await core.search_multi_page(keyword, max_pages or config.max_pages)

# magnetlink_optimizer/services/scrapers/generic.py

import html as html_lib
import inspect
import urllib.parse
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

from bs4 import BeautifulSoup, Tag

from ...config import LlmConfig, logger
from ...errors import AIServiceError
from ...utils import (
    find_magnet_links,
    generate_file_list_from_title,
    get_origin,
    get_site_name_from_url,
    is_date,
    is_file_size,
    is_valid_magnet,
    resolve_source_url,
    separate_priority_results,
    title_from_magnet,
)
from ..llm_service import LlmClient
from ..torrent_data import SearchResult
from .base_scraper import Scraper
from .utils import fetch_page_html

# Upper bound on the HTML sent to the AI service in one request.
AI_HTML_CHAR_LIMIT = 50_000


@dataclass
class PageContext:
    """Everything an extraction strategy may look at for one fetched page."""

    html: str
    soup: BeautifulSoup
    origin: Optional[str] = None
    llm_client: Optional[LlmClient] = None
    extraction_config: Optional[LlmConfig] = None


StrategyResult = Union[list[SearchResult], Awaitable[list[SearchResult]]]
ExtractionStrategy = Callable[[PageContext], StrategyResult]


# --- Extraction Strategies ---


async def _strategy_ai_extraction(ctx: PageContext) -> list[SearchResult]:
    """Tier 1: ask the AI service to extract results from the page verbatim."""

    if ctx.llm_client is None or ctx.extraction_config is None:
        return []
    if not ctx.extraction_config.enabled:
        return []

    page_html = ctx.html
    if len(page_html) > AI_HTML_CHAR_LIMIT:
        logger.info(
            f"[SCRAPER] HTML too long ({len(page_html)} chars), truncating to {AI_HTML_CHAR_LIMIT}."
        )
        page_html = page_html[:AI_HTML_CHAR_LIMIT]

    try:
        entries = await ctx.llm_client.extract_basic_info_from_html(
            page_html, ctx.extraction_config
        )
    except AIServiceError as e:
        logger.warning(f"[SCRAPER] AI extraction failed, falling back to table parsing: {e}")
        return []

    results: list[SearchResult] = []
    for entry in entries:
        parsed = _result_from_ai_entry(entry, ctx.origin)
        if parsed is not None:
            results.append(parsed)
    return results


def _result_from_ai_entry(entry: dict[str, Any], origin: str | None) -> SearchResult | None:
    magnet_link = str(entry.get("magnet_link", "")).strip()
    if not is_valid_magnet(magnet_link):
        logger.warning(f"[SCRAPER] Invalid magnet link format, skipping: {magnet_link[:60]}")
        return None

    title = str(entry.get("title", "")).strip() or title_from_magnet(magnet_link)

    raw_files = entry.get("file_list")
    file_list = (
        [name.strip() for name in raw_files if isinstance(name, str) and name.strip()]
        if isinstance(raw_files, list)
        else []
    )
    if not file_list:
        file_list = generate_file_list_from_title(title)

    return SearchResult(
        title=title,
        magnet_link=magnet_link,
        file_size=_optional_text(entry.get("file_size")),
        upload_date=_optional_text(entry.get("upload_date")),
        file_list=file_list,
        source_url=resolve_source_url(_optional_text(entry.get("source_url")), origin),
    )


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _strategy_parse_tables(ctx: PageContext) -> list[SearchResult]:
    """Tier 2: read results out of table rows that contain a magnet link."""

    results: list[SearchResult] = []
    for table in ctx.soup.find_all("table"):
        if not isinstance(table, Tag):
            continue
        for row in table.find_all("tr"):
            if not isinstance(row, Tag):
                continue
            parsed = _parse_table_row(row, ctx.origin)
            if parsed is not None:
                results.append(parsed)
    return results


def _parse_table_row(row: Tag, origin: str | None) -> SearchResult | None:
    magnets = find_magnet_links(html_lib.unescape(str(row)))
    if not magnets:
        return None
    magnet_link = magnets[0]

    cells = [cell for cell in row.find_all("td") if isinstance(cell, Tag)]
    if not cells:
        return None

    title: str | None = None
    source_url: str | None = None

    first_cell = cells[0]
    anchor = first_cell.find("a")
    if isinstance(anchor, Tag):
        link_text = anchor.get_text().strip()
        if link_text and not link_text.startswith("magnet:"):
            title = link_text
            href = anchor.get("href")
            if isinstance(href, str) and href and not href.startswith("magnet:"):
                source_url = resolve_source_url(href, origin)
    if title is None:
        cell_text = first_cell.get_text().strip()
        if len(cell_text) > 5:
            title = cell_text

    file_size: str | None = None
    upload_date: str | None = None
    for cell in cells[1:]:
        cell_text = cell.get_text().strip()
        if file_size is None and is_file_size(cell_text):
            file_size = cell_text
        if upload_date is None and is_date(cell_text):
            upload_date = cell_text

    final_title = title or title_from_magnet(magnet_link)
    return SearchResult(
        title=final_title,
        magnet_link=magnet_link,
        file_size=file_size,
        upload_date=upload_date,
        file_list=generate_file_list_from_title(final_title),
        source_url=source_url,
    )


def _strategy_scan_magnets(ctx: PageContext) -> list[SearchResult]:
    """Tier 3: every unique magnet-shaped substring anywhere on the page."""

    results: list[SearchResult] = []
    seen: set[str] = set()
    for magnet_link in find_magnet_links(html_lib.unescape(ctx.html)):
        if magnet_link in seen:
            continue
        seen.add(magnet_link)
        title = title_from_magnet(magnet_link)
        results.append(
            SearchResult(
                title=title,
                magnet_link=magnet_link,
                file_list=generate_file_list_from_title(title),
            )
        )
    return results


# Tried in order; the first strategy producing results wins.
EXTRACTION_STRATEGIES: Sequence[tuple[str, ExtractionStrategy]] = (
    ("ai", _strategy_ai_extraction),
    ("tables", _strategy_parse_tables),
    ("regex", _strategy_scan_magnets),
)


async def extract_results(
    ctx: PageContext,
    strategies: Sequence[tuple[str, ExtractionStrategy]] = EXTRACTION_STRATEGIES,
) -> list[SearchResult]:
    """
    Runs the extraction strategies in order until one yields results.

    Results that somehow escaped a strategy's magnet validation are dropped
    here so no malformed link ever leaves the pipeline.
    """
    for name, strategy in strategies:
        outcome = strategy(ctx)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        results = [r for r in outcome if is_valid_magnet(r.magnet_link)]
        if results:
            logger.info(f"[SCRAPER] Extraction tier '{name}' produced {len(results)} results.")
            return results
        logger.debug(f"[SCRAPER] Extraction tier '{name}' produced no results.")
    return []


class GenericScraper(Scraper):
    """
    Provider for an arbitrary site reached through a URL template.

    ``{keyword}`` and ``{page}`` in the template are substituted per request;
    the fetched page goes through the extraction strategies, and the results
    are partitioned so titles matching a priority keyword come first.
    """

    def __init__(
        self,
        name: str,
        url_template: str,
        *,
        llm_client: LlmClient | None = None,
        extraction_config: LlmConfig | None = None,
        priority_keywords: Sequence[str] = (),
    ) -> None:
        self.name = name or get_site_name_from_url(url_template)
        self.url_template = url_template
        self.origin = get_origin(url_template)
        self.llm_client = llm_client
        self.extraction_config = extraction_config
        self.priority_keywords = tuple(priority_keywords)

    def build_search_url(self, query: str, page: int) -> str:
        formatted_query = urllib.parse.quote(query.strip(), safe="")
        return self.url_template.replace("{keyword}", formatted_query).replace(
            "{page}", str(page)
        )

    async def search(self, query: str, page: int) -> list[SearchResult]:
        url = self.build_search_url(query, page)
        logger.info(f"[SCRAPER] {self.name}: Fetching page {page} from {url}")

        html = await fetch_page_html(url, site_name=self.name, referer=self.origin)
        results = await self.parse_results(html)

        logger.info(f"[SCRAPER] {self.name}: Found {len(results)} results on page {page}.")
        return results

    async def parse_results(self, html: str) -> list[SearchResult]:
        ctx = PageContext(
            html=html,
            soup=BeautifulSoup(html, "lxml"),
            origin=self.origin,
            llm_client=self.llm_client,
            extraction_config=self.extraction_config,
        )
        results = await extract_results(ctx)

        priority, regular = separate_priority_results(results, self.priority_keywords)
        if priority:
            logger.info(f"[SCRAPER] {self.name}: Found {len(priority)} priority results.")
        return priority + regular

# magnetlink_optimizer/services/scrapers/clmclm.py

import urllib.parse
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from bs4 import BeautifulSoup, Tag

from ...config import DEDICATED_ENGINE_NAME, logger
from ...errors import ConfigurationError
from ...utils import generate_file_list_from_title, is_valid_magnet
from ..torrent_data import SearchResult
from .base_scraper import Scraper
from .utils import fetch_page_html

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "clmclm.yaml"

_SIZE_UNITS = ("GB", "MB", "KB", "TB")

# Cache for site configurations to avoid repeated disk reads.
_config_cache: dict[Path, dict[str, Any]] = {}


def load_site_config(config_path: Path) -> dict[str, Any]:
    """Load and minimally validate a YAML selector schema.

    Parsed files are cached in-memory by resolved path.
    """
    resolved_path = config_path.resolve()
    cached = _config_cache.get(resolved_path)
    if cached is not None:
        return cached

    if not resolved_path.exists():
        raise ConfigurationError(f"Scraper config not found: {resolved_path}")

    try:
        with resolved_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {resolved_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Scraper config must be a mapping: {resolved_path}")

    required = {"site_name", "base_url", "search_path", "results_page_selectors"}
    missing = required - data.keys()
    if missing:
        raise ConfigurationError(f"Config missing keys: {', '.join(sorted(missing))}")

    selectors = data["results_page_selectors"]
    required_selectors = {"result_row", "title", "magnet"}
    if not isinstance(selectors, dict) or required_selectors - selectors.keys():
        raise ConfigurationError(
            "results_page_selectors must define: "
            + ", ".join(sorted(required_selectors))
        )

    _config_cache[resolved_path] = data
    return data


def _split_file_entry(text: str) -> str:
    """
    Drops the trailing size token from a listing entry.

    ``"Movie.2024.mkv 1.4GB"`` becomes ``"Movie.2024.mkv"``; entries without a
    recognizable size are returned unchanged.
    """
    parts = text.split()
    if len(parts) >= 2 and any(unit in parts[-1] for unit in _SIZE_UNITS):
        return " ".join(parts[:-1])
    return text


class ClmclmScraper(Scraper):
    """
    Dedicated provider for clmclm.com.

    The site has a stable layout, so rows are parsed with the fixed selector
    schema from ``configs/clmclm.yaml`` instead of the extraction pipeline.
    """

    is_dedicated = True

    def __init__(
        self,
        base_url: str | None = None,
        config_path: Path = DEFAULT_CONFIG_PATH,
    ) -> None:
        self.config = load_site_config(config_path)
        self.name: str = self.config.get("site_name", DEDICATED_ENGINE_NAME)
        self.base_url: str = (base_url or self.config["base_url"]).rstrip("/")
        self.search_path: str = self.config["search_path"]
        self.selectors: dict[str, Any] = self.config["results_page_selectors"]

    def build_search_url(self, query: str, page: int) -> str:
        formatted_query = urllib.parse.quote(query.strip(), safe="")
        return self.base_url + self.search_path.format(query=formatted_query, page=page)

    async def search(self, query: str, page: int) -> list[SearchResult]:
        url = self.build_search_url(query, page)
        logger.info(f"[SCRAPER] {self.name}: Fetching page {page} from {url}")

        html = await fetch_page_html(url, site_name=self.name, referer=self.base_url)
        results = self.parse_results(html)

        logger.info(f"[SCRAPER] {self.name}: Found {len(results)} results on page {page}.")
        return results

    def parse_results(self, html: str) -> list[SearchResult]:
        """Parses one results page; rows missing a title or magnet are skipped."""
        soup = BeautifulSoup(html, "lxml")
        results: list[SearchResult] = []

        for row in soup.select(self.selectors["result_row"]):
            if not isinstance(row, Tag):
                continue
            parsed = self._extract_data_from_row(row)
            if parsed is not None:
                results.append(parsed)

        return results

    def _extract_data_from_row(self, row: Tag) -> SearchResult | None:
        title_node = row.select_one(self.selectors["title"])
        magnet_node = row.select_one(self.selectors["magnet"])
        if not isinstance(title_node, Tag) or not isinstance(magnet_node, Tag):
            return None

        title = title_node.get_text(strip=True)
        magnet_link = magnet_node.get("href")
        if not title or not isinstance(magnet_link, str):
            return None
        magnet_link = magnet_link.strip()
        if not is_valid_magnet(magnet_link):
            logger.debug(f"[SCRAPER] {self.name}: Dropping malformed magnet {magnet_link!r}")
            return None

        href = title_node.get("href")
        source_url = f"{self.base_url}{href}" if isinstance(href, str) and href else None

        file_list = self._extract_file_list(row)
        if not file_list:
            file_list = generate_file_list_from_title(title)

        return SearchResult(
            title=title,
            magnet_link=magnet_link,
            file_size=self._extract_size(row),
            upload_date=None,
            file_list=file_list,
            source_url=source_url,
        )

    def _extract_size(self, row: Tag) -> str | None:
        size_selector = self.selectors.get("size")
        if not isinstance(size_selector, str):
            return None
        prefix = self.selectors.get("size_prefix", "")

        for span in row.select(size_selector):
            text = span.get_text(strip=True)
            if prefix and text.startswith(prefix):
                return text.replace(prefix, "", 1).strip() or None
        return None

    def _extract_file_list(self, row: Tag) -> list[str]:
        item_selector = self.selectors.get("file_list_item")
        if not isinstance(item_selector, str):
            return []

        file_list: list[str] = []
        for item in row.select(item_selector):
            text = item.get_text(" ", strip=True)
            if not text:
                continue
            name = _split_file_entry(text)
            if name:
                file_list.append(name)
        return file_list

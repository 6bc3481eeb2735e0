from .base_scraper import Scraper
from .clmclm import ClmclmScraper, load_site_config
from .generic import (
    AI_HTML_CHAR_LIMIT,
    EXTRACTION_STRATEGIES,
    GenericScraper,
    PageContext,
    extract_results,
    _strategy_ai_extraction,
    _strategy_parse_tables,
    _strategy_scan_magnets,
)
from .utils import fetch_page_html

__all__ = [
    "Scraper",
    "ClmclmScraper",
    "load_site_config",
    "AI_HTML_CHAR_LIMIT",
    "EXTRACTION_STRATEGIES",
    "GenericScraper",
    "PageContext",
    "extract_results",
    "_strategy_ai_extraction",
    "_strategy_parse_tables",
    "_strategy_scan_magnets",
    "fetch_page_html",
]

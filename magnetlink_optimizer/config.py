# magnetlink_optimizer/config.py

import configparser
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigurationError

# --- Constants ---
DEDICATED_ENGINE_NAME = "clmclm.com"
DEFAULT_MAX_PAGES = 3
DEFAULT_BATCH_SIZE = 5
DEFAULT_LLM_PROVIDER = "gemini"
SUPPORTED_LLM_PROVIDERS = ("gemini", "openai")
CONFIG_FILE = "config.ini"

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(frozen=True)
class LlmConfig:
    """Connection settings for one AI stage (HTML extraction or analysis)."""

    provider: str = DEFAULT_LLM_PROVIDER
    api_key: str = ""
    api_base: str = ""
    model: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def enabled(self) -> bool:
        return bool(self.api_key.strip())


@dataclass(frozen=True)
class EngineConfig:
    name: str
    url_template: str = ""
    enabled: bool = True

    @property
    def is_dedicated(self) -> bool:
        return self.name == DEDICATED_ENGINE_NAME


DEFAULT_ENGINES: tuple[EngineConfig, ...] = (
    EngineConfig(name=DEDICATED_ENGINE_NAME, url_template="", enabled=True),
)


@dataclass(frozen=True)
class AppConfig:
    """Everything the search and analysis services need for one run."""

    engines: tuple[EngineConfig, ...] = DEFAULT_ENGINES
    priority_keywords: tuple[str, ...] = ()
    max_pages: int = DEFAULT_MAX_PAGES
    extraction: LlmConfig = field(default_factory=LlmConfig)
    analysis: LlmConfig = field(default_factory=LlmConfig)


def get_configuration(config_path: str = CONFIG_FILE) -> AppConfig:
    """
    Reads engines, priority keywords and both AI stage configurations from
    the config.ini file. The [search] section holds multi-line JSON and is
    parsed by hand; everything else goes through configparser.
    """
    if not os.path.exists(config_path):
        logger.critical(
            f"Configuration file '{config_path}' not found. Please create it."
        )
        sys.exit(1)

    with open(config_path, encoding="utf-8") as f:
        lines = f.readlines()

    # --- Manually parse the [search] section to handle multi-line JSON ---
    search_config = _parse_search_section(lines)

    # --- Create a clean config for the standard parser (without the search section) ---
    config_for_parser = configparser.ConfigParser()
    clean_lines = [
        line for line in lines if not _is_in_section("[search]", line, lines)
    ]
    config_for_parser.read_string("".join(clean_lines))

    engines = _load_engines(search_config.get("engines"))
    priority_keywords = _load_priority_keywords(search_config.get("priority_keywords"))
    max_pages = _coerce_positive_int(
        search_config.get("max_pages", DEFAULT_MAX_PAGES), "max_pages"
    )

    extraction = _load_llm_config(config_for_parser, "extraction")
    analysis = _load_llm_config(config_for_parser, "analysis")

    logger.info(
        f"[CONFIG] Loaded {len(engines)} engine(s), {len(priority_keywords)} priority keyword(s); "
        f"AI extraction {'on' if extraction.enabled else 'off'}, "
        f"AI analysis {'on' if analysis.enabled else 'off'}."
    )

    return AppConfig(
        engines=engines,
        priority_keywords=priority_keywords,
        max_pages=max_pages,
        extraction=extraction,
        analysis=analysis,
    )


def _is_in_section(
    section_header: str, current_line: str, all_lines: list[str]
) -> bool:
    """Helper to check if a line belongs to a given section."""
    try:
        index = all_lines.index(current_line)
        for i in range(index, -1, -1):
            line = all_lines[i].strip()
            if line.startswith("[") and line.endswith("]"):
                return line == section_header
        return False
    except ValueError:
        return False


def _parse_search_section(lines: list[str]) -> dict[str, Any]:
    """Extracts and parses the [search] section JSON content."""
    search_section_content: dict[str, str] = {}
    in_search_section = False
    current_key = None

    for line in lines:
        stripped_line = line.strip()
        if stripped_line == "[search]":
            in_search_section = True
            continue
        if in_search_section:
            if stripped_line.startswith("[") and stripped_line.endswith("]"):
                break  # Reached the next section
            if "=" in line and stripped_line.startswith(
                ("engines", "priority_keywords", "max_pages")
            ):
                key, value = line.split("=", 1)
                current_key = key.strip()
                search_section_content[current_key] = value.strip()
            elif current_key and not stripped_line.startswith(("#", ";")):
                search_section_content[current_key] += "\n" + line

    search_config: dict[str, Any] = {}
    for key, raw_value in search_section_content.items():
        if not raw_value.strip():
            continue
        try:
            search_config[key] = json.loads(raw_value)
        except json.JSONDecodeError as e:
            logger.critical(f"[CONFIG] Failed to parse JSON for '{key}' in [search]: {e}")
            raise ConfigurationError(f"Invalid JSON for '{key}' in [search] section: {e}")

    if search_config:
        logger.info("[CONFIG] Search configuration loaded successfully.")
    return search_config


def _load_engines(raw_engines: Any) -> tuple[EngineConfig, ...]:
    """Builds engine entries, skipping malformed items with a warning."""
    if raw_engines is None:
        return DEFAULT_ENGINES
    if not isinstance(raw_engines, list):
        raise ConfigurationError("'engines' in [search] must be a JSON list.")

    engines: list[EngineConfig] = []
    for item in raw_engines:
        if not isinstance(item, dict):
            logger.warning(f"[CONFIG] Skipping invalid engine entry: {item}")
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            logger.warning(f"[CONFIG] Skipping engine with missing 'name': {item}")
            continue
        url_template = item.get("url_template") or ""
        if not isinstance(url_template, str):
            logger.warning(f"[CONFIG] Skipping engine '{name}' with invalid 'url_template'.")
            continue
        if name.strip() != DEDICATED_ENGINE_NAME and not url_template.strip():
            logger.warning(
                f"[CONFIG] Skipping engine '{name}' due to missing 'url_template'."
            )
            continue
        engines.append(
            EngineConfig(
                name=name.strip(),
                url_template=url_template.strip(),
                enabled=bool(item.get("enabled", True)),
            )
        )
    return tuple(engines)


def _load_priority_keywords(raw_keywords: Any) -> tuple[str, ...]:
    if raw_keywords is None:
        return ()
    if not isinstance(raw_keywords, list):
        raise ConfigurationError("'priority_keywords' in [search] must be a JSON list.")
    return tuple(
        keyword.strip()
        for keyword in raw_keywords
        if isinstance(keyword, str) and keyword.strip()
    )


def _load_llm_config(config: configparser.ConfigParser, section: str) -> LlmConfig:
    """Loads one AI stage; a missing section simply means the stage is disabled."""
    if not config.has_section(section):
        return LlmConfig()

    batch_size = _coerce_positive_int(
        config.get(section, "batch_size", fallback=str(DEFAULT_BATCH_SIZE)),
        f"{section}.batch_size",
    )
    provider = (
        config.get(section, "provider", fallback=DEFAULT_LLM_PROVIDER).strip().lower()
        or DEFAULT_LLM_PROVIDER
    )
    if provider not in SUPPORTED_LLM_PROVIDERS:
        raise ConfigurationError(
            f"Unsupported provider '{provider}' in [{section}]; "
            f"expected one of: {', '.join(SUPPORTED_LLM_PROVIDERS)}."
        )
    return LlmConfig(
        provider=provider,
        api_key=config.get(section, "api_key", fallback="").strip(),
        api_base=config.get(section, "api_base", fallback="").strip(),
        model=config.get(section, "model", fallback="").strip(),
        batch_size=batch_size,
    )


def _coerce_positive_int(value: Any, label: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{label}' must be an integer, got {value!r}.")
    if parsed < 1:
        raise ConfigurationError(f"'{label}' must be at least 1, got {parsed}.")
    return parsed

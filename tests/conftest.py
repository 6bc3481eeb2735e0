import sys
from pathlib import Path

import pytest

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from magnetlink_optimizer.config import LlmConfig  # noqa: E402
from magnetlink_optimizer.services.torrent_data import SearchResult  # noqa: E402

MAGNET_PREFIX = "magnet:?xt=urn:btih:"


def magnet(hash_char: str = "a", suffix: str = "") -> str:
    """Builds a well-formed magnet link from a repeated hex character."""
    return f"{MAGNET_PREFIX}{hash_char * 40}{suffix}"


@pytest.fixture
def make_result():
    def _make(
        title: str = "Some Title",
        hash_char: str = "a",
        file_list: list[str] | None = None,
        **kwargs,
    ) -> SearchResult:
        return SearchResult(
            title=title,
            magnet_link=magnet(hash_char),
            file_list=["video.mkv"] if file_list is None else file_list,
            **kwargs,
        )

    return _make


@pytest.fixture
def analysis_config() -> LlmConfig:
    return LlmConfig(provider="openai", api_key="KEY", model="gpt-4o-mini", batch_size=2)

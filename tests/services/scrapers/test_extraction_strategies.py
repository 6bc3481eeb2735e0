from unittest.mock import AsyncMock, Mock

import pytest
from bs4 import BeautifulSoup

from magnetlink_optimizer.config import LlmConfig
from magnetlink_optimizer.errors import AIServiceError
from magnetlink_optimizer.services.scrapers.generic import (
    AI_HTML_CHAR_LIMIT,
    PageContext,
    _strategy_ai_extraction,
    _strategy_parse_tables,
    _strategy_scan_magnets,
    extract_results,
)
from magnetlink_optimizer.services.torrent_data import SearchResult

HASH_A = "a" * 40
HASH_B = "b" * 40
HASH_C = "c" * 40
ORIGIN = "https://site.example"

TABLE_HTML = f"""
<html><body>
<table>
  <tr><th>Name</th><th>Size</th><th>Date</th><th>Link</th></tr>
  <tr>
    <td><a href="/torrent/1">Big Movie 2024 1080p</a></td>
    <td>1.4 GB</td>
    <td>2024-01-31</td>
    <td><a href="magnet:?xt=urn:btih:{HASH_A}&amp;dn=Big+Movie">Magnet</a></td>
  </tr>
  <tr>
    <td>Plain Title Cell</td>
    <td>700 MB</td>
    <td><a href="magnet:?xt=urn:btih:{HASH_B}">Magnet</a></td>
  </tr>
  <tr>
    <td>#3</td>
    <td><a href="magnet:?xt=urn:btih:{HASH_C}&amp;dn=Display%20Name%20Here">M</a></td>
  </tr>
  <tr><td>No magnet row</td><td>1 GB</td></tr>
</table>
</body></html>
"""

LOOSE_HTML = f"""
<html><body><div>
<a href="magnet:?xt=urn:btih:{HASH_A}&amp;dn=First%20Release%20Name">x</a>
<a href="magnet:?xt=urn:btih:{HASH_A}&amp;dn=First%20Release%20Name">dup</a>
<p>magnet:?xt=urn:btih:{HASH_B} in text</p>
<a href="magnet:?xt=urn:btih:1234">short</a>
</div></body></html>
"""

AI_CONFIG = LlmConfig(provider="gemini", api_key="KEY")


def _ctx(html: str, llm_client=None, extraction_config=None) -> PageContext:
    return PageContext(
        html=html,
        soup=BeautifulSoup(html, "lxml"),
        origin=ORIGIN,
        llm_client=llm_client,
        extraction_config=extraction_config,
    )


def _llm(**kwargs) -> Mock:
    client = Mock()
    client.extract_basic_info_from_html = AsyncMock(**kwargs)
    return client


# --- Tier 2: tables ---


def test_strategy_parse_tables_reads_rows():
    results = _strategy_parse_tables(_ctx(TABLE_HTML))

    assert [r.title for r in results] == [
        "Big Movie 2024 1080p",
        "Plain Title Cell",
        "Display Name Here",
    ]
    first, second, third = results
    assert first.magnet_link == f"magnet:?xt=urn:btih:{HASH_A}&dn=Big+Movie"
    assert first.file_size == "1.4 GB"
    assert first.upload_date == "2024-01-31"
    assert first.source_url == "https://site.example/torrent/1"
    assert second.file_size == "700 MB"
    assert second.upload_date is None
    assert second.source_url is None
    assert third.magnet_link.startswith(f"magnet:?xt=urn:btih:{HASH_C}")
    for result in results:
        assert any("README" in name for name in result.file_list)


def test_strategy_parse_tables_without_tables():
    assert _strategy_parse_tables(_ctx(LOOSE_HTML)) == []


# --- Tier 3: regex scan ---


def test_strategy_scan_magnets_dedupes_and_titles():
    results = _strategy_scan_magnets(_ctx(LOOSE_HTML))

    assert [r.title for r in results] == ["First Release Name", "Torrent_bbbbbbbb"]
    assert results[0].magnet_link == (
        f"magnet:?xt=urn:btih:{HASH_A}&dn=First%20Release%20Name"
    )
    assert results[1].magnet_link == f"magnet:?xt=urn:btih:{HASH_B}"
    assert all(r.file_list for r in results)


def test_strategy_scan_magnets_nothing_found():
    assert _strategy_scan_magnets(_ctx("<html><body>no links</body></html>")) == []


# --- Tier 1: AI ---


@pytest.mark.asyncio
async def test_strategy_ai_extraction_validates_and_normalizes():
    llm = _llm(
        return_value=[
            {
                "title": "Movie A",
                "magnet_link": f"magnet:?xt=urn:btih:{HASH_A}",
                "file_size": "2 GB",
                "source_url": "/detail/a",
            },
            {
                "title": "Movie B",
                "magnet_link": f"magnet:?xt=urn:btih:{HASH_B}",
                "file_list": ["b.mkv", "", 7],
                "source_url": "https://mirror.example/b",
            },
            {"title": "Ad", "magnet_link": "http://ads.example/download"},
        ]
    )

    results = await _strategy_ai_extraction(_ctx("<html></html>", llm, AI_CONFIG))

    assert [r.title for r in results] == ["Movie A", "Movie B"]
    assert results[0].source_url == "https://site.example/detail/a"
    assert results[0].file_size == "2 GB"
    assert any("README" in name for name in results[0].file_list)
    assert results[1].file_list == ["b.mkv"]
    assert results[1].source_url == "https://mirror.example/b"


@pytest.mark.asyncio
async def test_strategy_ai_extraction_truncates_html():
    llm = _llm(return_value=[])
    html = "<html>" + "x" * (AI_HTML_CHAR_LIMIT + 10_000)

    await _strategy_ai_extraction(_ctx(html, llm, AI_CONFIG))

    sent_html, sent_config = llm.extract_basic_info_from_html.await_args.args
    assert len(sent_html) == AI_HTML_CHAR_LIMIT
    assert sent_config is AI_CONFIG


@pytest.mark.asyncio
async def test_strategy_ai_extraction_skipped_without_api_key():
    llm = _llm(return_value=[])

    results = await _strategy_ai_extraction(_ctx("<html></html>", llm, LlmConfig()))

    assert results == []
    llm.extract_basic_info_from_html.assert_not_awaited()


@pytest.mark.asyncio
async def test_strategy_ai_extraction_swallows_service_errors():
    llm = _llm(side_effect=AIServiceError("quota exceeded"))

    assert await _strategy_ai_extraction(_ctx("<html></html>", llm, AI_CONFIG)) == []


# --- Fallback chain ---


@pytest.mark.asyncio
async def test_extract_results_falls_back_to_tables_when_ai_fails():
    llm = _llm(side_effect=AIServiceError("boom"))

    results = await extract_results(_ctx(TABLE_HTML, llm, AI_CONFIG))

    assert len(results) == 3
    llm.extract_basic_info_from_html.assert_awaited_once()


@pytest.mark.asyncio
async def test_extract_results_falls_back_to_regex_when_no_tables_match():
    results = await extract_results(_ctx(LOOSE_HTML))
    assert [r.title for r in results] == ["First Release Name", "Torrent_bbbbbbbb"]


@pytest.mark.asyncio
async def test_extract_results_empty_page():
    assert await extract_results(_ctx("<html><body></body></html>")) == []


@pytest.mark.asyncio
async def test_extract_results_never_returns_malformed_magnets():
    bad = SearchResult(title="bad", magnet_link="http://not-a-magnet")
    good = SearchResult(title="good", magnet_link=f"magnet:?xt=urn:btih:{HASH_C}")

    async def first(ctx):
        return [bad]

    strategies = [("first", first), ("second", lambda ctx: [bad, good])]

    results = await extract_results(_ctx("<html></html>"), strategies)

    assert results == [good]

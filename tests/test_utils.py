import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent))

import pytest

from magnetlink_optimizer.services.torrent_data import SearchResult
from magnetlink_optimizer.utils import (
    classify_title_family,
    clean_title_fallback,
    extract_clean_title,
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

HASH = "0123456789abcdef0123456789abcdef01234567"


# --- clean_title_fallback ---


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("[www.site.com] Movie Name 【中字】 2024", "Movie Name 2024"),
        ("Movie  Name www.ads.com http://x.y/z end", "Movie Name end"),
        ("WWW.Example.COM Title", "Title"),
        ("   spaced    out   ", "spaced out"),
        ("Plain title", "Plain title"),
        ("", ""),
    ],
)
def test_clean_title_fallback(raw, expected):
    assert clean_title_fallback(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "[a] [b] c",
        "[x [y] z]",
        "[\n] title",
        "【广告】https://promo.example/x 电影 www.a.b [HD]",
        "tab\tand\nnewline",
        "[unterminated title",
        "",
    ],
)
def test_clean_title_fallback_is_idempotent(raw):
    once = clean_title_fallback(raw)
    assert clean_title_fallback(once) == once


# --- extract_clean_title ---


def test_extract_clean_title_strips_format_noise():
    assert extract_clean_title("Big Movie 1080p") == "Big_Movie"
    assert extract_clean_title("[Group] Show (2020) x265") == "Show"


def test_extract_clean_title_falls_back_to_unknown():
    assert extract_clean_title("[Group] (2020) 1080p") == "Unknown"
    assert extract_clean_title("") == "Unknown"


# --- generate_file_list_from_title ---


def test_generate_file_list_movie():
    assert generate_file_list_from_title("Big Movie 1080p") == [
        "Big_Movie.1080p.BluRay.x264.mkv",
        "Big_Movie.720p.BluRay.x264.mkv",
        "Subtitles/Chinese.srt",
        "Subtitles/English.srt",
        "Sample.mkv",
        "README.txt",
    ]


def test_generate_file_list_series():
    files = generate_file_list_from_title("Show S01 Complete")
    assert len(files) == 13
    assert files[0] == "Show_S01_Complete.S01E01.1080p.WEB-DL.x264.mkv"
    assert files[9] == "Show_S01_Complete.S01E10.1080p.WEB-DL.x264.mkv"
    assert files[10:] == ["Subtitles/Chinese.srt", "Subtitles/English.srt", "README.txt"]


def test_generate_file_list_game():
    assert generate_file_list_from_title("Space Game") == [
        "Space_Game.exe",
        "Setup.exe",
        "Crack/Keygen.exe",
        "README.txt",
    ]


def test_generate_file_list_music():
    files = generate_file_list_from_title("Greatest Hits FLAC")
    assert files[0] == "Greatest_Hits - Track 01.mp3"
    assert files[11] == "Greatest_Hits - Track 12.mp3"
    assert files[12:] == ["Cover.jpg", "README.txt"]


def test_generate_file_list_software():
    assert generate_file_list_from_title("Photo Editor Software") == [
        "Photo_Editor_Software_Setup.exe",
        "Crack/Patch.exe",
        "License.txt",
        "README.txt",
    ]


def test_generate_file_list_default():
    assert generate_file_list_from_title("Random Title") == [
        "Random_Title.mkv",
        "Random_Title.mp4",
        "README.txt",
    ]


def test_classify_title_family_first_marker_wins():
    assert classify_title_family("Movie Season 2") == "movie"
    assert classify_title_family("第一季 全10集") == "series"
    assert classify_title_family("游戏大全") == "game"
    assert classify_title_family("Nothing special") == "default"


@pytest.mark.parametrize(
    "title",
    ["Big Movie", "Show S01", "Space Game", "Hits MP3", "Office App", "x", "", "[]"],
)
def test_generate_file_list_always_has_readme(title):
    files = generate_file_list_from_title(title)
    assert files
    assert any("README" in name for name in files)


# --- separate_priority_results ---


def _result(title: str, hash_char: str = "a") -> SearchResult:
    return SearchResult(title=title, magnet_link=f"magnet:?xt=urn:btih:{hash_char * 40}")


def test_separate_priority_results_without_keywords_returns_input():
    results = [_result("A"), _result("B")]
    priority, regular = separate_priority_results(results, [])
    assert priority == []
    assert regular == results


def test_separate_priority_results_is_stable_and_case_insensitive():
    results = [
        _result("Show 720p"),
        _result("Show 1080P"),
        _result("Other 720p"),
        _result("Other 中字 1080p"),
        _result("Last one"),
    ]

    priority, regular = separate_priority_results(results, ["1080p", "中字"])

    assert [r.title for r in priority] == ["Show 1080P", "Other 中字 1080p"]
    assert [r.title for r in regular] == ["Show 720p", "Other 720p", "Last one"]
    assert sorted(map(id, priority + regular)) == sorted(map(id, results))


def test_separate_priority_results_ignores_empty_keywords():
    results = [_result("A")]
    priority, regular = separate_priority_results(results, ["", ""])
    assert priority == [] and regular == results


# --- magnet helpers ---


def test_find_magnet_links_requires_full_hash():
    text = (
        f'<a href="magnet:?xt=urn:btih:{HASH}&dn=Name">x</a> '
        "magnet:?xt=urn:btih:1234 "
        f"magnet:?xt=urn:btih:{HASH.upper()}"
    )
    assert find_magnet_links(text) == [
        f"magnet:?xt=urn:btih:{HASH}&dn=Name",
        f"magnet:?xt=urn:btih:{HASH.upper()}",
    ]


def test_is_valid_magnet():
    assert is_valid_magnet(f"magnet:?xt=urn:btih:{HASH}")
    assert not is_valid_magnet("http://example.com/file.torrent")
    assert not is_valid_magnet("magnet:?xt=urn:sha1:abc")
    assert not is_valid_magnet(None)


def test_title_from_magnet_prefers_display_name():
    link = f"magnet:?xt=urn:btih:{HASH}&dn=Big%20Movie%202024&tr=udp%3A%2F%2Ftracker"
    assert title_from_magnet(link) == "Big Movie 2024"


def test_title_from_magnet_falls_back_to_hash_prefix():
    assert title_from_magnet(f"magnet:?xt=urn:btih:{HASH}&dn=abc") == "Torrent_01234567"
    assert title_from_magnet(f"magnet:?xt=urn:btih:{HASH}") == "Torrent_01234567"


# --- cell classifiers ---


@pytest.mark.parametrize(
    "text, expected",
    [("1.4 GB", True), ("700mb", True), ("GB", False), ("12 files", False)],
)
def test_is_file_size(text, expected):
    assert is_file_size(text) is expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2024-01-31", True),
        ("2024-01-31 12:00:00", True),
        ("abc-def", False),
        ("2024-1-1", True),
        ("1-2", False),
        ("2024-01-31 12:00:00 UTC+08", False),
    ],
)
def test_is_date(text, expected):
    assert is_date(text) is expected


# --- URL helpers ---


def test_get_origin():
    assert get_origin("https://site.example:8080/search/{keyword}/{page}") == (
        "https://site.example:8080"
    )
    assert get_origin("not a url") is None


def test_resolve_source_url():
    origin = "https://site.example"
    assert resolve_source_url("/detail/1", origin) == "https://site.example/detail/1"
    assert resolve_source_url("https://other.example/x", origin) == "https://other.example/x"
    assert resolve_source_url("//cdn.example/y", origin) == "https://cdn.example/y"
    assert resolve_source_url("detail/2", origin) == "detail/2"
    assert resolve_source_url("/detail/3", None) == "/detail/3"
    assert resolve_source_url(None, origin) is None


def test_get_site_name_from_url():
    assert get_site_name_from_url("https://www.example.org/search?q=x") == "EXAMPLE"
    assert get_site_name_from_url("http://clmclm.com/search-x-1-1-1.html") == "CLMCLM"
    assert get_site_name_from_url("") == "Unknown"

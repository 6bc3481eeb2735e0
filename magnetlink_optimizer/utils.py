# magnetlink_optimizer/utils.py

import re
import urllib.parse
from collections.abc import Iterable, Sequence
from typing import TypeVar
from urllib.parse import urlparse

MAGNET_PREFIX = "magnet:?xt=urn:btih:"

# A 40 hex character info-hash followed by any trailing parameters up to the
# next whitespace, quote or tag delimiter.
MAGNET_PATTERN = re.compile(r"magnet:\?xt=urn:btih:[a-fA-F0-9]{40}[^\s\"'<>]*")

_BRACKETED_SEGMENTS = re.compile(r"\[.*?\]|【.*?】", re.DOTALL)
_URL_LIKE = re.compile(r"(www\.\S+\.\S+|https?://\S+)", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

_FORMAT_NOISE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\[.*?\]",
        r"\(.*?\)",
        r"【.*?】",
        r"（.*?）",
        r"1080p",
        r"720p",
        r"4K",
        r"BluRay",
        r"WEB-DL",
        r"HDTV",
        r"x264",
        r"x265",
        r"H\.264",
        r"H\.265",
        r"HEVC",
        r"DTS",
        r"AC3",
        r"AAC",
        r"MP3",
        r"FLAC",
        r"mkv",
        r"mp4",
        r"avi",
        r"rmvb",
        r"wmv",
    )
]

_SIZE_UNITS = ("GB", "MB", "KB", "TB")

# Ordered; the first family whose marker appears in the title wins.
_FILE_FAMILY_MARKERS: list[tuple[str, tuple[str, ...]]] = [
    ("movie", ("电影", "movie", "film")),
    ("series", ("s0", "season", "集")),
    ("game", ("游戏", "game")),
    ("music", ("音乐", "music", "mp3", "flac")),
    ("software", ("软件", "software", "app")),
]

T = TypeVar("T")


def clean_title_fallback(title: str) -> str:
    """
    Deterministic title cleanup used whenever no AI-cleaned title exists.

    Removes ``[...]`` and ``【...】`` segments, strips anything that looks like
    a URL, collapses runs of whitespace and trims. Applying it twice gives the
    same result as applying it once.
    """
    cleaned = _BRACKETED_SEGMENTS.sub("", title)
    cleaned = _URL_LIKE.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def extract_clean_title(title: str) -> str:
    """Reduces a title to a filename-safe base name (e.g. ``Some_Show-2``)."""
    cleaned = title
    for pattern in _FORMAT_NOISE_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    cleaned = cleaned.strip().replace(" ", "_")
    cleaned = "".join(ch for ch in cleaned if ch.isalnum() or ch in "_-")
    return cleaned or "Unknown"


def classify_title_family(title: str) -> str:
    """Returns the content family name for ``title`` or ``"default"``."""
    title_lower = title.lower()
    for family, markers in _FILE_FAMILY_MARKERS:
        if any(marker in title_lower for marker in markers):
            return family
    return "default"


def generate_file_list_from_title(title: str) -> list[str]:
    """
    Builds a plausible file listing for a result whose page listed no files.

    The list always contains an entry with "README" in its name.
    """
    base_name = extract_clean_title(title)
    family = classify_title_family(title)

    if family == "movie":
        file_list = [
            f"{base_name}.1080p.BluRay.x264.mkv",
            f"{base_name}.720p.BluRay.x264.mkv",
            "Subtitles/Chinese.srt",
            "Subtitles/English.srt",
            "Sample.mkv",
        ]
    elif family == "series":
        file_list = [
            f"{base_name}.S01E{episode:02d}.1080p.WEB-DL.x264.mkv"
            for episode in range(1, 11)
        ]
        file_list += ["Subtitles/Chinese.srt", "Subtitles/English.srt"]
    elif family == "game":
        file_list = [f"{base_name}.exe", "Setup.exe", "Crack/Keygen.exe", "README.txt"]
    elif family == "music":
        file_list = [f"{base_name} - Track {track:02d}.mp3" for track in range(1, 13)]
        file_list.append("Cover.jpg")
    elif family == "software":
        file_list = [
            f"{base_name}_Setup.exe",
            "Crack/Patch.exe",
            "License.txt",
            "README.txt",
        ]
    else:
        file_list = [f"{base_name}.mkv", f"{base_name}.mp4", "README.txt"]

    if not any("README" in name for name in file_list):
        file_list.append("README.txt")
    return file_list


def separate_priority_results(
    items: Sequence[T], keywords: Iterable[str], *, key=lambda item: item.title
) -> tuple[list[T], list[T]]:
    """
    Stable-partitions ``items`` into (priority, regular).

    An item is priority when any keyword is a case-insensitive substring of
    its title. Relative order inside each group follows the input order.
    """
    lowered = [kw.lower() for kw in keywords if kw]
    if not lowered:
        return [], list(items)

    priority: list[T] = []
    regular: list[T] = []
    for item in items:
        title_lower = key(item).lower()
        if any(kw in title_lower for kw in lowered):
            priority.append(item)
        else:
            regular.append(item)
    return priority, regular


def is_valid_magnet(link: object) -> bool:
    return isinstance(link, str) and link.startswith(MAGNET_PREFIX)


def find_magnet_links(text: str) -> list[str]:
    """All magnet-shaped substrings of ``text`` in order of appearance."""
    return MAGNET_PATTERN.findall(text)


def title_from_magnet(magnet_link: str) -> str:
    """
    Derives a display title from a magnet link.

    Uses the URL-decoded ``dn`` parameter when it is longer than five
    characters, otherwise ``Torrent_<first 8 hash chars>``.
    """
    match = re.search(r"[?&]dn=([^&]+)", magnet_link)
    if match:
        display_name = urllib.parse.unquote_plus(match.group(1)).strip()
        if len(display_name) > 5:
            return display_name

    info_hash = magnet_link[len(MAGNET_PREFIX) :]
    return f"Torrent_{info_hash[:8]}"


def is_file_size(text: str) -> bool:
    """True for cell text like ``1.4 GB`` (a size unit plus any digit)."""
    upper = text.upper()
    return any(unit in upper for unit in _SIZE_UNITS) and any(
        ch.isdigit() for ch in text
    )


def is_date(text: str) -> bool:
    """True for cell text like ``2024-01-31`` or ``2024-01-31 12:00``."""
    return (
        "-" in text
        and 8 <= len(text) <= 20
        and sum(ch.isdigit() for ch in text) >= 4
    )


def get_origin(url: str) -> str | None:
    """Returns ``scheme://host[:port]`` of ``url`` or None if it has no host."""
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_source_url(source_url: str | None, origin: str | None) -> str | None:
    """
    Makes a scraped detail-page URL absolute.

    Root-relative paths (``/detail/1``) are joined to ``origin``; absolute
    URLs pass through; anything else is kept as-is.
    """
    if not source_url:
        return None
    source_url = source_url.strip()
    if source_url.startswith("/") and not source_url.startswith("//") and origin:
        return urllib.parse.urljoin(f"{origin}/", source_url)
    if source_url.startswith("//") and origin:
        scheme = urlparse(origin).scheme or "http"
        return f"{scheme}:{source_url}"
    return source_url


def get_site_name_from_url(url: str) -> str:
    """
    Extracts a short, readable site name from a URL for log lines.

    Examples:
        - "https://www.example.org/search?q=x" -> "EXAMPLE"
        - "http://clmclm.com/search-x-1-1-1.html" -> "CLMCLM"
    """
    netloc = urlparse(url).netloc if url else ""
    if not netloc:
        return "Unknown"
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc.partition(".")[0].upper()

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class SearchResult:
    """One normalized listing scraped from a provider page.

    Attributes:
        title: Title as shown by the source site; may contain noise.
        magnet_link: Magnet URI, always starting with ``magnet:?xt=urn:btih:``.
        file_size: Human readable size text as found on the page.
        upload_date: Upload date text as found on the page.
        file_list: File names inside the torrent. Synthesized from the title
            when the page lists none.
        source_url: Absolute URL of the detail page, if one was found.
        purity_score: Optional 0-100 score assigned by analysis.
        tags: Optional tags assigned by analysis.
    """

    title: str
    magnet_link: str
    file_size: Optional[str] = None
    upload_date: Optional[str] = None
    file_list: list[str] = field(default_factory=list)
    source_url: Optional[str] = None
    purity_score: Optional[int] = None
    tags: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BatchAnalysisItem:
    """Minimal unit sent to the analysis service."""

    title: str
    file_list: list[str]


@dataclass
class AnalysisItemResult:
    """One entry of the analysis service's answer for a batch item."""

    cleaned_title: str
    purity_score: int
    tags: list[str] = field(default_factory=list)


@dataclass
class DetailedAnalysisResult:
    """Caller-facing enriched record.

    ``error`` is set only when the result was produced by a local fallback
    after the analysis service failed for this item.
    """

    title: str
    purity_score: int
    tags: list[str]
    magnet_link: str
    file_size: Optional[str]
    file_list: list[str]
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

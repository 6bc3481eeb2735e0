# magnetlink_optimizer/errors.py

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .services.torrent_data import DetailedAnalysisResult


class MagnetOptimizerError(Exception):
    """Base class for every error that crosses a component boundary."""


class ConfigurationError(MagnetOptimizerError, ValueError):
    """Raised when configuration is missing, malformed or leaves nothing to do."""


class SearchError(MagnetOptimizerError):
    """Raised when a provider cannot fetch a results page."""


class NetworkError(SearchError):
    """The request never produced a response (DNS, connect, timeout...)."""


class TransportError(SearchError):
    """A response arrived but was not usable (HTTP error status, bad body)."""


class AIServiceError(MagnetOptimizerError):
    """The AI service failed or answered with something we cannot parse."""


class AnalysisAbortedError(MagnetOptimizerError):
    """
    Raised when too many analysis batches fail.

    Results computed before the abort (including the degraded results of the
    batch that tripped the threshold) are kept in ``partial_results`` so the
    caller can still show them.
    """

    def __init__(
        self,
        failed_batches: int,
        max_failed_batches: int,
        partial_results: list[DetailedAnalysisResult] | None = None,
    ) -> None:
        message = (
            f"Too many batch failures ({failed_batches}/{max_failed_batches}), "
            "aborting analysis"
        )
        super().__init__(message)
        self.failed_batches = failed_batches
        self.max_failed_batches = max_failed_batches
        self.partial_results = list(partial_results or [])

# magnetlink_optimizer/services/analysis_service.py

import asyncio
from collections.abc import Sequence

from ..config import LlmConfig, logger
from ..errors import AIServiceError, AnalysisAbortedError, ConfigurationError
from ..utils import clean_title_fallback
from .llm_service import LlmClient
from .torrent_data import (
    AnalysisItemResult,
    BatchAnalysisItem,
    DetailedAnalysisResult,
    SearchResult,
)

MAX_FAILED_BATCHES = 3
INDIVIDUAL_ANALYSIS_TIMEOUT_SECONDS = 30
DEFAULT_PURITY_SCORE = 50

TAG_TOO_MANY_FAILURES = "Analysis Failed - Too Many Failures"
TAG_NO_RESULTS = "No Results"
TAG_INDIVIDUAL_FAILED = "Individual Analysis Failed"
TAG_TIMEOUT = "Analysis Timeout"


def _enriched(result: SearchResult, analysis: AnalysisItemResult) -> DetailedAnalysisResult:
    return DetailedAnalysisResult(
        title=analysis.cleaned_title or clean_title_fallback(result.title),
        purity_score=analysis.purity_score,
        tags=list(analysis.tags),
        magnet_link=result.magnet_link,
        file_size=result.file_size,
        file_list=list(result.file_list),
        error=None,
    )


def _degraded(result: SearchResult, tag: str, error: str) -> DetailedAnalysisResult:
    return DetailedAnalysisResult(
        title=clean_title_fallback(result.title),
        purity_score=DEFAULT_PURITY_SCORE,
        tags=[tag],
        magnet_link=result.magnet_link,
        file_size=result.file_size,
        file_list=list(result.file_list),
        error=error,
    )


def _require_enabled(config: LlmConfig) -> None:
    if not config.enabled:
        raise ConfigurationError("AI analysis is not configured (missing api_key).")
    if config.batch_size < 1:
        raise ConfigurationError(f"Invalid analysis batch size: {config.batch_size}")


class BatchAnalysisOrchestrator:
    """
    Enriches search results through chunked calls to the analysis service.

    Chunks are processed strictly one after another. A failed chunk is
    retried item by item (one attempt each, bounded by a timeout) until
    ``MAX_FAILED_BATCHES`` chunks have failed; the chunk that reaches that
    count is degraded locally and the run is aborted with
    ``AnalysisAbortedError``, which carries every result computed so far.
    """

    def __init__(
        self,
        config: LlmConfig,
        llm_client: LlmClient | None = None,
        *,
        max_failed_batches: int = MAX_FAILED_BATCHES,
        individual_timeout: float = INDIVIDUAL_ANALYSIS_TIMEOUT_SECONDS,
    ) -> None:
        _require_enabled(config)
        self.config = config
        self.llm_client = llm_client or LlmClient()
        self.max_failed_batches = max_failed_batches
        self.individual_timeout = individual_timeout

    async def analyze(self, results: Sequence[SearchResult]) -> list[DetailedAnalysisResult]:
        scoreable = [r for r in results if r.file_list]
        if not scoreable:
            logger.warning("[ANALYSIS] No results with file lists to analyze.")
            return []

        batch_size = self.config.batch_size
        chunks = [
            scoreable[start : start + batch_size]
            for start in range(0, len(scoreable), batch_size)
        ]
        logger.info(
            f"[ANALYSIS] Analyzing {len(scoreable)} of {len(results)} results "
            f"in {len(chunks)} batch(es) of up to {batch_size}."
        )

        analyzed: list[DetailedAnalysisResult] = []
        failed_batches = 0

        for index, chunk in enumerate(chunks, start=1):
            if failed_batches >= self.max_failed_batches:
                raise AnalysisAbortedError(failed_batches, self.max_failed_batches, analyzed)

            logger.info(f"[ANALYSIS] Processing batch {index}/{len(chunks)} ({len(chunk)} items)")
            try:
                chunk_results = await self._analyze_chunk(chunk)
            except AIServiceError as e:
                failed_batches += 1
                logger.warning(
                    f"[ANALYSIS] Batch {index} failed ({failed_batches}/{self.max_failed_batches}): {e}"
                )
                if failed_batches >= self.max_failed_batches:
                    analyzed.extend(
                        _degraded(
                            result,
                            TAG_TOO_MANY_FAILURES,
                            "Too many batch failures, analysis aborted",
                        )
                        for result in chunk
                    )
                    raise AnalysisAbortedError(
                        failed_batches, self.max_failed_batches, analyzed
                    ) from e

                for result in chunk:
                    analyzed.append(await self._analyze_individually(result))
                continue

            analyzed.extend(chunk_results)
            logger.info(f"[ANALYSIS] Batch {index} succeeded.")

        logger.info(f"[ANALYSIS] Completed: {len(analyzed)} results processed.")
        return analyzed

    async def _analyze_chunk(self, chunk: list[SearchResult]) -> list[DetailedAnalysisResult]:
        items = [BatchAnalysisItem(title=r.title, file_list=list(r.file_list)) for r in chunk]
        answers = await self.llm_client.analyze_multiple_items(items, self.config)
        if len(answers) != len(chunk):
            raise AIServiceError(
                f"Analysis returned {len(answers)} results for {len(chunk)} items"
            )
        return [_enriched(result, answer) for result, answer in zip(chunk, answers)]

    async def _analyze_individually(self, result: SearchResult) -> DetailedAnalysisResult:
        """One attempt for a single item; every failure mode becomes a degraded result."""
        item = BatchAnalysisItem(title=result.title, file_list=list(result.file_list))
        try:
            answers = await asyncio.wait_for(
                self.llm_client.analyze_multiple_items([item], self.config),
                timeout=self.individual_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[ANALYSIS] Individual analysis for '{result.title}' timed out")
            return _degraded(
                result,
                TAG_TIMEOUT,
                f"Analysis timed out after {self.individual_timeout:g} seconds",
            )
        except AIServiceError as e:
            logger.warning(f"[ANALYSIS] Individual analysis for '{result.title}' failed: {e}")
            return _degraded(result, TAG_INDIVIDUAL_FAILED, f"Individual analysis failed: {e}")

        if not answers:
            logger.warning(f"[ANALYSIS] Individual analysis for '{result.title}' returned no results")
            return _degraded(result, TAG_NO_RESULTS, "Individual analysis returned no results")
        return _enriched(result, answers[0])


async def analyze_batch(
    results: Sequence[SearchResult],
    config: LlmConfig,
    *,
    llm_client: LlmClient | None = None,
) -> list[DetailedAnalysisResult]:
    """
    Analyzes ``results`` in chunks of ``config.batch_size``.

    Results without a file list are skipped. Raises ``ConfigurationError`` if
    analysis is not configured and ``AnalysisAbortedError`` once too many
    chunks have failed.
    """
    orchestrator = BatchAnalysisOrchestrator(config, llm_client)
    return await orchestrator.analyze(results)


async def analyze_single(
    result: SearchResult,
    config: LlmConfig,
    *,
    llm_client: LlmClient | None = None,
) -> DetailedAnalysisResult:
    """Analyzes one result; service failures surface as ``AIServiceError``."""
    _require_enabled(config)
    client = llm_client or LlmClient()
    answer = await client.analyze_scores_and_tags(result.title, result.file_list, config)
    logger.info(f"[ANALYSIS] Analyzed: '{result.title}' -> '{answer.cleaned_title}'")
    return _enriched(result, answer)

# magnetlink_optimizer/__main__.py

"""
Command-line entry point.

Run:
    python -m magnetlink_optimizer search "keyword" [--pages N] [--scope all|dedicated|others] [--analyze] [--json]
    python -m magnetlink_optimizer test-connection {extraction,analysis}

Both commands read config.ini from the working directory (or --config).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from magnetlink_optimizer.config import CONFIG_FILE, AppConfig, get_configuration, logger
from magnetlink_optimizer.errors import (
    AIServiceError,
    AnalysisAbortedError,
    MagnetOptimizerError,
)
from magnetlink_optimizer.services.analysis_service import analyze_batch
from magnetlink_optimizer.services.llm_service import LlmClient
from magnetlink_optimizer.services.search_logic import (
    search_dedicated_first,
    search_multi_page,
    search_other_engines,
)
from magnetlink_optimizer.services.torrent_data import (
    DetailedAnalysisResult,
    SearchResult,
)


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        print("No results.")
        return
    for idx, r in enumerate(results, start=1):
        size = r.file_size or "?"
        print(f"{idx:>3}. {r.title} | size={size} | files={len(r.file_list)}")
        print(f"     {r.magnet_link}")


def _print_analysis(results: list[DetailedAnalysisResult]) -> None:
    for idx, r in enumerate(results, start=1):
        tags = ", ".join(r.tags) or "-"
        line = f"{idx:>3}. [{r.purity_score:>3}] {r.title} | tags={tags}"
        if r.error:
            line += f" | error={r.error}"
        print(line)


async def _run_search(args: argparse.Namespace, config: AppConfig) -> int:
    pages = args.pages if args.pages is not None else config.max_pages
    if args.scope == "dedicated":
        results = await search_dedicated_first(args.keyword, config, pages)
    elif args.scope == "others":
        results = await search_other_engines(args.keyword, config, pages)
    else:
        results = await search_multi_page(args.keyword, config, pages)

    analysis: list[DetailedAnalysisResult] = []
    exit_code = 0
    if args.analyze:
        try:
            analysis = await analyze_batch(results, config.analysis)
        except AnalysisAbortedError as e:
            logger.error(f"[ANALYSIS] {e}")
            analysis = e.partial_results
            exit_code = 2

    if args.json:
        payload: dict[str, Any] = {"results": [r.to_dict() for r in results]}
        if args.analyze:
            payload["analysis"] = [a.to_dict() for a in analysis]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        _print_results(results)
        if args.analyze:
            print("\n--- Analysis ---")
            _print_analysis(analysis)
    return exit_code


async def _run_test_connection(args: argparse.Namespace, config: AppConfig) -> int:
    llm_config = config.extraction if args.stage == "extraction" else config.analysis
    if not llm_config.enabled:
        print(f"The [{args.stage}] stage has no api_key configured.")
        return 1
    try:
        answer = await LlmClient().test_connection(llm_config)
    except AIServiceError as e:
        print(f"Connection failed: {e}")
        return 1
    print(f"Connection OK ({llm_config.provider}): {answer}")
    return 0


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="magnetlink_optimizer",
        description="Aggregate magnet-link search results and optionally score them with AI.",
    )
    parser.add_argument(
        "--config", default=CONFIG_FILE, help="Path to config.ini (default: %(default)s)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search all enabled engines")
    search.add_argument("keyword", help="Search keyword")
    search.add_argument("--pages", type=_positive_int, default=None, help="Pages per engine")
    search.add_argument(
        "--scope",
        default="all",
        choices=["all", "dedicated", "others"],
        help="Which engines to query",
    )
    search.add_argument(
        "--analyze", action="store_true", help="Score and tag results with the analysis AI"
    )
    search.add_argument("--json", action="store_true", help="Print JSON instead of text")

    test = subparsers.add_parser("test-connection", help="Check an AI stage configuration")
    test.add_argument("stage", choices=["extraction", "analysis"])
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = get_configuration(args.config)
        if args.command == "search":
            return await _run_search(args, config)
        return await _run_test_connection(args, config)
    except MagnetOptimizerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

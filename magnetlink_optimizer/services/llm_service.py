# magnetlink_optimizer/services/llm_service.py

import json
import re
from typing import Any

import google.generativeai as genai
import httpx
import openai
from google.api_core import exceptions as google_exceptions
from openai import AsyncOpenAI

from ..config import LlmConfig, logger
from ..errors import AIServiceError
from .torrent_data import AnalysisItemResult, BatchAnalysisItem

AI_REQUEST_TIMEOUT_SECONDS = 60

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o-mini",
}

_CODE_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Removes a surrounding Markdown code fence (```json ... ```) if present."""
    stripped = text.strip()
    match = _CODE_FENCE.match(stripped)
    return match.group(1).strip() if match else stripped


def _build_extraction_prompt(html: str) -> str:
    return f"""You are an information extraction engine for torrent search result pages.

Extract every search result that has a magnet link from the HTML below.

**Rules:**
1. Copy every field VERBATIM from the page. Do NOT clean, shorten, translate or
   rewrite titles. Keep advertising, site names and bracketed text as they are.
2. Do NOT filter out any result, including promotional or suspicious ones.
3. Only include items whose magnet link starts with "magnet:?xt=urn:btih:".
4. Use null for any optional field that is not present on the page.

**Return ONLY valid JSON** in this exact format:

{{
  "results": [
    {{
      "title": "title exactly as shown",
      "magnet_link": "magnet:?xt=urn:btih:...",
      "file_size": "1.4 GB",
      "upload_date": "2024-01-31",
      "file_list": ["file name 1", "file name 2"],
      "source_url": "/detail/123.html"
    }}
  ]
}}

**HTML:**
{html}
"""


def _build_analysis_prompt(items: list[BatchAnalysisItem]) -> str:
    payload = json.dumps(
        [{"title": item.title, "file_list": item.file_list} for item in items],
        ensure_ascii=False,
        indent=2,
    )
    return f"""You analyse torrent resources. For EACH input item, in the same order:

1. "cleaned_title": the title without advertising, site names, URLs and
   bracketed promotional text.
2. "purity_score": an integer from 0 to 100. 100 means the file list contains
   only the advertised content; lower it for ads, unrelated executables,
   promotional files and junk.
3. "tags": a short list of descriptive tags (genre, resolution, language...).

**Return ONLY valid JSON**: an object {{"results": [...]}} with exactly
{len(items)} entries, each {{"cleaned_title": str, "purity_score": int, "tags": [str]}}.

**Input items:**
{payload}
"""


class LlmClient:
    """
    Minimal asynchronous client for the AI text service.

    Google Gemini goes through ``google-generativeai``; any OpenAI-compatible
    chat completions endpoint goes through the ``openai`` SDK, with
    ``api_base`` as its ``base_url``. SDK failures, including an unexpected
    or empty answer, are raised as ``AIServiceError``.
    """

    async def complete(self, prompt: str, config: LlmConfig) -> str:
        """Sends ``prompt`` and returns the model's raw text answer."""
        provider = config.provider.lower()
        if provider == "gemini":
            return await self._complete_gemini(prompt, config)
        if provider == "openai":
            return await self._complete_openai(prompt, config)
        raise AIServiceError(f"Unsupported AI provider: {config.provider!r}")

    async def _complete_gemini(self, prompt: str, config: LlmConfig) -> str:
        client_options = {"api_endpoint": config.api_base} if config.api_base else None
        try:
            genai.configure(api_key=config.api_key, client_options=client_options)
            model = genai.GenerativeModel(config.model or DEFAULT_MODELS["gemini"])
            response = await model.generate_content_async(
                prompt,
                generation_config={"temperature": 0.1},
                request_options={"timeout": AI_REQUEST_TIMEOUT_SECONDS},
            )
            # .text raises ValueError when the answer was blocked or empty.
            text = response.text
        except google_exceptions.GoogleAPIError as exc:
            raise AIServiceError(f"Gemini request failed: {exc}") from exc
        except ValueError as exc:
            raise AIServiceError(f"Gemini returned no usable text: {exc}") from exc

        if not isinstance(text, str):
            raise AIServiceError("Unexpected Gemini response shape")
        return text

    async def _complete_openai(self, prompt: str, config: LlmConfig) -> str:
        try:
            async with AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.api_base or None,
                timeout=AI_REQUEST_TIMEOUT_SECONDS,
            ) as client:
                response = await client.chat.completions.create(
                    model=config.model or DEFAULT_MODELS["openai"],
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.1,
                )
        except openai.APIStatusError as exc:
            raise AIServiceError(f"AI service returned HTTP {exc.status_code}") from exc
        except openai.APIConnectionError as exc:
            raise AIServiceError(f"AI service request failed: {exc}") from exc
        except openai.OpenAIError as exc:
            raise AIServiceError(f"AI service error: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise AIServiceError(f"Invalid AI service URL: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not isinstance(content, str):
            raise AIServiceError("Unexpected OpenAI response shape")
        return content

    async def _complete_json(self, prompt: str, config: LlmConfig) -> Any:
        text = await self.complete(prompt, config)
        try:
            return json.loads(strip_code_fences(text))
        except json.JSONDecodeError as exc:
            logger.debug(f"[AI] Unparseable answer: {text[:200]!r}")
            raise AIServiceError(f"AI answer is not valid JSON: {exc}") from exc

    async def extract_basic_info_from_html(
        self, html: str, config: LlmConfig
    ) -> list[dict[str, Any]]:
        """
        Asks the service to extract result entries from a page verbatim.

        Entries that are not objects or lack a string ``title`` and
        ``magnet_link`` are skipped. Magnet prefix validation is left to the
        caller.
        """
        data = await self._complete_json(_build_extraction_prompt(html), config)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise AIServiceError("AI extraction answer has no 'results' array")

        entries: list[dict[str, Any]] = []
        for entry in data["results"]:
            if (
                isinstance(entry, dict)
                and isinstance(entry.get("title"), str)
                and isinstance(entry.get("magnet_link"), str)
            ):
                entries.append(entry)
            else:
                logger.debug(f"[AI] Skipping malformed extraction entry: {entry!r}")

        logger.info(f"[AI] Extraction returned {len(entries)} usable entries.")
        return entries

    async def analyze_multiple_items(
        self, items: list[BatchAnalysisItem], config: LlmConfig
    ) -> list[AnalysisItemResult]:
        """Cleans, scores and tags a batch; one answer per item, same order."""
        if not items:
            return []

        data = await self._complete_json(_build_analysis_prompt(items), config)
        if isinstance(data, dict):
            data = data.get("results")
        if not isinstance(data, list):
            raise AIServiceError("AI analysis answer is not a list of results")

        return [_parse_analysis_entry(entry) for entry in data]

    async def analyze_scores_and_tags(
        self, title: str, file_list: list[str], config: LlmConfig
    ) -> AnalysisItemResult:
        results = await self.analyze_multiple_items(
            [BatchAnalysisItem(title=title, file_list=list(file_list))], config
        )
        if len(results) != 1:
            raise AIServiceError(
                f"AI analysis returned {len(results)} results for a single item"
            )
        return results[0]

    async def test_connection(self, config: LlmConfig) -> str:
        """Round-trips a trivial prompt and returns the model's answer."""
        answer = await self.complete("Reply with the single word: OK", config)
        logger.info(f"[AI] Connection test to {config.provider} succeeded.")
        return answer.strip()


def _parse_analysis_entry(entry: Any) -> AnalysisItemResult:
    if not isinstance(entry, dict):
        raise AIServiceError(f"AI analysis entry is not an object: {entry!r}")

    cleaned_title = entry.get("cleaned_title")
    if cleaned_title is None:
        cleaned_title = ""
    if not isinstance(cleaned_title, str):
        raise AIServiceError("AI analysis entry has a non-string 'cleaned_title'")

    raw_score = entry.get("purity_score")
    if isinstance(raw_score, bool):
        raise AIServiceError("AI analysis entry has a boolean 'purity_score'")
    try:
        score = int(raw_score)
    except (TypeError, ValueError) as exc:
        raise AIServiceError(
            f"AI analysis entry has an invalid 'purity_score': {raw_score!r}"
        ) from exc

    tags = entry.get("tags", [])
    if tags is None:
        tags = []
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise AIServiceError("AI analysis entry has invalid 'tags'")

    return AnalysisItemResult(
        cleaned_title=cleaned_title.strip(),
        purity_score=max(0, min(100, score)),
        tags=list(tags),
    )

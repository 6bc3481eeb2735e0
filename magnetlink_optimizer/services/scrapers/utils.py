# magnetlink_optimizer/services/scrapers/utils.py

import httpx

from ...config import logger
from ...errors import NetworkError, TransportError

REQUEST_TIMEOUT_SECONDS = 30

BROWSER_HEADERS = {
    # Torrent index sites commonly answer 403 to non-browser clients.
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,*/*;q=0.8"
    ),
}


async def fetch_page_html(
    url: str, *, site_name: str, referer: str | None = None
) -> str:
    """
    Fetches ``url`` with browser-like headers and returns the body text.

    Every call owns its own ``httpx.AsyncClient`` so concurrent page fetches
    never share connection state.

    Raises:
        NetworkError: The request did not produce a response.
        TransportError: The response status was not successful, or the URL
            could not be sent at all (e.g. too long once encoded).
    """
    headers = dict(BROWSER_HEADERS)
    if referer:
        headers["Referer"] = f"{referer.rstrip('/')}/"

    logger.debug(f"[SCRAPER] {site_name}: GET {url}")
    try:
        async with httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS, follow_redirects=True
        ) as client:
            response = await client.get(url, headers=headers)
            logger.debug(f"[SCRAPER] {site_name}: GET {url} -> {response.status_code}")
            response.raise_for_status()
            return response.text
    except httpx.HTTPStatusError as exc:
        raise TransportError(
            f"{site_name}: HTTP {exc.response.status_code} while fetching {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise NetworkError(f"{site_name}: request to {url} failed: {exc}") from exc
    except httpx.InvalidURL as exc:
        raise TransportError(f"{site_name}: invalid request URL: {exc}") from exc

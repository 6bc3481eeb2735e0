# magnetlink_optimizer/services/scrapers/base_scraper.py

from abc import ABC, abstractmethod

from ..torrent_data import SearchResult


class Scraper(ABC):
    """
    Abstract base class for all search providers.
    """

    #: Name used in logs and to match the engine entry in config.ini.
    name: str = ""

    #: Dedicated providers run before the concurrent fan-out of generic ones.
    is_dedicated: bool = False

    @abstractmethod
    async def search(self, query: str, page: int) -> list[SearchResult]:
        """
        Search the provider's site for one page of results.

        Args:
            query: The search keyword.
            page: The 1-based results page number.

        Returns:
            Normalized results; every ``magnet_link`` has the btih prefix.

        Raises:
            NetworkError: The page could not be fetched.
            TransportError: The site answered with an unusable response.
        """
        pass

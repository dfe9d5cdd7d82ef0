from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from tavily import AsyncTavilyClient

from dinopedia.errors import SearchError

ENCYCLOPEDIC_DOMAINS = [
    "wikipedia.org",
    "britannica.com",
    "nationalgeographic.com",
    "smithsonianmag.com",
    "livescience.com",
    "sciencedirect.com",
    "nature.com",
    "plos.org",
]
IMAGE_DOMAINS = ENCYCLOPEDIC_DOMAINS[:5]

SUGGESTION_ASPECTS = (
    "habitat environment",
    "diet feeding behavior",
    "fossil discoveries",
    "geological period",
    "size weight dimensions",
    "behavior social structure",
    "evolution phylogeny",
)


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float = 0.0


@dataclass
class ImageResult:
    url: str
    description: str | None = None


def normalize_results(response: dict[str, Any] | None) -> list[SearchResult]:
    """Map a Tavily response to SearchResults, dropping entries without title, url or content.

    Raw (markdown) page content is preferred over the summary snippet.
    """
    if not response or not isinstance(response.get("results"), list):
        return []

    normalized: list[SearchResult] = []
    for r in response["results"]:
        if not isinstance(r, dict):
            continue
        content = r.get("raw_content") or r.get("content") or r.get("snippet") or ""
        result = SearchResult(
            title=r.get("title") or "",
            url=r.get("url") or "",
            content=str(content),
            score=r.get("score") or 0.0,
        )
        if result.title and result.url and result.content:
            normalized.append(result)
    return normalized


def normalize_images(response: dict[str, Any] | None) -> list[ImageResult]:
    """Tavily returns bare URLs, or {url, description} objects when descriptions are requested."""
    if not response:
        return []
    images: list[ImageResult] = []
    for item in response.get("images") or []:
        if isinstance(item, str) and item:
            images.append(ImageResult(url=item))
        elif isinstance(item, dict) and item.get("url"):
            images.append(ImageResult(url=item["url"], description=item.get("description")))
    return images


class DinosaurTavilySearch:
    """Dinosaur-specific query templates over the Tavily search API."""

    def __init__(
        self,
        api_key: str,
        max_results: int = 2,
        client: AsyncTavilyClient | None = None,
    ):
        self.client = client or AsyncTavilyClient(api_key=api_key)
        self.max_results = max_results

    def _base_options(self) -> dict[str, Any]:
        return {
            "search_depth": "advanced",
            "max_results": self.max_results,
            "include_answer": True,
            "include_raw_content": "markdown",
        }

    async def search_basic(self, dinosaur_name: str) -> list[SearchResult]:
        query = f"{dinosaur_name} dinosaur paleontology fossil habitat diet period"
        logger.info(f"Searching dinosaur info: {query}")
        try:
            response = await self.client.search(
                query,
                **self._base_options(),
                include_domains=ENCYCLOPEDIC_DOMAINS,
            )
        except Exception as e:
            logger.error(f"Basic search failed for {dinosaur_name}: {e}")
            raise SearchError(f"搜索失败: {e}") from e
        return normalize_results(response)

    async def search_aspect(
        self,
        dinosaur_name: str,
        aspect: str,
        **options: Any,
    ) -> list[SearchResult]:
        """Search one aspect (fossils, diet, ...). Failures yield an empty list."""
        query = f"{dinosaur_name} dinosaur {aspect}"
        logger.info(f"Searching aspect: {query}")
        try:
            response = await self.client.search(query, **{**self._base_options(), **options})
        except Exception as e:
            logger.warning(f"Aspect search '{aspect}' failed for {dinosaur_name}: {e}")
            return []
        return normalize_results(response)

    async def search_images(self, dinosaur_name: str) -> list[ImageResult]:
        query = f"{dinosaur_name} dinosaur scientific image"
        logger.info(f"Searching images: {query}")
        try:
            response = await self.client.search(
                query,
                **self._base_options(),
                include_images=True,
                include_image_descriptions=True,
                include_domains=IMAGE_DOMAINS,
            )
        except Exception as e:
            logger.warning(f"Image search failed for {dinosaur_name}: {e}")
            return []
        return normalize_images(response)

    async def verify_information(self, dinosaur_name: str, claim: str) -> list[SearchResult]:
        query = f'{dinosaur_name} dinosaur "{claim}" scientific evidence'
        logger.info(f"Verifying claim: {query}")
        try:
            response = await self.client.search(query, **self._base_options())
        except Exception as e:
            logger.warning(f"Claim verification search failed for {dinosaur_name}: {e}")
            return []
        return normalize_results(response)

    @staticmethod
    def get_search_suggestions(dinosaur_name: str) -> list[str]:
        base_name = dinosaur_name.lower()
        return [f"{base_name} {aspect}" for aspect in SUGGESTION_ASPECTS]

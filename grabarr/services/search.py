"""Prowlarr search client (aggregated indexers)."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import asyncio

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from grabarr.config import get_config
from grabarr.core.errors import ConfigurationError, SearchError
from grabarr.core.models import SearchCandidate
from grabarr.utils.http_client import get_http_client

logger = structlog.get_logger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 1.5


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ProwlarrSearchService:
    """Service pour interroger Prowlarr."""

    service_name = "prowlarr"

    def __init__(self):
        config = get_config()
        if not config.prowlarr:
            raise ConfigurationError("Prowlarr configuration not found")
        self.base_url = config.prowlarr.url.rstrip("/")
        self.api_key = config.prowlarr.api_key
        self.timeout = config.prowlarr.timeout
        self.limit = config.search.limit
        self.http = get_http_client()
        self._priority_cache: Dict[int, int] = {}

    def _get_headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.api_key}

    async def get_indexer_priorities(self) -> Dict[int, int]:
        """Récupère les priorités des indexers (mises en cache)."""
        if self._priority_cache:
            return self._priority_cache
        try:
            indexers = await self.http.get_json(
                f"{self.base_url}/api/v1/indexer",
                self.service_name,
                headers=self._get_headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            # Priorities are a tie-breaker only
            logger.warning("prowlarr_indexers_unavailable", error=str(e))
            return {}
        self._priority_cache = {
            indexer["id"]: _to_int(indexer.get("priority"))
            for indexer in indexers
            if indexer.get("id") is not None and indexer.get("priority") is not None
        }
        return self._priority_cache

    def _to_candidate(self, result: Dict[str, Any], priorities: Dict[int, int]) -> SearchCandidate:
        protocol = (result.get("protocol") or "torrent").lower()
        indexer_id = _to_int(result.get("indexerId"))
        return SearchCandidate(
            title=result.get("title") or "",
            protocol="nzb" if protocol == "usenet" else protocol,
            indexer=result.get("indexer"),
            indexer_id=indexer_id,
            indexer_priority=priorities.get(indexer_id) if indexer_id is not None else None,
            size=_to_int(result.get("size")),
            seeders=_to_int(result.get("seeders")),
            leechers=_to_int(result.get("leechers")),
            download_url=result.get("magnetUrl") or result.get("downloadUrl"),
            guid=result.get("guid"),
        )

    async def search(self, query: str, category: int) -> List[SearchCandidate]:
        """Recherche sur tous les indexers; SearchError si Prowlarr échoue."""
        params = {"query": query, "categories": category, "type": "search", "limit": self.limit}
        try:
            results = await self.http.get_json(
                f"{self.base_url}/api/v1/search",
                self.service_name,
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise SearchError(f"Prowlarr search failed for '{query}': {e}") from e

        priorities = await self.get_indexer_priorities()
        candidates = [self._to_candidate(r, priorities) for r in results or []]
        logger.info("prowlarr_search", query=query, category=category, results=len(candidates))
        return candidates

    async def test_connection(self) -> Dict[str, Any]:
        status = await self.http.get_json(
            f"{self.base_url}/api/v1/system/status",
            self.service_name,
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        return {"version": status.get("version")}


async def search_with_retry(search_service, query: str, category: int, policy: RetryPolicy) -> List[SearchCandidate]:
    """Relance la recherche si elle est vide ou échoue, au plus `max_attempts` fois.

    Returns the last (possibly empty) result; the last SearchError is re-raised.
    """
    results: List[SearchCandidate] = []
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, policy.max_attempts)),
            wait=wait_fixed(policy.delay_seconds),
            retry=retry_if_result(lambda found: not found) | retry_if_exception_type(SearchError),
        ):
            with attempt:
                results = await search_service.search(query, category)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(results)
                if not results:
                    logger.debug("search_empty", query=query, attempt=attempt.retry_state.attempt_number)
    except RetryError as e:
        last = e.last_attempt
        if last.failed:
            raise last.exception()
        return last.result() or []
    return results


async def search_with_timeout(search_service, query: str, category: int, policy: RetryPolicy, timeout: float) -> List[SearchCandidate]:
    try:
        return await asyncio.wait_for(search_with_retry(search_service, query, category, policy), timeout)
    except asyncio.TimeoutError as e:
        raise SearchError(f"Search timed out after {timeout}s: {query}") from e

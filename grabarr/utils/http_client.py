"""Async HTTP client with timeouts, tenacity retries and a per-service circuit breaker."""
import time
from typing import Optional, Dict, Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    RetryCallState,
)

logger = structlog.get_logger(__name__)

RETRYABLE = (httpx.TransportError, httpx.HTTPStatusError)


class CircuitOpenError(httpx.HTTPError):
    """Raised without touching the network while a service is failing."""


class CircuitBreaker:
    """Ouvre le circuit après N échecs consécutifs, réessaie après `reset_after` secondes."""

    def __init__(self, failure_threshold: int = 5, reset_after: float = 60.0):
        self.failure_threshold = failure_threshold
        self.reset_after = reset_after
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if time.monotonic() - self.opened_at >= self.reset_after:
            return "half_open"
        return "open"

    def allow(self) -> bool:
        return self.state != "open"

    def record_success(self) -> None:
        self.failures = 0
        self.opened_at = None

    def record_failure(self, service: str) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            if self.opened_at is None:
                logger.warning("circuit_breaker_opened", service=service, failures=self.failures)
            self.opened_at = time.monotonic()


class RobustHTTPClient:
    """Client HTTP partagé par les adaptateurs de services externes."""

    def __init__(
        self,
        default_timeout: float = 30.0,
        max_attempts: int = 4,
        backoff_max: float = 10.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_reset: float = 60.0,
    ):
        self.default_timeout = default_timeout
        self.max_attempts = max_attempts
        self.backoff_max = backoff_max
        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_reset = circuit_breaker_reset
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}

    def circuit_breaker(self, service_name: str) -> CircuitBreaker:
        if service_name not in self.circuit_breakers:
            self.circuit_breakers[service_name] = CircuitBreaker(
                failure_threshold=self.circuit_breaker_threshold,
                reset_after=self.circuit_breaker_reset,
            )
        return self.circuit_breakers[service_name]

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "http_retry_attempt",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    async def _get_once(
        self,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
        timeout: float,
    ) -> httpx.Response:
        cb = self.circuit_breaker(service_name)
        if not cb.allow():
            raise CircuitOpenError(f"Circuit breaker open for {service_name}")
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(url, headers=headers, params=params)
                response.raise_for_status()
        except RETRYABLE as e:
            cb.record_failure(service_name)
            logger.error(
                "http_request_failed",
                service=service_name,
                url=url,
                error=str(e),
                circuit_breaker_state=cb.state,
            )
            raise
        cb.record_success()
        return response

    async def get_async(
        self,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """GET with retries (exponential backoff) and circuit breaker."""
        timeout = timeout or self.default_timeout
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=self.backoff_max),
            retry=retry_if_exception_type(RETRYABLE),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._get_once(url, service_name, headers, params, timeout)

    async def get_json(self, url: str, service_name: str, **kwargs) -> Any:
        response = await self.get_async(url, service_name, **kwargs)
        return response.json()


_http_client: Optional[RobustHTTPClient] = None


def get_http_client() -> RobustHTTPClient:
    """Get global HTTP client instance."""
    global _http_client
    if _http_client is None:
        _http_client = RobustHTTPClient()
    return _http_client

"""Shared async HTTP client: retries on transport errors, one circuit breaker per service."""
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

RETRYABLE = (httpx.TransportError, httpx.TimeoutException)


class CircuitOpen(httpx.HTTPError):
    """Raised without touching the network while a service's breaker is open."""


class CircuitBreaker:
    """Stops calling a service after ``failure_threshold`` consecutive failures.

    After ``cooldown`` seconds one trial call is let through; its outcome
    closes the breaker or re-opens it.
    """

    def __init__(self, service: str, failure_threshold: int = 5, cooldown: float = 60.0):
        self.service = service
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if time.monotonic() - self.opened_at >= self.cooldown:
            return "half_open"
        return "open"

    def allow(self) -> bool:
        return self.state != "open"

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("circuit_breaker_closed", service=self.service)
        self.failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            self.opened_at = time.monotonic()
            logger.warning(
                "circuit_breaker_opened",
                service=self.service,
                failures=self.failures,
                threshold=self.failure_threshold,
            )


class RobustHTTPClient:
    """JSON client used by the Overseerr, Tautulli, Radarr and Sonarr services.

    Only transport errors and timeouts are retried. An HTTP status error is a
    real answer from the service and goes straight back to the caller.
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        max_attempts: int = 4,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: float = 60.0,
    ):
        self.default_timeout = default_timeout
        self.max_attempts = max_attempts
        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_cooldown = circuit_breaker_cooldown
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}

    def breaker(self, service_name: str) -> CircuitBreaker:
        if service_name not in self.circuit_breakers:
            self.circuit_breakers[service_name] = CircuitBreaker(
                service_name,
                failure_threshold=self.circuit_breaker_threshold,
                cooldown=self.circuit_breaker_cooldown,
            )
        return self.circuit_breakers[service_name]

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "http_retry_attempt",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            error=str(retry_state.outcome.exception()),
        )

    async def _send(
        self,
        method: str,
        url: str,
        service_name: str,
        timeout: float,
        **kwargs: Any,
    ) -> httpx.Response:
        cb = self.breaker(service_name)
        if not cb.allow():
            raise CircuitOpen(f"Circuit breaker open for {service_name}")

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.HTTPError as e:
            cb.record_failure()
            logger.error(
                "http_request_failed",
                service=service_name,
                method=method,
                url=url,
                error=str(e),
                circuit_breaker_state=cb.state,
            )
            raise
        cb.record_success()
        return response

    async def request_async(
        self,
        method: str,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(RETRYABLE),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(
                    method,
                    url,
                    service_name,
                    timeout or self.default_timeout,
                    headers=headers,
                    params=params,
                    json=json,
                )

    async def get_async(self, url: str, service_name: str, **kwargs) -> httpx.Response:
        return await self.request_async("GET", url, service_name, **kwargs)


_http_client: Optional[RobustHTTPClient] = None


def get_http_client() -> RobustHTTPClient:
    """Process-wide client, so breakers are shared by every service instance."""
    global _http_client
    if _http_client is None:
        _http_client = RobustHTTPClient()
    return _http_client

"""
Resilient client for the Transcendence vault gateway.

Dependent services use ``VaultClient`` to wait for the gateway and fetch
configuration sections with bounded retries. The transport is the only
pluggable part: HTTP via httpx, or direct calls into an in-process
gateway for tests and single-process deployments.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.errors import (
    Conflict,
    GatewayException,
    InvalidArgument,
    NotFound,
    SectionFetchError,
    Unavailable,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, retry_async


class ValidationRules(BaseModel):
    """Checks applied to fetched sections before they are exposed."""
    model_config = ConfigDict(frozen=True)

    min_key_length: int = Field(default=32, ge=1)
    required_fields: Dict[str, Tuple[str, ...]] = Field(default_factory=lambda: {
        "database": ("host", "username", "password"),
        "jwt": ("secret",),
    })
    key_fields: Dict[str, Tuple[str, ...]] = Field(default_factory=lambda: {
        "jwt": ("secret",),
        "api": ("session_secret",),
    })


class ClientConfig(BaseModel):
    """Retry, polling and timeout settings of a ``VaultClient``."""
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=1)
    backoff_strategy: str = "linear"
    retry_base_delay: float = Field(default=1.0, ge=0)
    health_poll_interval: float = Field(default=1.0, ge=0)
    health_poll_max_interval: float = Field(default=10.0, ge=0)
    health_timeout: float = Field(default=5.0, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    validation_rules: ValidationRules = Field(default_factory=ValidationRules)

    @field_validator("backoff_strategy")
    @classmethod
    def _check_strategy(cls, value: str) -> str:
        if value not in ("linear", "exponential"):
            raise ValueError("backoff_strategy must be 'linear' or 'exponential'")
        return value


class GatewayTransport(ABC):
    """How a client reaches the gateway."""

    @abstractmethod
    async def health(self, timeout: float) -> Dict[str, Any]:
        """Return the health body; raise ``Unavailable`` if the gateway is not healthy."""

    @abstractmethod
    async def read_secret(self, name: str, timeout: float) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def database_config(self, timeout: float) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def service_urls(self, timeout: float) -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        pass


class HttpxGatewayTransport(GatewayTransport):
    """Plain request/response against the gateway HTTP API."""

    def __init__(self, base_url: str, service_name: str = "unknown",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("vault_client.http")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Service-Name": service_name},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, timeout: float) -> httpx.Response:
        try:
            return await self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as e:
            raise Unavailable("Vault gateway request timed out", details={"url": url}) from e
        except httpx.TransportError as e:
            raise Unavailable("Vault gateway unreachable", details={"url": url}) from e

    async def _get_data(self, url: str, timeout: float) -> Dict[str, Any]:
        response = await self._get(url, timeout)
        if response.status_code == 200:
            body = _json_object(response)
            data = body.get("data") if body is not None else None
            if data is not None and not isinstance(data, dict):
                body = None
            if body is None:
                self.logger.warning("Malformed gateway response", url=url)
                raise Unavailable("Malformed gateway response", details={"url": url})
            return data or {}

        details = {"url": url, "status_code": response.status_code}
        if response.status_code == 404:
            raise NotFound("Secret not found", details=details)
        if response.status_code == 400:
            raise InvalidArgument("Gateway rejected the request", details=details)
        if response.status_code == 409:
            raise Conflict("Gateway reported a conflict", details=details)
        self.logger.warning("Vault gateway error", url=url, status_code=response.status_code)
        raise Unavailable("Vault gateway error", details=details)

    async def health(self, timeout: float) -> Dict[str, Any]:
        response = await self._get("/health", timeout)
        body = _json_object(response) or {}
        if response.status_code != 200 or body.get("status") != "healthy":
            raise Unavailable("Vault gateway unhealthy", details={"status_code": response.status_code})
        return body

    async def read_secret(self, name: str, timeout: float) -> Dict[str, Any]:
        return await self._get_data(f"/api/secrets/{name}", timeout)

    async def database_config(self, timeout: float) -> Dict[str, Any]:
        return await self._get_data("/api/database/config", timeout)

    async def service_urls(self, timeout: float) -> Dict[str, Any]:
        return await self._get_data("/api/services/urls", timeout)


def _json_object(response: httpx.Response) -> Optional[Dict[str, Any]]:
    """Decoded body if it is a JSON object, else ``None``."""
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class LocalGatewayTransport(GatewayTransport):
    """Direct calls into an in-process gateway object."""

    def __init__(self, gateway):
        self.gateway = gateway

    async def _bounded(self, coro: Awaitable[Any], timeout: float) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as e:
            raise Unavailable("Vault gateway call timed out") from e

    async def health(self, timeout: float) -> Dict[str, Any]:
        vault = await self._bounded(self.gateway.health(), timeout)
        if vault.get("vault_status") != "healthy":
            raise Unavailable("Vault gateway unhealthy")
        return {"status": "healthy", "vault": vault}

    async def read_secret(self, name: str, timeout: float) -> Dict[str, Any]:
        return await self._bounded(self.gateway.read(name), timeout)

    async def database_config(self, timeout: float) -> Dict[str, Any]:
        return await self._bounded(self.gateway.get_database_config(), timeout)

    async def service_urls(self, timeout: float) -> Dict[str, Any]:
        return await self._bounded(self.gateway.get_service_urls(), timeout)


class VaultClient:
    """Gateway client with readiness polling and bounded section retries."""

    def __init__(self, service_name: str, transport: GatewayTransport,
                 config: Optional[ClientConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.transport = transport
        self.config = config or ClientConfig()
        self.metrics = metrics
        self.logger = get_logger("vault_client")

    @classmethod
    def over_http(cls, service_name: str, base_url: str,
                  config: Optional[ClientConfig] = None,
                  transport: Optional[httpx.AsyncBaseTransport] = None,
                  metrics: Optional[MetricsCollector] = None) -> "VaultClient":
        return cls(
            service_name,
            HttpxGatewayTransport(base_url, service_name=service_name, transport=transport),
            config=config,
            metrics=metrics,
        )

    async def close(self) -> None:
        await self.transport.close()

    async def wait_for_ready(self, max_attempts: int = 30) -> Dict[str, Any]:
        """
        Poll gateway health with exponential backoff.

        Delays start at ``health_poll_interval`` and double up to
        ``health_poll_max_interval``. Raises ``Unavailable`` once
        ``max_attempts`` polls have failed.
        """
        retry_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=self.config.health_poll_interval,
            max_delay=self.config.health_poll_max_interval,
            backoff_strategy="exponential",
        )

        def _on_retry(attempt: int, error: Exception):
            self.logger.info(
                "Vault gateway not ready yet",
                service=self.service_name,
                attempt=attempt,
                max_attempts=max_attempts
            )

        try:
            body = await retry_async(
                lambda: self.transport.health(self.config.health_timeout),
                retry_config,
                exceptions=(Unavailable,),
                name="wait_for_ready",
                on_retry=_on_retry
            )
        except RetryError as e:
            self.logger.error("Vault gateway never became ready", service=self.service_name, attempts=e.attempts)
            raise Unavailable(
                f"Vault gateway not ready after {e.attempts} attempts",
                details={"attempts": e.attempts}
            ) from e.last_exception

        self.logger.info("Vault gateway is ready", service=self.service_name)
        return body

    async def _fetch(self, section: str, call: Callable[[], Awaitable[Dict[str, Any]]],
                     on_retry: Optional[Callable[[int, Exception], None]] = None) -> Dict[str, Any]:
        retry_config = RetryConfig(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            max_delay=max(self.config.retry_base_delay * self.config.max_retries, self.config.retry_base_delay),
            backoff_strategy=self.config.backoff_strategy,
        )

        def _on_retry(attempt: int, error: Exception):
            self._record_attempt(section, "retry")
            if on_retry is not None:
                on_retry(attempt, error)

        try:
            data = await retry_async(
                call,
                retry_config,
                exceptions=(Unavailable,),
                name=f"fetch_{section}",
                on_retry=_on_retry
            )
        except RetryError as e:
            self._record_attempt(section, "exhausted")
            raise SectionFetchError(section, e.attempts, e.last_exception) from e.last_exception
        except GatewayException as e:
            self._record_attempt(section, e.code.lower())
            raise

        self._record_attempt(section, "success")
        return data

    async def fetch_section(self, name: str,
                            on_retry: Optional[Callable[[int, Exception], None]] = None) -> Dict[str, Any]:
        """
        Fetch one configuration document.

        ``Unavailable`` is retried up to ``max_retries`` attempts in total;
        ``NotFound`` and ``InvalidArgument`` propagate at once. Exhaustion
        raises ``SectionFetchError`` chained to the last attempt's error.
        """
        timeout = self.config.request_timeout
        return await self._fetch(name, lambda: self.transport.read_secret(name, timeout), on_retry)

    async def get_secret(self, path: str) -> Dict[str, Any]:
        return await self.fetch_section(path)

    async def get_database_config(self) -> Dict[str, Any]:
        timeout = self.config.request_timeout
        return await self._fetch("database_config", lambda: self.transport.database_config(timeout))

    async def get_service_urls(self) -> Dict[str, Any]:
        timeout = self.config.request_timeout
        return await self._fetch("service_urls", lambda: self.transport.service_urls(timeout))

    def _record_attempt(self, section: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("config_fetch_attempts_total", section=section, outcome=outcome)

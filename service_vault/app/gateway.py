"""
Secret gateway: the narrow, policy-aware surface over the backing store.
"""

import time
from typing import Any, Dict, List, Mapping, Optional

from shared.base_service import utc_now_iso
from shared.errors import GatewayException, InvalidArgument
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.secret_generator import SecretGenerator
from shared.service_config import DEFAULT_DATABASE, build_database_url

from .backend.base import SecretBackend
from .policies import SECRET_NAMESPACE
from .rotation import rotate


JWT_SECRET_BYTES = 64


class SecretGateway:
    """Read, write, token issue and rotation against one backend."""

    def __init__(self, backend: SecretBackend, token_ttl: str = "24h",
                 metrics: Optional[MetricsCollector] = None):
        self.backend = backend
        self.token_ttl = token_ttl
        self.metrics = metrics
        self.logger = get_logger("vault.gateway")

    @staticmethod
    def backend_path(path: str) -> str:
        """Map a logical secret name to its path in the namespace."""
        cleaned = (path or "").strip("/")
        if not cleaned or any(part in ("", ".", "..") for part in cleaned.split("/")):
            raise InvalidArgument("Invalid secret path")
        return f"{SECRET_NAMESPACE}/{cleaned}"

    async def _call(self, operation: str, coro):
        start = time.time()
        outcome = "success"
        try:
            return await coro
        except GatewayException as e:
            outcome = e.code.lower()
            raise
        finally:
            if self.metrics is not None:
                self.metrics.increment_counter("backend_operations_total", operation=operation, outcome=outcome)
                duration_metric = self.metrics.get_metric("backend_operation_duration_seconds")
                if duration_metric is not None:
                    duration_metric.labels(operation=operation).observe(time.time() - start)

    async def read(self, path: str) -> Dict[str, Any]:
        document = await self._call("read", self.backend.read(self.backend_path(path)))
        return document.data

    async def write(self, path: str, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise InvalidArgument("Secret data must be an object")
        full_path = self.backend_path(path)
        await self._call("write", self.backend.write(full_path, dict(data)))
        self.logger.info("Secret written", path=full_path, fields=sorted(data))

    async def issue_token(self, service_name: str, policies: List[str]) -> str:
        """Create a renewable token bound to exactly ``policies``; only the token string is returned."""
        if not service_name or not policies:
            raise InvalidArgument("serviceName and policies are required")
        if not isinstance(policies, list) or not all(isinstance(p, str) and p for p in policies):
            raise InvalidArgument("policies must be a list of policy names")

        token = await self._call(
            "create_token",
            self.backend.create_token(
                policies=policies,
                ttl=self.token_ttl,
                renewable=True,
                metadata={"service": service_name, "created_at": utc_now_iso()},
            )
        )
        if self.metrics is not None:
            self.metrics.increment_counter("tokens_issued_total", service=service_name)
        self.logger.info("Service token issued", service=service_name, policies=policies, ttl=self.token_ttl)
        return token.token

    async def health(self) -> Dict[str, Any]:
        """Backend health summary; failures are reported, never raised."""
        try:
            status = await self._call("health", self.backend.health())
        except GatewayException as e:
            return {"vault_status": "unhealthy", "error": e.message}
        except Exception as e:
            self.logger.error("Health probe failed", error_type=type(e).__name__)
            return {"vault_status": "unhealthy", "error": "Health probe failed"}
        return {
            "vault_status": _vault_status(status),
            "initialized": status.initialized,
            "sealed": status.sealed,
            "standby": status.standby,
            "version": status.version,
        }

    async def get_database_config(self) -> Dict[str, Any]:
        data = await self.read("database")
        try:
            port = int(data.get("port", 3306))
        except (TypeError, ValueError):
            raise GatewayException("INVALID_SECRET", "Stored database port is not a number", status_code=500)
        return {
            "host": data.get("host"),
            "port": port,
            "username": data.get("username"),
            "password": data.get("password"),
            "database": data.get("shared_database") or DEFAULT_DATABASE,
        }

    async def database_url(self, database: Optional[str] = None) -> str:
        config = await self.get_database_config()
        return build_database_url(config, database)

    async def get_service_urls(self) -> Dict[str, Any]:
        return await self.read("services")

    async def rotate_jwt_secret(self) -> None:
        await rotate(
            self.backend,
            self.backend_path("jwt"),
            "secret",
            lambda: SecretGenerator.generate_secure_token(JWT_SECRET_BYTES),
            metrics=self.metrics,
        )

    async def close(self) -> None:
        await self.backend.close()


def _vault_status(status) -> str:
    if status.ready:
        return "healthy"
    return "sealed" if status.sealed else "uninitialized"


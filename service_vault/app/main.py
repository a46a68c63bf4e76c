"""
Vault gateway service for the Transcendence platform.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.base_service import BaseService, utc_now_iso
from shared.errors import GatewayException, InvalidArgument, Unavailable

from .backend import MemorySecretBackend, SecretBackend, VaultHTTPBackend
from .config import VaultServiceConfig
from .gateway import SecretGateway
from .seeding import Bootstrapper


class SecretWriteRequest(BaseModel):
    """Body of ``PUT /api/secrets/{path}``."""
    data: Optional[Dict[str, Any]] = None


class ServiceTokenRequest(BaseModel):
    """Body of ``POST /api/tokens/service``."""
    model_config = ConfigDict(populate_by_name=True)

    service_name: Optional[str] = Field(default=None, alias="serviceName")
    policies: Optional[List[str]] = None


def build_backend(config: VaultServiceConfig) -> SecretBackend:
    """Backend selected by ``VAULT_BACKEND``."""
    if config.vault_backend == "memory":
        return MemorySecretBackend(mount=config.vault_mount)
    if config.vault_backend == "vault":
        return VaultHTTPBackend(
            config.vault_addr,
            config.resolve_vault_token(),
            mount=config.vault_mount,
        )
    raise ValueError(f"Unknown VAULT_BACKEND: {config.vault_backend}")


class VaultGatewayService(BaseService):
    """Vault gateway service implementation."""

    def __init__(self, config: Optional[VaultServiceConfig] = None,
                 backend: Optional[SecretBackend] = None,
                 environ: Optional[Mapping[str, str]] = None):
        config = config or VaultServiceConfig()
        super().__init__(config.service_name, config.port, config)

        self.backend = backend or build_backend(config)
        self.gateway = SecretGateway(self.backend, token_ttl=config.token_ttl, metrics=self.metrics)
        self.bootstrapper = Bootstrapper(
            self.backend,
            environ=environ,
            poll_interval=config.bootstrap_poll_interval,
            max_attempts=config.bootstrap_max_attempts,
            metrics=self.metrics,
        )
        self._ready = False

        @self.app.on_event("startup")
        async def _startup():
            await self.bootstrap()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.gateway.close()

        self._setup_vault_routes()

    def is_ready(self) -> bool:
        return self._ready

    async def bootstrap(self):
        """Provision the backing store; an unreachable store aborts startup."""
        try:
            report = await self.bootstrapper.initialize()
        except Unavailable as e:
            self.logger.error("Bootstrap failed, refusing to serve", error_message=e.message)
            raise
        self._ready = True
        return report

    async def health_status(self) -> Tuple[int, Dict[str, Any]]:
        vault = await self.gateway.health()
        if vault.get("vault_status") != "healthy":
            return 500, {
                "service": self.service_name,
                "status": "unhealthy",
                "timestamp": utc_now_iso(),
                "error": vault.get("error") or f"Vault is {vault.get('vault_status')}",
            }
        return 200, {
            "service": self.service_name,
            "status": "healthy",
            "timestamp": utc_now_iso(),
            "vault": vault,
        }

    def _setup_vault_routes(self):
        """Set up gateway routes."""

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            error = InvalidArgument("Malformed request body")
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response().model_dump(exclude_none=True)
            )

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Transcendence - Vault Gateway Service",
                "version": "1.0.0",
                "ready": self.is_ready()
            }

        @self.app.get("/api/secrets/{path:path}")
        async def read_secret(path: str):
            data = await self.gateway.read(path)
            return {"success": True, "data": data}

        @self.app.put("/api/secrets/{path:path}")
        async def write_secret(path: str, request: Optional[SecretWriteRequest] = None):
            if request is None or request.data is None:
                raise InvalidArgument("Secret data is required")
            try:
                await self.gateway.write(path, request.data)
            except InvalidArgument:
                raise
            except GatewayException as e:
                self.logger.warning("Secret write failed", code=e.code)
                raise GatewayException("WRITE_FAILED", "Failed to store secret", status_code=500) from e
            return {"success": True, "message": "Secret stored successfully"}

        @self.app.get("/api/database/config")
        async def database_config():
            return {"success": True, "data": await self.gateway.get_database_config()}

        @self.app.get("/api/services/urls")
        async def service_urls():
            return {"success": True, "data": await self.gateway.get_service_urls()}

        @self.app.post("/api/tokens/service")
        async def create_service_token(request: Optional[ServiceTokenRequest] = None):
            if request is None or not request.service_name or not request.policies:
                raise InvalidArgument("serviceName and policies are required")
            token = await self.gateway.issue_token(request.service_name, request.policies)
            return {"success": True, "data": {"token": token}}

        @self.app.post("/api/jwt/rotate")
        async def rotate_jwt():
            await self.gateway.rotate_jwt_secret()
            return {"success": True, "message": "JWT secret rotated successfully"}


def create_app():
    """Create FastAPI application."""
    service = VaultGatewayService()
    return service.app


if __name__ == "__main__":
    service = VaultGatewayService()
    service.run()

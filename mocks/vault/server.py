"""
Mock Vault server exposing the subset of the Vault HTTP API the gateway uses.

State lives in a ``MemorySecretBackend``; requests are authorized against
the policies bound to the caller's token, with a root token that may do
anything.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response

from shared.errors import Conflict, NotFound
from shared.logging import get_logger
from service_vault.app.backend.memory import MemorySecretBackend
from service_vault.app.policies import Policy


ROOT_TOKEN = "vault-root-token"


def _errors(status_code: int, *messages: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": list(messages)})


class MockVaultServer:
    """Mock Vault server implementation."""

    def __init__(self, backend: Optional[MemorySecretBackend] = None,
                 root_token: str = ROOT_TOKEN, port: int = 8200):
        self.port = port
        self.root_token = root_token
        self.backend = backend or MemorySecretBackend()
        self.logger = get_logger("mock.vault")
        self.app = FastAPI(title="Mock Vault", version="1.0.0")
        self._setup_routes()

    def authorized(self, token: Optional[str], path: str, capability: str) -> bool:
        if not token:
            return False
        if token == self.root_token:
            return True
        try:
            return self.backend.is_allowed(token, path, capability)
        except NotFound:
            return False

    def _setup_routes(self):
        """Set up Vault API routes."""

        @self.app.get("/v1/sys/health")
        async def sys_health(standbyok: bool = False, sealedcode: int = 503, uninitcode: int = 501):
            if not self.backend.available:
                return _errors(503, "Vault is unavailable")
            body = {
                "initialized": True,
                "sealed": self.backend.sealed,
                "standby": False,
                "version": self.backend.version,
                "server_time_utc": int(datetime.now(timezone.utc).timestamp()),
            }
            return JSONResponse(status_code=sealedcode if self.backend.sealed else 200, content=body)

        @self.app.get("/v1/{mount}/data/{path:path}")
        async def kv_read(mount: str, path: str, x_vault_token: Optional[str] = Header(default=None)):
            if mount != self.backend.mount:
                return _errors(404, f"no handler for route '{mount}/data/{path}'")
            if not self.authorized(x_vault_token, f"{mount}/data/{path}", "read"):
                return _errors(403, "permission denied")
            try:
                document = await self.backend.read(path)
            except NotFound:
                return _errors(404)
            return {
                "data": {
                    "data": document.data,
                    "metadata": {"version": document.version, "destroyed": False},
                }
            }

        @self.app.post("/v1/{mount}/data/{path:path}")
        async def kv_write(mount: str, path: str, request: Request,
                           x_vault_token: Optional[str] = Header(default=None)):
            if mount != self.backend.mount:
                return _errors(404, f"no handler for route '{mount}/data/{path}'")
            exists = f"{mount}/data/{path.strip('/')}" in self.backend.document_paths()
            capability = "update" if exists else "create"
            if not self.authorized(x_vault_token, f"{mount}/data/{path}", capability):
                return _errors(403, "permission denied")

            body: Dict[str, Any] = await request.json()
            if not isinstance(body.get("data"), dict):
                return _errors(400, "no data provided")
            cas = (body.get("options") or {}).get("cas")
            try:
                version = await self.backend.write(path, body["data"], cas=cas)
            except Conflict:
                return _errors(400, "check-and-set parameter did not match the current version")
            return {"data": {"version": version, "destroyed": False}}

        @self.app.get("/v1/sys/policies/acl/{name}")
        async def read_policy(name: str, x_vault_token: Optional[str] = Header(default=None)):
            if not self.authorized(x_vault_token, f"sys/policies/acl/{name}", "read"):
                return _errors(403, "permission denied")
            try:
                policy = await self.backend.read_policy(name)
            except NotFound:
                return _errors(404)
            return {"data": {"name": name, "policy": policy.to_hcl()}}

        @self.app.put("/v1/sys/policies/acl/{name}")
        async def write_policy(name: str, request: Request,
                               x_vault_token: Optional[str] = Header(default=None)):
            if not self.authorized(x_vault_token, f"sys/policies/acl/{name}", "update"):
                return _errors(403, "permission denied")
            body = await request.json()
            try:
                policy = Policy.from_hcl(name, body.get("policy") or "")
            except ValueError as e:
                return _errors(400, str(e))
            self.backend.put_policy(policy)
            self.logger.info("Policy written", policy=name)
            return Response(status_code=204)

        @self.app.post("/v1/auth/token/create")
        async def create_token(request: Request, x_vault_token: Optional[str] = Header(default=None)):
            if not self.authorized(x_vault_token, "auth/token/create", "update"):
                return _errors(403, "permission denied")
            body = await request.json()
            policies = list(body.get("policies") or [])
            if not body.get("no_default_policy"):
                policies.append("default")
            token = await self.backend.create_token(
                policies=policies,
                ttl=body.get("ttl") or "768h",
                renewable=bool(body.get("renewable", True)),
                metadata=dict(body.get("meta") or {}),
            )
            return {
                "auth": {
                    "client_token": token.token,
                    "policies": token.policies,
                    "token_policies": token.policies,
                    "metadata": token.metadata,
                    "renewable": token.renewable,
                }
            }

        @self.app.get("/v1/auth/token/lookup-self")
        async def lookup_self(x_vault_token: Optional[str] = Header(default=None)):
            if x_vault_token == self.root_token:
                return {"data": {"policies": ["root"], "meta": None}}
            if not self.authorized(x_vault_token, "auth/token/lookup-self", "read"):
                return _errors(403, "permission denied")
            token = self.backend.lookup_token(x_vault_token)
            return {"data": {"policies": token.policies, "meta": token.metadata, "ttl": token.ttl}}


def create_app(backend: Optional[MemorySecretBackend] = None):
    """Create mock Vault application."""
    server = MockVaultServer(backend=backend)
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8200)

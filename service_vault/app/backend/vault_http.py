"""
HashiCorp Vault backend over the HTTP API.

Uses the KV v2 engine for documents, ``sys/policies/acl`` for policies and
``auth/token/create`` for service tokens. Secret values never reach the
logs; only paths and status codes do.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import AlreadyExists, Conflict, GatewayException, NotFound, Unavailable
from shared.logging import get_logger

from ..policies import Policy
from .base import BackendHealth, SecretBackend, SecretDocument, ServiceToken


HEALTH_TIMEOUT = 5.0
REQUEST_TIMEOUT = 10.0


class VaultHTTPBackend(SecretBackend):
    """Client for a Vault server."""

    name = "vault"

    def __init__(self, vault_url: str, token: str, mount: str = "secret",
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 request_timeout: float = REQUEST_TIMEOUT,
                 health_timeout: float = HEALTH_TIMEOUT):
        self.vault_url = vault_url.rstrip("/")
        self.mount = mount
        self.request_timeout = request_timeout
        self.health_timeout = health_timeout
        self.logger = get_logger("vault.backend.http")
        self._client = httpx.AsyncClient(
            base_url=self.vault_url,
            headers={"X-Vault-Token": token},
            timeout=request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, timeout=timeout or self.request_timeout, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.warning("Vault request timed out", method=method, url=url)
            raise Unavailable("Vault request timed out", details={"url": url}) from e
        except httpx.TransportError as e:
            self.logger.warning("Vault unreachable", method=method, url=url, error_type=type(e).__name__)
            raise Unavailable("Vault unreachable", details={"url": url}) from e

    def _unexpected(self, response: httpx.Response, operation: str) -> GatewayException:
        if response.status_code >= 500:
            return Unavailable(
                f"Vault {operation} failed",
                details={"status_code": response.status_code}
            )
        return GatewayException(
            "BACKEND_ERROR",
            f"Vault {operation} failed",
            details={"status_code": response.status_code},
            status_code=502
        )

    async def health(self) -> BackendHealth:
        # Ask for 200 on every state so sealed or standby nodes still describe themselves
        response = await self._request(
            "GET",
            "/v1/sys/health",
            timeout=self.health_timeout,
            params={"standbyok": "true", "sealedcode": "200", "uninitcode": "200"},
        )
        if response.status_code != 200:
            raise self._unexpected(response, "health")
        body = response.json()
        return BackendHealth(
            initialized=bool(body.get("initialized")),
            sealed=bool(body.get("sealed")),
            standby=bool(body.get("standby")),
            version=body.get("version"),
        )

    async def read(self, path: str) -> SecretDocument:
        response = await self._request("GET", f"/v1/{self.mount}/data/{path.strip('/')}")
        if response.status_code == 404:
            raise NotFound(f"No secret at {path}")
        if response.status_code != 200:
            raise self._unexpected(response, "read")
        payload = response.json().get("data") or {}
        metadata = payload.get("metadata") or {}
        if payload.get("data") is None:
            # Soft-deleted or destroyed versions come back without data
            raise NotFound(f"No secret at {path}")
        return SecretDocument(path=path, data=payload["data"], version=metadata.get("version"))

    async def write(self, path: str, data: Dict[str, Any], cas: Optional[int] = None) -> int:
        body: Dict[str, Any] = {"data": dict(data)}
        if cas is not None:
            body["options"] = {"cas": cas}
        response = await self._request("POST", f"/v1/{self.mount}/data/{path.strip('/')}", json=body)
        if response.status_code == 400 and cas is not None and _mentions_cas(response):
            raise Conflict(f"Check-and-set mismatch at {path}", details={"expected_version": cas})
        if response.status_code not in (200, 204):
            raise self._unexpected(response, "write")
        if response.status_code == 204 or not response.content:
            return 0
        return int((response.json().get("data") or {}).get("version", 0))

    async def create_policy(self, policy: Policy) -> None:
        url = f"/v1/sys/policies/acl/{policy.name}"
        existing = await self._request("GET", url)
        if existing.status_code == 200:
            raise AlreadyExists(f"Policy '{policy.name}' already exists")
        if existing.status_code != 404:
            raise self._unexpected(existing, "policy lookup")

        response = await self._request("PUT", url, json={"policy": policy.to_hcl()})
        if response.status_code not in (200, 204):
            raise self._unexpected(response, "policy create")

    async def create_token(self, policies: List[str], ttl: str, renewable: bool,
                           metadata: Dict[str, str]) -> ServiceToken:
        response = await self._request(
            "POST",
            "/v1/auth/token/create",
            json={
                "policies": list(policies),
                "no_default_policy": True,
                "ttl": ttl,
                "renewable": renewable,
                "meta": dict(metadata),
            },
        )
        if response.status_code != 200:
            raise self._unexpected(response, "token create")
        auth = response.json().get("auth") or {}
        return ServiceToken(
            token=auth["client_token"],
            policies=list(auth.get("policies") or policies),
            ttl=ttl,
            renewable=bool(auth.get("renewable", renewable)),
            metadata=dict(auth.get("metadata") or metadata),
        )


def _mentions_cas(response: httpx.Response) -> bool:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return False
    return any("check-and-set" in str(error) for error in errors)

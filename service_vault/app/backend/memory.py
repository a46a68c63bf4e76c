"""
In-process secret engine.

Implements the same primitives as Vault's KV v2 engine, ACL policies and
token store, so the gateway can run without a Vault server (local
development, tests, the mock Vault HTTP server).
"""

import copy
import secrets
from typing import Any, Dict, List, Optional, Set, Tuple

from shared.errors import AlreadyExists, Conflict, NotFound, Unavailable
from shared.logging import get_logger

from ..policies import Policy, effective_capabilities
from .base import BackendHealth, SecretBackend, SecretDocument, ServiceToken


class MemorySecretBackend(SecretBackend):
    """Dictionary-backed secret engine."""

    name = "memory"

    def __init__(self, mount: str = "secret", version: str = "1.15.0-memory"):
        self.mount = mount
        self.version = version
        self.available = True
        self.sealed = False
        self.logger = get_logger("vault.backend.memory")

        self._documents: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self._policies: Dict[str, Policy] = {}
        self._tokens: Dict[str, ServiceToken] = {}

        self.write_count = 0

    def _check_available(self):
        if not self.available:
            raise Unavailable("Secret backend unreachable", details={"backend": self.name})

    def full_path(self, path: str) -> str:
        return f"{self.mount}/data/{path.strip('/')}"

    async def health(self) -> BackendHealth:
        self._check_available()
        return BackendHealth(initialized=True, sealed=self.sealed, standby=False, version=self.version)

    async def read(self, path: str) -> SecretDocument:
        self._check_available()
        entry = self._documents.get(self.full_path(path))
        if entry is None:
            raise NotFound(f"No secret at {path}")
        data, version = entry
        return SecretDocument(path=path, data=copy.deepcopy(data), version=version)

    async def write(self, path: str, data: Dict[str, Any], cas: Optional[int] = None) -> int:
        self._check_available()
        key = self.full_path(path)
        current_version = self._documents.get(key, (None, 0))[1]
        if cas is not None and cas != current_version:
            raise Conflict(
                f"Check-and-set mismatch at {path}",
                details={"expected_version": cas, "current_version": current_version}
            )
        new_version = current_version + 1
        self._documents[key] = (copy.deepcopy(dict(data)), new_version)
        self.write_count += 1
        return new_version

    async def create_policy(self, policy: Policy) -> None:
        self._check_available()
        if policy.name in self._policies:
            raise AlreadyExists(f"Policy '{policy.name}' already exists")
        self._policies[policy.name] = policy

    def put_policy(self, policy: Policy) -> None:
        """Install or overwrite ``policy`` (Vault ``PUT`` semantics)."""
        self._check_available()
        self._policies[policy.name] = policy

    async def read_policy(self, name: str) -> Policy:
        self._check_available()
        try:
            return self._policies[name]
        except KeyError:
            raise NotFound(f"No policy named {name}")

    async def create_token(self, policies: List[str], ttl: str, renewable: bool,
                           metadata: Dict[str, str]) -> ServiceToken:
        self._check_available()
        token = ServiceToken(
            token=f"hvs.{secrets.token_urlsafe(24)}",
            policies=list(policies),
            ttl=ttl,
            renewable=renewable,
            metadata=dict(metadata),
        )
        self._tokens[token.token] = token
        self.logger.debug("Token created", policies=list(policies), ttl=ttl)
        return token

    def lookup_token(self, token: str) -> ServiceToken:
        try:
            return self._tokens[token]
        except KeyError:
            raise NotFound("Unknown token")

    def token_capabilities(self, token: str) -> Dict[str, Set[str]]:
        """Rules granted to ``token``: the union of its policies, unknown policies grant nothing."""
        names = self.lookup_token(token).policies
        return effective_capabilities(self._policies[name] for name in names if name in self._policies)

    def is_allowed(self, token: str, path: str, capability: str) -> bool:
        granted: Set[str] = set()
        for name in self.lookup_token(token).policies:
            policy = self._policies.get(name)
            if policy is not None:
                granted |= policy.capabilities_for(path)
        if "deny" in granted:
            return False
        return capability in granted

    def policy_names(self) -> List[str]:
        return list(self._policies)

    def document_paths(self) -> List[str]:
        return sorted(self._documents)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Deep copy of every stored document keyed by full path."""
        return {key: copy.deepcopy(data) for key, (data, _) in self._documents.items()}
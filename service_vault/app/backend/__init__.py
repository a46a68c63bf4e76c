"""
Backing secret store implementations.

- base: the ``SecretBackend`` contract and its value types
- vault_http: HashiCorp Vault over HTTP (httpx)
- memory: in-process engine for local runs and tests
"""

from .base import BackendHealth, SecretBackend, SecretDocument, ServiceToken
from .memory import MemorySecretBackend
from .vault_http import VaultHTTPBackend

__all__ = [
    "BackendHealth",
    "SecretBackend",
    "SecretDocument",
    "ServiceToken",
    "MemorySecretBackend",
    "VaultHTTPBackend",
]

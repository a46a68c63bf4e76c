"""
Backing secret store contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..policies import Policy


@dataclass
class SecretDocument:
    """A key/value document stored at a logical path."""
    path: str
    data: Dict[str, Any]
    version: Optional[int] = None


@dataclass
class BackendHealth:
    """Health as reported by the backing store."""
    initialized: bool
    sealed: bool
    standby: bool = False
    version: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.initialized and not self.sealed


@dataclass
class ServiceToken:
    """A token bound to a fixed list of policies."""
    token: str
    policies: List[str]
    ttl: str
    renewable: bool
    metadata: Dict[str, str] = field(default_factory=dict)


class SecretBackend(ABC):
    """
    Primitives the gateway needs from a secret engine.

    Implementations raise ``shared.errors`` types only: ``Unavailable`` when
    the engine cannot be reached (timeouts included), ``NotFound`` for a
    missing document, ``AlreadyExists`` for a duplicate policy and
    ``Conflict`` for a failed check-and-set write.
    """

    name = "abstract"

    @abstractmethod
    async def health(self) -> BackendHealth:
        """Probe the engine."""

    @abstractmethod
    async def read(self, path: str) -> SecretDocument:
        """Read the document at ``path`` (relative to the mount)."""

    @abstractmethod
    async def write(self, path: str, data: Dict[str, Any], cas: Optional[int] = None) -> int:
        """Replace the document at ``path`` and return its new version.

        When ``cas`` is given the write only succeeds if the current version
        equals it (``0`` meaning the document must not exist yet).
        """

    @abstractmethod
    async def create_policy(self, policy: Policy) -> None:
        """Install ``policy``; raise ``AlreadyExists`` if the name is taken."""

    @abstractmethod
    async def create_token(self, policies: List[str], ttl: str, renewable: bool,
                           metadata: Dict[str, str]) -> ServiceToken:
        """Create a token bound to exactly ``policies``."""

    async def close(self) -> None:
        """Release network resources."""

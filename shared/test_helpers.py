"""
Test helper functions and factory methods for the Transcendence vault layer.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt

from shared.errors import NotFound, Unavailable
from shared.vault_client import GatewayTransport


class TestDataFactory:
    """Factory for creating secret documents as the gateway stores them."""

    @staticmethod
    def create_database_document(password: str = "Db-pass-0123456789abcd") -> Dict[str, str]:
        return {
            "host": "database-service",
            "port": "3306",
            "username": "user",
            "password": password,
            "root_password": "Root-pass-0123456789abcdefghijkl",
            "main_database": "transcendence",
            "shared_database": "transcendence",
        }

    @staticmethod
    def create_jwt_document(secret: str = "a" * 64, previous: Optional[str] = None) -> Dict[str, str]:
        document = {
            "secret": secret,
            "algorithm": "HS256",
            "expiration": "24h",
            "refresh_expiration": "7d",
            "issuer": "transcendence",
            "audience": "transcendence-users",
            "created_at": "2024-01-01T00:00:00Z",
        }
        if previous is not None:
            document["previous_secret"] = previous
            document["rotated_at"] = "2024-01-02T00:00:00Z"
        return document

    @staticmethod
    def create_api_document() -> Dict[str, str]:
        return {
            "rate_limit_max": "100",
            "rate_limit_window": "60000",
            "cors_origin": "http://localhost:3000,https://localhost",
            "session_secret": "b" * 64,
            "api_version": "1.0.0",
        }

    @staticmethod
    def create_services_document() -> Dict[str, str]:
        return {
            "auth_service_url": "http://auth-service:3000",
            "user_service_url": "http://user-service:3001",
            "game_service_url": "http://game-service:3002",
            "gateway_service_url": "http://gateway-service:3003",
            "vault_service_url": "http://vault-service:8300",
        }

    @staticmethod
    def create_game_document() -> Dict[str, str]:
        return {
            "ws_heartbeat_interval": "30000",
            "ws_connection_timeout": "60000",
            "game_tick_rate": "60",
            "match_timeout": "600000",
            "matchmaking_timeout": "30000",
            "max_players_per_game": "4",
            "force_https": "true",
            "hsts_max_age": "31536000",
            "security_headers": "true",
        }

    @classmethod
    def create_sections(cls) -> Dict[str, Dict[str, str]]:
        """Every section a dependent service may request."""
        return {
            "database": cls.create_database_document(),
            "jwt": cls.create_jwt_document(),
            "api": cls.create_api_document(),
            "services": cls.create_services_document(),
            "game": cls.create_game_document(),
            "oauth": {"google_client_id": "test-google", "github_client_id": "test-github"},
        }


class MockTokenGenerator:
    """Generate JWTs signed with a given key."""

    def __init__(self, secret: str, issuer: str = "transcendence", audience: str = "transcendence-users"):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience

    def generate_access_token(self, user_id: str = "user-1", expires_in: int = 3600) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self.issuer,
            "sub": user_id,
            "aud": self.audience,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")


class FakeGatewayTransport(GatewayTransport):
    """
    Scripted transport for client tests.

    ``failures`` maps a call name (``health`` or a section name) to how
    many leading calls raise; each entry of ``errors`` overrides the
    exception raised for that name.
    """

    def __init__(self, sections: Optional[Dict[str, Dict[str, Any]]] = None,
                 failures: Optional[Dict[str, int]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.sections = sections if sections is not None else TestDataFactory.create_sections()
        self.failures = dict(failures or {})
        self.errors = dict(errors or {})
        self.calls: List[str] = []
        self.timeouts: List[float] = []
        self.closed = False

    def _maybe_fail(self, name: str, attempt: int) -> None:
        if attempt <= self.failures.get(name, 0):
            raise self.errors.get(name) or Unavailable(f"{name} unavailable (attempt {attempt})")

    def _call(self, name: str, timeout: float) -> int:
        self.calls.append(name)
        self.timeouts.append(timeout)
        attempt = self.calls.count(name)
        self._maybe_fail(name, attempt)
        return attempt

    async def health(self, timeout: float) -> Dict[str, Any]:
        self._call("health", timeout)
        return {"status": "healthy"}

    async def read_secret(self, name: str, timeout: float) -> Dict[str, Any]:
        self._call(name, timeout)
        if name not in self.sections:
            raise NotFound("Secret not found")
        return dict(self.sections[name])

    async def database_config(self, timeout: float) -> Dict[str, Any]:
        self._call("database_config", timeout)
        document = self.sections["database"]
        return {
            "host": document["host"],
            "port": int(document["port"]),
            "username": document["username"],
            "password": document["password"],
            "database": document.get("shared_database") or "transcendence",
        }

    async def service_urls(self, timeout: float) -> Dict[str, Any]:
        self._call("service_urls", timeout)
        return dict(self.sections["services"])

    async def close(self) -> None:
        self.closed = True


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_mock_config() -> Dict[str, str]:
        """Environment for a gateway running on the in-memory engine."""
        return {
            "NODE_ENV": "test",
            "LOG_LEVEL": "debug",
            "VAULT_BACKEND": "memory",
            "VAULT_TOKEN": "test-root-token",
            "VAULT_BOOTSTRAP_POLL_INTERVAL": "0",
            "VAULT_BOOTSTRAP_MAX_ATTEMPTS": "3",
            "ENABLE_TRACING": "false",
        }


# Global instances for easy access
test_data_factory = TestDataFactory()
test_environment = TestEnvironment()

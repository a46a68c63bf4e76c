"""
Bootstrap of the backing store: wait for it, install policies, seed secrets.

Seeds are declarative. Each ``SecretSeed`` names a document and how every
field is produced; a single loop installs them. The document path is the
idempotence key: a seed is written only when the store answers a
definite "not found" for its path, so generated credentials are produced
at most once across restarts.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Union

from shared.errors import AlreadyExists, Conflict, GatewayException, NotFound, Unavailable
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, retry_async
from shared.secret_generator import SecretGenerator
from shared.tracing import get_tracer

from .backend.base import SecretBackend
from .policies import DEFAULT_POLICIES, SECRET_NAMESPACE, Policy


class FieldSource(ABC):
    """Produces the value of one field of a seeded document."""

    @abstractmethod
    def materialize(self, environ: Mapping[str, str]) -> str:
        ...


@dataclass(frozen=True)
class Fixed(FieldSource):
    value: str

    def materialize(self, environ: Mapping[str, str]) -> str:
        return self.value


@dataclass(frozen=True)
class Generated(FieldSource):
    """Fresh random material: ``password`` (charset string) or ``hex`` (``length`` random bytes)."""
    kind: str
    length: int

    def __post_init__(self):
        if self.kind not in ("password", "hex"):
            raise ValueError(f"Unknown generator kind: {self.kind}")

    def materialize(self, environ: Mapping[str, str]) -> str:
        if self.kind == "password":
            return SecretGenerator.generate_secure_password(self.length)
        return SecretGenerator.generate_secure_token(self.length)


@dataclass(frozen=True)
class FromEnv(FieldSource):
    """Environment value, else ``fallback`` (a literal or another source)."""
    name: str
    fallback: Union[str, FieldSource]

    def materialize(self, environ: Mapping[str, str]) -> str:
        value = environ.get(self.name)
        if value:
            return value
        if isinstance(self.fallback, FieldSource):
            return self.fallback.materialize(environ)
        return self.fallback


@dataclass(frozen=True)
class Timestamp(FieldSource):
    def materialize(self, environ: Mapping[str, str]) -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SecretSeed:
    """A document to create once under the secret namespace."""
    name: str
    fields: Dict[str, FieldSource] = field(default_factory=dict, hash=False)

    @property
    def path(self) -> str:
        return f"{SECRET_NAMESPACE}/{self.name}"

    def materialize(self, environ: Mapping[str, str]) -> Dict[str, str]:
        return {key: source.materialize(environ) for key, source in self.fields.items()}


def password(length: int) -> Generated:
    return Generated("password", length)


def hex_key(length: int) -> Generated:
    return Generated("hex", length)


DEFAULT_SEEDS: Sequence[SecretSeed] = (
    SecretSeed("database", {
        "host": Fixed("database-service"),
        "port": Fixed("3306"),
        "username": Fixed("user"),
        "password": password(24),
        "root_password": password(32),
        "main_database": Fixed("transcendence"),
        "shared_database": Fixed("transcendence"),
        "url_template": Fixed("mysql://{username}:{password}@{host}:{port}/{database}"),
    }),
    SecretSeed("jwt", {
        "secret": hex_key(64),
        "algorithm": Fixed("HS256"),
        "expiration": Fixed("24h"),
        "refresh_expiration": Fixed("7d"),
        "issuer": Fixed("transcendence"),
        "audience": Fixed("transcendence-users"),
        "created_at": Timestamp(),
    }),
    SecretSeed("encryption", {
        "key": hex_key(32),
        "algorithm": Fixed("aes-256-gcm"),
        "iv_length": Fixed("16"),
        "created_at": Timestamp(),
    }),
    SecretSeed("oauth", {
        "google_client_id": FromEnv("GOOGLE_CLIENT_ID", "your-google-client-id"),
        "google_client_secret": FromEnv("GOOGLE_CLIENT_SECRET", hex_key(32)),
        "github_client_id": FromEnv("GITHUB_CLIENT_ID", "your-github-client-id"),
        "github_client_secret": FromEnv("GITHUB_CLIENT_SECRET", hex_key(32)),
        "github_redirect_uri": FromEnv("GITHUB_REDIRECT_URI", "https://localhost/oauth/github/callback"),
        "intra_client_id": FromEnv("INTRA_CLIENT_ID", "your-intra-client-id"),
        "intra_client_secret": FromEnv("INTRA_CLIENT_SECRET", hex_key(32)),
        "intra_redirect_uri": FromEnv("INTRA_REDIRECT_URI", "https://localhost/oauth/42/callback"),
        "callback_url_base": FromEnv("CALLBACK_URL_BASE", "https://localhost/auth/callback"),
        "created_at": Timestamp(),
    }),
    SecretSeed("api", {
        "rate_limit_max": FromEnv("RATE_LIMIT_MAX", "100"),
        "rate_limit_window": FromEnv("RATE_LIMIT_WINDOW", "60000"),
        "cors_origin": FromEnv("CORS_ORIGIN", "http://localhost:3000,https://localhost"),
        "session_secret": hex_key(32),
        "api_version": Fixed("1.0.0"),
        "created_at": Timestamp(),
    }),
    SecretSeed("services", {
        "auth_service_url": Fixed("http://auth-service:3000"),
        "user_service_url": Fixed("http://user-service:3001"),
        "game_service_url": Fixed("http://game-service:3002"),
        "gateway_service_url": Fixed("http://gateway-service:3003"),
        "vault_service_url": Fixed("http://vault-service:8300"),
        "auth_service_port": Fixed("3000"),
        "user_service_port": Fixed("3001"),
        "game_service_port": Fixed("3002"),
        "gateway_service_port": Fixed("3003"),
        "vault_service_port": Fixed("8300"),
    }),
    SecretSeed("game", {
        "ws_heartbeat_interval": Fixed("30000"),
        "ws_connection_timeout": Fixed("60000"),
        "game_tick_rate": Fixed("60"),
        "match_timeout": Fixed("600000"),
        "matchmaking_timeout": Fixed("30000"),
        "max_players_per_game": Fixed("4"),
        "force_https": Fixed("true"),
        "hsts_max_age": Fixed("31536000"),
        "security_headers": Fixed("true"),
    }),
)


class SeedOutcome(str, Enum):
    """What bootstrap did with one policy or secret."""
    CREATED = "created"
    EXISTING = "existing"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BootstrapReport:
    policies: Dict[str, SeedOutcome] = field(default_factory=dict)
    secrets: Dict[str, SeedOutcome] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        outcomes = list(self.policies.values()) + list(self.secrets.values())
        return all(o in (SeedOutcome.CREATED, SeedOutcome.EXISTING) for o in outcomes)


class Bootstrapper:
    """Idempotent provisioning of policies and initial secret documents."""

    def __init__(self,
                 backend: SecretBackend,
                 policies: Sequence[Policy] = DEFAULT_POLICIES,
                 seeds: Sequence[SecretSeed] = DEFAULT_SEEDS,
                 environ: Optional[Mapping[str, str]] = None,
                 poll_interval: float = 2.0,
                 max_attempts: int = 30,
                 metrics: Optional[MetricsCollector] = None):
        self.backend = backend
        self.policies = policies
        self.seeds = seeds
        self.environ = environ if environ is not None else os.environ
        self.wait_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=poll_interval,
            max_delay=poll_interval,
            backoff_strategy="fixed",
        )
        self.metrics = metrics
        self.logger = get_logger("vault.bootstrap")
        self.tracer = get_tracer("vault.bootstrap")
        self.report = BootstrapReport()

    async def initialize(self) -> BootstrapReport:
        """Wait for the store, then seed policies before secrets.

        Raises ``Unavailable`` if the store never becomes ready; every other
        failure is logged and the item skipped.
        """
        with self.tracer.start_as_current_span("bootstrap.initialize"):
            self.logger.info("Initializing secret store", backend=self.backend.name)
            self.report = BootstrapReport()

            await self.wait_for_backend()
            await self.seed_policies()
            await self.seed_secrets()

            self.logger.info(
                "Secret store initialized",
                policies={name: outcome.value for name, outcome in self.report.policies.items()},
                seeds={name: outcome.value for name, outcome in self.report.secrets.items()},
                complete=self.report.complete
            )
            return self.report

    async def wait_for_backend(self) -> None:
        attempts = self.wait_config.max_attempts

        async def _probe():
            health = await self.backend.health()
            if not health.ready:
                raise Unavailable(
                    "Secret store not ready",
                    details={"initialized": health.initialized, "sealed": health.sealed}
                )

        def _on_retry(attempt: int, error: Exception):
            self.logger.info("Waiting for secret store", attempt=attempt, max_attempts=attempts)

        try:
            await retry_async(
                _probe,
                self.wait_config,
                exceptions=(Unavailable,),
                name="wait_for_backend",
                on_retry=_on_retry
            )
        except RetryError as e:
            raise Unavailable(
                f"Vault is not available after {e.attempts} attempts",
                details={"attempts": e.attempts}
            ) from e.last_exception
        self.logger.info("Secret store is ready")

    async def seed_policies(self) -> None:
        for policy in self.policies:
            try:
                await self.backend.create_policy(policy)
            except AlreadyExists:
                outcome = SeedOutcome.EXISTING
                self.logger.info("Policy already exists", policy=policy.name)
            except GatewayException as e:
                outcome = SeedOutcome.FAILED
                self.logger.warning("Policy seeding failed", policy=policy.name, code=e.code, error_message=e.message)
            else:
                outcome = SeedOutcome.CREATED
                self.logger.info("Policy created", policy=policy.name)
            self._record("policy", policy.name, outcome)

    async def seed_secrets(self) -> None:
        for seed in self.seeds:
            outcome = await self._seed_secret(seed)
            self._record("secret", seed.name, outcome)

    async def _seed_secret(self, seed: SecretSeed) -> SeedOutcome:
        try:
            await self.backend.read(seed.path)
        except NotFound:
            pass
        except GatewayException as e:
            # Existence unknown
            self.logger.warning(
                "Secret existence check failed, skipping seed",
                path=seed.path,
                code=e.code,
                error_message=e.message
            )
            return SeedOutcome.SKIPPED
        else:
            self.logger.info("Secret already exists", path=seed.path)
            return SeedOutcome.EXISTING

        try:
            # cas=0: only if still absent
            await self.backend.write(seed.path, seed.materialize(self.environ), cas=0)
        except Conflict:
            self.logger.info("Secret created concurrently", path=seed.path)
            return SeedOutcome.EXISTING
        except GatewayException as e:
            self.logger.warning("Secret seeding failed", path=seed.path, code=e.code, error_message=e.message)
            return SeedOutcome.FAILED

        self.logger.info("Secret stored", path=seed.path)
        return SeedOutcome.CREATED

    def _record(self, kind: str, name: str, outcome: SeedOutcome) -> None:
        if kind == "policy":
            self.report.policies[name] = outcome
        else:
            self.report.secrets[name] = outcome
        if self.metrics is not None:
            self.metrics.increment_counter("seed_items_total", kind=kind, outcome=outcome.value)

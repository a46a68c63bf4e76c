"""
Configuration for the vault gateway service.
"""

from typing import Optional

from pydantic import Field

from shared.config import BaseConfig


DEVELOPMENT_ROOT_TOKEN = "vault-root-token"


class VaultServiceConfig(BaseConfig):
    """Gateway settings, read from the environment or ``.env``."""

    service_name: str = "vault-service"
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8300, validation_alias="PORT")

    # Backing store
    vault_backend: str = Field(default="vault", validation_alias="VAULT_BACKEND")
    vault_addr: str = Field(default="http://vault:8200", validation_alias="VAULT_ADDR")
    vault_token: Optional[str] = Field(default=None, validation_alias="VAULT_TOKEN")
    vault_mount: str = Field(default="secret", validation_alias="VAULT_MOUNT")

    # Bootstrap wait-for-backend
    bootstrap_poll_interval: float = Field(default=2.0, validation_alias="VAULT_BOOTSTRAP_POLL_INTERVAL")
    bootstrap_max_attempts: int = Field(default=30, validation_alias="VAULT_BOOTSTRAP_MAX_ATTEMPTS")

    # Issued service tokens
    token_ttl: str = Field(default="24h", validation_alias="VAULT_SERVICE_TOKEN_TTL")

    def resolve_vault_token(self) -> str:
        """Token used to talk to Vault.

        Development may fall back to the dev-server root token; every other
        environment must provide ``VAULT_TOKEN``.
        """
        if self.vault_token:
            return self.vault_token
        if self.env == "development":
            return DEVELOPMENT_ROOT_TOKEN
        raise ValueError("VAULT_TOKEN must be provided outside development")

"""
Unit tests for the resilient vault client.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from shared.errors import InvalidArgument, NotFound, SectionFetchError, Unavailable
from shared.metrics import MetricsCollector
from shared.service_config import ConfigLoader, DatabaseSection
from shared.test_helpers import FakeGatewayTransport, test_data_factory
from shared.vault_client import ClientConfig, HttpxGatewayTransport, VaultClient


class TestClientConfig:
    """Test cases for ClientConfig."""

    def test_defaults(self):
        config = ClientConfig()
        assert config.max_retries == 3
        assert config.retry_base_delay == 1.0
        assert config.health_timeout == 5.0
        assert config.request_timeout == 10.0
        assert config.validation_rules.min_key_length == 32

    def test_unknown_backoff_strategy_rejected(self):
        with pytest.raises(ValueError):
            ClientConfig(backoff_strategy="random")


class TestFetchSection:
    """Test cases for VaultClient.fetch_section."""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        transport = FakeGatewayTransport()
        client = VaultClient("user-service", transport)

        data = await client.fetch_section("database")

        assert data["host"] == "database-service"
        assert transport.calls == ["database"]
        assert transport.timeouts == [10.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        transport = FakeGatewayTransport(failures={"database": 2})
        client = VaultClient("user-service", transport)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            data = await client.fetch_section("database")

        assert data["host"] == "database-service"
        assert transport.calls.count("database") == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_bound_and_last_error(self):
        transport = FakeGatewayTransport(failures={"jwt": 10})
        metrics = MetricsCollector("auth-service")
        client = VaultClient("auth-service", transport, ClientConfig(max_retries=3), metrics=metrics)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SectionFetchError) as exc_info:
                await client.fetch_section("jwt")

        error = exc_info.value
        assert transport.calls.count("jwt") == 3
        assert error.section == "jwt"
        assert error.attempts == 3
        assert isinstance(error, Unavailable)
        assert "attempt 3" in str(error.__cause__)
        assert error.last_error is error.__cause__
        assert metrics.sample("config_fetch_attempts_total", section="jwt", outcome="retry") == 2
        assert metrics.sample("config_fetch_attempts_total", section="jwt", outcome="exhausted") == 1

    @pytest.mark.asyncio
    async def test_error_message_has_no_secret_values(self):
        secret = "super-secret-value-0123456789abcdef"
        transport = FakeGatewayTransport(
            failures={"jwt": 5},
            errors={"jwt": Unavailable("gateway down")}
        )
        transport.sections["jwt"]["secret"] = secret
        client = VaultClient("auth-service", transport)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SectionFetchError) as exc_info:
                await client.fetch_section("jwt")

        assert secret not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self):
        transport = FakeGatewayTransport(sections={})
        client = VaultClient("user-service", transport)

        with pytest.raises(NotFound):
            await client.fetch_section("database")

        assert transport.calls == ["database"]

    @pytest.mark.asyncio
    async def test_invalid_argument_is_not_retried(self):
        transport = FakeGatewayTransport(
            failures={"database": 1},
            errors={"database": InvalidArgument("bad path")}
        )
        client = VaultClient("user-service", transport)

        with pytest.raises(InvalidArgument):
            await client.fetch_section("database")

        assert transport.calls == ["database"]

    @pytest.mark.asyncio
    async def test_exponential_strategy(self):
        transport = FakeGatewayTransport(failures={"api": 3})
        config = ClientConfig(max_retries=4, backoff_strategy="exponential", retry_base_delay=0.5)
        client = VaultClient("user-service", transport, config)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await client.fetch_section("api")

        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_typed_helpers(self):
        client = VaultClient("user-service", FakeGatewayTransport())

        database = await client.get_database_config()
        urls = await client.get_service_urls()
        secret = await client.get_secret("game")

        assert database["port"] == 3306
        assert urls["user_service_url"] == "http://user-service:3001"
        assert secret["game_tick_rate"] == "60"


class TestWaitForReady:
    """Test cases for VaultClient.wait_for_ready."""

    @pytest.mark.asyncio
    async def test_ready_immediately(self):
        transport = FakeGatewayTransport()
        client = VaultClient("user-service", transport)

        await client.wait_for_ready()

        assert transport.calls == ["health"]
        assert transport.timeouts == [5.0]

    @pytest.mark.asyncio
    async def test_exponential_backoff_with_cap(self):
        transport = FakeGatewayTransport(failures={"health": 6})
        client = VaultClient("user-service", transport)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await client.wait_for_ready()

        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        transport = FakeGatewayTransport(failures={"health": 100})
        client = VaultClient("user-service", transport)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(Unavailable) as exc_info:
                await client.wait_for_ready(max_attempts=5)

        assert transport.calls.count("health") == 5
        assert "5 attempts" in exc_info.value.message


class TestHttpxGatewayTransport:
    """Test cases for HttpxGatewayTransport."""

    @staticmethod
    def make_transport(handler):
        return HttpxGatewayTransport(
            "http://vault-service:8300",
            service_name="user-service",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_reads_secret_data(self):
        def handler(request):
            assert request.url.path == "/api/secrets/database"
            assert request.headers["X-Service-Name"] == "user-service"
            body = {"success": True, "data": test_data_factory.create_database_document()}
            return httpx.Response(200, content=json.dumps(body))

        transport = self.make_transport(handler)
        data = await transport.read_secret("database", timeout=10.0)
        await transport.close()

        assert data["host"] == "database-service"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,error", [
        (404, NotFound),
        (400, InvalidArgument),
        (500, Unavailable),
        (503, Unavailable),
    ])
    async def test_status_mapping(self, status_code, error):
        transport = self.make_transport(
            lambda request: httpx.Response(status_code, json={"success": False, "error": "x"})
        )

        with pytest.raises(error):
            await transport.read_secret("jwt", timeout=10.0)
        await transport.close()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = self.make_transport(handler)

        with pytest.raises(Unavailable):
            await transport.database_config(timeout=10.0)
        await transport.close()

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        transport = self.make_transport(handler)

        with pytest.raises(Unavailable):
            await transport.health(timeout=5.0)
        await transport.close()

    @pytest.mark.asyncio
    async def test_unhealthy_gateway(self):
        transport = self.make_transport(
            lambda request: httpx.Response(500, json={"status": "unhealthy", "error": "Vault unreachable"})
        )

        with pytest.raises(Unavailable):
            await transport.health(timeout=5.0)
        await transport.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        "<html>proxy</html>",
        json.dumps(["not", "an", "object"]),
        json.dumps({"success": True, "data": "text"}),
    ])
    async def test_malformed_body_is_unavailable(self, content):
        transport = self.make_transport(lambda request: httpx.Response(200, content=content))

        with pytest.raises(Unavailable):
            await transport.read_secret("database", timeout=10.0)
        await transport.close()

    @pytest.mark.asyncio
    async def test_malformed_section_degrades_instead_of_crashing(self):
        def handler(request):
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "healthy"})
            if request.url.path == "/api/secrets/database":
                return httpx.Response(200, content="<html>proxy</html>")
            name = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"success": True, "data": test_data_factory.create_sections()[name]})

        client = VaultClient.over_http(
            "user-service",
            "http://vault-service:8300",
            config=ClientConfig(retry_base_delay=0, health_poll_interval=0),
            transport=httpx.MockTransport(handler),
        )

        snapshot = await ConfigLoader(client).load()
        await client.close()

        assert snapshot.degraded == frozenset({"database"})
        assert snapshot.database == DatabaseSection()
        assert snapshot.services.auth_service_url == "http://auth-service:3000"

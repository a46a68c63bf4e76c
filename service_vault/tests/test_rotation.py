"""
Tests for secret rotation.
"""

import asyncio
import itertools

import pytest
from unittest.mock import AsyncMock, patch

from shared.errors import Conflict, NotFound
from shared.metrics import MetricsCollector
from service_vault.app.backend.memory import MemorySecretBackend
from service_vault.app.gateway import SecretGateway
from service_vault.app.rotation import rotate


JWT_PATH = "transcendence/jwt"


def counter_generator(prefix="key"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


class TestRotate:
    """Test cases for rotate()."""

    @pytest.fixture
    def backend(self):
        return MemorySecretBackend()

    @pytest.mark.asyncio
    async def test_rotation_keeps_previous_value(self, backend):
        await backend.write(JWT_PATH, {"secret": "s1", "algorithm": "HS256"})

        await rotate(backend, JWT_PATH, "secret", lambda: "s2")

        data = (await backend.read(JWT_PATH)).data
        assert data["secret"] == "s2"
        assert data["previous_secret"] == "s1"
        assert data["algorithm"] == "HS256"
        assert data["rotated_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_only_one_previous_value_is_retained(self, backend):
        await backend.write(JWT_PATH, {"secret": "key-0"})
        generator = counter_generator()

        for _ in range(4):
            await rotate(backend, JWT_PATH, "secret", generator)

        data = (await backend.read(JWT_PATH)).data
        assert data["secret"] == "key-4"
        assert data["previous_secret"] == "key-3"
        assert [key for key in data if key.startswith("previous_")] == ["previous_secret"]
        assert "key-2" not in data.values()

    @pytest.mark.asyncio
    async def test_missing_document_raises_not_found(self, backend):
        with pytest.raises(NotFound):
            await rotate(backend, JWT_PATH, "secret", lambda: "s2")

    @pytest.mark.asyncio
    async def test_missing_field_raises_not_found(self, backend):
        await backend.write(JWT_PATH, {"algorithm": "HS256"})

        with pytest.raises(NotFound):
            await rotate(backend, JWT_PATH, "secret", lambda: "s2")

        assert (await backend.read(JWT_PATH)).data == {"algorithm": "HS256"}

    @pytest.mark.asyncio
    async def test_concurrent_rotations_in_process_are_serialized(self, backend):
        await backend.write(JWT_PATH, {"secret": "key-0"})
        generator = counter_generator()

        await asyncio.gather(*(rotate(backend, JWT_PATH, "secret", generator) for _ in range(5)))

        data = (await backend.read(JWT_PATH)).data
        assert data["secret"] == "key-5"
        assert data["previous_secret"] == "key-4"

    @pytest.mark.asyncio
    async def test_external_writer_causes_conflict(self, backend):
        await backend.write(JWT_PATH, {"secret": "s1"})
        original_read = backend.read

        async def read_then_race(path):
            document = await original_read(path)
            # Another process rotates between our read and write
            await backend.write(path, {"secret": "other", "previous_secret": "s1"})
            return document

        metrics = MetricsCollector("vault-service")
        with patch.object(backend, "read", AsyncMock(side_effect=read_then_race)):
            with pytest.raises(Conflict):
                await rotate(backend, JWT_PATH, "secret", lambda: "s2", metrics=metrics)

        assert (await backend.read(JWT_PATH)).data["secret"] == "other"
        assert metrics.sample("rotations_total", path=JWT_PATH, outcome="conflict") == 1


class TestGatewayJwtRotation:
    """Test cases for SecretGateway.rotate_jwt_secret."""

    @pytest.mark.asyncio
    async def test_rotate_jwt_secret(self):
        backend = MemorySecretBackend()
        gateway = SecretGateway(backend)
        await gateway.write("jwt", {"secret": "s1", "algorithm": "HS256"})

        await gateway.rotate_jwt_secret()

        data = await gateway.read("jwt")
        assert data["secret"] != "s1"
        assert len(data["secret"]) == 128
        assert data["previous_secret"] == "s1"
        assert data["algorithm"] == "HS256"

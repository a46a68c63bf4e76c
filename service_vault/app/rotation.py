"""
Secret rotation.

A rotation replaces one field of a document with fresh material and keeps
exactly one previous value under ``previous_<field>`` so consumers can
verify against both during the overlap window.
"""

import asyncio
import weakref
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from shared.errors import Conflict, GatewayException, NotFound
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import get_tracer

from .backend.base import SecretBackend


logger = get_logger("vault.rotation")
tracer = get_tracer("vault.rotation")

# Per backend, per path
_path_locks: "weakref.WeakKeyDictionary[SecretBackend, Dict[str, asyncio.Lock]]" = weakref.WeakKeyDictionary()


def _lock_for(backend: SecretBackend, path: str) -> asyncio.Lock:
    locks = _path_locks.setdefault(backend, {})
    lock = locks.get(path)
    if lock is None:
        lock = locks[path] = asyncio.Lock()
    return lock


def previous_field(field: str) -> str:
    return f"previous_{field}"


async def rotate(backend: SecretBackend,
                 path: str,
                 field: str,
                 generator: Callable[[], str],
                 metrics: Optional[MetricsCollector] = None) -> int:
    """
    Rotate ``field`` of the document at ``path``.

    Rotations of one path are serialized inside the process. The write is
    a check-and-set against the version that was read, so a writer in
    another process makes this raise ``Conflict`` rather than lose a key.
    Returns the new document version.
    """
    with tracer.start_as_current_span("rotation.rotate") as span:
        span.set_attribute("secret.path", path)
        async with _lock_for(backend, path):
            try:
                version = await _rotate_once(backend, path, field, generator)
            except GatewayException as e:
                _record(metrics, path, e.code.lower())
                raise
            _record(metrics, path, "success")
            return version


async def _rotate_once(backend: SecretBackend, path: str, field: str,
                       generator: Callable[[], str]) -> int:
    current = await backend.read(path)
    if field not in current.data:
        raise NotFound(f"No field '{field}' at {path}")

    rotated = dict(current.data)
    rotated[previous_field(field)] = current.data[field]
    rotated[field] = generator()
    rotated["rotated_at"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    try:
        version = await backend.write(path, rotated, cas=current.version)
    except Conflict:
        logger.warning("Rotation lost a concurrent write", path=path, field=field)
        raise

    logger.info("Secret rotated", path=path, field=field, version=version)
    return version


def _record(metrics: Optional[MetricsCollector], path: str, outcome: str) -> None:
    if metrics is not None:
        metrics.increment_counter("rotations_total", path=path, outcome=outcome)

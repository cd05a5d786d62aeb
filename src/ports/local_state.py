"""LocalStatePort - client-side key-value persistence.

Soft dependency. Mirrors the browser-local store the web client keeps:
a serialized "current user" object whose currentOrganization is used to
recover the organization context after a reload. Never the source of truth.

Real implementation: src/infra/cache/redis.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class LocalStatePort(ABC):
    """Port: JSON values by key, scoped to one client session."""

    @abstractmethod
    async def put(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> None:
        """Store a JSON-serializable value with optional TTL (seconds)."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent or expired."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key (no-op if absent)."""

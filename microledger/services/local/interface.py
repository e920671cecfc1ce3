"""
Abstract Local Store Interface

DESIGN DECISION: The local cache is a plain string-keyed store, the
same shape as a browser's localStorage. This allows us to:
1. Keep state across process restarts with nothing but a directory
2. Use an in-memory store for testing
3. Swap in a different persistence layer without touching sync logic

Values are JSON documents. A value that no longer parses is reported
as corrupted so the caller can discard that one key.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional


class LocalStoreInterface(ABC):
    """
    Abstract interface for the local durable store.

    All operations are synchronous and durable on return.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the raw value stored under a key.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store a value under a key, replacing any previous value.

        Raises:
            LocalStoreError: If the value could not be persisted
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List stored keys."""
        pass

    def read_json(self, key: str) -> Any:
        """
        Read and decode a JSON value.

        Returns:
            The decoded value, or None if the key is absent

        Raises:
            CorruptedValueError: If the stored value is not valid JSON
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptedValueError(key, str(e)) from e

    def write_json(self, key: str, value: Any) -> None:
        """Encode a value as JSON and store it."""
        self.set(key, json.dumps(value, ensure_ascii=False))


class LocalStoreError(Exception):
    """Base exception for local store operations."""
    pass


class CorruptedValueError(LocalStoreError):
    """A stored value could not be decoded."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupted value under '{key}': {reason}")

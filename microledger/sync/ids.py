"""
Unique Identifier Generator

Records are created on devices that may be offline for days, so ids
are minted locally with no coordination. Dedup, queue matching and
merge all key on these ids: two devices minting the same id would
silently merge unrelated records.

Preferred form: ``{prefix}-{uuid4}`` (122 random bits from the OS CSPRNG).

Fallback, when the OS has no strong randomness source:
``{prefix}-{millis}-{device suffix}-{short random}``. The device id is
derived once and persisted in the local store, so two devices minting
in the same millisecond still differ.
"""

import random
import time
import uuid
from typing import Optional

from microledger.services.local import LocalStoreInterface


DEVICE_ID_KEY = "device_id"


class IdentifierGenerator:
    """Mints collision-resistant record identifiers."""

    def __init__(
        self,
        local_store: Optional[LocalStoreInterface] = None,
        prefer_strong: bool = True,
    ):
        """
        Args:
            local_store: Where the fallback device id is persisted.
            prefer_strong: Use uuid4 when the OS provides randomness.
                           False forces the fallback scheme.
        """
        self._store = local_store
        self._prefer_strong = prefer_strong
        self._device_id: Optional[str] = None
        self._rng = random.Random()

    def generate(self, prefix: str) -> str:
        """Return a new identifier like ``CUST-4f9c...``."""
        if self._prefer_strong:
            try:
                return f"{prefix}-{uuid.uuid4()}"
            except NotImplementedError:
                # os.urandom has no source on this platform
                pass
        return self._fallback(prefix)

    @property
    def device_id(self) -> str:
        """Stable per-device identifier, created on first use."""
        if self._device_id is None:
            stored = self._store.get(DEVICE_ID_KEY) if self._store else None
            if stored:
                self._device_id = stored
            else:
                self._device_id = f"{uuid.getnode():012x}{self._rng.getrandbits(32):08x}"
                if self._store:
                    self._store.set(DEVICE_ID_KEY, self._device_id)
        return self._device_id

    def _fallback(self, prefix: str) -> str:
        millis = int(time.time() * 1000)
        short_random = f"{self._rng.getrandbits(24):06x}"
        return f"{prefix}-{millis}-{self.device_id[-8:]}-{short_random}"

"""Short-lived cache of peers' published public key bundles."""

import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from ..keys import PublicKeyBundle


class PublicKeyCache:
    """
    Caches the bundle fetched from the profile store for each user.

    Entries expire ``ttl`` after they are stored, so a peer's rotated keys
    are picked up without a profile-changed notification. Expiry uses a
    monotonic clock; wall-clock changes never extend an entry.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._bundles: Dict[str, Tuple[PublicKeyBundle, float]] = {}

    def store(self, user_id: str, keys: PublicKeyBundle) -> None:
        if self._ttl <= 0:
            return
        self._bundles[user_id] = (keys, self._clock() + self._ttl)

    def retrieve(self, user_id: str) -> Optional[PublicKeyBundle]:
        """Return the cached bundle, or None when absent or expired."""
        cached = self._bundles.get(user_id)
        if cached is None:
            return None
        keys, deadline = cached
        if self._clock() >= deadline:
            del self._bundles[user_id]
            return None
        return keys

    def invalidate(self, user_id: str) -> None:
        self._bundles.pop(user_id, None)

    def clear(self) -> None:
        self._bundles.clear()

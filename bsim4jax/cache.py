"""Size-dependent parameter cache.

Devices sharing a model and a drawn geometry share one derivation of the
binned, size-scaled parameters. The cache is owned by the model and is
cleared whenever the model is set up again or its temperature changes.
"""

import threading
from typing import Any, Callable, Dict, Optional, Tuple

from bsim4jax.logging import logger

SizeKey = Tuple[float, float, float]


def size_key(w: float, l: float, nf: float) -> SizeKey:
    """Cache key for a drawn geometry (width, length, number of fingers)."""
    return (float(w), float(l), float(nf))


class SizeParameterCache:
    """Map from (w, l, nf) to a derived SizeDependentParameters record.

    Every access holds one lock, so devices evaluated from several threads
    share a single derivation per geometry.

    The stored records are never mutated: devices take a copy before
    applying their own layout-stress corrections.
    """

    def __init__(self):
        self._entries: Dict[SizeKey, Any] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def lookup(self, key: SizeKey) -> Optional[Any]:
        """Return the cached record for ``key``, or None."""
        with self._lock:
            return self._entries.get(key)

    def store(self, key: SizeKey, record: Any) -> Any:
        """Store ``record`` unless another caller stored one first.

        Returns the record that ends up in the cache.
        """
        with self._lock:
            return self._entries.setdefault(key, record)

    def get(self, key: SizeKey, derive: Callable[[], Any]) -> Any:
        """Return the record for ``key``, calling ``derive()`` on a miss."""
        with self._lock:
            record = self._entries.get(key)
            if record is not None:
                self.hits += 1
                logger.debug(f"size cache hit for w={key[0]:g} l={key[1]:g} nf={key[2]:g}")
                return record
            self.misses += 1
            logger.debug(f"size cache miss for w={key[0]:g} l={key[1]:g} nf={key[2]:g}")
            record = derive()
            self._entries[key] = record
            return record

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: SizeKey) -> bool:
        with self._lock:
            return key in self._entries

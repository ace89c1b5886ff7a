"""
Session-scoped cache of base values fetched during a single batch.

Lets every salary bucket of a filter group reuse the same three fetched counts
instead of requesting each bucket separately. There is no eviction or TTL: a
cache belongs to exactly one batch and is cleared before the batch starts.
"""

import threading
from typing import Dict, Optional

from loguru import logger


class SessionCache:
    def __init__(self):
        self._values: Dict[str, int] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: int) -> None:
        with self._lock:
            self._values[key] = value
        logger.debug(f"Cache PUT: {key} = {value}")

    def get(self, key: str) -> Optional[int]:
        with self._lock:
            value = self._values.get(key)
        if value is not None:
            logger.debug(f"Cache HIT: {key} = {value}")
        else:
            logger.debug(f"Cache MISS: {key}")
        return value

    def clear(self) -> None:
        with self._lock:
            previous_size = len(self._values)
            self._values.clear()
        logger.info(f"Cache cleared ({previous_size} entries removed)")

    def size(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._values

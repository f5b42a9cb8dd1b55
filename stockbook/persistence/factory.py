from __future__ import annotations

import logging
from functools import lru_cache

from stockbook.core.config import get_settings
from stockbook.persistence.memory_store import MemoryFabricStore
from stockbook.persistence.sql_store import SqlFabricStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _memory_store() -> MemoryFabricStore:
    logger.warning("using in-process memory fabric store; stock is lost on restart")
    return MemoryFabricStore()


def get_store() -> SqlFabricStore | MemoryFabricStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        return _memory_store()
    return SqlFabricStore()

"""
Creation-Ordered ID Generator for P2P records
Produces opaque, unique identifiers whose lexical order follows creation order
"""

import logging
import secrets
import threading
import time
from enum import Enum
from typing import Dict

logger = logging.getLogger(__name__)


class EntityType(Enum):
    """Entity types for ID generation"""
    ORDER = "order"
    TRADE = "trade"
    MESSAGE = "msg"


class IDGenerator:
    """
    Hybrid timestamp + sequence + random identifiers.

    Layout: ``<prefix>_<13-digit epoch ms><4-digit sequence><4 hex chars>``.
    The timestamp never moves backwards per entity type, and the sequence
    disambiguates ids minted within the same millisecond.
    """

    MAX_SEQUENCE = 9999

    def __init__(self):
        self._lock = threading.Lock()
        self._last_timestamp: Dict[EntityType, int] = {}
        self._sequence: Dict[EntityType, int] = {}

    def generate_id(self, entity_type: EntityType) -> str:
        with self._lock:
            now_ms = time.time_ns() // 1_000_000
            last_ms = self._last_timestamp.get(entity_type, 0)

            if now_ms <= last_ms:
                now_ms = last_ms
                sequence = self._sequence.get(entity_type, 0) + 1
                if sequence > self.MAX_SEQUENCE:
                    now_ms += 1
                    sequence = 0
            else:
                sequence = 0

            self._last_timestamp[entity_type] = now_ms
            self._sequence[entity_type] = sequence

        return f"{entity_type.value}_{now_ms:013d}{sequence:04d}{secrets.token_hex(2)}"


id_generator = IDGenerator()

"""
P2P Repositories
In-memory order and trade collections with write-through persistence to a
key/value store. The collections are the source of truth while the process
runs; the store only makes them durable.
"""

import logging
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from config import Config
from models import Order, Trade
from services.p2p_store import KeyValueStore, KeyValueStoreError
from utils.json_serialization import dumps_collection, loads_collection

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Order, Trade)


class _CollectionRepository(Generic[RecordT]):
    """Ordered collection persisted as one JSON array under a fixed key"""

    entity_name = "record"

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        parse_record: Callable[[Dict], RecordT],
    ):
        self.store = store
        self.key = key
        self._parse_record = parse_record
        self._records: List[RecordT] = []
        self._index: Dict[str, RecordT] = {}
        # Stored items that failed to parse; written back untouched on save
        self._unreadable: List[Any] = []
        self.load_failed = False

    async def load(self) -> int:
        """
        Replace the in-memory collection with the stored one.

        Records that fail to parse are skipped and kept aside so a later save
        writes them back unchanged. If the store or the payload as a whole
        cannot be read, the collection starts empty and saves are refused so
        the stored payload is not overwritten.
        """
        records: List[RecordT] = []
        unreadable: List[Any] = []
        try:
            payload = await self.store.get(self.key)
            items = loads_collection(payload)
        except (KeyValueStoreError, ValueError) as e:
            logger.error(f"❌ P2P_LOAD_FAILED: {self.key}: {e}")
            items = []
            self.load_failed = True
        else:
            self.load_failed = False

        seen = set()
        for item in items:
            try:
                record = self._parse_record(item)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.error(f"❌ P2P_RECORD_SKIPPED: {self.key}: {e}")
                unreadable.append(item)
                continue
            if record.id in seen:
                logger.warning(f"⚠️ P2P_DUPLICATE_RECORD: {self.key}: {record.id}")
                unreadable.append(item)
                continue
            seen.add(record.id)
            records.append(record)

        self._records = records
        self._index = {record.id: record for record in records}
        self._unreadable = unreadable
        logger.info(
            f"📥 P2P_LOADED: {len(records)} {self.entity_name}s from {self.key}"
            f" ({len(unreadable)} unreadable)"
        )
        return len(records)

    async def save(self) -> bool:
        """
        Write the full collection to the store.

        A write failure is logged and does not roll back in-memory state.
        """
        if self.load_failed:
            logger.error(f"❌ P2P_SAVE_REFUSED: {self.key} could not be loaded, stored payload left intact")
            return False
        try:
            items = [record.to_dict() for record in self._records] + self._unreadable
            await self.store.set(self.key, dumps_collection(items))
            return True
        except (KeyValueStoreError, OSError) as e:
            logger.error(f"❌ P2P_SAVE_FAILED: {self.key}: {e}")
            return False

    def add(self, record: RecordT) -> RecordT:
        if record.id in self._index:
            raise ValueError(f"Duplicate {self.entity_name} id: {record.id}")
        self._records.append(record)
        self._index[record.id] = record
        return record

    def get(self, record_id: str) -> Optional[RecordT]:
        return self._index.get(record_id)

    def all(self) -> List[RecordT]:
        """All records in creation order (shallow copy of the list)"""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


class OrderRepository(_CollectionRepository[Order]):
    entity_name = "order"

    def __init__(self, store: KeyValueStore, key: Optional[str] = None):
        super().__init__(store, key or Config.P2P_ORDERS_KEY, Order.from_dict)

    def owned_by(self, user_id: str) -> List[Order]:
        return [order for order in self._records if order.owner_id == user_id]


class TradeRepository(_CollectionRepository[Trade]):
    entity_name = "trade"

    def __init__(self, store: KeyValueStore, key: Optional[str] = None):
        super().__init__(store, key or Config.P2P_TRADES_KEY, Trade.from_dict)

    def for_party(self, user_id: str) -> List[Trade]:
        return [trade for trade in self._records if trade.is_party(user_id)]


async def persist_collections(orders: OrderRepository, trades: TradeRepository) -> bool:
    """Persist both collections; returns False if either write failed"""
    orders_saved = await orders.save()
    trades_saved = await trades.save()
    return orders_saved and trades_saved

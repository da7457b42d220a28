"""
MongoDB access for products, orders and stored insight reports.

Besides the usual CRUD helpers, the store exposes live subscriptions: a
listener pushes the whole collection snapshot to a callback once at start and
again every time the collection changes.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from bson.objectid import ObjectId
from pymongo import DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from models import Order, OrderStatus, Product

logger = logging.getLogger(__name__)


def _object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


class CollectionListener(threading.Thread):
    """Background thread delivering collection snapshots to a callback.

    A change stream is used when the server supports it (replica sets and
    Atlas clusters). Otherwise the error is reported once and the listener
    polls, only calling back when the snapshot differs from the last one.
    """

    def __init__(self, collection, load: Callable[[], list], on_change: Callable[[list], None],
                 on_error: Optional[Callable[[Exception], None]] = None,
                 poll_interval: float = 5.0, max_await_ms: int = 1000) -> None:
        super().__init__(name=f'listener-{collection.name}', daemon=True)
        self.collection = collection
        self.load = load
        self.on_change = on_change
        self.on_error = on_error
        self.poll_interval = poll_interval
        self.max_await_ms = max_await_ms
        self._stop_event = threading.Event()
        self._last: Optional[list] = None

    def run(self) -> None:
        try:
            self._emit(self.load())
        except PyMongoError as exc:
            self._report(exc)

        try:
            self._watch()
        except PyMongoError as exc:
            if self._stop_event.is_set():
                return
            logger.warning('Change stream unavailable on %s, polling instead: %s', self.collection.name, exc)
            self._report(exc)
            self._poll()

    def stop(self) -> None:
        self._stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=self.poll_interval + self.max_await_ms / 1000.0 + 1)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _watch(self) -> None:
        with self.collection.watch(max_await_time_ms=self.max_await_ms) as stream:
            while not self._stop_event.is_set():
                if stream.try_next() is None:
                    continue
                self._emit(self.load())

    def _poll(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                snapshot = self.load()
            except PyMongoError as exc:
                self._report(exc)
                continue
            if snapshot != self._last:
                self._emit(snapshot)

    def _emit(self, snapshot: list) -> None:
        if self._stop_event.is_set():
            return
        self._last = snapshot
        self.on_change(snapshot)

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)
        else:
            logger.error('Listener on %s failed: %s', self.collection.name, exc)


class StoreDatabase:
    """Products, orders and insight reports stored in one Mongo database."""

    def __init__(self, db) -> None:
        self.db = db
        self.products = db['products']
        self.orders = db['orders']
        self.insights = db['insights']

    @classmethod
    def from_uri(cls, uri: str, name: str, timeout_ms: int = 5000) -> 'StoreDatabase':
        client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        return cls(client[name])

    # ==================== PRODUCTS ====================
    def list_products(self) -> list[Product]:
        cursor = self.products.find().sort('created_at', DESCENDING)
        return [Product.from_document(doc) for doc in cursor]

    def get_product(self, product_id: Any) -> Optional[Product]:
        oid = _object_id(product_id)
        if oid is None:
            return None
        doc = self.products.find_one({'_id': oid})
        return Product.from_document(doc) if doc else None

    def add_product(self, product: Product) -> str:
        doc = product.to_document()
        doc['updated_at'] = datetime.now()
        result = self.products.insert_one(doc)
        product.id = str(result.inserted_id)
        logger.info('Product "%s" added (%s)', product.name, product.id)
        return product.id

    def update_product(self, product_id: Any, fields: dict[str, Any]) -> bool:
        oid = _object_id(product_id)
        if oid is None:
            return False
        update = {k: v for k, v in fields.items() if k not in ('_id', 'id', 'created_at')}
        update['updated_at'] = datetime.now()
        result = self.products.update_one({'_id': oid}, {'$set': update})
        return result.matched_count > 0

    def delete_product(self, product_id: Any) -> bool:
        oid = _object_id(product_id)
        if oid is None:
            return False
        return self.products.delete_one({'_id': oid}).deleted_count > 0

    # ==================== ORDERS ====================
    def list_orders(self) -> list[Order]:
        cursor = self.orders.find().sort('created_at', DESCENDING)
        return [Order.from_document(doc) for doc in cursor]

    def get_order(self, order_id: Any) -> Optional[Order]:
        oid = _object_id(order_id)
        if oid is None:
            return None
        doc = self.orders.find_one({'_id': oid})
        return Order.from_document(doc) if doc else None

    def add_order(self, order: Order) -> str:
        result = self.orders.insert_one(order.to_document())
        order.id = str(result.inserted_id)
        logger.info('Order %s created for "%s" (%s DZD)', order.id, order.product_name, order.total_price)
        return order.id

    def update_order_status(self, order_id: Any, status: Any) -> bool:
        oid = _object_id(order_id)
        if oid is None:
            return False
        status = OrderStatus.parse(status)
        result = self.orders.update_one(
            {'_id': oid},
            {'$set': {'status': status.value, 'updated_at': datetime.now()}}
        )
        return result.matched_count > 0

    def mark_order_notified(self, order_id: Any, notified: bool) -> None:
        oid = _object_id(order_id)
        if oid is not None:
            self.orders.update_one({'_id': oid}, {'$set': {'notified': bool(notified)}})

    def delete_order(self, order_id: Any) -> bool:
        oid = _object_id(order_id)
        if oid is None:
            return False
        return self.orders.delete_one({'_id': oid}).deleted_count > 0

    # ==================== INSIGHT REPORTS ====================
    def save_insight(self, text: str) -> dict[str, Any]:
        doc = {'text': text, 'created_at': datetime.now()}
        self.insights.insert_one(doc)
        return doc

    def latest_insight(self) -> Optional[dict[str, Any]]:
        docs = list(self.insights.find().sort('created_at', DESCENDING).limit(1))
        return docs[0] if docs else None

    # ==================== LIVE SUBSCRIPTIONS ====================
    def listen_to_products(self, on_change: Callable[[list[Product]], None],
                           on_error: Optional[Callable[[Exception], None]] = None,
                           poll_interval: float = 5.0) -> Callable[[], None]:
        return self._listen(self.products, self.list_products, on_change, on_error, poll_interval)

    def listen_to_orders(self, on_change: Callable[[list[Order]], None],
                         on_error: Optional[Callable[[Exception], None]] = None,
                         poll_interval: float = 5.0) -> Callable[[], None]:
        return self._listen(self.orders, self.list_orders, on_change, on_error, poll_interval)

    @staticmethod
    def _listen(collection, load, on_change, on_error, poll_interval) -> Callable[[], None]:
        listener = CollectionListener(collection, load, on_change, on_error, poll_interval=poll_interval)
        listener.start()
        return listener.stop

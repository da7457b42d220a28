"""Tests for the Mongo store and its live listeners."""

import threading
import time
from unittest.mock import MagicMock

import pytest
from pymongo.errors import OperationFailure

from database import CollectionListener
from models import Order, OrderStatus, Product


def wait_for(condition, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def make_order(store, product):
    order = Order.for_product(product, 'Yacine', '0770123456', 'وهران', 'Bir El Djir')
    store.add_order(order)
    return order


class TestProducts:
    def test_list_products_newest_first(self, store, sample_products):
        names = [p.name for p in store.list_products()]
        assert names == ['Royal Oak Silver', 'Classic Leather Gold', 'Chrono Sport Black']

    def test_add_product_assigns_id(self, store):
        product = Product(name='Diver Pro 300', price=11200, category='Sport')
        product_id = store.add_product(product)

        assert product.id == product_id
        assert store.get_product(product_id).name == 'Diver Pro 300'

    def test_get_product_with_bad_id(self, store):
        assert store.get_product('not-an-id') is None
        assert store.get_product('5f1d7f5e9d3b2a1c4e8b4567') is None

    def test_update_product(self, store, sample_products):
        product = sample_products[1]
        assert store.update_product(product.id, {'price': 8900, 'old_price': None, 'id': 'ignored'})

        updated = store.get_product(product.id)
        assert updated.price == 8900
        assert not updated.has_discount

    def test_update_missing_product(self, store):
        assert store.update_product('5f1d7f5e9d3b2a1c4e8b4567', {'price': 1}) is False

    def test_delete_product(self, store, sample_products):
        assert store.delete_product(sample_products[0].id)
        assert store.get_product(sample_products[0].id) is None
        assert store.delete_product(sample_products[0].id) is False


class TestOrders:
    def test_order_round_trip(self, store, sample_products):
        order = make_order(store, sample_products[0])
        saved = store.get_order(order.id)

        assert saved.customer_name == 'Yacine'
        assert saved.status is OrderStatus.PENDING
        assert saved.total_price == 18500 + 600
        assert saved.notified is False

    def test_update_status(self, store, sample_products):
        order = make_order(store, sample_products[0])
        assert store.update_order_status(order.id, 'SHIPPED')
        assert store.get_order(order.id).status is OrderStatus.SHIPPED

    def test_update_status_rejects_unknown_value(self, store, sample_products):
        order = make_order(store, sample_products[0])
        with pytest.raises(ValueError):
            store.update_order_status(order.id, 'lost')

    def test_mark_notified(self, store, sample_products):
        order = make_order(store, sample_products[0])
        store.mark_order_notified(order.id, True)
        assert store.get_order(order.id).notified is True

    def test_delete_order(self, store, sample_products):
        order = make_order(store, sample_products[0])
        assert store.delete_order(order.id)
        assert store.list_orders() == []


def test_latest_insight(store):
    assert store.latest_insight() is None
    store.save_insight('first')
    time.sleep(0.01)
    store.save_insight('second')
    assert store.latest_insight()['text'] == 'second'


class TestCollectionListener:
    def make_collection(self):
        collection = MagicMock()
        collection.name = 'products'
        return collection

    def test_change_stream_emits_initial_and_changed_snapshots(self):
        collection = self.make_collection()
        pending_changes = [{'operationType': 'insert'}]

        def try_next():
            if pending_changes:
                return pending_changes.pop()
            time.sleep(0.01)
            return None

        stream = MagicMock()
        stream.__enter__.return_value = stream
        stream.try_next.side_effect = try_next
        collection.watch.return_value = stream

        loads = iter([['a'], ['a', 'b']])
        snapshots = []
        listener = CollectionListener(collection, lambda: next(loads, ['a', 'b']), snapshots.append)
        listener.start()
        try:
            assert wait_for(lambda: len(snapshots) >= 2)
        finally:
            listener.stop()

        assert snapshots[:2] == [['a'], ['a', 'b']]
        assert listener.stopped

    def test_falls_back_to_polling_when_streams_unsupported(self):
        collection = self.make_collection()
        collection.watch.side_effect = OperationFailure('The $changeStream stage is only supported on replica sets')

        loads = iter([['a'], ['a'], ['a', 'b']])
        snapshots = []
        errors = []
        listener = CollectionListener(collection, lambda: next(loads, ['a', 'b']), snapshots.append,
                                      on_error=errors.append, poll_interval=0.01)
        listener.start()
        try:
            assert wait_for(lambda: len(snapshots) >= 2)
        finally:
            listener.stop()

        # Unchanged snapshots are not delivered twice.
        assert snapshots == [['a'], ['a', 'b']]
        assert len(errors) == 1

    def test_stop_from_store_subscription(self, store):
        delivered = threading.Event()
        store.products.watch = MagicMock(side_effect=OperationFailure('no replica set'))

        unsubscribe = store.listen_to_products(lambda snapshot: delivered.set(), on_error=lambda exc: None,
                                               poll_interval=0.01)
        try:
            assert delivered.wait(2)
        finally:
            unsubscribe()

"""Shared fixtures: an in-memory Mongo store and Flask test clients."""

from datetime import datetime, timedelta

import mongomock
import pytest
from werkzeug.security import generate_password_hash

import app as store_app
from database import StoreDatabase
from models import Product

ADMIN_PASSWORD = 'test-secret'


@pytest.fixture
def store():
    return StoreDatabase(mongomock.MongoClient()['amstore_test'])


@pytest.fixture
def sample_products(store):
    """Three watches; the first one listed is the newest."""
    now = datetime.now()
    products = [
        Product(name='Royal Oak Silver', price=18500, old_price=22000, category='Luxury',
                description='Steel luxury watch', color='فضي', created_at=now),
        Product(name='Classic Leather Gold', price=9500, category='Classic',
                description='Leather strap classic', created_at=now - timedelta(minutes=1)),
        Product(name='Chrono Sport Black', price=7900, old_price=9900, category='Sport',
                description='Rubber strap chronograph', created_at=now - timedelta(minutes=2)),
    ]
    for product in products:
        store.add_product(product)
    return products


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(store_app, 'store', store)
    monkeypatch.setattr(store_app, 'ADMIN_PASSWORD_HASH', generate_password_hash(ADMIN_PASSWORD))
    store_app.app.config['TESTING'] = True
    with store_app.app.test_client() as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess['is_admin'] = True
    return client

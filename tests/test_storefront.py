import json
from unittest.mock import MagicMock

from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

import app as store_app
from models import Product


def page(response):
    return response.get_data(as_text=True)


def test_home_lists_all_watches(client, sample_products):
    response = client.get('/')
    html = page(response)

    assert response.status_code == 200
    for product in sample_products:
        assert product.name in html
    assert 'تخفيض حصري' in html
    assert '18,500 دج' in html


def test_category_filter(client, sample_products):
    html = page(client.get('/?category=Sport'))

    assert 'Chrono Sport Black' in html
    assert 'Royal Oak Silver' not in html
    assert 'Classic Leather Gold' not in html


def test_sort_by_price_ascending(client, sample_products):
    html = page(client.get('/?sort=price-asc'))
    positions = [html.index(name) for name in ('Chrono Sport Black', 'Classic Leather Gold', 'Royal Oak Silver')]
    assert positions == sorted(positions)


def test_empty_category_message(client, sample_products):
    html = page(client.get('/?category=Diving'))
    assert 'لا توجد موديلات في هذا التصنيف حالياً.' in html


def test_database_failure_shows_banner(client, monkeypatch):
    monkeypatch.setattr(store_app.store, 'list_products',
                        MagicMock(side_effect=ServerSelectionTimeoutError('no servers')))

    response = client.get('/')

    assert response.status_code == 200
    assert store_app.DB_ERROR_MESSAGE in page(response)


def test_products_api(client, sample_products):
    data = client.get('/api/products?sort=price-desc').get_json()

    assert data['success'] is True
    assert data['categories'] == ['الكل', 'Luxury', 'Classic', 'Sport']
    assert [p['name'] for p in data['products']] == ['Royal Oak Silver', 'Classic Leather Gold', 'Chrono Sport Black']
    assert data['products'][0]['old_price'] == 22000


def test_products_api_database_failure(client, monkeypatch):
    monkeypatch.setattr(store_app.store, 'list_products',
                        MagicMock(side_effect=ServerSelectionTimeoutError('no servers')))

    response = client.get('/api/products')

    assert response.status_code == 503
    assert response.get_json()['success'] is False


def test_unknown_page(client):
    response = client.get('/no-such-page')
    assert response.status_code == 404


def test_order_stream_requires_admin(client):
    response = client.get('/api/stream/orders')
    assert response.status_code == 401


def fake_listen(snapshot, error=None):
    unsubscribe = MagicMock()

    def listen(on_change, on_error):
        on_change(snapshot)
        if error is not None:
            on_error(error)
        return unsubscribe

    return listen, unsubscribe


def test_stream_frames_and_unsubscribe():
    listen, unsubscribe = fake_listen([Product(name='Diver Pro 300', price=11200, id='p1')],
                                      OperationFailure('no replica set'))
    stream = store_app.stream_snapshots(listen, store_app.product_to_json)

    first = next(stream)
    second = next(stream)

    assert first.startswith('data: ')
    assert json.loads(first[len('data: '):])[0]['name'] == 'Diver Pro 300'
    assert second.startswith('event: warning\n')
    assert 'no replica set' in second
    unsubscribe.assert_not_called()

    stream.close()
    unsubscribe.assert_called_once()


def test_product_stream_route(client, store, sample_products, monkeypatch):
    listen, unsubscribe = fake_listen(store.list_products())
    monkeypatch.setattr(store, 'listen_to_products', listen)

    response = client.get('/api/stream/products')
    chunk = next(response.iter_encoded()).decode('utf-8')

    assert response.mimetype == 'text/event-stream'
    names = [p['name'] for p in json.loads(chunk[len('data: '):])]
    assert names == ['Royal Oak Silver', 'Classic Leather Gold', 'Chrono Sport Black']

    response.close()
    unsubscribe.assert_called_once()


def test_price_filter_keeps_fractions():
    assert store_app.format_dzd(1234.5) == "1,234.50 دج"
    assert store_app.format_dzd(18500) == "18,500 دج"

from unittest.mock import MagicMock, patch

import pytest
import requests

from insights import FALLBACK_MESSAGE, build_insight_prompt, extract_text, get_ai_insights
from models import Order, OrderStatus, Product


@pytest.fixture
def catalog():
    products = [Product(name='Nautilus Blue Dial', price=21000, category='Luxury', id='p1')]
    orders = [Order(customer_name='Lina', phone='0661', wilaya='سطيف', baladiya='El Eulma',
                    product_name='Nautilus Blue Dial', total_price=21600, status=OrderStatus.CONFIRMED)]
    return products, orders


def gemini_reply(text):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {'candidates': [{'content': {'parts': [{'text': text}]}}]}
    return response


def test_prompt_lists_products_and_orders(catalog):
    prompt = build_insight_prompt(*catalog)
    assert 'Nautilus Blue Dial' in prompt
    assert 'سطيف' in prompt
    assert 'تم التأكيد' in prompt


def test_extract_text_requires_candidates():
    with pytest.raises(KeyError):
        extract_text({'candidates': []})


@patch('insights.requests.post')
def test_missing_key_returns_fallback(mock_post, catalog):
    with patch('insights.Config') as mock_config:
        mock_config.GEMINI_API_KEY = None
        assert get_ai_insights(*catalog) == FALLBACK_MESSAGE
    mock_post.assert_not_called()


@patch('insights.requests.post')
def test_report_text_returned(mock_post, catalog):
    mock_post.return_value = gemini_reply('  تقرير الأداء  ')

    result = get_ai_insights(*catalog, api_key='key', model='gemini-test')

    assert result == 'تقرير الأداء'
    args, kwargs = mock_post.call_args
    assert 'models/gemini-test:generateContent' in args[0]
    assert kwargs['headers'] == {'x-goog-api-key': 'key'}
    assert kwargs['json']['generationConfig']['temperature'] == 0.7
    assert 'AM Store' in kwargs['json']['systemInstruction']['parts'][0]['text']


@patch('insights.requests.post')
def test_http_failure_returns_fallback(mock_post, catalog):
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError('503 Service Unavailable')
    mock_post.return_value = response

    assert get_ai_insights(*catalog, api_key='key') == FALLBACK_MESSAGE


@patch('insights.requests.post')
def test_malformed_reply_returns_fallback(mock_post, catalog):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {'promptFeedback': {'blockReason': 'SAFETY'}}
    mock_post.return_value = response

    assert get_ai_insights(*catalog, api_key='key') == FALLBACK_MESSAGE


@patch('insights.requests.post')
def test_timeout_returns_fallback(mock_post, catalog):
    mock_post.side_effect = requests.Timeout()
    assert get_ai_insights(*catalog, api_key='key') == FALLBACK_MESSAGE

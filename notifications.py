"""New-order notifications through the Telegram Bot API."""

import html
import logging

import requests

from config import Config

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = 'https://api.telegram.org/bot{token}/sendMessage'


def format_price(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return '{:,.0f}'.format(number)
    return '{:,.2f}'.format(number)


def _esc(value):
    return html.escape(str(value or ''))


def format_order_message(order):
    e = _esc
    lines = [
        '🛍️ <b>طلب جديد - AM Store</b>',
        f'🆔 رقم الطلب: <code>{e(order.id)}</code>',
        '',
        f'👤 الاسم: {e(order.customer_name)}',
        f'📞 الهاتف: {e(order.phone)}',
        f'📍 الولاية: {e(order.wilaya)} - البلدية: {e(order.baladiya)}',
        '',
        f'⌚ المنتج: {e(order.product_name)}',
    ]
    if order.shipping_cost:
        lines.append(f'🚚 التوصيل: {format_price(order.shipping_cost)} دج')
    lines += [
        f'💰 المجموع: <b>{format_price(order.total_price)} دج</b>',
        f'📅 التاريخ: {e(order.date)}',
        f'📌 الحالة: {e(order.status.value)}',
    ]
    return '\n'.join(lines)


def send_order_to_telegram(order, token=None, chat_id=None, timeout=10):
    """Post the order to the configured chat. Returns (ok, message)."""
    token = token or Config.TELEGRAM_BOT_TOKEN
    chat_id = chat_id or Config.TELEGRAM_CHAT_ID
    if not token or not chat_id:
        logger.warning('Telegram bot not configured, order %s not forwarded', order.id)
        return False, 'Telegram not configured'

    payload = {
        'chat_id': chat_id,
        'text': format_order_message(order),
        'parse_mode': 'HTML',
        'disable_web_page_preview': True,
    }
    try:
        response = requests.post(TELEGRAM_API_URL.format(token=token), json=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.error('Telegram request failed for order %s: %s', order.id, e)
        return False, str(e)

    if response.status_code != 200:
        logger.error('Telegram replied %s for order %s: %s', response.status_code, order.id, response.text)
        return False, f'HTTP {response.status_code}'

    try:
        body = response.json()
    except ValueError:
        body = {}
    if not body.get('ok'):
        description = body.get('description', 'Unexpected Telegram response')
        logger.error('Telegram rejected order %s: %s', order.id, description)
        return False, description

    logger.info('Order %s forwarded to Telegram', order.id)
    return True, 'Notification sent'

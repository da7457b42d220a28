"""
Business-insight reports generated by the Gemini API.

The admin dashboard sends a compact snapshot of the catalog and the order
history; the model answers with a free-text strategic analysis in Arabic.
"""

import json
import logging

import requests

from config import Config

logger = logging.getLogger(__name__)

GEMINI_API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'

FALLBACK_MESSAGE = 'عذراً، نظام التحليل الذكي يواجه ضغطاً حالياً. يرجى المحاولة بعد قليل.'
EMPTY_MESSAGE = 'لا توجد تقارير متاحة حالياً.'

SYSTEM_INSTRUCTION = """
أنت المدير التنفيذي للتسويق (CMO) لمتجر AM Store للساعات الفاخرة في الجزائر.
مهمتك هي تقديم تحليل بيانات (Data-Driven Insights) عالي المستوى.
حلل المنتجات والطلبات وقدم تقريراً منظماً يشمل:
1. تحليل الأداء: (أي الساعات هي "الأكثر مبيعاً" وأيها "تحتاج دفع").
2. نصيحة لوجستية: (الولايات الأكثر تفاعلاً وكيفية تحسين التوصيل).
3. محتوى إعلاني: (اكتب جملة تسويقية جذابة لواحدة من الساعات).
اجعل الأسلوب احترافياً، ملهماً، وباللغة العربية الفصحى المعاصرة.
""".strip()


def build_insight_prompt(products, orders):
    product_rows = [
        {'id': p.id, 'name': p.name, 'price': p.price, 'category': p.category}
        for p in products
    ]
    order_rows = [
        {'status': o.status.value, 'total': o.total_price, 'wilaya': o.wilaya}
        for o in orders
    ]
    return (
        'بيانات المتجر الحالية:\n'
        f'المنتجات المتوفرة: {json.dumps(product_rows, ensure_ascii=False)}\n'
        f'سجل الطلبات الأخير: {json.dumps(order_rows, ensure_ascii=False)}\n\n'
        'قدم لي التحليل الاستراتيجي الآن.'
    )


def extract_text(data):
    """Join the text parts of the first candidate in a generateContent reply."""
    candidates = data.get('candidates') or []
    if not candidates:
        raise KeyError('No candidates found in response')
    parts = candidates[0].get('content', {}).get('parts', [])
    return ''.join(part.get('text', '') for part in parts).strip()


def get_ai_insights(products, orders, api_key=None, model=None, timeout=60):
    api_key = api_key or Config.GEMINI_API_KEY
    model = model or Config.GEMINI_MODEL
    if not api_key:
        logger.warning('GEMINI_API_KEY is not set, insight report skipped')
        return FALLBACK_MESSAGE

    payload = {
        'systemInstruction': {'parts': [{'text': SYSTEM_INSTRUCTION}]},
        'contents': [{'role': 'user', 'parts': [{'text': build_insight_prompt(products, orders)}]}],
        'generationConfig': {'temperature': 0.7},
    }

    try:
        response = requests.post(
            GEMINI_API_URL.format(model=model),
            headers={'x-goog-api-key': api_key},
            json=payload,
            timeout=timeout
        )
        response.raise_for_status()
        text = extract_text(response.json())
    except (requests.RequestException, ValueError, KeyError, AttributeError, IndexError) as e:
        logger.error('AI Error: %s', e)
        return FALLBACK_MESSAGE

    logger.info('Insight report generated with %s (%d chars)', model, len(text))
    return text

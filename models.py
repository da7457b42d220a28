"""Shared value types for the store: products, orders, wilayas and shipping costs."""

from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

ALL_CATEGORIES = 'الكل'
PRODUCT_CATEGORIES = ['Classic', 'Sport', 'Luxury']
SORT_OPTIONS = {
    'default': 'الترتيب التلقائي',
    'price-asc': 'الأقل سعراً',
    'price-desc': 'الأعلى سعراً',
}


class OrderStatus(str, enum.Enum):
    PENDING = 'قيد الانتظار'
    CONFIRMED = 'تم التأكيد'
    SHIPPED = 'تم الشحن'
    CANCELLED = 'ملغي'

    @classmethod
    def parse(cls, value: Any) -> 'OrderStatus':
        """Accept either the stored label or the member name."""
        if isinstance(value, cls):
            return value
        text = str(value or '').strip()
        for status in cls:
            if text in (status.value, status.name):
                return status
        raise ValueError(f'Unknown order status: {value!r}')


# Sales only count once the order is confirmed by phone or already on its way.
SALE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.SHIPPED)


class Wilaya(str, enum.Enum):
    ADRAR = 'أدرار'
    CHLEF = 'الشلف'
    LAGHOUAT = 'الأغواط'
    OUM_EL_BOUAGHI = 'أم البواقي'
    BATNA = 'باتنة'
    BEJAIA = 'بجاية'
    BISKRA = 'بسكرة'
    BECHAR = 'بشار'
    BLIDA = 'البليدة'
    BOUIRA = 'البويرة'
    TAMANRASSET = 'تمنراست'
    TEBESSA = 'تبسة'
    TLEMCEN = 'تلمسان'
    TIARET = 'تيارت'
    TIZI_OUZOU = 'تيزي وزو'
    ALGER = 'الجزائر'
    DJELFA = 'الجلفة'
    JIJEL = 'جيجل'
    SETIF = 'سطيف'
    SAIDA = 'سعيدة'
    SKIKDA = 'سكيكدة'
    SIDI_BEL_ABBES = 'سيدي بلعباس'
    ANNABA = 'عنابة'
    GUELMA = 'قالمة'
    CONSTANTINE = 'قسنطينة'
    MEDEA = 'المدية'
    MOSTAGANEM = 'مستغانم'
    MSILA = 'المسيلة'
    MASCARA = 'معسكر'
    OUARGLA = 'ورقلة'
    ORAN = 'وهران'
    EL_BAYADH = 'البيض'
    ILLIZI = 'إليزي'
    BORDJ_BOU_ARRERIDJ = 'برج بوعريريج'
    BOUMERDES = 'بومرداس'
    EL_TARF = 'الطارف'
    TINDOUF = 'تندوف'
    TISSEMSILT = 'تيسمسيلت'
    EL_OUED = 'الوادي'
    KHENCHELA = 'خنشلة'
    SOUK_AHRAS = 'سوق أهراس'
    TIPAZA = 'تيبازة'
    MILA = 'ميلة'
    AIN_DEFLA = 'عين الدفلى'
    NAAMA = 'النعامة'
    AIN_TEMOUCHENT = 'عين تموشنت'
    GHARDAIA = 'غرداية'
    RELIZANE = 'غليزان'
    TIMIMOUN = 'تيميمون'
    BORDJ_BADJI_MOKHTAR = 'برج باجي مختار'
    OULED_DJELLAL = 'أولاد جلال'
    BENI_ABBES = 'بني عباس'
    IN_SALAH = 'عين صالح'
    IN_GUEZZAM = 'عين قزام'
    TOUGGOURT = 'تقرت'
    DJANET = 'جانت'
    EL_MGHAIR = 'المغير'
    EL_MENIAA = 'المنيعة'

    @property
    def code(self) -> int:
        return list(Wilaya).index(self) + 1

    @property
    def label(self) -> str:
        return f'{self.code:02d} - {self.value}'

    @classmethod
    def parse(cls, value: Any) -> 'Wilaya':
        if isinstance(value, cls):
            return value
        text = str(value or '').strip()
        for wilaya in cls:
            if text in (wilaya.value, wilaya.name, wilaya.label):
                return wilaya
        raise ValueError(f'Unknown wilaya: {value!r}')


_SHIPPING_TIERS = {
    400: [Wilaya.ALGER],
    500: [Wilaya.BLIDA, Wilaya.BOUMERDES, Wilaya.TIPAZA],
    600: [
        Wilaya.CHLEF, Wilaya.BEJAIA, Wilaya.BOUIRA, Wilaya.TLEMCEN, Wilaya.TIZI_OUZOU,
        Wilaya.JIJEL, Wilaya.SETIF, Wilaya.SKIKDA, Wilaya.SIDI_BEL_ABBES, Wilaya.ANNABA,
        Wilaya.GUELMA, Wilaya.CONSTANTINE, Wilaya.MEDEA, Wilaya.MOSTAGANEM, Wilaya.MASCARA,
        Wilaya.ORAN, Wilaya.BORDJ_BOU_ARRERIDJ, Wilaya.EL_TARF, Wilaya.SOUK_AHRAS, Wilaya.MILA,
        Wilaya.AIN_DEFLA, Wilaya.AIN_TEMOUCHENT, Wilaya.RELIZANE,
    ],
    1000: [
        Wilaya.ADRAR, Wilaya.BECHAR, Wilaya.OUARGLA, Wilaya.GHARDAIA, Wilaya.EL_OUED,
        Wilaya.TIMIMOUN, Wilaya.BENI_ABBES, Wilaya.TOUGGOURT, Wilaya.EL_MGHAIR, Wilaya.EL_MENIAA,
        Wilaya.OULED_DJELLAL,
    ],
    1400: [
        Wilaya.TAMANRASSET, Wilaya.ILLIZI, Wilaya.TINDOUF, Wilaya.BORDJ_BADJI_MOKHTAR,
        Wilaya.IN_SALAH, Wilaya.IN_GUEZZAM, Wilaya.DJANET,
    ],
}

# Anything not listed (the high plateaus) ships at the default rate.
SHIPPING_COSTS: dict[Any, int] = {'default': 800}
for _cost, _wilayas in _SHIPPING_TIERS.items():
    for _wilaya in _wilayas:
        SHIPPING_COSTS[_wilaya] = _cost


def shipping_cost(wilaya: Any) -> int:
    try:
        return SHIPPING_COSTS.get(Wilaya.parse(wilaya), SHIPPING_COSTS['default'])
    except ValueError:
        return SHIPPING_COSTS['default']


def order_total(product, wilaya: Any):
    return product.price + shipping_cost(wilaya)


def parse_number(value, default=0.0):
    if value is None:
        return default
    cleaned = str(value).strip().replace(',', '').replace(' ', '')
    if not cleaned:
        return default
    try:
        return float(cleaned)
    except ValueError:
        return default


def _clean_price(value: Any) -> float:
    number = parse_number(value, 0.0)
    return int(number) if float(number).is_integer() else number


@dataclass
class Product:
    name: str
    price: float
    description: str = ''
    color: str = ''
    image: str = ''
    category: str = 'Classic'
    old_price: Optional[float] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.price = _clean_price(self.price)
        # A zero or blank old price means the product is not discounted.
        old = _clean_price(self.old_price) if self.old_price not in (None, '') else 0
        self.old_price = old or None

    @property
    def has_discount(self) -> bool:
        return bool(self.old_price)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> 'Product':
        return cls(
            id=str(doc['_id']) if doc.get('_id') is not None else None,
            name=doc.get('name', ''),
            price=doc.get('price', 0),
            old_price=doc.get('old_price'),
            description=doc.get('description', ''),
            color=doc.get('color', ''),
            image=doc.get('image', ''),
            category=doc.get('category', 'Classic'),
            created_at=doc.get('created_at'),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'price': self.price,
            'old_price': self.old_price,
            'description': self.description,
            'color': self.color,
            'image': self.image,
            'category': self.category,
            'created_at': self.created_at or datetime.now(),
        }

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> 'Product':
        """Build a product from the admin form, raising ValueError on bad input."""
        name = str(form.get('name', '') or '').strip()
        description = str(form.get('description', '') or '').strip()
        price = parse_number(form.get('price'), 0.0)
        old_price = parse_number(form.get('old_price'), 0.0)

        if not name or not description:
            raise ValueError('يرجى ملء اسم الموديل والوصف')
        if price <= 0:
            raise ValueError('السعر يجب أن يكون أكبر من صفر')
        if old_price < 0:
            raise ValueError('السعر القديم غير صالح')

        category = str(form.get('category', '') or '').strip() or 'Classic'
        return cls(
            name=name,
            price=price,
            old_price=old_price,
            description=description,
            color=str(form.get('color', '') or '').strip(),
            image=str(form.get('image', '') or '').strip(),
            category=category,
        )


@dataclass
class Order:
    customer_name: str
    phone: str
    wilaya: str
    baladiya: str
    product_name: str
    total_price: float
    date: str = ''
    status: OrderStatus = OrderStatus.PENDING
    product_id: Optional[str] = None
    product_price: float = 0
    shipping_cost: int = 0
    notified: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def for_product(cls, product: Product, customer_name: str, phone: str,
                    wilaya: Any, baladiya: str, now: Optional[datetime] = None) -> 'Order':
        """A new pending order for one product delivered to the given wilaya."""
        now = now or datetime.now()
        wilaya = Wilaya.parse(wilaya)
        shipping = shipping_cost(wilaya)
        return cls(
            customer_name=customer_name,
            phone=phone,
            wilaya=wilaya.value,
            baladiya=baladiya,
            product_id=product.id,
            product_name=product.name,
            product_price=product.price,
            shipping_cost=shipping,
            total_price=order_total(product, wilaya),
            date=now.strftime('%d/%m/%Y'),
            status=OrderStatus.PENDING,
            created_at=now,
        )

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> 'Order':
        try:
            status = OrderStatus.parse(doc.get('status'))
        except ValueError:
            status = OrderStatus.PENDING
        return cls(
            id=str(doc['_id']) if doc.get('_id') is not None else None,
            customer_name=doc.get('customer_name', ''),
            phone=doc.get('phone', ''),
            wilaya=doc.get('wilaya', ''),
            baladiya=doc.get('baladiya', ''),
            product_id=doc.get('product_id'),
            product_name=doc.get('product_name', ''),
            product_price=doc.get('product_price', 0),
            shipping_cost=doc.get('shipping_cost', 0),
            total_price=doc.get('total_price', 0),
            date=doc.get('date', ''),
            status=status,
            notified=bool(doc.get('notified', False)),
            created_at=doc.get('created_at'),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            'customer_name': self.customer_name,
            'phone': self.phone,
            'wilaya': self.wilaya,
            'baladiya': self.baladiya,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'product_price': self.product_price,
            'shipping_cost': self.shipping_cost,
            'total_price': self.total_price,
            'date': self.date,
            'status': self.status.value,
            'notified': self.notified,
            'created_at': self.created_at or datetime.now(),
        }


# ==================== CATALOG DERIVATIONS ====================
def catalog_categories(products: Iterable[Product]) -> list[str]:
    seen: list[str] = []
    for product in products:
        if product.category and product.category not in seen:
            seen.append(product.category)
    return [ALL_CATEGORIES] + seen


def filter_and_sort(products: Iterable[Product], category: Optional[str] = None,
                    sort: Optional[str] = None) -> list[Product]:
    if not category or category == ALL_CATEGORIES:
        result = list(products)
    else:
        result = [p for p in products if p.category == category]

    if sort == 'price-asc':
        result = sorted(result, key=lambda p: p.price)
    elif sort == 'price-desc':
        result = sorted(result, key=lambda p: p.price, reverse=True)
    return result


def dashboard_stats(orders: Iterable[Order], products: Iterable[Product]) -> dict[str, Any]:
    orders = list(orders)
    products = list(products)

    breakdown = Counter(o.status for o in orders)
    wilayas = Counter(o.wilaya for o in orders if o.wilaya)

    return {
        'total_sales': sum(o.total_price for o in orders if o.status in SALE_STATUSES),
        'total_orders': len(orders),
        'pending_orders': breakdown.get(OrderStatus.PENDING, 0),
        'stock_count': len(products),
        'status_breakdown': {s.value: breakdown.get(s, 0) for s in OrderStatus},
        'top_wilayas': wilayas.most_common(5),
    }

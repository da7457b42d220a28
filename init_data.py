from datetime import datetime, timedelta

from config import Config
from database import StoreDatabase
from models import Product

SAMPLE_PRODUCTS = [
    {
        'name': 'Royal Oak Silver',
        'category': 'Luxury',
        'price': 18500,
        'old_price': 22000,
        'color': 'فضي',
        'description': 'ساعة فاخرة بهيكل من الفولاذ المقاوم للصدأ وسوار مدمج، مقاومة للماء حتى 50 متر.',
        'image': 'https://images.unsplash.com/photo-1523170335258-f5ed11844a49?q=80&w=1200&auto=format&fit=crop'
    },
    {
        'name': 'Nautilus Blue Dial',
        'category': 'Luxury',
        'price': 21000,
        'old_price': 0,
        'color': 'أزرق',
        'description': 'ميناء أزرق متدرج بلمسة أنيقة، مناسبة للمناسبات الرسمية والسهرات.',
        'image': 'https://images.unsplash.com/photo-1587836374828-4dbafa94cf0e?q=80&w=1200&auto=format&fit=crop'
    },
    {
        'name': 'Classic Leather Gold',
        'category': 'Classic',
        'price': 9500,
        'old_price': 12000,
        'color': 'ذهبي',
        'description': 'تصميم كلاسيكي خالد بسوار جلدي طبيعي وعلبة بلون ذهبي.',
        'image': 'https://images.unsplash.com/photo-1524592094714-0f0654e20314?q=80&w=1200&auto=format&fit=crop'
    },
    {
        'name': 'Heritage Moonphase',
        'category': 'Classic',
        'price': 13500,
        'old_price': 0,
        'color': 'بني',
        'description': 'ساعة بمؤشر أطوار القمر وسوار جلد بني، هدية مثالية لعشاق التفاصيل.',
        'image': 'https://images.unsplash.com/photo-1508685096489-7aacd43bd3b1?q=80&w=1200&auto=format&fit=crop'
    },
    {
        'name': 'Chrono Sport Black',
        'category': 'Sport',
        'price': 7900,
        'old_price': 9900,
        'color': 'أسود',
        'description': 'كرونوغراف رياضي بسوار مطاطي مريح ومقاومة عالية للصدمات.',
        'image': 'https://images.unsplash.com/photo-1542496658-e33a6d0d50f6?q=80&w=1200&auto=format&fit=crop'
    },
    {
        'name': 'Diver Pro 300',
        'category': 'Sport',
        'price': 11200,
        'old_price': 0,
        'color': 'أخضر',
        'description': 'ساعة غوص بإطار دوار وإضاءة ليلية، مقاومة للماء حتى 300 متر.',
        'image': 'https://images.unsplash.com/photo-1533139502658-0198f920d8e8?q=80&w=1200&auto=format&fit=crop'
    },
]


def init_data(store=None):
    print("Initializing AM STORE database...")
    store = store or StoreDatabase.from_uri(Config.MONGODB_URI, Config.MONGODB_DB)

    store.products.delete_many({})
    store.orders.delete_many({})
    store.insights.delete_many({})

    # Stagger creation dates so the storefront keeps the listed order.
    now = datetime.now()
    for offset, data in enumerate(SAMPLE_PRODUCTS):
        product = Product(created_at=now - timedelta(minutes=offset), **data)
        store.add_product(product)
    print(f"✓ Created {len(SAMPLE_PRODUCTS)} sample watches")

    print("\n" + "="*60)
    print("AM STORE Database Initialization Complete!")
    print("="*60)
    print("\nAdmin access: /admin/login (password from ADMIN_PASSWORD)")
    print("\nCategories available:")
    for cat in store.products.distinct('category'):
        count = store.products.count_documents({'category': cat})
        print(f"  - {cat}: {count} products")
    print("="*60)
    return store


if __name__ == '__main__':
    init_data()

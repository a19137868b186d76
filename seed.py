"""Demo catalog for local development: categories, products and their images."""
import logging
from datetime import timedelta
from typing import Dict

from pymongo.database import Database

from database import create_document, now
from schemas import Category, Product, ProductDetailImage

logger = logging.getLogger(__name__)

CATEGORIES = [
    {"name": "Bedding", "sort_order": 1},
    {"name": "Curtains", "sort_order": 2},
    {"name": "Home Decor", "sort_order": 3},
    {"name": "Sale", "sort_order": 4},
    {"name": "New Arrivals", "sort_order": 5},
]

# (sku stem, name, base price, category index, count)
PRODUCT_LINES = [
    ("bedding", "Premium Bedding Set", 89000, 0, 5),
    ("curtain", "Blackout Curtain", 45000, 1, 4),
    ("decor", "Ceramic Vase", 32000, 2, 3),
]

IMAGE_BASE = "https://images.unsplash.com/photo-1505693416388-ac5ce068fe85?w=800&q=80"


def seed_catalog(db: Database, clear: bool = False) -> Dict[str, int]:
    if clear:
        db["product"].delete_many({})
        db["productdetailimage"].delete_many({})
        db["category"].delete_many({})

    categories = list(db["category"].find().sort("sort_order", 1))
    if not categories:
        for c in CATEGORIES:
            doc = Category(**c).model_dump()
            create_document(db, "category", doc)
            categories.append(doc)

    stores = list(db["store"].find({"status": "active"}).limit(3))
    if not stores:
        logger.info("No active stores found, seeded categories only")
        return {"categories": len(categories), "products": 0, "images": 0}

    products = images = 0
    created_at = now()
    for store in stores:
        for stem, name, base_price, category_index, count in PRODUCT_LINES:
            for i in range(1, count + 1):
                sku = f"{store['subdomain']}-{stem}-{i}"
                if db["product"].find_one({"store_id": store["_id"], "sku": sku}):
                    continue
                created_at -= timedelta(minutes=1)
                doc = Product(
                    store_id=store["_id"],
                    sku=sku,
                    name=f"{name} {i}",
                    description=f"{name} from {store.get('store_name', store['subdomain'])}",
                    price=base_price + i * 10000,
                    compare_price=int((base_price + i * 10000) * 1.3),
                    stock_quantity=10 + i * 7,
                    category_id=categories[category_index]["_id"],
                    is_featured=i <= 2,
                ).model_dump()
                doc["created_at"] = created_at
                create_document(db, "product", doc)
                products += 1
                for order, image_type in enumerate(("main", "detail", "detail")):
                    image = ProductDetailImage(
                        product_id=doc["_id"],
                        image_url=f"{IMAGE_BASE}&sig={sku}-{order}",
                        image_type=image_type,
                        sort_order=order,
                        alt_text=f"{doc['name']} image {order + 1}",
                    ).model_dump()
                    create_document(db, "productdetailimage", image)
                    images += 1

    logger.info("Seeded %d products and %d images across %d stores", products, images, len(stores))
    return {"categories": len(categories), "products": products, "images": images}

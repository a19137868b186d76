"""
Catalog reads: product listings, category listings and product detail.

Listings never query per row. A page of products costs one ``find`` on
``product``, one on ``productdetailimage`` and one batched category lookup,
plus a ``count_documents`` for the pagination block.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

import errors
from database import to_object_id

logger = logging.getLogger(__name__)

PRODUCT_SORT = [("is_featured", DESCENDING), ("created_at", DESCENDING)]
CATEGORY_SORT = [("sort_order", ASCENDING), ("name", ASCENDING)]
DEFAULT_PAGE_SIZE = 12


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def _image(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {"url": doc.get("image_url"), "type": doc.get("image_type", "main"), "alt": doc.get("alt_text")}


def _category_summary(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "parent_id": doc.get("parent_id"),
        "sort_order": doc.get("sort_order", 0),
    }


def _store_summary(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    return {
        "id": str(doc["_id"]),
        "store_name": doc.get("store_name"),
        "subdomain": doc.get("subdomain"),
        "template_type": doc.get("template_type"),
    }


def _product(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "sku": doc.get("sku"),
        "name": doc.get("name"),
        "description": doc.get("description"),
        "price": doc.get("price"),
        "compare_price": doc.get("compare_price"),
        "stock_quantity": doc.get("stock_quantity", 0),
        "is_featured": doc.get("is_featured", False),
        "view_count": doc.get("view_count", 0),
        "created_at": doc.get("created_at"),
    }


def images_by_product(db: Database, product_ids: List[ObjectId]) -> Dict[ObjectId, List[Dict[str, Any]]]:
    """Fetch the images of all given products in one query, grouped in sort order."""
    grouped: Dict[ObjectId, List[Dict[str, Any]]] = {pid: [] for pid in product_ids}
    if not product_ids:
        return grouped
    cursor = db["productdetailimage"].find({"product_id": {"$in": product_ids}}).sort(
        [("product_id", ASCENDING), ("sort_order", ASCENDING)]
    )
    for img in cursor:
        grouped.setdefault(img["product_id"], []).append(_image(img))
    return grouped


def _lookup(db: Database, collection_name: str, ids) -> Dict[ObjectId, Dict[str, Any]]:
    ids = list({i for i in ids if i is not None})
    if not ids:
        return {}
    return {doc["_id"]: doc for doc in db[collection_name].find({"_id": {"$in": ids}})}


def paginate_products(
    db: Database,
    query: Dict[str, Any],
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    with_store: bool = False,
) -> Dict[str, Any]:
    if page < 1 or limit < 1:
        raise errors.ValidationError("page and limit must be positive integers")
    query = {**query, "status": "active"}
    skip = (page - 1) * limit

    products = list(db["product"].find(query).sort(PRODUCT_SORT).skip(skip).limit(limit))
    product_ids = [p["_id"] for p in products]
    images = images_by_product(db, product_ids)
    categories = _lookup(db, "category", (p.get("category_id") for p in products))
    stores = _lookup(db, "store", (p.get("store_id") for p in products)) if with_store else {}

    items = []
    for doc in products:
        item = _product(doc)
        item["category"] = _category_summary(categories.get(doc.get("category_id")))
        item["images"] = images.get(doc["_id"], [])
        if with_store:
            item["store"] = _store_summary(stores.get(doc.get("store_id")))
        items.append(item)

    total = db["product"].count_documents(query)
    return {"products": items, "pagination": pagination(page, limit, total)}


def list_store_products(
    db: Database,
    store_id,
    category_id=None,
    featured_only: bool = False,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    store_oid = to_object_id(store_id)
    if store_oid is None:
        raise errors.ValidationError("Invalid store id", details={"store_id": str(store_id)})
    query: Dict[str, Any] = {"store_id": store_oid}
    if category_id:
        category_oid = to_object_id(category_id)
        if category_oid is None:
            raise errors.ValidationError("Invalid category id", details={"category": str(category_id)})
        query["category_id"] = category_oid
    if featured_only:
        query["is_featured"] = True
    return paginate_products(db, query, page, limit)


def list_category_products(db: Database, category_id, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    oid = to_object_id(category_id)
    category = db["category"].find_one({"_id": oid}) if oid else None
    if not category:
        raise errors.NotFound("Category not found")
    result = paginate_products(db, {"category_id": oid}, page, limit, with_store=True)
    result["category"] = {"id": str(category["_id"]), "name": category.get("name"), "parent_id": category.get("parent_id")}
    return result


def list_categories_with_counts(db: Database, status: Optional[str] = "active") -> List[Dict[str, Any]]:
    counts: Dict[ObjectId, int] = {}
    for row in db["product"].aggregate([
        {"$match": {"status": "active"}},
        {"$group": {"_id": "$category_id", "count": {"$sum": 1}}},
    ]):
        if row["_id"] is not None:
            counts[row["_id"]] = row["count"]

    category_filter = {"status": status} if status else {}
    categories = db["category"].find(category_filter).sort(CATEGORY_SORT)
    return [
        {
            "id": str(c["_id"]),
            "name": c.get("name"),
            "parent_id": c.get("parent_id"),
            "sort_order": c.get("sort_order", 0),
            "product_count": counts.get(c["_id"], 0),
            "created_at": c.get("created_at"),
        }
        for c in categories
    ]


def get_category_detail(db: Database, category_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(category_id)
    category = db["category"].find_one({"_id": oid}) if oid else None
    if not category:
        return None
    parent = db["category"].find_one({"_id": category["parent_id"]}) if category.get("parent_id") else None
    children = db["category"].find({"parent_id": oid, "status": "active"}).sort(CATEGORY_SORT)
    return {
        "id": str(category["_id"]),
        "name": category.get("name"),
        "parent": _category_summary(parent),
        "sort_order": category.get("sort_order", 0),
        "product_count": db["product"].count_documents({"category_id": oid, "status": "active"}),
        "sub_categories": [
            {"id": str(c["_id"]), "name": c.get("name"), "sort_order": c.get("sort_order", 0)}
            for c in children
        ],
        "created_at": category.get("created_at"),
        "updated_at": category.get("updated_at"),
    }


def get_product_detail(db: Database, product_id) -> Optional[Dict[str, Any]]:
    """Return one product with its category, store and images.

    The read and the view counter increment are issued concurrently, so the
    returned ``view_count`` is the stored value plus one rather than a
    re-read after the write.
    """
    oid = to_object_id(product_id)
    if oid is None:
        return None

    products = db["product"]
    with ThreadPoolExecutor(max_workers=2) as pool:
        read = pool.submit(products.find_one, {"_id": oid})
        bump = pool.submit(products.update_one, {"_id": oid}, {"$inc": {"view_count": 1}})
        product = read.result()
        bump.result()
    if not product:
        return None

    category = db["category"].find_one({"_id": product["category_id"]}) if product.get("category_id") else None
    store = db["store"].find_one({"_id": product.get("store_id")})
    images = db["productdetailimage"].find({"product_id": oid}).sort("sort_order", ASCENDING)

    detail = _product(product)
    detail.update({
        "category": _category_summary(category),
        "store": _store_summary(store),
        "view_count": product.get("view_count", 0) + 1,
        "images": [_image(img) for img in images],
        "updated_at": product.get("updated_at"),
    })
    return detail

from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from config import Settings
from database import create_document
from main import create_app

API = "/api/v1"
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="development",
        database_name="storefront_test",
        jwt_secret="test-secret",
        jwt_refresh_secret="test-refresh-secret",
        upload_dir=str(tmp_path / "uploads"),
        default_language="en",
    )


@pytest.fixture
def mongo():
    return mongomock.MongoClient()


@pytest.fixture
def app(settings, mongo):
    return create_app(settings, client=mongo)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    return app.state.db


def signup(client, email="owner@example.com", password="secret123", name="Owner"):
    res = client.post(f"{API}/auth/signup", json={"email": email, "password": password, "name": name})
    assert res.status_code == 201, res.text
    data = res.json()["data"]
    return {
        "id": data["user"]["id"],
        "token": data["token"],
        "refresh_token": data["refresh_token"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest.fixture
def owner(client):
    return signup(client)


@pytest.fixture
def other_owner(client):
    return signup(client, email="other@example.com", name="Other")


def make_store(db, subdomain="shop", user_id=None, published=True, status="active", template="Cozy"):
    user_id = user_id or ObjectId()
    brand = {"user_id": user_id, "brand_name": f"{subdomain} brand", "category": "general", "status": "active"}
    create_document(db, "brand", brand)
    store = {
        "user_id": user_id,
        "brand_id": brand["_id"],
        "store_name": f"{subdomain} store",
        "subdomain": subdomain,
        "status": status,
        "is_published": published,
        "template_type": template,
        "template_color": "#ffffff",
        "visitor_count": 0,
    }
    create_document(db, "store", store)
    return store


def make_category(db, name, sort_order=0, status="active", parent_id=None):
    doc = {"name": name, "sort_order": sort_order, "status": status, "parent_id": parent_id}
    create_document(db, "category", doc)
    return doc


def make_product(db, store, index, featured=False, status="active", category=None, images=0):
    doc = {
        "store_id": store["_id"],
        "sku": f"{store['subdomain']}-{index}",
        "name": f"Product {index}",
        "price": 1000 * index,
        "stock_quantity": 5,
        "status": status,
        "is_featured": featured,
        "view_count": 0,
        "category_id": category["_id"] if category else None,
        "created_at": BASE_TIME + timedelta(minutes=index),
    }
    create_document(db, "product", doc)
    for order in reversed(range(images)):
        create_document(db, "productdetailimage", {
            "product_id": doc["_id"],
            "image_url": f"https://cdn.example.com/{doc['sku']}-{order}.jpg",
            "image_type": "main" if order == 0 else "detail",
            "sort_order": order,
            "alt_text": f"{doc['name']} {order}",
        })
    return doc


class RecordingCollection:
    def __init__(self, collection, name, calls):
        self._collection = collection
        self._name = name
        self._calls = calls

    def __getattr__(self, attr):
        target = getattr(self._collection, attr)
        if not callable(target):
            return target

        def record(*args, **kwargs):
            self._calls.append((self._name, attr))
            return target(*args, **kwargs)
        return record


class RecordingDatabase:
    """Wraps a database and records every (collection, method) call."""

    def __init__(self, db):
        self._db = db
        self.calls = []

    def __getitem__(self, name):
        return RecordingCollection(self._db[name], name, self.calls)

    def count(self, collection, method):
        return sum(1 for call in self.calls if call == (collection, method))

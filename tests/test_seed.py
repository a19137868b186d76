import mongomock
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from seed import seed_catalog

from conftest import API, make_store


def test_seed_one_store(db):
    store = make_store(db, "bloom")

    counts = seed_catalog(db)

    assert counts == {"categories": 5, "products": 12, "images": 36}
    assert db["product"].count_documents({"store_id": store["_id"]}) == 12
    assert db["product"].count_documents({"store_id": store["_id"], "is_featured": True}) == 6
    names = [c["name"] for c in db["category"].find().sort("sort_order", 1)]
    assert names == ["Bedding", "Curtains", "Home Decor", "Sale", "New Arrivals"]


def test_seed_is_repeatable(db):
    make_store(db, "bloom")
    seed_catalog(db)

    again = seed_catalog(db)

    assert again == {"categories": 5, "products": 0, "images": 0}
    assert db["product"].count_documents({}) == 12


def test_seed_clear_rebuilds_catalog(db):
    make_store(db, "bloom")
    seed_catalog(db)
    first_ids = {p["_id"] for p in db["product"].find()}

    counts = seed_catalog(db, clear=True)

    assert counts["products"] == 12
    assert first_ids.isdisjoint({p["_id"] for p in db["product"].find()})


def test_seed_without_stores_creates_categories_only(db):
    assert seed_catalog(db) == {"categories": 5, "products": 0, "images": 0}


def test_seeded_products_are_browsable(client, db):
    store = make_store(db, "bloom")
    client.post(f"{API}/seed")

    data = client.get(f"{API}/products/store/{store['_id']}").json()["data"]

    assert data["pagination"]["total"] == 12
    assert all(len(p["images"]) == 3 for p in data["products"])
    assert data["products"][0]["is_featured"] is True


def test_seed_route_is_hidden_in_production(tmp_path):
    settings = Settings(environment="production", database_name="prod_test", upload_dir=str(tmp_path))
    with TestClient(create_app(settings, client=mongomock.MongoClient())) as client:
        res = client.post(f"{API}/seed")
        debug = client.get(f"{API}/store/debug/all")
    assert res.status_code == debug.status_code == 404
    assert res.json()["error"]["code"] == "ROUTE_NOT_FOUND"

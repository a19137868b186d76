from bson import ObjectId

from conftest import API, make_product, make_store

ONBOARDING = {
    "business": "Bloom Studio",
    "storeName": "Bloom",
    "theme": "#ff8800",
    "template": "Cozy",
    "subdomain": "bloom",
    "tagline": "Soft things",
}


def onboard(client, user, **overrides):
    res = client.post(f"{API}/onboarding/complete", json={**ONBOARDING, **overrides}, headers=user["headers"])
    assert res.status_code == 200, res.text
    return res.json()["data"]


def delete_account(client, user, **body):
    return client.request("DELETE", f"{API}/users/me", json=body, headers=user["headers"])


def test_me_before_onboarding(client, owner):
    data = client.get(f"{API}/users/me", headers=owner["headers"]).json()["data"]
    assert data["user"]["email"] == "owner@example.com"
    assert data["user"]["has_onboarded"] is False
    assert data["user"]["subdomain"] is None
    assert data["store"] is None
    assert data["brand"] is None


def test_me_after_onboarding(client, owner):
    onboard(client, owner)
    data = client.get(f"{API}/users/me", headers=owner["headers"]).json()["data"]
    assert data["user"]["business"] == "Bloom Studio"
    assert data["user"]["template"] == "Cozy"
    assert data["store"]["subdomain"] == "bloom"
    assert data["store"]["is_published"] is True
    assert data["brand"]["slogan"] == "Soft things"
    assert "password_hash" not in data["user"]


def test_update_profile(client, db, owner):
    res = client.patch(f"{API}/users/me", json={"name": "Renamed", "profileImage": "/uploads/images/me.png"}, headers=owner["headers"])

    assert res.status_code == 200
    user = res.json()["data"]["user"]
    assert (user["name"], user["profile_image"]) == ("Renamed", "/uploads/images/me.png")
    assert db["user"].find_one({"_id": ObjectId(owner["id"])})["email"] == "owner@example.com"


def test_preferences_are_merged(client, owner):
    url = f"{API}/users/preferences"
    defaults = client.get(url, headers=owner["headers"]).json()["data"]["preferences"]
    assert defaults["notifications"] == {"email": True, "push": True, "sms": False}

    res = client.patch(url, json={"notifications": {"sms": True}, "language": "en"}, headers=owner["headers"])

    prefs = res.json()["data"]["preferences"]
    assert prefs["notifications"] == {"email": True, "push": True, "sms": True}
    assert prefs["language"] == "en"
    assert prefs["timezone"] == "Asia/Seoul"


def test_unsupported_language_is_rejected(client, owner):
    res = client.patch(f"{API}/users/preferences", json={"language": "fr"}, headers=owner["headers"])
    assert res.status_code == 400


def test_users_complete_onboarding(client, owner):
    res = client.post(f"{API}/users/complete-onboarding", json=ONBOARDING, headers=owner["headers"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["user"]["has_onboarded"] is True
    assert data["user"]["subdomain"] == "bloom"
    assert data["store"]["is_published"] is True


def test_store_url(client, owner):
    url = f"{API}/users/me/store-url"
    assert client.get(url, headers=owner["headers"]).json()["data"]["has_store"] is False
    onboard(client, owner)
    data = client.get(url, headers=owner["headers"]).json()["data"]
    assert data["has_store"] is True
    assert data["store_url"] == "http://localhost:5173/?store=bloom"


def test_stats(client, db, owner):
    onboard(client, owner)
    store = db["store"].find_one({"subdomain": "bloom"})
    make_product(db, store, 1)
    make_product(db, store, 2, status="draft")

    data = client.get(f"{API}/users/me/stats", headers=owner["headers"]).json()["data"]

    assert data["total_stores"] == 1
    assert data["total_products"] == 2
    assert data["joined_at"] is not None


def test_delete_account_requires_confirmation(client, db, owner):
    assert delete_account(client, owner, password="secret123", confirmation="yes").status_code == 400
    assert delete_account(client, owner, password="wrong-one", confirmation="DELETE_MY_ACCOUNT").status_code == 400
    assert db["user"].find_one({"_id": ObjectId(owner["id"])}) is not None


def test_delete_account_removes_everything_owned(client, db, owner, other_owner):
    onboard(client, owner)
    onboard(client, other_owner, subdomain="kept")
    mine = db["store"].find_one({"subdomain": "bloom"})
    theirs = db["store"].find_one({"subdomain": "kept"})
    product = make_product(db, mine, 1, images=2)
    make_product(db, theirs, 2, images=1)

    res = delete_account(client, owner, password="secret123", confirmation="DELETE_MY_ACCOUNT", reason="closing")

    assert res.status_code == 200
    user_id = ObjectId(owner["id"])
    assert db["user"].find_one({"_id": user_id}) is None
    assert db["store"].find_one({"user_id": user_id}) is None
    assert db["brand"].find_one({"user_id": user_id}) is None
    assert db["product"].find_one({"store_id": mine["_id"]}) is None
    assert db["productdetailimage"].count_documents({"product_id": product["_id"]}) == 0
    assert db["store"].count_documents({}) == 1
    assert db["productdetailimage"].count_documents({}) == 1
    assert client.get(f"{API}/users/me", headers=owner["headers"]).json()["error"]["code"] == "USER_NOT_FOUND"


def test_my_store(client, owner):
    assert client.get(f"{API}/store/my", headers=owner["headers"]).status_code == 404
    onboard(client, owner)
    data = client.get(f"{API}/store/my", headers=owner["headers"]).json()["data"]
    assert data["store"]["subdomain"] == "bloom"
    assert data["brand"]["brand_name"] == "Bloom Studio"


def test_store_by_subdomain_does_not_count_visits(client, db):
    store = make_store(db, "bloom", published=False)
    res = client.get(f"{API}/store/by-subdomain/BLOOM")
    assert res.status_code == 200
    assert res.json()["data"]["store"]["is_published"] is False
    assert db["store"].find_one({"_id": store["_id"]})["visitor_count"] == 0
    assert client.get(f"{API}/store/by-subdomain/ghost").status_code == 404


def test_public_stores_lists_published_only(client, db):
    make_store(db, "live")
    make_store(db, "draft", published=False)
    make_store(db, "closed", status="inactive")

    stores = client.get(f"{API}/store/public").json()["data"]["stores"]

    assert [s["subdomain"] for s in stores] == ["live"]
    assert stores[0]["brand_name"] == "live brand"


def test_stores_by_template(client, db):
    make_store(db, "quiet", template="Chic")
    busy = make_store(db, "busy", template="Chic")
    make_store(db, "cozy", template="Cozy")
    db["store"].update_one({"_id": busy["_id"]}, {"$set": {"visitor_count": 50}})

    data = client.get(f"{API}/store/by-template/Chic").json()["data"]

    assert [s["subdomain"] for s in data["stores"]] == ["busy", "quiet"]
    res = client.get(f"{API}/store/by-template/Modern")
    assert res.status_code == 400
    assert res.json()["error"]["details"]["allowed"] == ["Beauty", "Chic", "Cozy"]


def test_debug_listing(client, db):
    make_store(db, "one")
    make_store(db, "two", published=False)
    data = client.get(f"{API}/store/debug/all").json()["data"]
    assert data["total"] == 2
    assert {s["subdomain"] for s in data["stores"]} == {"one", "two"}


def test_update_profile_rejects_clearing_the_name(client, db, owner):
    for body in ({"name": None, "phone": None}, {"name": ""}):
        res = client.patch(f"{API}/users/me", json=body, headers=owner["headers"])
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"
        assert res.json()["error"]["details"][0]["field"] == "name"
    assert db["user"].find_one({"_id": ObjectId(owner["id"])})["name"] == "Owner"


def test_update_profile_may_clear_optional_fields(client, db, owner):
    client.patch(f"{API}/users/me", json={"phone": "010-1234-5678"}, headers=owner["headers"])
    res = client.patch(f"{API}/users/me", json={"phone": None}, headers=owner["headers"])
    assert res.status_code == 200
    stored = db["user"].find_one({"_id": ObjectId(owner["id"])})
    assert (stored["name"], stored["phone"]) == ("Owner", None)

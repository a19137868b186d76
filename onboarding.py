"""
Brand + store onboarding.

``complete_onboarding`` is the one-shot path used by the signup wizard: it
validates the whole payload before touching the database, then upserts the
user's brand and store and marks the user as onboarded. The step-by-step
path (``create_brand`` / ``create_store`` / ``publish_store``) creates the
store unpublished and publishes it explicitly.
"""
import logging
import re
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ReturnDocument
from pymongo.database import Database

import errors
from config import Settings
from database import create_document, now, to_object_id, transaction, update_document
from schemas import Brand, Store

logger = logging.getLogger(__name__)

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9-]+$")
TEMPLATE_TYPES = ("Beauty", "Chic", "Cozy")
DEFAULT_COLOR = "#000000"


class OnboardingPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    business: Optional[str] = None
    store_name: Optional[str] = Field(None, alias="storeName")
    theme: Optional[str] = None
    template: Optional[str] = None
    subdomain: Optional[str] = None
    brand_image_url: Optional[str] = Field(None, alias="brandImageUrl")
    tagline: Optional[str] = None


class BrandPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    brand_name: str = Field(..., min_length=1, alias="brandName")
    slogan: Optional[str] = None
    category: str = "general"
    description: Optional[str] = None
    brand_color: Optional[str] = Field(None, alias="brandColor")
    target_audience: Optional[str] = Field(None, alias="targetAudience")


class StorePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_name: str = Field(..., min_length=1, alias="storeName")
    subdomain: str = Field(..., min_length=1)
    description: Optional[str] = None
    template_type: str = Field(..., alias="templateType")
    template_color: str = Field(..., alias="templateColor")
    banner_image_url: Optional[str] = Field(None, alias="bannerImageUrl")


def store_url(subdomain: str, settings: Settings) -> str:
    return f"http://{subdomain}.{settings.store_domain}:{settings.store_port}"


def preview_url(subdomain: str, settings: Settings) -> str:
    return f"http://localhost:{settings.frontend_port}/?store={subdomain}"


def production_url(subdomain: str, settings: Settings) -> str:
    return f"https://{subdomain}.{settings.main_domain}"


def check_subdomain_format(subdomain: str) -> None:
    if not SUBDOMAIN_PATTERN.match(subdomain):
        raise errors.ValidationError(
            "Subdomains may only contain lowercase letters, digits and hyphens",
            details={"subdomain": subdomain},
        )


def complete_onboarding(
    db: Database,
    user_id: ObjectId,
    payload: OnboardingPayload,
    client=None,
    use_transactions: bool = False,
) -> Dict[str, Any]:
    required = ("business", "store_name", "theme", "template", "subdomain")
    missing = [name for name in required if not (getattr(payload, name) or "").strip()]
    if missing:
        raise errors.ValidationError("Required onboarding fields are missing", details={"missing": missing})

    check_subdomain_format(payload.subdomain)
    subdomain = payload.subdomain.lower()
    if db["store"].find_one({"subdomain": subdomain, "user_id": {"$ne": user_id}}):
        raise errors.Conflict("This subdomain is already in use", details={"subdomain": subdomain})

    with transaction(client, use_transactions) as session:
        brand = db["brand"].find_one({"user_id": user_id}, session=session)
        if brand is None:
            brand = Brand(
                user_id=user_id,
                brand_name=payload.business,
                slogan=payload.tagline or "",
                logo_url=payload.brand_image_url or "",
                category="general",
                brand_color=payload.theme or DEFAULT_COLOR,
                target_audience="",
            ).model_dump()
            create_document(db, "brand", brand, session=session)
        else:
            changes = {
                "brand_name": payload.business,
                "slogan": payload.tagline or brand.get("slogan"),
                "logo_url": payload.brand_image_url or brand.get("logo_url"),
                "brand_color": payload.theme or brand.get("brand_color"),
            }
            update_document(db, "brand", brand["_id"], changes, session=session)
            brand.update(changes)

        store = db["store"].find_one({"user_id": user_id}, session=session)
        if store is None:
            store = Store(
                brand_id=brand["_id"],
                user_id=user_id,
                store_name=payload.store_name,
                subdomain=subdomain,
                description=payload.tagline or "",
                template_type=payload.template,
                template_color=payload.theme or DEFAULT_COLOR,
                banner_image_url=payload.brand_image_url or "",
                status="active",
                is_published=True,
            ).model_dump()
            create_document(db, "store", store, session=session)
        else:
            changes = {
                "brand_id": brand["_id"],
                "store_name": payload.store_name,
                "subdomain": subdomain,
                "description": payload.tagline or store.get("description"),
                "template_type": payload.template,
                "template_color": payload.theme or store.get("template_color"),
                "banner_image_url": payload.brand_image_url or store.get("banner_image_url"),
                "is_published": True,
            }
            update_document(db, "store", store["_id"], changes, session=session)
            store.update(changes)

        user = db["user"].find_one_and_update(
            {"_id": user_id},
            {"$set": {"has_onboarded": True, "updated_at": now()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    logger.info("Onboarding completed for user %s (subdomain %s)", user_id, subdomain)
    return {"user": user, "brand": brand, "store": store}


def get_onboarding_status(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    brand = db["brand"].find_one({"user_id": user_id})
    store = db["store"].find_one({"user_id": user_id})
    return {
        "has_brand": brand is not None,
        "has_store": store is not None,
        "is_published": bool(store and store.get("is_published")),
        "brand": brand,
        "store": store,
    }


def create_brand(db: Database, user_id: ObjectId, payload: BrandPayload) -> Dict[str, Any]:
    if db["brand"].find_one({"user_id": user_id}):
        raise errors.Conflict("A brand already exists for this account")
    brand = Brand(user_id=user_id, status="active", **payload.model_dump()).model_dump()
    create_document(db, "brand", brand)
    logger.info("Brand %s created for user %s", brand["_id"], user_id)
    return brand


def create_store(db: Database, user_id: ObjectId, payload: StorePayload, settings: Settings) -> Dict[str, Any]:
    brand = db["brand"].find_one({"user_id": user_id})
    if not brand:
        raise errors.NotFound("Create a brand first")
    check_subdomain_format(payload.subdomain)
    if db["store"].find_one({"subdomain": payload.subdomain}):
        raise errors.Conflict("This subdomain is already in use", details={"subdomain": payload.subdomain})
    if db["store"].find_one({"user_id": user_id}):
        raise errors.Conflict("A store already exists for this account")

    store = Store(
        brand_id=brand["_id"],
        user_id=user_id,
        status="active",
        is_published=False,
        **payload.model_dump(),
    ).model_dump()
    create_document(db, "store", store)
    logger.info("Store %s created for user %s", store["_id"], user_id)
    return {"store": store, "store_url": store_url(store["subdomain"], settings)}


def publish_store(db: Database, user_id: ObjectId, store_id, settings: Settings) -> Dict[str, Any]:
    oid = to_object_id(store_id)
    store = db["store"].find_one({"_id": oid, "user_id": user_id}) if oid else None
    if not store:
        raise errors.NotFound("Store not found")
    update_document(db, "store", oid, {"is_published": True})
    logger.info("Store %s published", oid)
    return {"store_url": store_url(store["subdomain"], settings)}


def get_user_with_store_and_brand(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    """The profile view: user fields plus a flat summary of their store and brand."""
    store = db["store"].find_one({"user_id": user["_id"], "status": "active"})
    brand = db["brand"].find_one({"user_id": user["_id"], "status": "active"})
    store = store or {}
    brand = brand or {}
    return {
        "store_name": store.get("store_name"),
        "subdomain": store.get("subdomain"),
        "template": store.get("template_type"),
        "theme": store.get("template_color"),
        "business": brand.get("brand_name"),
        "tagline": brand.get("slogan"),
        "brand_image_url": brand.get("logo_url"),
        "color": brand.get("brand_color"),
        "store": {
            "id": str(store["_id"]),
            "store_name": store.get("store_name"),
            "subdomain": store.get("subdomain"),
            "is_published": store.get("is_published", False),
            "template_type": store.get("template_type"),
        } if store else None,
        "brand": {
            "id": str(brand["_id"]),
            "brand_name": brand.get("brand_name"),
            "slogan": brand.get("slogan"),
        } if brand else None,
    }

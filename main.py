import os
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import catalog
import errors
import onboarding
import uploads
from config import Settings, configure_logging
from database import connect, create_document, ensure_indexes, now, to_object_id, transaction, update_document
from responses import public_user, register_exception_handlers, success, to_public
from schemas import User as UserSchema
from security import (
    decode_token,
    generate_tokens,
    get_current_user,
    get_db,
    get_password_hash,
    get_settings,
    verify_password,
)
from seed import seed_catalog
from tenancy import TenantContext, require_tenant

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DELETE_CONFIRMATION = "DELETE_MY_ACCOUNT"

router = APIRouter(prefix=API_PREFIX)
root = APIRouter()


# Helpers
class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken")


class CheckEmailRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., min_length=6, alias="newPassword")
    confirm_password: str = Field(..., alias="confirmPassword")


class UserUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    profile_image: Optional[str] = Field(None, alias="profileImage")

    @field_validator("name")
    @classmethod
    def name_is_required(cls, v):
        if v is None:
            raise ValueError("name cannot be empty")
        return v


class NotificationUpdate(BaseModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    sms: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    notifications: Optional[NotificationUpdate] = None
    language: Optional[Literal["ko", "en"]] = None
    timezone: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None
    reason: Optional[str] = None
    confirmation: Optional[str] = None


def store_view(store: Dict[str, Any], *extra: str) -> Dict[str, Any]:
    view = {
        "id": str(store["_id"]),
        "store_name": store.get("store_name"),
        "subdomain": store.get("subdomain"),
        "description": store.get("description"),
        "banner_image_url": store.get("banner_image_url"),
        "template_type": store.get("template_type"),
        "template_color": store.get("template_color"),
        "visitor_count": store.get("visitor_count", 0),
    }
    for field in extra:
        view[field] = store.get(field)
    return view


def brand_view(brand: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not brand:
        return None
    return {
        "id": str(brand["_id"]),
        "brand_name": brand.get("brand_name"),
        "slogan": brand.get("slogan"),
        "logo_url": brand.get("logo_url"),
        "category": brand.get("category"),
        "description": brand.get("description"),
        "brand_color": brand.get("brand_color"),
        "target_audience": brand.get("target_audience"),
    }


def brands_for(db: Database, stores: List[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
    ids = list({s.get("brand_id") for s in stores if s.get("brand_id")})
    if not ids:
        return {}
    return {b["_id"]: b for b in db["brand"].find({"_id": {"$in": ids}})}


def require_non_production(settings: Settings = Depends(get_settings)) -> Settings:
    if settings.is_production:
        raise errors.NotFound(code="ROUTE_NOT_FOUND")
    return settings


# Auth
@router.post("/auth/signup")
def signup(payload: SignupRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise errors.Conflict("This email is already registered")

    user = UserSchema(
        email=email,
        password_hash=get_password_hash(payload.password),
        name=payload.name,
        phone=payload.phone or None,
        login_type="email",
    ).model_dump()
    user_id = create_document(db, "user", user)
    logger.info("User %s signed up", user_id)
    return success({**generate_tokens(user_id, settings), "user": public_user(user)}, "Signup completed", 201)


@router.post("/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": payload.email.lower(), "login_type": "email"})
    if not user:
        raise errors.Unauthorized("Email or password does not match")
    if user.get("status") != "active":
        raise errors.Forbidden("The account is deactivated", code="USER_SUSPENDED")
    if not verify_password(payload.password, user.get("password_hash")):
        raise errors.Unauthorized("Email or password does not match")

    user = db["user"].find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"last_login_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("User %s logged in", user["_id"])
    return success({**generate_tokens(str(user["_id"]), settings), "user": public_user(user)}, "Logged in")


@router.post("/auth/refresh")
def refresh(payload: RefreshRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    claims = decode_token(payload.refresh_token, settings.jwt_refresh_secret, settings.jwt_algorithm, token_type="refresh")
    oid = to_object_id(claims["sub"])
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user or user.get("status") != "active":
        raise errors.Unauthorized(code="INVALID_TOKEN")
    return success(generate_tokens(str(user["_id"]), settings))


@router.get("/auth/validate")
def validate(current: dict = Depends(get_current_user)):
    return success({"user": public_user(current)}, "Token is valid")


@router.post("/auth/logout")
def logout(current: dict = Depends(get_current_user)):
    # Tokens are stateless; the client discards them
    return success(None, "Logged out")


@router.post("/auth/check-email")
def check_email(payload: CheckEmailRequest, db: Database = Depends(get_db)):
    available = db["user"].find_one({"email": payload.email.lower()}) is None
    message = "This email is available" if available else "This email is already in use"
    return success({"available": available, "message": message})


@router.patch("/auth/change-password")
def change_password(payload: ChangePasswordRequest, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if payload.new_password != payload.confirm_password:
        raise errors.ValidationError("The new passwords do not match")
    if not verify_password(payload.current_password, current.get("password_hash")):
        raise errors.Unauthorized("The current password does not match")
    update_document(db, "user", current["_id"], {"password_hash": get_password_hash(payload.new_password)})
    return success(None, "Password changed")


# Users
@router.get("/users/me")
def get_me(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    summary = onboarding.get_user_with_store_and_brand(db, current)
    store = summary.pop("store")
    brand = summary.pop("brand")
    return success({"user": {**public_user(current), **summary}, "store": store, "brand": brand})


@router.patch("/users/me")
def update_me(body: UserUpdate, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    updates = body.model_dump(exclude_unset=True)
    updates["updated_at"] = now()
    user = db["user"].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return success({"user": public_user(user)}, "Profile updated")


@router.delete("/users/me")
def delete_me(
    body: DeleteAccountRequest,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not body.password or body.confirmation != DELETE_CONFIRMATION:
        raise errors.ValidationError("Account deletion must be confirmed")
    if current.get("login_type") == "email" and not verify_password(body.password, current.get("password_hash")):
        raise errors.ValidationError("The password does not match")

    user_id = current["_id"]
    with transaction(db.client, settings.use_transactions) as session:
        store_ids = [s["_id"] for s in db["store"].find({"user_id": user_id}, {"_id": 1}, session=session)]
        if store_ids:
            product_ids = [p["_id"] for p in db["product"].find({"store_id": {"$in": store_ids}}, {"_id": 1}, session=session)]
            if product_ids:
                db["productdetailimage"].delete_many({"product_id": {"$in": product_ids}}, session=session)
            db["product"].delete_many({"store_id": {"$in": store_ids}}, session=session)
            db["store"].delete_many({"_id": {"$in": store_ids}}, session=session)
        db["brand"].delete_many({"user_id": user_id}, session=session)
        db["user"].delete_one({"_id": user_id}, session=session)

    logger.info("User %s deleted their account (%s)", user_id, body.reason or "no reason given")
    return success({"message": "Account deleted", "deleted_at": now()})


@router.get("/users/me/store-url")
def my_store_url(current: dict = Depends(get_current_user), db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    store = db["store"].find_one({"user_id": current["_id"], "status": "active"})
    if not store:
        return success({"has_store": False, "message": "No store has been created yet"})
    return success({
        "has_store": True,
        "subdomain": store["subdomain"],
        "store_name": store.get("store_name"),
        "store_url": onboarding.preview_url(store["subdomain"], settings),
        "is_published": store.get("is_published", False),
    })


@router.get("/users/me/stats")
def my_stats(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    store_ids = [s["_id"] for s in db["store"].find({"user_id": current["_id"]}, {"_id": 1})]
    total_products = db["product"].count_documents({"store_id": {"$in": store_ids}}) if store_ids else 0
    return success({
        "joined_at": current.get("created_at"),
        "last_login": current.get("last_login_at"),
        "total_stores": len(store_ids),
        "total_products": total_products,
    })


@router.post("/users/complete-onboarding")
def users_complete_onboarding(
    payload: onboarding.OnboardingPayload,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = onboarding.complete_onboarding(db, current["_id"], payload, db.client, settings.use_transactions)
    store, brand = result["store"], result["brand"]
    user = {
        **public_user(result["user"]),
        "store_name": store["store_name"],
        "subdomain": store["subdomain"],
        "template": store["template_type"],
        "theme": store["template_color"],
        "business": brand["brand_name"],
        "tagline": brand.get("slogan"),
        "brand_image_url": brand.get("logo_url"),
        "color": brand.get("brand_color"),
    }
    return success({"user": user, "brand": to_public(brand), "store": to_public(store)}, "Onboarding completed")


@router.get("/users/preferences")
def get_preferences(current: dict = Depends(get_current_user)):
    return success({"preferences": current.get("preferences", {})})


@router.patch("/users/preferences")
def update_preferences(body: PreferencesUpdate, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    updates: Dict[str, Any] = {}
    if body.notifications:
        merged = dict(current.get("preferences", {}).get("notifications", {}))
        merged.update(body.notifications.model_dump(exclude_none=True))
        updates["preferences.notifications"] = merged
    if body.language:
        updates["preferences.language"] = body.language
    if body.timezone:
        updates["preferences.timezone"] = body.timezone
    if not updates:
        return success({"preferences": current.get("preferences", {})})

    user = db["user"].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return success({"preferences": user.get("preferences", {})}, "Preferences saved")


# Onboarding
@router.post("/onboarding/brand")
def onboarding_brand(payload: onboarding.BrandPayload, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    brand = onboarding.create_brand(db, current["_id"], payload)
    return success({"brand": to_public(brand)}, "Brand created", 201)


@router.post("/onboarding/store")
def onboarding_store(
    payload: onboarding.StorePayload,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = onboarding.create_store(db, current["_id"], payload, settings)
    return success({"store": to_public(result["store"]), "store_url": result["store_url"]}, "Store created", 201)


@router.post("/onboarding/publish/{store_id}")
def onboarding_publish(
    store_id: str,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = onboarding.publish_store(db, current["_id"], store_id, settings)
    return success(result, "Store published")


@router.get("/onboarding/status")
def onboarding_status(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    status = onboarding.get_onboarding_status(db, current["_id"])
    status["brand"] = to_public(status["brand"])
    status["store"] = to_public(status["store"])
    return success(status)


@router.post("/onboarding/complete")
def onboarding_complete(
    payload: onboarding.OnboardingPayload,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = onboarding.complete_onboarding(db, current["_id"], payload, db.client, settings.use_transactions)
    store = result["store"]
    return success({
        "message": "Onboarding completed",
        "brand": to_public(result["brand"]),
        "store": {
            "id": str(store["_id"]),
            "store_name": store["store_name"],
            "subdomain": store["subdomain"],
            "is_published": store["is_published"],
            "template_type": store["template_type"],
        },
        "store_url": onboarding.preview_url(store["subdomain"], settings),
        "production_url": onboarding.production_url(store["subdomain"], settings),
    })


# Store
@router.get("/store/my")
def my_store(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    store = db["store"].find_one({"user_id": current["_id"], "status": "active"})
    if not store:
        raise errors.NotFound(code="STORE_NOT_FOUND")
    brand = db["brand"].find_one({"_id": store.get("brand_id")})
    return success({"store": store_view(store, "is_published"), "brand": brand_view(brand)})


@router.get("/store/current")
def current_store(tenant: TenantContext = Depends(require_tenant)):
    return success({"store": store_view(tenant.store), "brand": brand_view(tenant.brand)})


@router.get("/store/by-subdomain/{subdomain}")
def store_by_subdomain(subdomain: str, db: Database = Depends(get_db)):
    store = db["store"].find_one({"subdomain": subdomain.lower(), "status": "active"})
    if not store:
        raise errors.NotFound(code="STORE_NOT_FOUND")
    brand = db["brand"].find_one({"_id": store.get("brand_id")})
    return success({"store": store_view(store, "is_published", "status", "created_at"), "brand": brand_view(brand)})


@router.get("/store/public")
def public_stores(db: Database = Depends(get_db)):
    stores = list(db["store"].find({"is_published": True, "status": "active"}).sort("created_at", -1).limit(20))
    brands = brands_for(db, stores)
    items = []
    for store in stores:
        brand = brands.get(store.get("brand_id")) or {}
        item = store_view(store, "created_at")
        item.update({"brand_name": brand.get("brand_name"), "category": brand.get("category")})
        items.append(item)
    return success({"stores": items})


@router.get("/store/by-template/{template_type}")
def stores_by_template(template_type: str, db: Database = Depends(get_db)):
    if template_type not in onboarding.TEMPLATE_TYPES:
        raise errors.ValidationError("Unknown template type", details={"allowed": list(onboarding.TEMPLATE_TYPES)})
    stores = list(
        db["store"].find({"template_type": template_type, "is_published": True, "status": "active"})
        .sort("visitor_count", -1)
        .limit(10)
    )
    brands = brands_for(db, stores)
    items = []
    for store in stores:
        brand = brands.get(store.get("brand_id")) or {}
        item = store_view(store)
        item.update({"brand_name": brand.get("brand_name"), "category": brand.get("category")})
        items.append(item)
    return success({"template_type": template_type, "stores": items})


@router.get("/store/debug/all")
def debug_all_stores(db: Database = Depends(get_db), settings: Settings = Depends(require_non_production)):
    stores = db["store"].find(
        {}, {"subdomain": 1, "store_name": 1, "status": 1, "is_published": 1, "user_id": 1, "created_at": 1}
    ).sort("created_at", -1)
    items = [to_public(s) for s in stores]
    return success({"total": len(items), "stores": items})


# Catalog
@router.get("/products/store/{store_id}")
def store_products(
    store_id: str,
    category: Optional[str] = None,
    featured: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return success(catalog.list_store_products(db, store_id, category, featured, page, limit))


@router.get("/products/current")
def current_store_products(
    category: Optional[str] = None,
    featured: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=100),
    tenant: TenantContext = Depends(require_tenant),
    db: Database = Depends(get_db),
):
    return success(catalog.list_store_products(db, tenant.store["_id"], category, featured, page, limit))


@router.get("/products/{product_id}")
def product_detail(product_id: str, db: Database = Depends(get_db)):
    product = catalog.get_product_detail(db, product_id)
    if not product:
        raise errors.NotFound("Product not found")
    return success({"product": product})


@router.get("/categories")
def categories(db: Database = Depends(get_db)):
    return success({"categories": catalog.list_categories_with_counts(db)})


@router.get("/categories/{category_id}/products")
def category_products(
    category_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return success(catalog.list_category_products(db, category_id, page, limit))


@router.get("/categories/{category_id}")
def category_detail(category_id: str, db: Database = Depends(get_db)):
    category = catalog.get_category_detail(db, category_id)
    if not category:
        raise errors.NotFound("Category not found")
    return success({"category": category})


# Uploads
@router.post("/uploads/images")
def upload_image(
    file: UploadFile = File(...),
    current: dict = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    content = uploads.read_upload(file.file, settings.max_upload_mb)
    stored = uploads.save_image(content, file.filename, settings.upload_dir, settings.max_upload_mb)
    logger.info("User %s uploaded %s", current["_id"], stored["filename"])
    return success(stored, "Image uploaded", 201)


# Health + seed
@router.get("/health")
def health(db: Database = Depends(get_db)):
    db.command("ping")
    return success({"status": "healthy", "database": "connected"})


@router.post("/seed")
def seed(clear: bool = False, db: Database = Depends(get_db), settings: Settings = Depends(require_non_production)):
    return success(seed_catalog(db, clear=clear))


@root.get("/")
def read_root():
    return {"message": "Storefront backend is running", "api": API_PREFIX}


@root.get("/test")
def test_database(request: Request):
    db = request.app.state.db
    settings = request.app.state.settings
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "collections": []
    }
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


def create_app(settings: Optional[Settings] = None, client=None) -> FastAPI:
    """Build the application.

    ``client`` is a pymongo-compatible client; when omitted one is created
    from DATABASE_URL.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings)
    if client is None:
        client, db = connect(settings)
    else:
        db = client[settings.database_name or "storefront"]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if db is not None:
            ensure_indexes(db)
        yield
        if client is not None:
            client.close()
            logger.info("MongoDB connection closed")

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)
    app.include_router(root)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

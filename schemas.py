"""
Database Schemas for the storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
References to other documents are stored as ObjectIds.
"""
from datetime import datetime
from typing import Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Status = Literal["active", "inactive", "suspended"]
LoginType = Literal["email", "google", "kakao", "naver"]

# Fields never sent to clients
PRIVATE_USER_FIELDS = (
    "password_hash",
    "email_verification_code",
    "reset_password_token",
    "two_factor_secret",
)


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    sms: bool = False


class Preferences(BaseModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    language: Literal["ko", "en"] = "ko"
    timezone: str = "Asia/Seoul"


class User(Document):
    email: EmailStr = Field(..., description="Stored lowercased, unique")
    password_hash: Optional[str] = Field(None, description="Only set when login_type is email")
    name: str = Field(..., description="Display name")
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    has_onboarded: bool = False
    login_type: LoginType = "email"
    social_id: Optional[str] = None
    is_email_verified: bool = False
    email_verification_code: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    two_factor_secret: Optional[str] = None
    two_factor_enabled: bool = False
    preferences: Preferences = Field(default_factory=Preferences)
    status: Status = "active"
    last_login_at: Optional[datetime] = None


class Brand(Document):
    user_id: ObjectId
    brand_name: str
    slogan: Optional[str] = None
    logo_url: Optional[str] = None
    category: str = "general"
    description: Optional[str] = None
    brand_color: Optional[str] = None
    target_audience: Optional[str] = None
    status: Status = "active"


class Store(Document):
    brand_id: ObjectId
    user_id: ObjectId
    store_name: str
    subdomain: str = Field(..., description="Lowercased, globally unique")
    description: Optional[str] = None
    banner_image_url: Optional[str] = None
    status: Status = "active"
    is_published: bool = False
    template_type: str
    template_color: str
    visitor_count: int = 0


class Category(Document):
    name: str
    parent_id: Optional[ObjectId] = None
    sort_order: int = 0
    status: Literal["active", "inactive"] = "active"


class Product(Document):
    store_id: ObjectId
    sku: str = Field(..., description="Unique within a store")
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    stock_quantity: int = Field(0, ge=0)
    category_id: Optional[ObjectId] = None
    status: Literal["active", "inactive", "draft"] = "active"
    is_featured: bool = False
    view_count: int = Field(0, ge=0)


class ProductDetailImage(Document):
    product_id: ObjectId
    image_url: str
    image_type: Literal["main", "detail", "thumbnail"] = "main"
    sort_order: int = 0
    alt_text: Optional[str] = None

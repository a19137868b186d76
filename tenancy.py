"""
Subdomain-based tenant resolution.

A request targets a store either through the ``store`` query parameter
(same-origin development setups) or through the first label of its Host
header. Resolution never fails on a missing or odd host; only a candidate
subdomain with no matching live store is an error.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Query, Request
from pymongo.database import Database

import errors
from config import Settings
from security import get_db, get_settings

logger = logging.getLogger(__name__)

RESERVED_LABELS = ("www", "localhost")


@dataclass(frozen=True)
class TenantContext:
    subdomain: str
    store: Dict[str, Any]
    brand: Optional[Dict[str, Any]]


def parse_subdomain(host: Optional[str], store_param: Optional[str] = None, wildcard_suffixes: Iterable[str] = ()) -> Optional[str]:
    if store_param:
        return store_param.strip().lower() or None
    if not host:
        return None

    hostname = host.strip().lower().split(":")[0]
    labels = hostname.split(".")
    first = labels[0]
    if not first:
        return None

    if first[0].isdigit():
        return None
    if any(suffix in hostname for suffix in wildcard_suffixes):
        return first
    if len(labels) >= 2 and first not in RESERVED_LABELS:
        return first
    return None


def load_store(db: Database, subdomain: str, settings: Settings) -> TenantContext:
    """Load the live store for ``subdomain`` and count the visit."""
    store = db["store"].find_one({"subdomain": subdomain, "status": "active", "is_published": True})
    if not store:
        details: Dict[str, Any] = {"subdomain": subdomain}
        if not settings.is_production:
            any_store = db["store"].find_one({"subdomain": subdomain})
            if any_store and not any_store.get("is_published"):
                details["reason"] = "unpublished"
                raise errors.NotFound("The store has not been published yet", code="STORE_NOT_FOUND", details=details)
            if any_store and any_store.get("status") != "active":
                details["reason"] = "inactive"
                raise errors.NotFound("The store is deactivated", code="STORE_NOT_FOUND", details=details)
            details["reason"] = "missing"
        logger.warning("No live store for subdomain %r", subdomain)
        raise errors.NotFound(code="STORE_NOT_FOUND", details=details)

    brand = db["brand"].find_one({"_id": store.get("brand_id")})
    db["store"].update_one({"_id": store["_id"]}, {"$inc": {"visitor_count": 1}})
    logger.debug("Resolved subdomain %r to store %s", subdomain, store["_id"])
    return TenantContext(subdomain=subdomain, store=store, brand=brand)


def resolve_subdomain(
    request: Request,
    store: Optional[str] = Query(None, description="Explicit store subdomain, overrides the Host header"),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    return parse_subdomain(request.headers.get("host"), store, settings.wildcard_suffixes)


def get_tenant(
    subdomain: Optional[str] = Depends(resolve_subdomain),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[TenantContext]:
    if not subdomain:
        return None
    return load_store(db, subdomain, settings)


def require_tenant(tenant: Optional[TenantContext] = Depends(get_tenant)) -> TenantContext:
    if tenant is None:
        raise errors.NotFound(code="STORE_NOT_FOUND")
    return tenant

# erp_bridge/admin_routes.py
# =============================
# Admin Routes (sync triggers)
# =============================

import logging

from fastapi import APIRouter, HTTPException

from erp_bridge import config
from erp_bridge.erp.session_store import SessionStore
from erp_bridge.exceptions import AuthenticationError, RemoteError
from erp_bridge.sync.sync_core import run_catalog_sync, run_customer_sync, run_inventory_sync

logger = logging.getLogger("uvicorn.error")
admin_router = APIRouter()


async def _trigger(name: str, job, **kwargs) -> dict:
    try:
        return await job(**kwargs)
    except AuthenticationError as e:
        logger.error("[%s sync] ERP authentication failed: %s", name, e)
        raise HTTPException(status_code=502, detail=f"ERP authentication failed: {e}")
    except RemoteError as e:
        logger.exception("[%s sync] aborted", name)
        raise HTTPException(status_code=502, detail=str(e))


# -----------------------------
# ✅ Sync triggers
# -----------------------------
@admin_router.post("/api/sync/catalog")
async def sync_catalog_handler(incremental: bool = False):
    return await _trigger("catalog", run_catalog_sync, incremental=incremental)


@admin_router.post("/api/sync/customers")
async def sync_customers_handler(incremental: bool = False):
    return await _trigger("customers", run_customer_sync, incremental=incremental)


@admin_router.post("/api/sync/inventory")
async def sync_inventory_handler():
    return await _trigger("inventory", run_inventory_sync)


# -----------------------------
# ✅ Session status
# -----------------------------
@admin_router.get("/api/session")
async def session_status():
    store = SessionStore(config.SESSION_STORE_FILE)
    return {
        "has_token": store.load() is not None,
        "updated_at": store.updated_at(),
    }

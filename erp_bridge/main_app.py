# =============================
# ✅ Import and Load .env at startup
# =============================
import logging

from fastapi import Depends, FastAPI, HTTPException, Request

from erp_bridge import config  # noqa: F401  (loads .env)
from erp_bridge.admin_routes import admin_router
from erp_bridge.erp.erp_client import ERPClient
from erp_bridge.exceptions import MissingCustomerError
from erp_bridge.pricing.price_resolver import PriceResolver

logger = logging.getLogger("uvicorn.error")

# =============================
# ✅ FastAPI App Initialization
# =============================
app = FastAPI()

# ---- Admin router once, with prefix ----
app.include_router(admin_router, prefix="/admin")


async def erp_client():
    async with ERPClient() as erp:
        yield erp


@app.get("/")
def root():
    return {"status": "ok", "msg": "Monitor ERP ↔ commerce bridge running"}


# ======================================
# ✅ Storefront pricing (public endpoint)
# ======================================
@app.post("/api/pricing")
async def pricing_endpoint(request: Request, erp: ERPClient = Depends(erp_client)):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    part_id = payload.get("part_id")
    customer_id = payload.get("customer_id")
    try:
        quote = await PriceResolver(erp).resolve_price(part_id, customer_id)
    except MissingCustomerError as e:
        logger.warning("[Pricing] %s (part %s)", e, part_id)
        raise HTTPException(status_code=400, detail=str(e))
    return quote.as_dict()

# =============================
# Global Config
# =============================

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

# ----- ERP (Monitor) -----
ERP_URL = (os.getenv("ERP_URL") or "").rstrip("/")
ERP_COMPANY = os.getenv("ERP_COMPANY", "")
ERP_USER = os.getenv("ERP_USER", "")
ERP_PASSWORD = os.getenv("ERP_PASSWORD", "")
ERP_TIMEOUT = float(os.getenv("ERP_TIMEOUT", "30"))
ERP_VERIFY_TLS = os.getenv("ERP_VERIFY_TLS", "0") == "1"  # Monitor ships self-signed certs
ERP_SESSION_HEADER = "X-Monitor-SessionId"

ERP_PAGE_SIZE = int(os.getenv("ERP_PAGE_SIZE", "100"))
ERP_FILTER_BATCH_SIZE = int(os.getenv("ERP_FILTER_BATCH_SIZE", "20"))

# Catalog status band + web publishing flags
ERP_PART_STATUS_MIN = int(os.getenv("ERP_PART_STATUS_MIN", "4"))
ERP_PART_STATUS_MAX = int(os.getenv("ERP_PART_STATUS_MAX", "8"))
ERP_WEB_ACTIVE_FIELD = os.getenv("ERP_WEB_ACTIVE_FIELD", "ARTWEBAKTIV")
ERP_WEB_ACTIVE_OPTION_ID = os.getenv("ERP_WEB_ACTIVE_OPTION_ID", "1062902127922128278")
ERP_WEB_CATEGORY_FIELD = os.getenv("ERP_WEB_CATEGORY_FIELD", "ARTWEBKAT")
ERP_WEB_VARIANT_FIELD = os.getenv("ERP_WEB_VARIANT_FIELD", "ARTWEBVAR")
ERP_WEB_REFERENCE_CATEGORY_ID = os.getenv("ERP_WEB_REFERENCE_CATEGORY_ID", "")

# Change log
ERP_PART_ENTITY_TYPE_ID = os.getenv("ERP_PART_ENTITY_TYPE_ID", "Part")
ERP_CUSTOMER_ENTITY_TYPE_ID = os.getenv("ERP_CUSTOMER_ENTITY_TYPE_ID", "Customer")
ERP_CHANGE_LOOKBACK_HOURS = int(os.getenv("ERP_CHANGE_LOOKBACK_HOURS", "48"))

# ----- Pricing -----
OUTLET_PRODUCT_GROUP_ID = os.getenv("OUTLET_PRODUCT_GROUP_ID", "1229581166640460381")
OUTLET_PRICE_LIST_ID = os.getenv("OUTLET_PRICE_LIST_ID", "1289997006982727753")
OUTLET_FALLBACK_PRICE = Decimal(os.getenv("OUTLET_FALLBACK_PRICE", "100.00"))

# ----- Commerce platform (Shopify admin API) -----
SHOP_DOMAIN = os.getenv("SHOP_DOMAIN", "")
SHOP_ADMIN_TOKEN = os.getenv("SHOP_ADMIN_TOKEN", "")
SHOP_API_VERSION = os.getenv("SHOP_API_VERSION", "2025-01")
SHOP_TIMEOUT = float(os.getenv("SHOP_TIMEOUT", "60"))
METAFIELD_NAMESPACE = "custom"

# ----- Local state / sync pacing -----
SESSION_STORE_FILE = Path(os.getenv("SESSION_STORE_FILE", str(BASE_DIR / "state" / "session.json")))
SYNC_RECORD_DELAY_SECS = float(os.getenv("SYNC_RECORD_DELAY_SECS", "0.25"))

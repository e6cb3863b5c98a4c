# retail_pos/constants.py

DATA_DIR = "data"
DB_FILE_NAME = "retail_pos.db"

TABLE_KV_STORE = "kv_store"
TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# key-value namespaces; entity keys are "<prefix><store_id>"
KEY_STORES = "storesData"
KEY_PREFIX_PRODUCTS = "products_"
KEY_PREFIX_SALES = "sales_"
KEY_PREFIX_REFUNDS = "refunds_"
STORE_SCOPED_PREFIXES = (KEY_PREFIX_PRODUCTS, KEY_PREFIX_SALES, KEY_PREFIX_REFUNDS)

REFUND_ID_PREFIX = "REF-"
REFUND_ID_WIDTH = 4

LOW_STOCK_THRESHOLD = 3
CURRENCY_SYMBOL = "₹"
MONEY_PLACES = 2

DEFAULT_CASHIER = "Cashier"

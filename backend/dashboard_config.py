from pathlib import Path
from dotenv import load_dotenv
import os

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

APP_NAME = "Inventory Dashboard Quantity Service"

# Upstream inventory REST API
INVENTORY_API_URL = os.environ.get('INVENTORY_API_URL', 'http://localhost:3307').rstrip('/')
INVENTORY_API_TIMEOUT = float(os.environ.get('INVENTORY_API_TIMEOUT', 10))

# Default allowed origins for local development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

cors_origins_env = os.environ.get('CORS_ORIGINS', '')
if cors_origins_env:
    CORS_ORIGINS = [origin.strip() for origin in cors_origins_env.split(',') if origin.strip()]
else:
    CORS_ORIGINS = DEFAULT_CORS_ORIGINS

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

# Amounts are whole Rupiah
CURRENCY_CODE = "IDR"

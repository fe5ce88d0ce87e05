import os
from dotenv import load_dotenv


load_dotenv()

MONGO_DB_URL = os.getenv("MONGO_DB_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "Storefront")
# attempts per mutation before a write conflict is reported to the caller
CART_CONFLICT_RETRIES = int(os.getenv("CART_CONFLICT_RETRIES", "3"))
CORS_ORIGINS = [origin.strip() for origin in os.getenv(
    "CORS_ORIGINS", "http://localhost:3000").split(",") if origin.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

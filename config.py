import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DB_URL = os.getenv("DB_URL", "sqlite:///catalog.db")

# API server settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8002"))
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Pagination limits for list and slicing endpoints
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "100"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "1000"))

# Analytics defaults
TREND_START_YEAR = int(os.getenv("TREND_START_YEAR", "2010"))
LOW_QUALITY_SAMPLE_LIMIT = int(os.getenv("LOW_QUALITY_SAMPLE_LIMIT", "10"))
TOP_DUBBED_LANGUAGES_LIMIT = int(os.getenv("TOP_DUBBED_LANGUAGES_LIMIT", "10"))

# CSV import/export
CSV_ENCODING = os.getenv("CSV_ENCODING", "utf-8-sig")

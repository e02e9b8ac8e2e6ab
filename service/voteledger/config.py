# env vars + constants
import os

STORE_BACKEND = os.getenv("STORE_BACKEND", "github").strip().lower()

GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")
GITHUB_OWNER = os.getenv("GITHUB_OWNER", "jooskiii")
GITHUB_REPO = os.getenv("GITHUB_REPO", "blogmaxxer-image-api")
GITHUB_BRANCH = os.getenv("GITHUB_BRANCH", "main")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
STORE_TIMEOUT = float(os.getenv("STORE_TIMEOUT", "10.0"))

DATA_DIR = os.getenv("DATA_DIR", "data")
DATA_PATH = os.getenv("DATA_PATH", "data/data.json")
VOTES_PATH = os.getenv("VOTES_PATH", "data/votes.json")

IDENTITY_SALT = os.getenv("IDENTITY_SALT", "blogmaxxer-salt-2024")

RATE_LIMIT_WINDOW = float(os.getenv("RATE_LIMIT_WINDOW", "3600"))  # 1 hour
MAX_VOTES_PER_WINDOW = int(os.getenv("MAX_VOTES_PER_WINDOW", "10"))

MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_BACKOFF = float(os.getenv("RETRY_BACKOFF", "1.0"))
CONFLICT_REFRESH_DELAY = float(os.getenv("CONFLICT_REFRESH_DELAY", "0.5"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

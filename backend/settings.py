import os
from pathlib import Path

from dotenv import load_dotenv

from models.common import parse_bool

# Load environment variables from .env file in the backend folder
backend_dir = Path(__file__).parent
env_path = backend_dir / ".env"
load_dotenv(env_path)

SESSION_SECRET_KEY = os.getenv("SESSION_SECRET_KEY")
if not SESSION_SECRET_KEY:  # pragma: no cover
    raise ValueError("SESSION_SECRET_KEY must be set")

API_PREFIX = os.getenv("API_PREFIX", "")
BACKEND_DIR = Path(__file__).parent
DATABASE_PATH = BACKEND_DIR / "friendgraph.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
PROJECT_PATH = BACKEND_DIR.parent

# "sql" persists through DATABASE_URL, "memory" is process local
STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")

TESTING_MODE = parse_bool(os.getenv("TESTING_MODE", False))  # don't wait on retries
HTTPS_VERIFY = parse_bool(os.getenv("HTTPS_VERIFY", True))

# --- Relationship writes ---
MAX_WRITE_ATTEMPTS = int(os.getenv("MAX_WRITE_ATTEMPTS", "5"))
RETRY_MAX_WAIT_SECONDS = float(os.getenv("RETRY_MAX_WAIT_SECONDS", "0.2"))
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5"))
# ignoring a request also withdraws it from the sender's outgoing list
IGNORE_CLEARS_SENDER = parse_bool(os.getenv("IGNORE_CLEARS_SENDER", False))

# --- Identity directory (Auth0 management API) ---
DIRECTORY_DOMAIN = os.getenv("DIRECTORY_DOMAIN", "https://whuapp.eu.auth0.com")
DIRECTORY_CLIENT_ID = os.getenv("DIRECTORY_CLIENT_ID")
DIRECTORY_CLIENT_SECRET = os.getenv("DIRECTORY_CLIENT_SECRET")
DIRECTORY_TOKEN_SKEW_SECONDS = int(os.getenv("DIRECTORY_TOKEN_SKEW_SECONDS", "30"))
PROFILE_CACHE_SECONDS = int(os.getenv("PROFILE_CACHE_SECONDS", str(10 * 60)))

# --- Access tokens issued by the directory ---
# checked against the token "aud" claim when set
AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE")
JWKS_CACHE_SECONDS = int(os.getenv("JWKS_CACHE_SECONDS", str(60 * 60)))

"""Configuration: env, MongoDB, object storage, identity provider, uploads."""
import os
from pathlib import Path

# Base paths (project root = parent of songvault package)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root so MONGODB_URI etc. are set
try:
    from dotenv import load_dotenv
    load_dotenv(BASE_DIR / ".env")
except ImportError:
    pass


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# API
API_HOST = os.getenv("SONGVAULT_API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS = _env_list(
    "SONGVAULT_ALLOWED_ORIGINS",
    "http://localhost:3000,https://telugu-music-player.onrender.com",
)

# MongoDB (catalog + users)
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "songvault")
MONGODB_SONGS_COLLECTION = os.getenv("MONGODB_SONGS_COLLECTION", "songs")
MONGODB_USERS_COLLECTION = os.getenv("MONGODB_USERS_COLLECTION", "users")
MONGODB_SERVER_SELECTION_TIMEOUT_MS = 5000
MONGODB_SOCKET_TIMEOUT_MS = 45000

# Object storage (S3-compatible, e.g. Cloudflare R2)
STORAGE_ENDPOINT_URL = os.getenv("STORAGE_ENDPOINT_URL", "")
STORAGE_ACCESS_KEY_ID = os.getenv("STORAGE_ACCESS_KEY_ID", "")
STORAGE_SECRET_ACCESS_KEY = os.getenv("STORAGE_SECRET_ACCESS_KEY", "")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "")
STORAGE_REGION = os.getenv("STORAGE_REGION", "auto")
# Public URLs are <base>/<key>; the bucket must be publicly readable
STORAGE_PUBLIC_BASE_URL = os.getenv("STORAGE_PUBLIC_BASE_URL", "")
SONGS_FOLDER = "songs"
COVERS_FOLDER = "covers"

# Identity provider (ID tokens are JWTs; Firebase: audience = project id,
# issuer = https://securetoken.google.com/<project id>)
# Key set published by the provider; takes precedence over AUTH_JWT_KEY.
# Firebase: https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com
AUTH_JWKS_URL = os.getenv("AUTH_JWKS_URL", "")
# Used when the key set response carries no Cache-Control max-age
AUTH_JWKS_DEFAULT_MAX_AGE_SEC = int(os.getenv("AUTH_JWKS_DEFAULT_MAX_AGE_SEC", "3600"))
AUTH_JWT_KEY = os.getenv("AUTH_JWT_KEY", "").replace("\\n", "\n")
AUTH_JWT_ALGORITHMS = _env_list("AUTH_JWT_ALGORITHMS", "RS256")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE") or None
AUTH_JWT_ISSUER = os.getenv("AUTH_JWT_ISSUER") or None

# Emails granted the admin role the first time they sign in
ADMIN_EMAILS = [e.lower() for e in _env_list("SONGVAULT_ADMIN_EMAILS", "admin@teluguyash.com")]

# Upload staging
UPLOAD_DIR = Path(os.getenv("SONGVAULT_UPLOAD_DIR", str(BASE_DIR / "uploads")))
MAX_UPLOAD_BYTES = int(os.getenv("SONGVAULT_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Deadline applied to every call into MongoDB, object storage and token verification
EXTERNAL_TIMEOUT_SEC = float(os.getenv("SONGVAULT_EXTERNAL_TIMEOUT_SEC", "30"))

# Startup hygiene: remove leftover fixture songs once after connecting
CLEANUP_TEST_SONGS = _env_flag("SONGVAULT_CLEANUP_TEST_SONGS", "1")
TEST_SONG_TITLE = "Test Song"
TEST_SONG_ARTIST = "Test Artist"


def ensure_upload_dir() -> None:
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

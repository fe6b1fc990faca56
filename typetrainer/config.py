# config.py
import os, secrets
from urllib.parse import urlparse

# ---------- helpers ----------
def _origin(url: str) -> str | None:
    try:
        p = urlparse(url or "")
        if not p.scheme or not p.hostname:
            return None
        port = f":{p.port}" if p.port else ""
        return f"{p.scheme}://{p.hostname}{port}"
    except ValueError:
        return None

def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")

def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# ---------- base URLs ----------
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000")
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5000")

FRONTEND_ORIGIN = _origin(FRONTEND_BASE_URL) or "http://localhost:5000"
API_ORIGIN      = _origin(API_BASE_URL)      or "http://localhost:5000"

# ---------- CORS ----------
DEFAULT_CORS = [
    FRONTEND_ORIGIN,
    API_ORIGIN,
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5500",
]
def _merge_origins(*lists):
    out = []
    for lst in lists:
        for o in lst or []:
            v = _origin(o.strip()) if o else None
            if v and v not in out:
                out.append(v)
    return out

EXTRA_CORS = [s.strip() for s in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if s.strip()]
CORS_ALLOWED_ORIGINS = _merge_origins(DEFAULT_CORS, EXTRA_CORS)
CORS_STRICT = _env_bool("CORS_STRICT", False)

# ---------- database ----------
DATABASE_URL = os.getenv("DATABASE_URL", "")

# ---------- practice engine ----------
DEFAULT_TARGET_WIDTH    = _env_int("DEFAULT_TARGET_WIDTH", 60)
MIN_TARGET_WIDTH        = _env_int("MIN_TARGET_WIDTH", 20)
WIDTH_SAFETY_BUFFER     = _env_int("WIDTH_SAFETY_BUFFER", 12)
DEFAULT_LINES_PER_BLOCK = _env_int("DEFAULT_LINES_PER_BLOCK", 1)
MAX_LINES_PER_BLOCK     = _env_int("MAX_LINES_PER_BLOCK", 10)
LINE_REWARD_COINS       = _env_int("LINE_REWARD_COINS", 1)
PENALTY_COINS           = _env_int("PENALTY_COINS", 1)
PENALTY_ERROR_THRESHOLD = _env_int("PENALTY_ERROR_THRESHOLD", 10)
TIMER_TICK_MS           = _env_int("TIMER_TICK_MS", 500)
MAX_TEXT_CHARS          = _env_int("MAX_TEXT_CHARS", 200_000)

# ---------- server-hosted sessions ----------
SESSION_IDLE_SECONDS    = _env_int("SESSION_IDLE_SECONDS", 1800)
MAX_SESSIONS_PER_USER   = _env_int("MAX_SESSIONS_PER_USER", 5)
# "inline" runs storage calls in the request; "background" uses a worker pool
SESSION_DISPATCHER      = (os.getenv("SESSION_DISPATCHER") or "inline").strip().lower()
DISPATCH_WORKERS        = _env_int("DISPATCH_WORKERS", 2)

# ---------- canonical Config used by Flask ----------
class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY") or ("dev-" + secrets.token_urlsafe(32))
    JWT_SECRET = os.getenv("JWT_SECRET") or SECRET_KEY
    JWT_TTL_DAYS = _env_int("JWT_TTL_DAYS", 7)

    # Base URLs
    FRONTEND_BASE_URL = FRONTEND_BASE_URL
    APP_BASE_URL = API_BASE_URL

    # SQLAlchemy/general
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_AS_ASCII = False
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or "sqlite:///typetrainer.db"
    AUTO_INIT_DB = _env_bool("AUTO_INIT_DB", False)

    # CORS
    CORS_ALLOWED_ORIGINS = CORS_ALLOWED_ORIGINS
    CORS_STRICT = CORS_STRICT

    # Practice engine
    DEFAULT_TARGET_WIDTH = DEFAULT_TARGET_WIDTH
    MIN_TARGET_WIDTH = MIN_TARGET_WIDTH
    WIDTH_SAFETY_BUFFER = WIDTH_SAFETY_BUFFER
    DEFAULT_LINES_PER_BLOCK = DEFAULT_LINES_PER_BLOCK
    MAX_LINES_PER_BLOCK = MAX_LINES_PER_BLOCK
    LINE_REWARD_COINS = LINE_REWARD_COINS
    PENALTY_COINS = PENALTY_COINS
    PENALTY_ERROR_THRESHOLD = PENALTY_ERROR_THRESHOLD
    TIMER_TICK_MS = TIMER_TICK_MS
    MAX_TEXT_CHARS = MAX_TEXT_CHARS

    # Server-hosted sessions
    SESSION_IDLE_SECONDS = SESSION_IDLE_SECONDS
    MAX_SESSIONS_PER_USER = MAX_SESSIONS_PER_USER
    SESSION_DISPATCHER = SESSION_DISPATCHER
    DISPATCH_WORKERS = DISPATCH_WORKERS

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nutrivault.db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Frontend base URL used to build public share links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Root directory holding uploaded documents; Document.file_path is relative to it
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", "./uploads")).resolve()

# Password attempt throttling for public share links
PASSWORD_MAX_ATTEMPTS = int(os.getenv("PASSWORD_MAX_ATTEMPTS", "10"))
PASSWORD_ATTEMPT_WINDOW_SECONDS = int(os.getenv("PASSWORD_ATTEMPT_WINDOW_SECONDS", "900"))
# "memory" keeps attempts per process, "redis" shares them across workers
PASSWORD_ATTEMPT_STORE = os.getenv("PASSWORD_ATTEMPT_STORE", "memory").lower()

# Reverse proxies whose X-Forwarded-For is honoured; empty means the socket address is used as-is
TRUSTED_PROXY_IPS = [ip.strip() for ip in os.getenv("TRUSTED_PROXY_IPS", "").split(",") if ip.strip()]

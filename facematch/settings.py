import os
from .core.verification import DEFAULT_THRESHOLD as ENGINE_DEFAULT_THRESHOLD


# ====== Server ======
API_PREFIX = "/api"
HOST = os.getenv("FACEMATCH_HOST", "127.0.0.1")
PORT = int(os.getenv("FACEMATCH_PORT", "3002"))
LOG_LEVEL = os.getenv("FACEMATCH_LOG_LEVEL", "INFO").upper()

# Local page only by default; add origins if the UI is served elsewhere
CORS_ALLOW_ORIGINS = os.getenv("FACEMATCH_CORS_ORIGINS", "").split(",") if os.getenv("FACEMATCH_CORS_ORIGINS") else []


# ====== Models ======
# Local folder holding the detector weights; remote downloads are cached here
MODEL_DIR = os.getenv("FACEMATCH_MODEL_DIR", "models")


# ====== Verification ======
THRESHOLD_MIN = 0.0
THRESHOLD_MAX = 1.0
DEFAULT_THRESHOLD = float(os.getenv("FACEMATCH_DEFAULT_THRESHOLD", str(ENGINE_DEFAULT_THRESHOLD)))
if not THRESHOLD_MIN <= DEFAULT_THRESHOLD <= THRESHOLD_MAX:
    raise ValueError(
        f"FACEMATCH_DEFAULT_THRESHOLD must be between {THRESHOLD_MIN} and {THRESHOLD_MAX}, got {DEFAULT_THRESHOLD}"
    )


# ====== Uploads / previews ======
IMG_MAX_MB = int(os.getenv("FACEMATCH_IMG_MAX_MB", "16"))
PREVIEW_MAX_SIDE = int(os.getenv("FACEMATCH_PREVIEW_MAX_SIDE", "420"))

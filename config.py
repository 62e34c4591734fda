"""
Runtime configuration for the SolarScope analyzer.
All values come from environment variables with development defaults.
"""
import os

# Detect if running in production (on Render or other HTTPS environment)
IS_PRODUCTION = os.getenv("RENDER") is not None or os.getenv("PRODUCTION") is not None

# External multimodal model
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY") or ""
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))
AI_MAX_ATTEMPTS = int(os.getenv("AI_MAX_ATTEMPTS", "3"))

# Storage
DATABASE_FILE = os.getenv("DATABASE_FILE", "solarscope.db")
STATIC_DIR = os.getenv("STATIC_DIR", "static")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(STATIC_DIR, "uploads"))

# Upload limits (MB). The model itself accepts images up to 20MB.
MAX_UPLOAD_MB = float(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_IMAGE_MB = float(os.getenv("MAX_IMAGE_MB", "20"))
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text" if not IS_PRODUCTION else "json")

PORT = int(os.getenv("PORT", "8000"))

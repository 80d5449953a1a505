"""Compile-time constants for the weddingbot package.

These are values baked into code that change only on code updates,
NOT between environments. For runtime settings, see config.py.
"""

# ──────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────
CONFIG_DIR_NAME = "configs"
CONFIG_FILENAME = f"{CONFIG_DIR_NAME}/config.json"
CONFIG_ENV_VAR = "WEDDINGBOT_CONFIG"

# ──────────────────────────────────────────────────────────────────────
# Wedding Defaults (fallbacks if config.json is missing values)
# ──────────────────────────────────────────────────────────────────────
DEFAULT_COUPLE_NAMES = "Los Novios"
DEFAULT_MAX_FILE_SIZE_MB = 25
MIN_FILE_SIZE_LIMIT_MB = 1
MAX_FILE_SIZE_LIMIT_MB = 100

# ──────────────────────────────────────────────────────────────────────
# Local Storage
# ──────────────────────────────────────────────────────────────────────
DEFAULT_MEDIA_DIR = "media"
DEFAULT_TEMP_DIR = "temp"
DEFAULT_FOLDER_CACHE_FILE = "configs/drive-folders.json"
FILENAME_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"
FILENAME_PLACEHOLDER = "-"

BUCKET_PHOTOS = "photos"
BUCKET_VIDEOS = "videos"
BUCKETS = (BUCKET_PHOTOS, BUCKET_VIDEOS)

# ──────────────────────────────────────────────────────────────────────
# Remote Storage (Google Drive)
# ──────────────────────────────────────────────────────────────────────
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_BASE = "https://www.googleapis.com/upload/drive/v3"
DRIVE_TIMEOUT = 60.0
DRIVE_SCOPES = ("https://www.googleapis.com/auth/drive.file",)
DRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"

DEFAULT_ROOT_FOLDER_TEMPLATE = "Wedding Photos & Videos - {year}"
SUBFOLDER_NAMES = {BUCKET_PHOTOS: "Photos", BUCKET_VIDEOS: "Videos"}
QR_FOLDER_NAME = "qr-codes"

ROLE_ROOT = "root"
ROLE_QR = "qr"

RATE_LIMIT_STATUS_CODES = frozenset({403, 429})
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})
SHARING_RATE_LIMIT_REASONS = frozenset({"sharingRateLimitExceeded"})

UPLOAD_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
}
FALLBACK_MIME_TYPE = "application/octet-stream"

# ──────────────────────────────────────────────────────────────────────
# Channels
# ──────────────────────────────────────────────────────────────────────
# Bot API getFile refuses anything larger
TELEGRAM_MAX_DOWNLOAD_MB = 20

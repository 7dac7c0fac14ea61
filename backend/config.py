"""Application-wide configuration constants."""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "ShelfSeeker"
CTCP_VERSION = "HexChat 2.16.1 / Linux 6.0"
IRC_USERNAME = "shelfseeker"
IRC_REALNAME = "ShelfSeeker IRC Client"

# --- Chat network ---
IRC_SERVER = os.environ.get("IRC_SERVER", "irc.irchighway.net")
IRC_PORT = int(os.environ.get("IRC_PORT", "6667"))
IRC_CHANNEL = os.environ.get("IRC_CHANNEL", "#ebooks")
IRC_USE_TLS = os.environ.get("IRC_USE_TLS", "").lower() in ("1", "true", "yes")
SEARCH_COMMAND = os.environ.get("IRC_SEARCH_COMMAND", "@search")

# --- Timeouts (seconds) ---
CONNECT_TIMEOUT = float(os.environ.get("CONNECT_TIMEOUT", "30"))
SEARCH_TIMEOUT = float(os.environ.get("SEARCH_TIMEOUT", "30"))
DOWNLOAD_TIMEOUT = float(os.environ.get("DOWNLOAD_TIMEOUT", "300"))  # large files
RETRY_DELAY = 5.0
MAX_RETRIES = int(os.environ.get("MAX_RETRIES", "3"))
TRANSFER_INACTIVITY_TIMEOUT = 60.0
ENRICHMENT_TIMEOUT = 10.0

# --- Transfer ---
CHUNK_SIZE = 131072  # 128 KB
PROGRESS_INTERVAL = 1.0  # seconds between progress events
LISTING_SUFFIX = ".txt"

EBOOK_TYPES = (
    "epub", "mobi", "azw3", "azw", "pdf", "txt", "doc", "docx",
    "rtf", "html", "htm", "fb2", "lit", "pdb", "cbz", "cbr",
)

# --- Metadata cache ---
METADATA_CACHE_TTL = 24 * 60 * 60
METADATA_CACHE_MAX_SIZE = 10_000

# --- HTTP API ---
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "3001"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# --- Storage ---
DEFAULT_DOWNLOAD_DIR = Path(os.environ.get("DOWNLOAD_PATH", "./downloads"))
DEFAULT_TEMP_DIR = Path(os.environ.get("TEMP_PATH", "./.tmp"))
CONFIG_PATH = Path(os.environ.get("CONFIG_PATH", "./config.json"))

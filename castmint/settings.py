"""Configuration for castmint."""
import os
import re
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = Path(os.getenv("LOGS_DIR", BASE_DIR / "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Queue store
REDIS_URL = os.getenv("REDIS_URL")
MINT_QUEUE_KEY = os.getenv("MINT_QUEUE_KEY", "mint_queue")
FAILED_QUEUE_KEY = os.getenv("FAILED_QUEUE_KEY", "failed_mint_queue")
PROCESSED_SET_KEY = os.getenv("PROCESSED_SET_KEY", "processed_casts")

# Mint history
DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))  # webhook threads plus the worker

# Webhook ingestion
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET")
MIN_USER_SCORE = float(os.getenv("MIN_USER_SCORE", "0.69"))

# Neynar (Farcaster)
NEYNAR_API_KEY = os.getenv("NEYNAR_API_KEY")
NEYNAR_SIGNER_UUID = os.getenv("NEYNAR_SIGNER_UUID")
NEYNAR_API_BASE = os.getenv("NEYNAR_API_BASE", "https://api.neynar.com/v2/farcaster")

# Collaborating services
PINATA_JWT = os.getenv("PINATA_JWT")
PINATA_API_BASE = os.getenv("PINATA_API_BASE", "https://api.pinata.cloud")
RENDER_API_URL = os.getenv("RENDER_API_URL")
CHAIN_API_URL = os.getenv("CHAIN_API_URL")
SERVICE_API_KEY = os.getenv("SERVICE_API_KEY")

# Minting
NFT_CONTRACT_ADDRESS = os.getenv("NFT_CONTRACT_ADDRESS")
PLATFORM_WALLET = os.getenv("PLATFORM_WALLET")
COLLECT_URL_BASE = os.getenv("COLLECT_URL_BASE", "https://zora.co/collect/base:")
COLLECT_REFERRER = os.getenv("COLLECT_REFERRER")

# Revenue split percentages
OWNER_SHARE = 50
REQUESTER_SHARE = 5
PLATFORM_SHARE = 45

# Worker settings
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "5"))  # seconds between queue polls
SHUTDOWN_POLL_INTERVAL = float(os.getenv("SHUTDOWN_POLL_INTERVAL", "0.5"))
MAX_RECENT_ERRORS = int(os.getenv("MAX_RECENT_ERRORS", "20"))
RUN_WORKER = os.getenv("RUN_WORKER", "true").lower() in ("1", "true", "yes")

# Outbound call policy
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "30"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "1"))
RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "30"))
RATE_LIMIT_DELAY = float(os.getenv("RATE_LIMIT_DELAY", "60"))

# HTTP server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

REQUIRED = (
    "REDIS_URL",
    "DATABASE_URL",
    "WEBHOOK_SECRET",
    "NEYNAR_API_KEY",
    "NEYNAR_SIGNER_UUID",
    "PINATA_JWT",
    "RENDER_API_URL",
    "CHAIN_API_URL",
    "NFT_CONTRACT_ADDRESS",
    "PLATFORM_WALLET",
)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_config():
    """Validate required configuration."""
    errors = []

    for name in REQUIRED:
        if not globals().get(name):
            errors.append(f"{name} is required")

    for name in ("NFT_CONTRACT_ADDRESS", "PLATFORM_WALLET"):
        value = globals().get(name)
        if value and not _ADDRESS_RE.match(value.strip()):
            errors.append(f"{name} must be a 0x-prefixed address: {value}")

    if POLL_INTERVAL <= 0:
        errors.append(f"POLL_INTERVAL must be positive: {POLL_INTERVAL}")

    if MAX_RETRIES < 1:
        errors.append(f"MAX_RETRIES must be at least 1: {MAX_RETRIES}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))

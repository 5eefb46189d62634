"""Logging setup: stdout, a rotating file and, optionally, Better Stack."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from logtail import LogtailHandler

from castmint import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(mint_context)s"
CONTEXT_FIELDS = ("work_hash", "target_hash", "step")
QUIET_LOGGERS = ("urllib3", "redis", "httpx", "uvicorn.access")


class MintContextFilter(logging.Filter):
    """Appends the work_hash / target_hash / step extras, when given, to the line."""

    def filter(self, record):
        parts = [f"{name}={getattr(record, name)}" for name in CONTEXT_FIELDS if getattr(record, name, None)]
        record.mint_context = f" [{' '.join(parts)}]" if parts else ""
        return True


def _betterstack_handler(formatter):
    kwargs = {"source_token": settings.BETTERSTACK_SOURCE_TOKEN}
    if settings.BETTERSTACK_INGEST_HOST:
        kwargs["host"] = settings.BETTERSTACK_INGEST_HOST
    handler = LogtailHandler(**kwargs)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level=None):
    level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)
    context = MintContextFilter()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    log_file = RotatingFileHandler(settings.LOGS_DIR / "castmint.log", maxBytes=10 * 1024 * 1024, backupCount=5)
    log_file.setLevel(logging.INFO)
    handlers = [console, log_file]

    betterstack_error = None
    if settings.BETTERSTACK_SOURCE_TOKEN:
        try:
            handlers.append(_betterstack_handler(formatter))
        except Exception as e:
            betterstack_error = e

    for handler in handlers:
        handler.addFilter(context)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if betterstack_error is not None:
        root.warning(f"Failed to initialize BetterStack logging: {betterstack_error}")
    elif settings.BETTERSTACK_SOURCE_TOKEN:
        root.info(f"BetterStack logging enabled (host: {settings.BETTERSTACK_INGEST_HOST or 'default'})")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("castmint")


logger = setup_logging()

from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv
import logging
import sys
from typing import Optional
import structlog

from bolsamaster.exceptions import ConfigurationError

# Load environment variables early
load_dotenv()

# Step 1: Configure stdlib logging to use stderr
logging.basicConfig(
    format='%(asctime)s [%(levelname)-8s] %(message)s',
    stream=sys.stderr,
    level=logging.INFO,
    force=True
)

# Step 2: Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=['timestamp', 'level', 'event']),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_env_var(var: str, required: bool = True, default: Optional[str] = None) -> str:
    """Get environment variable with validation."""
    value = os.environ.get(var, default)
    if required and not value:
        logger.error(f"Missing required environment variable: {var}")
        return ""
    return value or ""


def _parse_number(var: str, default: str, cast=float):
    raw = _get_env_var(var, required=False, default=default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {var}: {raw!r}",
            config_key=var,
            expected=cast.__name__,
            cause=e
        )


def validate_environment_variables() -> None:
    """Validate optional keys and numeric settings."""
    if not _get_env_var("BRAPI_TOKEN", required=False):
        logger.warning("BRAPI_TOKEN missing - brapi.dev quotes are rate limited to the free tier.")

    _parse_number("QUOTE_TIMEOUT", "15", float)
    _parse_number("QUOTE_RETRY_ATTEMPTS", "2", int)

    level = _get_env_var("LOG_LEVEL", required=False, default="INFO").upper()
    if level not in VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid LOG_LEVEL: {level}",
            config_key="LOG_LEVEL",
            expected=", ".join(VALID_LOG_LEVELS)
        )

    logger.info("Environment variables validated")


@dataclass
class Config:
    """Configuration class for the BolsaMaster ledger engine."""

    db_path: Path = Path(os.environ.get("BOLSAMASTER_DB_PATH", "./data/bolsamaster.db"))
    reporting_currency: str = os.environ.get("REPORTING_CURRENCY", "BRL")

    brapi_token: str = os.environ.get("BRAPI_TOKEN", "")
    quote_timeout: float = _parse_number("QUOTE_TIMEOUT", "15", float)
    quote_retry_attempts: int = _parse_number("QUOTE_RETRY_ATTEMPTS", "2", int)

    # strftime pattern for HistoryPoint.label; the chart axis shows day/month
    history_date_format: str = os.environ.get("HISTORY_DATE_FORMAT", "%d/%m")

    log_level: str = os.environ.get("LOG_LEVEL", "INFO")

    def __post_init__(self):
        self.reporting_currency = self.reporting_currency.strip().upper()
        self.log_level = self.log_level.strip().upper()

        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Set logging level
        log_level = getattr(logging, self.log_level, logging.INFO)
        logging.getLogger().setLevel(log_level)
        for name in logging.root.manager.loggerDict:
            logging.getLogger(name).setLevel(log_level)


config = Config()

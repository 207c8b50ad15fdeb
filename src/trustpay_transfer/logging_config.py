"""
Logging Configuration
One rotating log file per concern (app, transfer workflow, bank client);
the console only gets warnings and errors.

Environment:
  TRUSTPAY_LOG_DIR  (default: <repo>/logs)
  LOG_LEVEL         (default: INFO)
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

LOG_DIR = Path(os.getenv("TRUSTPAY_LOG_DIR", Path(__file__).resolve().parents[2] / "logs"))

# logger name -> file under LOG_DIR
LOG_FILES: Dict[str, str] = {
    "trustpay.app": "app.log",
    "trustpay.transfer": "transfer.log",
    "trustpay.bank_client": "bank_client.log",
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 10MB per file, 5 backups
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def _level_from_env() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: Optional[Path] = None) -> None:
    """
    Configure every transfer-service logger.

    Each name in LOG_FILES writes to its own rotating file under ``log_dir``
    (LOG_DIR by default); all of them share one warnings-only console stream.
    Calling it again replaces the handlers rather than stacking them.
    """
    level = _level_from_env()
    target = Path(log_dir) if log_dir is not None else LOG_DIR
    target.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console = logging.StreamHandler()
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)

    for name, filename in LOG_FILES.items():
        logger = logging.getLogger(name)
        for old in list(logger.handlers):
            logger.removeHandler(old)
            old.close()
        logger.setLevel(level)
        logger.addHandler(_rotating_handler(target / filename, level, formatter))
        logger.addHandler(console)

    logging.getLogger().setLevel(level)
    logging.getLogger("trustpay.app").info("Logging configured. Log files in: %s", target)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def mask_account(account_number: Optional[str]) -> str:
    """Keep only the last four characters of an account number for log lines."""
    value = (account_number or "").strip()
    if len(value) <= 4:
        return value
    return "****" + value[-4:]

"""Salon ledger: service records, revenue windows and staff commission settlement.

Importing the package configures the shared ``log`` used by every module: a
rotating file under ``.logs/`` keeps the full INFO trail of recorded and
removed services, while the console only shows warnings such as skipped
workbook rows.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE = LOG_DIR / "salon_ledger.log"


def _configure_logging() -> logging.Logger:
    """Attach the rotating ledger log and a warnings-only console handler."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (OSError, PermissionError) as exc:
        print(
            f"Warning: could not open salon ledger log file '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.info("Salon ledger logging to %s", LOG_FILE)

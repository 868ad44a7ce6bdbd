"""
Logging setup.

Everything goes to stdout. With log_to_file on, three daily files are kept
under log_dir:

  adscale_*.log        pipeline activity (imports, analysis cycles)
  errors_*.log         errors only
  budget_changes_*.log approvals and rejections, written through audit_log

Budget changes touch live ad spend, so their file is kept much longer.
"""
import sys
from pathlib import Path

from loguru import logger

from adscale.config import get_settings

settings = get_settings()

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {message}"


def is_audit_record(record) -> bool:
    return bool(record["extra"].get("audit"))


def setup_logger(log_dir=None, to_file=None):
    logger.remove()

    logger.add(sys.stdout, colorize=True, format=CONSOLE_FORMAT, level=settings.log_level)

    to_file = settings.log_to_file if to_file is None else to_file
    if not to_file:
        return logger

    directory = Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(directory / "adscale_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention=f"{settings.log_retention_days} days",
        compression="zip",
        level="INFO",
        encoding="utf-8",
    )
    logger.add(
        str(directory / "errors_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        level="ERROR",
        encoding="utf-8",
    )
    logger.add(
        str(directory / "budget_changes_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention=f"{settings.audit_log_retention_days} days",
        format=AUDIT_FORMAT,
        filter=is_audit_record,
        level="INFO",
        encoding="utf-8",
    )
    return logger


log = setup_logger()

# Budget approvals and rejections
audit_log = log.bind(audit=True)

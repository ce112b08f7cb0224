import logging
import logging.handlers
import os
from pathlib import Path

from dotenv import load_dotenv
from pyprojroot import here


def setup_logging(log_file: Path | None = None) -> logging.Logger:
    """Configures stream aggregation logging

    Parameters
    ----------
    log_file : Path | None, optional
        Where the rotating log file is written, by default <project root>/logs/stream_aggregation.log

    Returns
    -------
    logging.Logger
        The package logger
    """
    load_dotenv(here() / ".env")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    logger = logging.getLogger("stream_aggregation")
    logging.getLogger("rasterio").setLevel(logging.WARNING)  # turning off rasterio INFO logging

    log_file_path = log_file or here() / "logs/stream_aggregation.log"
    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    max_bytes = int(os.getenv("LOG_MAX_BYTES", 10485760))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", 5))

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=max_bytes, backupCount=backup_count
    )

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(file_handler)
    return logger

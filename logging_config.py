# logging_config.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from dotenv import load_dotenv

load_dotenv()
# Use an environment variable for the log file, with a default
LOG_FILE = os.environ.get("LOG_FILE_PATH", "/tmp/ecorewards_app.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file=None, level=None):
    """Configures a rotating file logger (plus stderr) for the entire application."""
    logger = logging.getLogger()

    # Avoid adding handlers multiple times
    if any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        return

    logger.setLevel(level or LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT)

    # 10MB per file, keep last 5 files
    file_handler = RotatingFileHandler(log_file or LOG_FILE, maxBytes=10*1024*1024, backupCount=5)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # The Google clients are chatty at INFO.
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

import logging
import os
from logging.handlers import RotatingFileHandler

# Create loggers; children propagate to the "tempmail" handler
logger = logging.getLogger("tempmail")
logger.setLevel(logging.INFO)
admission_logger = logging.getLogger("tempmail.admission")
emails_logger = logging.getLogger("tempmail.emails")

# Prevent duplicate handlers
if not logger.handlers:
    # Rotating file handler: max 5 MB per file, keep 3 backups
    file_handler = RotatingFileHandler(
        os.getenv("ADMISSION_LOG_FILE", "admission.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
    )
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

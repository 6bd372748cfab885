import logging
import os
import re
from logging.handlers import RotatingFileHandler
from typing import Any

# 1. Create the logs directory if it doesn't exist
log_dir = os.path.join(os.getcwd(), "logs")
if not os.path.exists(log_dir):
    os.makedirs(log_dir)

# 2. Define the path to the log file
log_file_path = os.path.join(log_dir, "waitlist.log")

EMAIL_IN_TEXT = re.compile(r"([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+)")
REDACTED_KEYS = ("token", "password", "secret")


def get_logger(name: str):
    """
    Creates a logger instance that writes to console AND a file.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    file_handler = RotatingFileHandler(log_file_path, maxBytes=10_000_000, backupCount=5)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.INFO)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def _mask_email(text: str) -> str:
    # keep the first character of the local part so entries stay distinguishable
    return EMAIL_IN_TEXT.sub(lambda m: f"{m.group(1)[:1]}***@{m.group(2)}", text)


def sanitize_for_logs(data: Any) -> Any:
    """
    Strip PII before a value reaches the logs.

    Strings have email addresses masked. Dicts are sanitized key by key:
    values under keys mentioning token/password/secret are redacted and
    email-looking values are masked.
    """
    if isinstance(data, str):
        return _mask_email(data)

    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if any(marker in lowered for marker in REDACTED_KEYS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, (str, dict)):
                sanitized[key] = sanitize_for_logs(value)
            else:
                sanitized[key] = value
        return sanitized

    return data

# services/logger_config.py
import logging
from logging.handlers import RotatingFileHandler
import os
from config import settings


def setup_logging():
    """
    Configure the application logger.
    Records always go to the console, and to a rotating file when LOG_FILE_PATH is set.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)

    # Calling this twice must not duplicate output
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(settings.LOG_LEVEL.upper())

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )

    if settings.LOG_FILE_PATH:
        try:
            log_dir = os.path.dirname(settings.LOG_FILE_PATH)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                settings.LOG_FILE_PATH,
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=5
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            print(f"Error setting up file logger: {e}")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = True
    logger.info("Logging configured successfully.")
    return logger

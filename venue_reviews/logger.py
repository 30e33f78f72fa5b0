import os
import sys
from loguru import logger
from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


class JsonLogger:
    def __init__(self):
        self.logger = logger
        self._configure_logger()

    def _configure_logger(self):
        self.logger.remove()  # Remove default handler

        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        self.logger.add(
            sys.stdout,
            level=log_level,
            format=LOG_FORMAT,
            serialize=False,
            enqueue=True,  # non-blocking
        )
        if os.getenv("LOG_TO_FILE", "false").lower() == "true":
            log_file_path = os.getenv("LOG_FILE", "venue_reviews.log")
            self.logger.add(
                log_file_path,
                level=log_level,
                format=LOG_FORMAT,
                serialize=False,
                rotation="10 MB",
                compression="zip",
                enqueue=True,
            )
            self.logger.debug(f"Logging to file {log_file_path}")

    def bind_context(self, **kwargs):
        """Bind context variables to the logger."""
        return self.logger.bind(**kwargs)


json_logger = JsonLogger().logger

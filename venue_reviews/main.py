import logging
import os

import uvicorn

from .api.app import app
from .logging_setup import setup_logging

setup_logging()


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8765"))
    logging.info(f"Venue Reviews API starting on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()

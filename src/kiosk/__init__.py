import logging

import uvicorn

from kiosk.app import create_app
from kiosk.config import Settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Expose app for Gunicorn: gunicorn kiosk:app --worker-class uvicorn.workers.UvicornWorker
app = create_app()


def main() -> None:
    """Development entry point using uvicorn directly."""
    settings = Settings()
    uvicorn.run("kiosk:app", host=settings.host, port=settings.port)

"""Run the tap service: ``python -m twag``."""

from __future__ import annotations

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from twag.app import build_engine, create_app
from twag.config import load_settings
from twag.log import configure_logging

logger = logging.getLogger("twag")


def main() -> None:
    # .env.local wins over .env; neither overrides the real environment.
    for name in (".env.local", ".env"):
        if Path(name).is_file():
            load_dotenv(name)

    settings = load_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting twag", extra={"settings": settings.to_public_dict()})

    app = create_app(build_engine(settings), settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()

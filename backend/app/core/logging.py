"""Configuration du logging applicatif."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from backend.app.core.config import settings


def setup_logging() -> None:
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        tracebacks_word_wrap=True,
    )
    # un seul handler, même si setup_logging() est rappelé
    root_logger.handlers = [rich_handler]

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

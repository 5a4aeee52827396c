"""
Logging setup for the Flask application logger.

Routes and services log through ``current_app.logger``. This module only
decides where those records go:

    2026-10-19 10:15:30 [INFO    ] printdesk - Payment initiated token=ab12...

Console output is always on. When ``LOG_DIR`` is configured, two rotating
files are added: ``printdesk.log`` (everything at LOG_LEVEL and above) and
``error.log`` (ERROR and above).
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask


LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


def configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    app.logger.setLevel(level)
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)

    log_dir = app.config.get("LOG_DIR")
    if not log_dir:
        return

    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    main_handler = RotatingFileHandler(
        path / "printdesk.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    main_handler.setLevel(level)
    main_handler.setFormatter(formatter)

    error_handler = RotatingFileHandler(
        path / "error.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    app.logger.addHandler(main_handler)
    app.logger.addHandler(error_handler)

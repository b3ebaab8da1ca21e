from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path


def setup_logging(*, environment: str = "development", level: str | None = None, log_dir: Path | None = None) -> None:
    """Configure engine logging.

    - Dev: console logs, DEBUG level.
    - Prod: console + rotating file logs, INFO level.

    Safe to call multiple times (won't double-add handlers).
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    if level:
        resolved = logging.getLevelName(level.upper())
        log_level = resolved if isinstance(resolved, int) else logging.INFO
    else:
        log_level = logging.INFO if env == "production" else logging.DEBUG

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(formatter)
    handlers.append(console)

    if env == "production":
        logs_dir = log_dir or Path.cwd() / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "timetable_engine.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

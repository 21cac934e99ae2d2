from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Tuple

DEFAULT_LOG_PATH = "/var/log/hacore-installer.log"
FALLBACK_LOG_NAME = "hacore-installer.log"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def _open_log_file(log_path: str) -> Tuple[logging.FileHandler, str]:
    """Open the log for appending, falling back to the working directory.

    The host report logs the container root password, so the file is
    restricted to its owner like the state file.
    """

    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path)
        chosen = log_path
    except OSError:
        chosen = str(Path.cwd() / FALLBACK_LOG_NAME)
        handler = logging.FileHandler(chosen)
    os.chmod(chosen, 0o600)
    return handler, chosen


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure logging once per process.

    Every command the installer runs is recorded in the log file as
    ``CMD <argv>``. /var/log is not writable when running unprivileged
    (e.g. --dry-run as a normal user); the file then lands in the working
    directory. Returns the path actually used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # A resumed run inside the same process (tests, run_maintenance) reuses the handlers.
    if getattr(logger, "_hacore_configured", False):
        return getattr(logger, "_hacore_log_path", log_path)

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    logger.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
        logger.addHandler(console)

    setattr(logger, "_hacore_configured", True)
    setattr(logger, "_hacore_log_path", chosen_path)

    logging.getLogger(__name__).debug("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path

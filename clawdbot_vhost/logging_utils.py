from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "clawdbot-vhost.log"

_CONFIGURED_ATTR = "_clawdbot_vhost_log_path"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(candidates: List[str]) -> Optional[logging.FileHandler]:
    for path in candidates:
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path)
        except OSError:
            continue
    return None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Route every record to a log file and the console.

    A non-root operator usually cannot write /var/log, so the working
    directory is tried next. When neither is writable the run logs to the
    console only and None is returned; otherwise the file actually used.
    Repeated calls only adjust the level.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if hasattr(root, _CONFIGURED_ATTR):
        return getattr(root, _CONFIGURED_ATTR)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    candidates = [log_path, str(Path.cwd() / FALLBACK_LOG_NAME)]
    file_handler = _open_log_file(candidates)

    handlers: List[logging.Handler] = []
    if file_handler is not None:
        handlers.append(file_handler)
    if also_console or file_handler is None:
        handlers.append(logging.StreamHandler())

    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)

    chosen = file_handler.baseFilename if file_handler is not None else None
    setattr(root, _CONFIGURED_ATTR, chosen)

    log = logging.getLogger(__name__)
    if chosen is None:
        log.warning("No writable log file (tried %s); logging to the console only", ", ".join(candidates))
    else:
        log.info("Logging initialized (requested=%s, actual=%s)", log_path, chosen)
    return chosen

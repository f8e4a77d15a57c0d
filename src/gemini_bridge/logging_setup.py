# Logging setup: Rich console on stderr plus the bridge status log.
# Created: 2026-03-02
#
# stdout belongs to the hook protocol (one JSON object), so every handler
# here writes to stderr or to a file.

from __future__ import annotations

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# GEMINI_BRIDGE_NOTIFY level -> console log level (None = no console output)
NOTIFY_LEVELS: dict[str, int | None] = {
    "quiet": None,
    "subtle": logging.WARNING,
    "verbose": logging.INFO,
    "debug": logging.DEBUG,
}

_STATUS_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    notify: str | None = None,
    status_log: Path | None = None,
) -> None:
    """Configure root logging for one bridge invocation.

    Args:
        notify: Console verbosity ("quiet", "subtle", "verbose", "debug").
            Defaults to ``$GEMINI_BRIDGE_NOTIFY`` or "subtle".
        status_log: File that receives every INFO+ record, whatever the
            console verbosity. Skipped when None or not writable.
    """
    notify = (notify or os.environ.get("GEMINI_BRIDGE_NOTIFY") or "subtle").lower()
    console_level = NOTIFY_LEVELS.get(notify, logging.WARNING)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    if console_level is not None:
        console = RichHandler(
            console=Console(stderr=True),
            show_path=notify == "debug",
            rich_tracebacks=True,
            markup=False,
        )
        console.setLevel(console_level)
        root.addHandler(console)

    if status_log is not None:
        try:
            status_log.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(status_log, encoding="utf-8")
        except OSError as e:
            logging.getLogger(__name__).warning("Status log disabled (%s): %s", status_log, e)
        else:
            file_handler.setLevel(logging.DEBUG if notify == "debug" else logging.INFO)
            file_handler.setFormatter(logging.Formatter(_STATUS_FORMAT))
            root.addHandler(file_handler)

    # Keep third-party chatter out of the status log
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Always write logs next to this file unless REMINDER_LOG_FILE says otherwise
DEFAULT_LOG = Path(__file__).with_name("reminder_debug.log")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_file_path() -> Path:
    return Path(os.getenv("REMINDER_LOG_FILE", str(DEFAULT_LOG))).expanduser().resolve()


def configure_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """
    Send log records to a file and to stderr.

    Nothing is written to stdout: the MCP server talks to its client over
    stdio, so a stray print there corrupts the protocol stream.
    """
    resolved_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    path = log_file or log_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(file_handler)
    root.addHandler(stderr_handler)

"""
Logging for the endpoint scripts
Rotating log file next to the agent data plus console output for the RMM activity log
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(message)s"


def log_dir():
    """ProgramData on Windows, /tmp elsewhere; RMM_LOG_DIR overrides both"""
    override = os.getenv("RMM_LOG_DIR")
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(os.getenv("PROGRAMDATA", "C:/ProgramData")) / "RmmScripts"
    return Path("/tmp")


def configure_logging(script_name, level=logging.INFO):
    """
    Attach a stdout handler and a rotating file handler (5 MB x 3 backups)
    to the root logger. When the log file cannot be opened only the console
    handler is used. Safe to call more than once per process.
    """
    root = logging.getLogger()
    if getattr(root, "_rmm_configured", False):
        return root

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root.setLevel(level)
    root.addHandler(console_handler)
    root._rmm_configured = True

    log_file = log_dir() / f"{script_name}.log"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file), maxBytes=5*1024*1024, backupCount=3, encoding="utf-8"
        )
    except OSError as e:
        # Console output still reaches the RMM activity log
        root.warning(f"Cannot write log file {log_file}, logging to console only: {e}")
        return root

    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)
    return root

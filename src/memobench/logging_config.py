import logging
import logging.config
import os
import sys
import time
from pathlib import Path

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class UTCFormatter(logging.Formatter):
    converter = time.gmtime


class RunIdFilter(logging.Filter):
    """Stamp every record with the run id so interleaved runs can be told apart."""

    def __init__(self, run_id: str = "-"):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


def log_file_name(run_id: str, now: float | None = None) -> str:
    now = time.time() if now is None else now
    return f"memobench_{int(now * 1000)}_{run_id}.log"


def build_logging_config(run_id: str, log_file: str | Path) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "run_id": {
                "()": RunIdFilter,
                "run_id": run_id,
            },
        },
        "formatters": {
            "default": {
                "()": UTCFormatter,
                "format": "%(asctime)s.%(msecs)03d %(levelname)-6s %(run_id)s %(name)s: %(message)s",
                "datefmt": "%H:%M:%S",
            },
            # Header and summary lines go out bare
            "plain": {
                "format": "%(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["run_id"],
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "default",
                "filters": ["run_id"],
                "filename": str(log_file),
                "mode": "a",
            },
            "results_console": {
                "class": "logging.StreamHandler",
                "formatter": "plain",
                "stream": sys.stdout,
            },
            "results_file": {
                "class": "logging.FileHandler",
                "formatter": "plain",
                "filename": str(log_file),
                "mode": "a",
            },
        },
        "loggers": {
            "memobench": {
                "level": LOG_LEVEL,
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "memobench.results": {
                "level": "INFO",
                "handlers": ["results_console", "results_file"],
                "propagate": False,
            },
            # Shut the log levels for libraries up
            "httpx": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "websockets": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console", "file"],
        },
    }


def setup_logging(run_id: str, log_file: str | Path) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(build_logging_config(run_id, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")

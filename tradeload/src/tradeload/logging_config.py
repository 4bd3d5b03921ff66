import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "/tmp/tradeload.log")


def logging_config(level: str = LOG_LEVEL, filename: str = LOG_FILE) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "default",
                "filename": filename,
                "mode": "a",
            },
        },
        "loggers": {
            "tradeload": {
                "level": level,
                "handlers": ["console", "file"],
                "propagate": False,  # Don't pass 'tradeload' logs up to the root logger
            },
            # Shut the log levels for libraries up
            "web3": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "httpx": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "urllib3": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "asyncio": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
        },
        # Default for all other loggers
        "root": {
            "level": "WARNING",
            "handlers": ["console", "file"],
        },
    }


def setup_logging(level: str = LOG_LEVEL, filename: str = LOG_FILE) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(logging_config(level.upper(), filename))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")


class AccountLog(logging.LoggerAdapter):
    """Prefixes every record with the account it concerns."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, index: int, address: str):
        super().__init__(logger, {"account_index": index, "address": address})

    def process(self, msg, kwargs):
        addr = self.extra["address"]
        kwargs.setdefault("extra", {}).update(self.extra)
        return f"[account {self.extra['account_index'] + 1} {addr[:6]}...{addr[-4:]}] {msg}", kwargs

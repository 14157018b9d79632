import logging
import logging.config
import os
from datetime import datetime
from app.core.config import settings

MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10

FORMATTERS = {
    "default": {
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
    },
    "detailed": {
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s:%(lineno)d - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
    },
    "access": {
        "format": "%(asctime)s - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
    },
}


def _rotating(log_dir: str, name: str, level: str, formatter: str = "detailed") -> dict:
    """Size-rotated file handler writing to <log_dir>/<name>/<name>-<date>.log"""
    os.makedirs(os.path.join(log_dir, name), exist_ok=True)
    current_date = datetime.now().strftime("%Y-%m-%d")
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": os.path.join(log_dir, name, f"{name}-{current_date}.log"),
        "maxBytes": MAX_BYTES,
        "backupCount": BACKUP_COUNT,
        "encoding": "utf-8",
    }


def build_logging_config(log_dir: str, level: str) -> dict:
    """
    dictConfig for the API, the notification batch and the Celery worker.

    Root goes to console, app and error files. WhatsApp sends get a file of
    their own so a monthly run can be audited without the request noise.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": FORMATTERS,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "app_file": _rotating(log_dir, "app", level),
            "error_file": _rotating(log_dir, "error", "ERROR"),
            "access_file": _rotating(log_dir, "access", "INFO", formatter="access"),
            "notification_file": _rotating(log_dir, "notification", "INFO"),
            "celery_file": _rotating(log_dir, "celery", "INFO"),
        },
        "loggers": {
            "": {
                "level": level,
                "handlers": ["console", "app_file", "error_file"],
            },
            "app.services.communication": {
                "level": "INFO",
                "handlers": ["notification_file"],
                "propagate": True,
            },
            "celery": {
                "level": "INFO",
                "handlers": ["celery_file", "console"],
                "propagate": False,
            },
            "access": {
                "level": "INFO",
                "handlers": ["access_file"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["access_file"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["app_file"],
                "propagate": False,
            },
        },
    }


def setup_logging():
    """Setup application logging configuration"""
    logging.config.dictConfig(build_logging_config(settings.LOG_DIR, settings.LOG_LEVEL))

    logger = logging.getLogger(__name__)
    logger.info(f"📊 KPI Tracker logging configured (level {settings.LOG_LEVEL}, ./{settings.LOG_DIR}/)")

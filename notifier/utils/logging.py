import json
import logging
import sys
from datetime import date
from pathlib import Path

from loguru import logger

from notifier.config.settings import settings
from notifier.utils.context import get_request_id

# Third-party loggers routed through loguru
INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "celery",
    "celery.task",
    "celery.beat",
)


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, tagged with the current request id."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(request_id=get_request_id() or "app").opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        sections = cls.load_logging_config(config_path)
        section = sections.get(environment) or sections["logger"]
        log_file = (
            Path(section["log_dir"])
            / f"{date.today().isoformat()}-{section['filename']}"
        )
        return cls.customize_logging(log_file, section)

    @classmethod
    def customize_logging(cls, log_file: Path, section: dict):
        level = section.get("level", "info").upper()

        logger.remove()
        logger.configure(extra={"request_id": "app"})

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=section["console_format"],
            colorize=True,
        )

        file_sink = {
            "rotation": section.get("rotation"),
            "retention": section.get("retention"),
            "enqueue": True,
            "backtrace": True,
            "level": level,
            "colorize": False,
        }
        if section.get("use_json_logs") and section.get("file_format") == "json":
            logger.add(str(log_file), serialize=True, **file_sink)
        else:
            logger.add(str(log_file), format=section["file_format"], **file_sink)

        cls._setup_intercept_handlers()
        return logger

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in INTERCEPTED_LOGGERS:
            logging.getLogger(name).handlers = [InterceptHandler()]

    @staticmethod
    def load_logging_config(config_path: Path) -> dict:
        with open(config_path) as config_file:
            return json.load(config_file)


def _resolve_config_path() -> Path:
    config_path = Path(settings.LOG_CONFIG_PATH)
    if config_path.is_absolute():
        return config_path
    return Path(__file__).resolve().parents[2] / config_path


custom_logger = CustomizeLogger.make_logger(
    _resolve_config_path(),
    "production" if settings.ENVIRONMENT == "production" else "logger",
)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    return custom_logger.bind(request_id=get_request_id() or "app")

import logging
from logging.config import dictConfig

# attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    """Append ``extra=`` context to the line as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{line} {pairs}"


def configure_logging(log_level: str = "INFO") -> None:
    """Route application, SQLAlchemy and uvicorn loggers through one stream handler."""
    level = log_level.upper()
    handler = {"handlers": ["default"], "level": level, "propagate": False}
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "context": {
                    "()": ContextFormatter,
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S%z",
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "context",
                    "level": level,
                },
            },
            "loggers": {
                "": {"handlers": ["default"], "level": level},
                "sqlalchemy.engine": {**handler, "level": "WARNING"},
                "uvicorn": dict(handler),
                "uvicorn.error": dict(handler),
                "uvicorn.access": dict(handler),
            },
        }
    )

    logging.getLogger("craftstore").info("logging_configured", extra={"level": level})

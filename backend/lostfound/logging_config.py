import contextvars
import logging
import logging.config

# Request-scoped identifier, attached to every record by RequestIdFilter
_request_id_ctx = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get("-")
        return True


def set_request_id(req_id: str) -> None:
    _request_id_ctx.set(req_id)


def get_logger(name: str = __name__) -> logging.Logger:
    return logging.getLogger(name)


def build_dict_config(level: str = "INFO", json_fmt: bool = False) -> dict:
    fmt = (
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s",'
        '"request_id":"%(request_id)s","msg":"%(message)s"}'
        if json_fmt
        else "%(asctime)s | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s"
    )
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": fmt,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "filters": ["request_id"],
            },
        },
        "loggers": {
            "lostfound": {"level": level, "handlers": ["console"], "propagate": True},
            # engineio/socketio are chatty at INFO
            "engineio": {"level": "WARNING"},
            "socketio": {"level": "WARNING"},
        },
    }


def setup_logging(level: str = "INFO", json_fmt: bool = False) -> None:
    logging.config.dictConfig(build_dict_config(level=level.upper(), json_fmt=json_fmt))

import logging
import sys
from typing import Optional

import structlog
from geodiscovery.core.config import settings

# Libraries whose records should come out in the same format as ours
_ROUTED_LOGGERS = ["uvicorn", "uvicorn.error", "uvicorn.access", "httpx", "httpcore"]

# Chatty at INFO: one line per outbound request or connection
_QUIET_LOGGERS = ["httpx", "httpcore"]


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("version", settings.VERSION)
    return event_dict


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None):
    """
    Set up structlog over the standard library logging module.

    Console output in development, one JSON object per line everywhere else.
    Both can be forced through the arguments or LOG_LEVEL / LOG_JSON.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.LOG_JSON if settings.LOG_JSON is not None else settings.ENV.lower() != "development"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        processors = shared_processors + [
            _add_service,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            ),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_name, force=True)

    for name in _ROUTED_LOGGERS:
        lib_logger = logging.getLogger(name)
        lib_logger.handlers = []
        lib_logger.propagate = True

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

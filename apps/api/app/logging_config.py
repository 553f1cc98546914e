from __future__ import annotations

import logging
import logging.config
import sys

import structlog


def configure_logging(log_level: str = "INFO", *, json: bool = False) -> None:
  """
  Configure structlog on top of stdlib logging.

  Console rendering for local runs, JSON lines when `json` is set (containers).
  """
  level = str(log_level or "INFO").upper()
  renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)
  shared = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
  ]

  structlog.configure(
    processors=[
      structlog.stdlib.filter_by_level,
      *shared,
      structlog.stdlib.PositionalArgumentsFormatter(),
      structlog.processors.StackInfoRenderer(),
      structlog.processors.format_exc_info,
      structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
  )

  logging.config.dictConfig(
    {
      "version": 1,
      "disable_existing_loggers": False,
      "formatters": {
        "structured": {
          "()": structlog.stdlib.ProcessorFormatter,
          "processor": renderer,
          "foreign_pre_chain": shared,
        },
      },
      "handlers": {
        "console": {
          "class": "logging.StreamHandler",
          "level": level,
          "formatter": "structured",
          "stream": sys.stdout,
        },
      },
      "loggers": {
        "": {"level": level, "handlers": ["console"], "propagate": False},
        "app": {"level": level, "handlers": ["console"], "propagate": False},
      },
    }
  )

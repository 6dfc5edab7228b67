from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

PACKAGE_LOGGER = "jws_validator"


def get_logger(name: str) -> Any:
    """Return a structlog logger that emits through ``logging.getLogger(name)``.

    Until an application configures logging, stdlib defaults apply: debug and
    info events are dropped and nothing is written to stdout.
    """
    return structlog.wrap_logger(logging.getLogger(name))


def configure_logging(verbose: bool = False) -> None:
    """Route structlog events to stderr for command-line use.

    Library modules only emit events; configuring output is left to the
    application. stdout stays reserved for command results.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(level)
    package_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

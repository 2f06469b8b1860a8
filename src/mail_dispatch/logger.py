# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the mail dispatch service.

The actual logging setup (level, handlers, format) is done once by the
command-line entry point through ``configure_logging``. Library modules only
ask for named loggers.

Example:
    Typical usage in a module::

        from mail_dispatch.logger import get_logger

        logger = get_logger("DispatchQueue")
        logger.info("Email sent")
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "MailDispatch") -> logging.Logger:
    """Retrieve a logger instance.

    Handlers and formatters are not attached here; that responsibility lies
    with the application entry point.

    Args:
        name: The logger name. Defaults to "MailDispatch".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for a service process.

    Unknown level names fall back to INFO.
    """
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        force=True,  # Force reconfiguration to avoid duplicate handlers
    )

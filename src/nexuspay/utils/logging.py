"""
Logging setup shared by the API server and the CLI.
"""

import sys

from loguru import logger


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str | None = None,
    enable_json: bool = False,
):
    """
    Set up standardized loguru logging.

    Args:
        service_name: Name shown on every log line
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Custom log format string
        enable_json: Emit one JSON document per record instead of text
    """
    logger.remove()

    if enable_json:
        logger.add(
            sys.stdout,
            level=log_level.upper(),
            serialize=True,
            backtrace=False,
            diagnose=False,
        )
    else:
        if log_format is None:
            log_format = (
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                f"{service_name}:{{function}}:{{line}} - {{message}}"
            )
        logger.add(
            sys.stdout,
            format=log_format,
            level=log_level.upper(),
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    logger.configure(extra={"service": service_name})
    logger.info(f"Logging configured for {service_name} at level: {log_level}")


def get_logger(name: str):
    """Get a logger instance for a specific component."""
    return logger.bind(component=name)

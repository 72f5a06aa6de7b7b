"""Root logging setup shared by every mcphost module."""

from __future__ import annotations

import logging

from colorlog import ColoredFormatter

_HANDLER_MARKER = "_mcphost_colored_handler"


def _resolve_log_level(level_name: str | None) -> int:
    value = (level_name or "INFO").strip().upper()
    return getattr(logging, value, logging.INFO)


def configure_logging(level_name: str | None = None) -> None:
    """Attach one colored stream handler to the root logger."""
    root_logger = logging.getLogger()
    if level_name is not None:
        root_logger.setLevel(_resolve_log_level(level_name))

    if any(getattr(handler, _HANDLER_MARKER, False) for handler in root_logger.handlers):
        return
    # Leave logging alone when the host process already configured it.
    if root_logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        ColoredFormatter(
            "%(log_color)s%(levelname)s:%(name)s:%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    setattr(handler, _HANDLER_MARKER, True)
    root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name)

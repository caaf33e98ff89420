"""Logging configuration utilities for the proxy service."""
import logging
import os

# names that logging does not know natively
_LEVEL_ALIASES = {"TRACE": "DEBUG", "WARN": "WARNING"}


def setup_logging(level: str = "info") -> None:
    """Configure root logging; LOG_LEVEL in the environment wins over ``level``."""
    level = os.getenv("LOG_LEVEL", level).upper()
    logging.basicConfig(
        level=_LEVEL_ALIASES.get(level, level),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

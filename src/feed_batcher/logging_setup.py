"""
Loguru handler setup for the CLI.

Library modules only ever call ``from loguru import logger``; the process entry
point decides where records go and in which shape.
"""

from __future__ import annotations

import sys

from loguru import logger

HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", json: bool = True) -> int:
    """Replace loguru's default handler. Returns the new handler id.

    JSON mode emits one structured record per line (loguru ``serialize``),
    including any fields bound with ``logger.bind``.
    """
    logger.remove()
    if json:
        return logger.add(sys.stderr, level=level.upper(), serialize=True)
    return logger.add(sys.stderr, level=level.upper(), format=HUMAN_FORMAT, colorize=None)

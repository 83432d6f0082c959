"""Logging configuration for the stemscope command line."""

import logging
import os
import sys
from collections.abc import Mapping

LEVEL_VARIABLES = ("STEMSCOPE_LOG_LEVEL", "LOG_LEVEL")

# librosa pulls these in; at DEBUG they log every JIT compile and backend check
NOISY_LOGGERS = ("numba", "audioread")


def _requested_level(env: Mapping[str, str], default_level: str) -> str:
    for name in LEVEL_VARIABLES:
        value = env.get(name, "").strip()
        if value:
            return value.upper()
    return default_level.upper()


def configure_logging(
    default_level: str = "WARNING",
    quiet: bool = False,
    env: Mapping[str, str] | None = None,
) -> int:
    """
    Configure process-wide logging and return the resolved log level.

    Args:
        default_level: Level used when no environment variable sets one.
        quiet: Raise the level to at least ERROR (the CLI's ``-q``).
        env: Environment mapping, ``os.environ`` if None.

    Returns:
        The numeric level applied to the root logger.
    """
    env = os.environ if env is None else env
    level_name = _requested_level(env, default_level)
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = getattr(logging, default_level.upper(), logging.WARNING)
        invalid_level = level_name
    else:
        invalid_level = None

    if quiet:
        level = max(level, logging.ERROR)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if invalid_level is not None:
        logging.getLogger(__name__).warning(
            "Invalid log level '%s'; using %s", invalid_level, logging.getLevelName(level)
        )

    return level

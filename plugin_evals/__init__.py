"""Plugin evaluation framework.

Evaluates AI-agent plugins (skills, agents and slash commands described in
markdown) by generating test scenarios from their trigger descriptions and
running them against a live agent.
"""

import sys
from loguru import logger


__version__ = '0.1.0'

LOG_FORMAT = '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{message}</level>'


def configure_logging(verbose: bool = False) -> None:
    """Route loguru output to stderr for an entry point.

    Library modules only log; sinks are configured here, once, by the caller.

    Args:
        verbose: Log DEBUG and above when True, INFO and above otherwise
    """
    logger.remove()
    logger.add(sys.stderr, level='DEBUG' if verbose else 'INFO', format=LOG_FORMAT)

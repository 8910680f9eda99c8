"""Logging configuration for the coaching service."""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Send every logger to stdout as one pipe-separated line per record."""
    log_format = "%(asctime)s | %(levelname)-7s | %(name)-32s | %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Suppress noisy third-party loggers
    for name in ["httpx", "httpcore", "urllib3", "google_genai", "groq"]:
        logging.getLogger(name).setLevel(logging.WARNING)

"""
Logging setup shared by the API process and scripts.
"""
import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a consistent line format."""
    logging.basicConfig(
        level=str(level).upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )

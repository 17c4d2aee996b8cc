import logging
import sys

from shared.constants import LOG_FORMAT

logger = logging.getLogger(__name__)

# Chatty third-party loggers that drown out run output at DEBUG
_NOISY_LOGGERS = ("pymongo", "motor", "web3", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Install the stdout handler and format used by every run.

    Safe to call more than once; the root handlers are replaced.
    """
    resolved = getattr(logging, level.upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
        logger.warning(f"Unknown log level '{level}', falling back to INFO")

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.INFO))

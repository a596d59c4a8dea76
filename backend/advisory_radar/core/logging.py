# backend/advisory_radar/core/logging.py
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the process.
    Modules only ever call logging.getLogger(__name__).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO; keep the run logs readable
    logging.getLogger("httpx").setLevel(logging.WARNING)

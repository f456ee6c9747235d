import logging

from stockroom.core.config import settings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install one stream handler on the ``stockroom`` logger tree.

    Safe to call more than once; later calls only change the level.
    """
    global _configured
    root = logging.getLogger("stockroom")
    root.setLevel(level or settings.log_level)
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True

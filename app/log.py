import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single console handler on the root logger.

    Parameters:
        level: Level name such as ``"INFO"`` or ``"DEBUG"``.
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)

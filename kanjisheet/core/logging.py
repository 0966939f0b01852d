import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure le logging racine une seule fois (appelé par create_app).
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Évite les handlers en double quand create_app est appelé plusieurs fois (tests)
    if any(getattr(h, "_kanjisheet", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._kanjisheet = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    logging.getLogger("PIL").setLevel(logging.WARNING)

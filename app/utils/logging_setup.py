import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Avoid duplicate handlers (uvicorn reload, celery worker re-init)
    if any(getattr(h, "_swush_sync", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler._swush_sync = True
    root.addHandler(handler)

    # httpx logs every request at INFO; the client already logs what matters
    logging.getLogger("httpx").setLevel(logging.WARNING)

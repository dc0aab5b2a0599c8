import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_locolive", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._locolive = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    # uvicorn installs its own access log; ours comes from the request middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

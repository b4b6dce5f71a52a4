import logging
import sys

import structlog

logger = structlog.get_logger("proximity_notifier")


def configure_logging(level: int = logging.INFO) -> None:
    """Route structlog through stdlib logging with key=value rendering."""
    root = logging.getLogger()
    if not any(getattr(h, "_proximity_notifier", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._proximity_notifier = True
        root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event", "level"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

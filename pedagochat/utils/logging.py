import logging
import os

_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "google_genai")


def configure_logging(level: str | None = None) -> None:
    """Root logging setup shared by the server and the client-side services."""
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level.upper(),
        format="%(levelname)s %(name)s: %(message)s"
    )
    # HTTP client chatter drowns the fallback / provider messages.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

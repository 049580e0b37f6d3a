import logging

from celine.client_operator.config import settings


def configure_logging(level: str | int | None = None) -> None:
    # Accept both standard level names (e.g. "INFO") and numeric values.
    raw = str(level if level is not None else settings.log_level).upper()
    resolved = getattr(logging, raw, None)
    if not isinstance(resolved, int):
        try:
            resolved = int(raw)
        except ValueError:
            resolved = logging.INFO

    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # Quiet down httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
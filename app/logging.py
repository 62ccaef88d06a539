import logging

from app.config import settings
from app.utils.request_context import get_request_id


class RequestIdFilter(logging.Filter):
    """Stamps every record with the current request id (or "-")."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # per-request connection chatter
    logging.getLogger("httpx").setLevel(logging.WARNING)

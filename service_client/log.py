import logging
import sys
import uuid
from contextvars import ContextVar

from .config import ClientSettings

call_id_var: ContextVar[str | None] = ContextVar("call_id", default=None)


def call_id_generator() -> str:
    return uuid.uuid4().hex[:12]


def configure_logging(settings: ClientSettings | None = None) -> None:
    settings = settings or ClientSettings()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CallIdFilter())
    handler.setFormatter(CallIdFormatter(settings.LOG_FORMAT, settings.LOG_DATEFORMAT))

    logger = logging.getLogger("service_client")
    logger.handlers = [handler]
    logger.setLevel(settings.LOG_LEVEL)
    # Keep records out of the root handlers to avoid duplicate lines
    logger.propagate = False


class CallIdFilter(logging.Filter):
    # Stamps records with the id of the dispatch whose task emitted them.
    def filter(self, record):
        record.call_id = call_id_var.get() or ""
        return True


class CallIdFormatter(logging.Formatter):
    def format(self, record):
        if not hasattr(record, "call_id"):
            record.call_id = ""
        return super().format(record)

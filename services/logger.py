import logging
import traceback
import uuid
from datetime import datetime

from models import ErrorLogEntry
from services.store import RecordStore

logger = logging.getLogger(__name__)


def log_error(
    store: RecordStore | None,
    message: str,
    error: BaseException | None = None,
    source: str | None = None,
    context: dict | None = None,
    level: str = "error",
) -> None:
    """Log to the console and to the store's error log. Never raises."""
    stack_trace = None
    if error is not None:
        stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    log_level = logging.WARNING if level == "warn" else logging.ERROR
    logger.log(log_level, "[%s] %s%s", source or "app", message, f": {error}" if error else "")

    if store is None or not hasattr(store, "insert_error_log"):
        return

    entry = ErrorLogEntry(
        id=str(uuid.uuid4()),
        timestamp=datetime.now(),
        level=level,
        message=message if error is None else f"{message}: {error}",
        source=source,
        context=context,
        stack_trace=stack_trace,
    )
    try:
        store.insert_error_log(entry)
    except Exception as e:
        logger.warning("Failed to write error log entry: %s", e)

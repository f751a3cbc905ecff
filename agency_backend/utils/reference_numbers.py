"""Human-facing reference numbers such as ``FAF-123456`` and ``BK-654321``.

The suffix is the last six digits of a millisecond clock that never repeats
within the process: each call takes ``max(now_ms, previous + 1)``, so two
submissions in the same millisecond still get different references.

The suffix wraps every 1,000,000 ms and restarts with the process, so a new
reference can still match a stored one. ``insert_with_reference`` lets the
unique index on ``reference_number`` decide and draws a fresh reference when
the insert is rejected.
"""

import logging
import threading
import time
from typing import Callable, Dict

from beanie import Document
from pymongo.errors import DuplicateKeyError

from agency_backend.core.config import settings

logger = logging.getLogger(__name__)

REFERENCE_INSERT_ATTEMPTS = 5

_lock = threading.Lock()
_last_millis: Dict[str, int] = {}


def _next_millis(prefix: str) -> int:
    now_ms = int(time.time() * 1000)
    with _lock:
        value = max(now_ms, _last_millis.get(prefix, 0) + 1)
        _last_millis[prefix] = value
    return value


def generate_reference(prefix: str) -> str:
    millis = _next_millis(prefix)
    return f"{prefix}-{str(millis)[-6:]}"


def application_reference() -> str:
    return generate_reference(settings.APPLICATION_REFERENCE_PREFIX)


def booking_reference() -> str:
    return generate_reference(settings.BOOKING_REFERENCE_PREFIX)


async def insert_with_reference(document: Document, next_reference: Callable[[], str],
                                attempts: int = REFERENCE_INSERT_ATTEMPTS) -> Document:
    """Insert ``document``, drawing a new ``reference_number`` while the unique index rejects it.

    ``reference_number`` is the only unique key on the collections this is used for.
    """
    for attempt in range(1, attempts + 1):
        try:
            await document.insert()
            return document
        except DuplicateKeyError:
            if attempt == attempts:
                raise
            logger.warning("Reference %s already taken, drawing another (attempt %d)",
                           document.reference_number, attempt)
            document.id = None
            document.reference_number = next_reference()

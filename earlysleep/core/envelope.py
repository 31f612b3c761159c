from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from earlysleep.core.errors import ErrorKind, ServiceError

logger = structlog.get_logger(__name__)

INTERNAL_MESSAGE = "Internal error"


def success(**payload: Any) -> dict[str, Any]:
    return {"code": "OK", **payload}


def failure(error: BaseException | None) -> dict[str, Any]:
    if isinstance(error, ServiceError):
        return {"code": error.kind.value, "message": error.message}
    return {"code": ErrorKind.INTERNAL.value, "message": INTERNAL_MESSAGE}


async def run_handler(
    handler_name: str,
    call: Callable[[], Awaitable[dict[str, Any]]],
) -> dict[str, Any]:
    """Runs one handler invocation and always returns an envelope."""
    try:
        payload = await call()
    except ServiceError as exc:
        if exc.kind == ErrorKind.INTERNAL:
            logger.error("handler_failed", handler=handler_name, code=exc.kind.value, exc_info=True)
        else:
            logger.info(
                "handler_rejected",
                handler=handler_name,
                code=exc.kind.value,
                message=exc.message,
            )
        return failure(exc)
    except Exception as exc:
        logger.error("handler_failed", handler=handler_name, code="INTERNAL", exc_info=True)
        return failure(exc)
    return success(**payload)

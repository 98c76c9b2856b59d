"""Middleware and exception handlers for the FastAPI application.

Every error leaves the service as a JSON body with a ``detail`` message. Billing
errors add a machine readable ``code`` and, for provider failures, whether the
request may be retried.
"""

import time
import traceback
import uuid
from typing import Union

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from smallbizagent.core.config import settings
from smallbizagent.core.exceptions import SmallBizAgentException, unpack_validation_error
from smallbizagent.core.logging import logger

REQUEST_ID_HEADER = "X-Request-ID"


async def add_request_id(request: Request, call_next: callable) -> Response:
    """Tag the request with an id, reusing the caller's ``X-Request-ID`` when given.

    The id is exposed on ``request.state`` for the API context and echoed back in
    the response headers.
    """
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    return response


async def log_requests(request: Request, call_next: callable) -> Response:
    """Log method, path, status and duration of every request."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.with_context(request_id=getattr(request.state, "request_id", None)).info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"in {time.perf_counter() - started:.3f}s"
    )
    return response


async def exception_logging_middleware(request: Request, call_next: callable) -> Response:
    """Answer unexpected exceptions with a 500 JSON body after logging them.

    Outside local development and debug mode the body carries no exception details.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        trace = traceback.format_exc()
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}\n{trace}")

        content = {"detail": "Internal Server Error"}
        if settings.LOCAL_DEVELOPMENT or settings.DEBUG:
            content["detail"] = f"Internal Server Error: {exc.__class__.__name__}: {exc}"
            content["trace"] = trace
        return JSONResponse(status_code=500, content=content)


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """Answer malformed input with 400.

    Example of JSON output:
        {
            "errors": [
                {"body.plan_id": "Field required"},
                {"path.business_id": "Input should be a valid integer"}
            ]
        }
    """
    error_messages = unpack_validation_error(exc)
    logger.warning(f"Validation error on {request.url.path}: {error_messages}")
    return JSONResponse(status_code=400, content=error_messages)


async def smallbizagent_exception_handler(
    request: Request, exc: SmallBizAgentException
) -> JSONResponse:
    """Answer a SmallBizAgentException with the status and body it declares."""
    if exc.status_code >= 500:
        logger.warning(f"{exc.__class__.__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())

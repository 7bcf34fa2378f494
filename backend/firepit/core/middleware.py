"""
Request context and error responses.

Every response carries X-Request-ID and every error body has the shape
{"detail": ..., "request_id": ...}.
"""
import time
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from firepit.core.logging import api_logger, elapsed_ms, new_request_id, request_id_var

REQUEST_ID_HEADER = 'X-Request-ID'

# Health checks are polled constantly; keep them out of the access log
QUIET_PATHS = ('/healthz', '/readyz')


def error_response(
    request: Request,
    status_code: int,
    detail,
    headers: Optional[dict] = None,
    **extra,
) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', None) or request_id_var.get() or 'unknown'
    return JSONResponse(
        status_code=status_code,
        content={'detail': detail, 'request_id': request_id, **extra},
        headers={**(headers or {}), REQUEST_ID_HEADER: request_id},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id for the duration of the request and logs one summary line."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        summary = f"{request.method} {request.url.path}"

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                api_logger.error(f"{summary} -> 500 (unhandled)", error=e, duration_ms=elapsed_ms(start))
                return error_response(request, 500, 'Internal server error')

            response.headers[REQUEST_ID_HEADER] = request_id
            if not request.url.path.endswith(QUIET_PATHS):
                log = api_logger.info if response.status_code < 400 else api_logger.warning
                log(
                    f"{summary} -> {response.status_code}",
                    status=response.status_code,
                    duration_ms=elapsed_ms(start),
                )
            return response
        finally:
            request_id_var.reset(token)


async def http_exception_handler(request: Request, exc) -> JSONResponse:
    status_code = getattr(exc, 'status_code', 500)
    detail = getattr(exc, 'detail', 'Unknown error')
    # 4xx responses are already covered by the middleware summary line
    if status_code >= 500:
        api_logger.error(f"HTTP {status_code}: {detail}", path=request.url.path)
    return error_response(request, status_code, detail, headers=getattr(exc, 'headers', None))


async def validation_exception_handler(request: Request, exc) -> JSONResponse:
    errors = [
        {
            'field': '.'.join(str(loc) for loc in err.get('loc', ())),
            'message': err.get('msg', 'Validation error'),
            'type': err.get('type', 'value_error'),
        }
        for err in exc.errors()
    ]
    return error_response(request, 422, 'Validation error', errors=errors)

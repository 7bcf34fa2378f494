"""
Structured logging for the API and the permission engine.

Lines carry the request id bound by RequestContextMiddleware plus any
keyword context. In production each line is one JSON object; elsewhere it
reads ``[request_id] [env] message | key=value ...``.
"""
import inspect
import json
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Optional

from firepit.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class StructuredLogger:
    """Stdlib logger that renders keyword context onto every line."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _render(
        self,
        level: int,
        message: str,
        context: dict[str, Any],
        error: Optional[BaseException],
    ) -> str:
        request_id = request_id_var.get()
        if error is not None:
            context['error'] = f"{type(error).__name__}: {error}"

        if settings.APP_ENV == 'production':
            return json.dumps({
                'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S%z'),
                'level': logging.getLevelName(level),
                'logger': self.name,
                'env': settings.APP_ENV,
                'request_id': request_id,
                'message': message,
                **context,
            }, default=str)

        line = f"[{request_id or '-'}] [{settings.APP_ENV}] {message}"
        if context:
            line += ' | ' + ' '.join(f"{key}={value}" for key, value in context.items())
        return line

    def _log(self, level: int, message: str, error: Optional[BaseException] = None, **context):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._render(level, message, context, error))

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error: Optional[BaseException] = None, **context):
        self._log(logging.ERROR, message, error, **context)


class PermissionsLogger(StructuredLogger):
    """
    Resolution lines are tagged ``[PERMS]`` (DEBUG) and refusals
    ``[PERMS_DENIED]`` (INFO), each with an ``event`` field so JSON output
    can be filtered without parsing the message.
    """

    def resolved(self, scope: str, *, user_id: int, **context):
        self.debug(
            f"[PERMS] {scope} access user_id={user_id}",
            event='perms.resolved',
            scope=scope,
            user_id=user_id,
            **context,
        )

    def denied(self, reason: str, *, user_id: int, **context):
        self.info(
            f"[PERMS_DENIED] user_id={user_id} reason={reason}",
            event='perms.denied',
            reason=reason,
            user_id=user_id,
            **context,
        )


api_logger = StructuredLogger('firepit.api')
permissions_logger = PermissionsLogger('firepit.permissions')


@contextmanager
def _timed(operation: str, log: StructuredLogger):
    start = time.perf_counter()
    log.debug(f"{operation} started")
    try:
        yield
    except Exception as e:
        log.error(f"{operation} failed", error=e, duration_ms=elapsed_ms(start))
        raise
    log.debug(f"{operation} completed", duration_ms=elapsed_ms(start))


def log_operation(operation: str, logger: Optional[StructuredLogger] = None):
    """Log start, completion or failure of the wrapped callable, with timing."""
    log = logger or api_logger

    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def wrapper(*args, **kwargs):
                with _timed(operation, log):
                    return await func(*args, **kwargs)
        else:
            @wraps(func)
            def wrapper(*args, **kwargs):
                with _timed(operation, log):
                    return func(*args, **kwargs)
        return wrapper

    return decorator

"""Cross-origin protection middleware for FastAPI"""

import inspect
import logging
from typing import Any, Callable, Iterable

from origin_guard.config import build_config_from_settings, settings, split_list
from origin_guard.exceptions import CROSS_ORIGIN_MESSAGE, InvalidCrossOriginRequestError
from origin_guard.services.guard import (
    Decision,
    GuardConfig,
    RejectionMode,
    RequestView,
    evaluate,
)
from origin_guard.services.origins import normalize_header_origin
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import HTTPConnection, Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

SKIP_FLAG = "skip_cross_origin_protection"


def skip(request: HTTPConnection) -> HTTPConnection:
    """Mark a request to bypass cross-origin protection.

    Use sparingly, for endpoints that legitimately receive cross-origin
    requests (SSO/OAuth callbacks, webhooks, public APIs). Request state
    lives in the ASGI scope, so an outer middleware can call this before
    CrossOriginProtectionMiddleware runs.

    Args:
        request: Request or websocket connection to mark

    Returns:
        The same request
    """
    setattr(request.state, SKIP_FLAG, True)
    return request


def is_skipped(request: HTTPConnection) -> bool:
    """Check whether skip() was called for this request"""
    return bool(getattr(request.state, SKIP_FLAG, False))


def reject(mode: RejectionMode) -> Response:
    """Turn a rejection into the configured outcome.

    Args:
        mode: Configured rejection mode

    Returns:
        A 403 text/plain response in forbidden mode

    Raises:
        InvalidCrossOriginRequestError: In exception mode
    """
    if mode is RejectionMode.RAISE_ERROR:
        raise InvalidCrossOriginRequestError()
    return PlainTextResponse(CROSS_ORIGIN_MESSAGE, status_code=403)


def lookup_exception_handler(
    request: Request, exc: InvalidCrossOriginRequestError
) -> Callable[..., Any] | None:
    """Find the application's handler for a rejection error.

    Walks the error's MRO up to Starlette's HTTPException, so a handler
    registered for HTTPException (FastAPI installs one) also applies.

    Returns:
        The registered handler, or None if the app has none
    """
    handlers = getattr(request.scope.get("app"), "exception_handlers", None) or {}
    for cls in type(exc).__mro__:
        if cls in handlers:
            return handlers[cls]
        if cls is HTTPException:
            break
    return None


async def handle_rejection_error(
    request: Request, exc: InvalidCrossOriginRequestError
) -> Response:
    """Render a rejection error with the application's exception handlers.

    The middleware runs outside Starlette's ExceptionMiddleware, so
    handlers are looked up here. The error is re-raised when the app
    registers none.
    """
    handler = lookup_exception_handler(request, exc)
    if handler is None:
        raise exc
    if inspect.iscoroutinefunction(handler):
        response: Response = await handler(request, exc)
    else:
        response = await run_in_threadpool(handler, request, exc)
    return response


class CrossOriginProtectionMiddleware(BaseHTTPMiddleware):  # type: ignore[misc]
    """Middleware to reject cross-origin state-changing requests"""

    def __init__(
        self,
        app: ASGIApp,
        config: GuardConfig | None = None,
        exempt_paths: Iterable[str] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: Wrapped ASGI application
            config: Guard configuration, built from settings when omitted
            exempt_paths: Exact request paths that skip the check, read from
                settings when omitted
        """
        super().__init__(app)
        if config is None:
            config = build_config_from_settings(settings)
        if exempt_paths is None:
            exempt_paths = split_list(settings.exempt_paths)
        self.config = config
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        if is_skipped(request) or request.url.path in self.exempt_paths:
            return await call_next(request)

        view = RequestView.from_request(request)
        decision, rule = evaluate(self.config, view)

        if decision is Decision.ALLOW:
            logger.debug(
                "Cross-origin check passed (%s): %s %s",
                rule,
                view.method,
                request.url.path,
            )
            return await call_next(request)

        logger.warning(
            "Cross-origin request rejected (%s): %s %s",
            rule,
            view.method,
            request.url.path,
            extra={
                "origin": normalize_header_origin(view.origin) if view.origin else "<missing>",
                "sec_fetch_site": view.sec_fetch_site or "<missing>",
                "host": view.host,
            },
        )
        try:
            return reject(self.config.rejection_mode)
        except InvalidCrossOriginRequestError as exc:
            return await handle_rejection_error(request, exc)

"""Cross-origin protection as a FastAPI dependency"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from origin_guard.config import build_config_from_settings, settings
from origin_guard.exceptions import (
    CROSS_ORIGIN_MESSAGE,
    CrossOriginForbiddenError,
    InvalidCrossOriginRequestError,
)
from origin_guard.middleware.cross_origin import is_skipped
from origin_guard.services.guard import (
    Decision,
    GuardConfig,
    RejectionMode,
    RequestView,
    evaluate,
)
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class VerifyCrossOrigin:
    """Dependency to reject cross-origin requests on selected routes.

    Use this on individual routes or routers instead of the middleware
    when only part of the application needs protection; routes without
    the dependency are exempt. Dependencies cannot halt with a response,
    so rejections are raised:

    * forbidden mode raises CrossOriginForbiddenError, rendered as the
      plain-text 403 once ``install(app)`` has been called
    * exception mode raises InvalidCrossOriginRequestError for the
      application's own exception handlers
    """

    def __init__(self, config: GuardConfig | None = None) -> None:
        """Initialize the dependency.

        Args:
            config: Guard configuration, built from settings when omitted
        """
        if config is None:
            config = build_config_from_settings(settings)
        self.config = config

    async def __call__(self, request: Request) -> None:
        """Verify the request.

        Args:
            request: FastAPI request object

        Raises:
            CrossOriginForbiddenError: 403 in forbidden mode
            InvalidCrossOriginRequestError: 403 in exception mode
        """
        if is_skipped(request):
            return

        decision, rule = evaluate(self.config, RequestView.from_request(request))
        if decision is Decision.ALLOW:
            return

        logger.warning(
            "Cross-origin request rejected (%s): %s %s",
            rule,
            request.method,
            request.url.path,
        )
        if self.config.rejection_mode is RejectionMode.RAISE_ERROR:
            raise InvalidCrossOriginRequestError()
        raise CrossOriginForbiddenError()


async def cross_origin_exception_handler(
    request: Request, exc: HTTPException
) -> PlainTextResponse:
    """Render a cross-origin rejection as a plain-text 403."""
    return PlainTextResponse(CROSS_ORIGIN_MESSAGE, status_code=exc.status_code)


def install(app: FastAPI) -> FastAPI:
    """Register the plain-text 403 handler used by forbidden mode.

    Args:
        app: Application using VerifyCrossOrigin

    Returns:
        The same application
    """
    app.add_exception_handler(CrossOriginForbiddenError, cross_origin_exception_handler)
    return app

"""Errors raised by the cross-origin guard"""

from enum import Enum
from typing import Any

from starlette.exceptions import HTTPException

CROSS_ORIGIN_MESSAGE = "cross-origin request detected"


class ConfigErrorKind(str, Enum):
    """Reason a guard configuration was refused"""

    INVALID_SCHEME = "invalid_scheme"
    MISSING_HOST = "missing_host"
    PATH_NOT_ALLOWED = "path_not_allowed"
    QUERY_NOT_ALLOWED = "query_not_allowed"
    FRAGMENT_NOT_ALLOWED = "fragment_not_allowed"
    INVALID_MODE = "invalid_mode"
    MALFORMED_ORIGIN = "malformed_origin"


class ConfigError(ValueError):
    """Invalid guard configuration.

    Raised while building the configuration at startup. Carries the
    offending input so the operator can find it in their settings.
    """

    def __init__(self, kind: ConfigErrorKind, value: Any, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.value = value


class MalformedOriginError(ValueError):
    """Origin string without a usable scheme or host"""

    def __init__(self, value: str, reason: str = "scheme and host are required") -> None:
        super().__init__(f"malformed origin {value!r}: {reason}")
        self.value = value
        self.reason = reason


class InvalidCrossOriginRequestError(HTTPException):
    """Raised when a cross-origin request is rejected in exception mode.

    Subclasses Starlette's HTTPException so the host application's error
    handling can translate it into a 403 response.
    """

    def __init__(self, message: str = CROSS_ORIGIN_MESSAGE) -> None:
        super().__init__(status_code=403, detail=message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class CrossOriginForbiddenError(HTTPException):
    """Rejection raised by the route dependency in forbidden mode.

    Rendered as a plain-text 403 by the handler that
    ``origin_guard.middleware.dependency.install`` registers.
    """

    def __init__(self) -> None:
        super().__init__(status_code=403, detail=CROSS_ORIGIN_MESSAGE)

"""Cross-origin request verification.

Decides whether a request may proceed using the ``Sec-Fetch-Site``,
``Origin`` and ``Host`` headers plus an allow-list of trusted origins.
No tokens or session state are involved.

Rules are evaluated in order and the first one that applies wins:

1. Safe methods (GET, HEAD, OPTIONS) are allowed
2. An Origin found in the trusted origins is allowed
3. ``Sec-Fetch-Site: same-origin`` or ``none`` is allowed
4. Any other ``Sec-Fetch-Site`` value is rejected
5. No Origin header (and no Sec-Fetch-Site) is allowed, e.g. curl or
   server-to-server clients
6. Otherwise the Origin host must match the request Host

State-changing actions must never be performed on safe methods for this
to be effective.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, NamedTuple

from origin_guard.exceptions import ConfigError, ConfigErrorKind
from origin_guard.services.origins import (
    host_matches,
    normalize_header_origin,
    validate_trusted_origin,
)

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset(["GET", "HEAD", "OPTIONS"])
SAME_ORIGIN_FETCH_SITES = frozenset(["same-origin", "none"])


class RejectionMode(str, Enum):
    """How a rejected request is surfaced"""

    RAISE_ERROR = "exception"
    RESPOND_FORBIDDEN = "forbidden"


class Decision(str, Enum):
    """Outcome of verifying a request"""

    ALLOW = "allow"
    REJECT = "reject"


@dataclass(frozen=True)
class GuardConfig:
    """Immutable guard configuration, shared across requests"""

    trusted_origins: frozenset[str] = frozenset()
    rejection_mode: RejectionMode = RejectionMode.RESPOND_FORBIDDEN


@dataclass(frozen=True)
class RequestView:
    """The parts of a request the guard looks at"""

    method: str
    host: str
    origin: str | None = None
    sec_fetch_site: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> RequestView:
        """Build a view from a Starlette request.

        Header lookups are case-insensitive and return the first value.
        The host is the request's effective ``host[:port]``.
        """
        return cls(
            method=request.method,
            host=request.url.netloc,
            origin=request.headers.get("origin"),
            sec_fetch_site=request.headers.get("sec-fetch-site"),
        )


def build_config(
    trusted_origins: Iterable[str] = (),
    rejection_mode: RejectionMode | str = RejectionMode.RESPOND_FORBIDDEN,
) -> GuardConfig:
    """Validate options and build the guard configuration.

    Args:
        trusted_origins: Origins that bypass the header checks, in the form
            ``scheme://host`` or ``scheme://host:port``
        rejection_mode: ``"forbidden"`` to answer 403, ``"exception"`` to raise

    Returns:
        GuardConfig with canonicalized trusted origins

    Raises:
        ConfigError: If any origin or the rejection mode is invalid
    """
    if isinstance(trusted_origins, str):
        # A lone string would otherwise be iterated character by character
        trusted_origins = [trusted_origins]

    canonical = frozenset(
        validate_trusted_origin(origin).canonical for origin in trusted_origins
    )
    mode = _coerce_mode(rejection_mode)

    logger.info(
        "Cross-origin protection configured with %d trusted origin(s), mode=%s",
        len(canonical),
        mode.value,
    )
    return GuardConfig(trusted_origins=canonical, rejection_mode=mode)


def _coerce_mode(value: Any) -> RejectionMode:
    if isinstance(value, RejectionMode):
        return value
    try:
        return RejectionMode(value)
    except ValueError:
        raise ConfigError(
            ConfigErrorKind.INVALID_MODE,
            value,
            f"rejection mode should be one of 'exception' or 'forbidden', got {value!r}",
        ) from None


# Rules


class Rule(NamedTuple):
    """A named predicate and the outcome it produces when it applies"""

    name: str
    applies: Callable[[GuardConfig, RequestView], bool]
    outcome: Callable[[GuardConfig, RequestView], Decision]


def _allow(config: GuardConfig, request: RequestView) -> Decision:
    return Decision.ALLOW


def _reject(config: GuardConfig, request: RequestView) -> Decision:
    return Decision.REJECT


def _is_safe_method(config: GuardConfig, request: RequestView) -> bool:
    return request.method in SAFE_METHODS


def _is_trusted_origin(config: GuardConfig, request: RequestView) -> bool:
    if request.origin is None:
        return False
    return normalize_header_origin(request.origin) in config.trusted_origins


def _is_same_origin_fetch(config: GuardConfig, request: RequestView) -> bool:
    return request.sec_fetch_site in SAME_ORIGIN_FETCH_SITES


def _has_sec_fetch_site(config: GuardConfig, request: RequestView) -> bool:
    # Any value left at this point (same-site, cross-site, unknown) is cross-origin
    return request.sec_fetch_site is not None


def _lacks_origin(config: GuardConfig, request: RequestView) -> bool:
    return request.origin is None


def _always(config: GuardConfig, request: RequestView) -> bool:
    return True


def _compare_origin_with_host(config: GuardConfig, request: RequestView) -> Decision:
    if request.origin is not None and host_matches(request.origin, request.host):
        return Decision.ALLOW
    return Decision.REJECT


RULES: tuple[Rule, ...] = (
    Rule("safe_method", _is_safe_method, _allow),
    Rule("trusted_origin", _is_trusted_origin, _allow),
    Rule("fetch_same_origin", _is_same_origin_fetch, _allow),
    Rule("fetch_cross_origin", _has_sec_fetch_site, _reject),
    Rule("non_browser", _lacks_origin, _allow),
    Rule("origin_host_fallback", _always, _compare_origin_with_host),
)


def evaluate(config: GuardConfig, request: RequestView) -> tuple[Decision, str]:
    """Run the rules in order and stop at the first that applies.

    Returns:
        Tuple of (decision, name of the rule that decided)
    """
    for rule in RULES:
        if rule.applies(config, request):
            return rule.outcome(config, request), rule.name

    # The last rule always applies
    raise AssertionError("no cross-origin rule applied")


def decide(config: GuardConfig, request: RequestView) -> Decision:
    """Classify a request as allowed or rejected"""
    decision, _ = evaluate(config, request)
    return decision

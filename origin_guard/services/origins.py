"""Origin parsing, validation and normalization"""

from dataclasses import dataclass
from typing import Any, NamedTuple
from urllib.parse import urlsplit

from origin_guard.exceptions import ConfigError, ConfigErrorKind, MalformedOriginError

ALLOWED_SCHEMES = frozenset(["http", "https"])
DEFAULT_PORTS = {"http": 80, "https": 443}
UNSAFE_CHARACTERS = ("\t", "\r", "\n")


class OriginParts(NamedTuple):
    """Syntactic components of an origin string.

    ``query`` and ``fragment`` are None when the delimiter is absent and
    "" when it is present with nothing after it.
    """

    scheme: str | None
    host: str | None
    port: int | None
    path: str
    query: str | None
    fragment: str | None


@dataclass(frozen=True)
class Origin:
    """A (scheme, host, port) triple"""

    scheme: str
    host: str
    port: int | None = None

    @property
    def canonical(self) -> str:
        """Serialized form, omitting the port when it is the scheme default"""
        return f"{self.scheme}://{host_with_port(self.host, self.port, self.scheme)}"

    def __str__(self) -> str:
        return self.canonical


def host_with_port(host: str, port: int | None, scheme: str | None) -> str:
    """Join host and port the way a Host header would carry them.

    Args:
        host: Host name or bracketed IPv6 literal
        port: Explicit port, if any
        scheme: URI scheme used to look up the default port

    Returns:
        ``host`` alone for a missing or default port, ``host:port`` otherwise
    """
    if port is None or DEFAULT_PORTS.get(scheme or "") == port:
        return host
    return f"{host}:{port}"


def split_origin(value: str) -> OriginParts:
    """Split an origin string into its URI components.

    Args:
        value: Origin string, e.g. ``https://example.com:8443``

    Returns:
        OriginParts with every component found in the string

    Raises:
        MalformedOriginError: If the value or its authority cannot be parsed
    """
    # urlsplit silently strips these, which would let a mangled value match
    if any(char in value for char in UNSAFE_CHARACTERS):
        raise MalformedOriginError(value, "contains tab or newline characters")

    try:
        parts = urlsplit(value)
    except ValueError as exc:
        raise MalformedOriginError(value, str(exc)) from exc

    # urlsplit reports absent and empty components both as ""
    before_fragment, hash_sign, _ = value.partition("#")
    question_mark = "?" in before_fragment

    hostinfo = parts.netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        literal, _, rest = hostinfo.partition("]")
        host = literal + "]"
        if rest and not rest.startswith(":"):
            raise MalformedOriginError(value, "invalid IPv6 authority")
        port_text = rest[1:]
    else:
        host, _, port_text = hostinfo.partition(":")

    port = None
    if port_text:
        if not (port_text.isascii() and port_text.isdigit()) or int(port_text) > 65535:
            raise MalformedOriginError(value, f"invalid port {port_text!r}")
        port = int(port_text)

    return OriginParts(
        scheme=parts.scheme or None,
        host=host or None,
        port=port,
        path=parts.path,
        query=parts.query if question_mark else None,
        fragment=parts.fragment if hash_sign else None,
    )


def parse_origin(value: str) -> Origin:
    """Parse an origin string.

    Raises:
        MalformedOriginError: If no scheme or no host can be determined
    """
    parts = split_origin(value)
    if not parts.scheme or not parts.host:
        raise MalformedOriginError(value)
    return Origin(scheme=parts.scheme, host=parts.host, port=parts.port)


def validate_trusted_origin(value: Any) -> Origin:
    """Validate an operator-supplied trusted origin.

    Only ``scheme://host`` or ``scheme://host:port`` (optionally with a
    trailing slash) is accepted.

    Args:
        value: Origin string from configuration

    Returns:
        The parsed Origin

    Raises:
        ConfigError: If the origin is not a bare http(s) origin
    """
    if not isinstance(value, str):
        raise ConfigError(
            ConfigErrorKind.MALFORMED_ORIGIN,
            value,
            f"invalid origin {value!r}: origin must be a string",
        )

    try:
        parts = split_origin(value)
    except MalformedOriginError as exc:
        raise ConfigError(
            ConfigErrorKind.MALFORMED_ORIGIN,
            value,
            f"invalid origin {value!r}: {exc.reason}",
        ) from exc

    if parts.scheme not in ALLOWED_SCHEMES:
        raise ConfigError(
            ConfigErrorKind.INVALID_SCHEME,
            value,
            f"invalid origin {value!r}: scheme must be http or https",
        )
    if not parts.host:
        raise ConfigError(
            ConfigErrorKind.MISSING_HOST,
            value,
            f"invalid origin {value!r}: host is required",
        )
    if parts.path not in ("", "/"):
        raise ConfigError(
            ConfigErrorKind.PATH_NOT_ALLOWED,
            value,
            f"invalid origin {value!r}: path is not allowed",
        )
    if parts.query is not None:
        raise ConfigError(
            ConfigErrorKind.QUERY_NOT_ALLOWED,
            value,
            f"invalid origin {value!r}: query is not allowed",
        )
    if parts.fragment is not None:
        raise ConfigError(
            ConfigErrorKind.FRAGMENT_NOT_ALLOWED,
            value,
            f"invalid origin {value!r}: fragment is not allowed",
        )

    return Origin(scheme=parts.scheme, host=parts.host, port=parts.port)


def normalize_header_origin(value: str) -> str:
    """Canonicalize an Origin request header for lookups and logging.

    Malformed values come back unchanged so that they simply fail to
    match the trusted set.
    """
    try:
        return parse_origin(value).canonical
    except MalformedOriginError:
        return value


def host_matches(origin: str, host: str) -> bool:
    """Check whether an Origin header points at the request's own host.

    Path, query and fragment of the origin are ignored.

    Args:
        origin: Origin header value
        host: Effective request host, including a non-default port

    Returns:
        True if the origin's host (and non-default port) equals ``host``
    """
    try:
        parts = split_origin(origin)
    except MalformedOriginError:
        return False

    if not parts.host:
        return False

    return host_with_port(parts.host, parts.port, parts.scheme) == host

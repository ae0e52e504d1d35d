"""Gateway errors."""


class GatewayError(Exception):
    """Base exception for gateway errors."""


class UpstreamUnavailable(GatewayError):
    """Raised when the upstream endpoint cannot be reached or returns garbage."""


class UpstreamError(GatewayError):
    """Raised when the upstream answered a delegated field with GraphQL errors."""


class UpstreamDataError(GatewayError):
    """Raised when upstream data violates the upstream schema contract."""


class InvalidDecimal(UpstreamDataError):
    """Raised when a monetary value is not a decimal string."""


class DivisionByZero(GatewayError):
    """Raised when a Money value is divided by zero.

    Every caller branches on a zero divisor before dividing, so seeing this
    means an edge case was missed.
    """


class CompositionError(GatewayError):
    """Raised when the extension schema cannot be merged into the upstream one."""


class UndeclaredFieldError(AttributeError):
    """Raised when a derived field reads a field its fragment did not select."""

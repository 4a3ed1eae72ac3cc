"""Exception types raised by the server wrapper."""


class EasySrvError(Exception):
    """Base class for all server wrapper errors."""


class ConfigError(EasySrvError):
    """Raised when a configuration value is invalid or unusable."""


class TLSConfigError(ConfigError):
    """Raised when TLS material is missing or cannot be loaded."""


class RouteError(ConfigError):
    """Raised when a route pattern cannot be compiled."""


class ServerNotRunningError(EasySrvError):
    """Raised when stop is requested without a live server."""


class ServerStateError(EasySrvError):
    """Raised when start is requested outside the unstarted state."""


class ShutdownError(EasySrvError):
    """Raised when in-flight requests outlive the shutdown grace period."""

"""Custom exception hierarchy for the ECS discovery daemon."""


class DiscoveryError(Exception):
    """Base exception for all daemon errors."""


class ConfigError(DiscoveryError):
    """Invalid or missing configuration. Raised at startup only."""


class ResolutionError(DiscoveryError):
    """Task inventory could not be turned into a backend list."""


class AmbiguousPortError(ResolutionError):
    """More than one network binding qualifies for a single task."""


class NoMatchingPortError(ResolutionError):
    """No network binding of a task matches the requested container port."""


class TransportError(DiscoveryError):
    """An ECS or EC2 API call failed."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation

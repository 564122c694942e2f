"""Exceptions raised by the capacity planning engine and its snapshot providers."""


class CapacityPlanningError(Exception):
    """Base class for capacity planning failures"""
    pass


class InvalidInput(CapacityPlanningError, ValueError):
    """Caller contract violation. Never retried, surfaced verbatim."""
    pass


class InvalidQuota(InvalidInput):
    """Raised when no namespace quota snapshot was supplied"""
    pass


class UpstreamUnavailable(CapacityPlanningError):
    """A quota, deployment or metrics lookup failed"""
    pass

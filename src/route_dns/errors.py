"""Exception hierarchy for route-dns.

The reconciler only distinguishes failed calls from successful ones, except
where a subtype is called out (record not-found during cleanup, resource
write conflicts, and the startup-fatal configuration errors).
"""

from __future__ import annotations

from typing import List


class RouteDNSError(Exception):
    """Root exception for all route-dns errors."""


# =============================================================================
# Startup (fatal)
# =============================================================================


class ConfigError(RouteDNSError):
    """Static configuration could not be read or parsed."""


class UnsupportedProviderError(RouteDNSError):
    """No DNS provider is registered under the requested name."""

    def __init__(self, name: str, registered: List[str]):
        self.name = name
        self.registered = sorted(registered)
        super().__init__(
            f"Unsupported DNS provider: '{name}' (registered: {', '.join(self.registered) or 'none'})"
        )


# =============================================================================
# DNS backend
# =============================================================================


class RecordError(RouteDNSError):
    """Base class for errors about a single DNS record."""

    def __init__(self, operation: str, name: str, kind: str, detail: str = ""):
        self.operation = operation
        self.name = name
        self.kind = kind
        message = f"{operation} {name}/{kind}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RecordNotFoundError(RecordError):
    """No record matches the name and kind."""


class RecordConflictError(RecordError):
    """A matching record already exists."""


class TransportError(RouteDNSError):
    """The backend could not be reached or returned an unexpected response."""

    def __init__(self, operation: str, target: str, detail: str):
        self.operation = operation
        self.target = target
        super().__init__(f"{operation} {target}: {detail}")


# =============================================================================
# Resource store
# =============================================================================


class ResourceNotFoundError(RouteDNSError):
    """The owning resource does not exist."""

    def __init__(self, key: object):
        self.key = key
        super().__init__(f"Resource {key} not found")


class ResourceConflictError(RouteDNSError):
    """The resource was modified since it was read."""

    def __init__(self, key: object):
        self.key = key
        super().__init__(f"Resource {key} was modified concurrently")


class ReconcileCancelled(RouteDNSError):
    """The pass was cancelled or ran past its deadline."""

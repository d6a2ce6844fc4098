"""DNS provider contract and the name -> constructor registry."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping

from .errors import UnsupportedProviderError
from .models import Record

logger = logging.getLogger(__name__)

# =============================================================================
# DNS Provider Interface
# =============================================================================


class Provider(ABC):
    """Abstract base class for DNS backends.

    Implementations must be safe to call from several reconcile passes at
    once and must not cache backend state between calls.

    Error contract:
        create: RecordConflictError if a matching record exists (where the
            backend can tell).
        update, delete: RecordNotFoundError if nothing matches.
        any call: TransportError when the backend cannot be reached or
            answers unexpectedly.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    def test_connection(self) -> bool:
        """Check that the backend is reachable. Used once at startup."""
        return True

    @abstractmethod
    def exists(self, name: str, kind: str) -> bool:
        """Return whether a record with this name and kind exists."""
        pass

    @abstractmethod
    def create(self, record: Record) -> None:
        """Create a new record."""
        pass

    @abstractmethod
    def update(self, record: Record) -> None:
        """Point an existing record at record.target."""
        pass

    @abstractmethod
    def delete(self, name: str, kind: str) -> None:
        """Delete the record with this name and kind."""
        pass

    def upsert(self, record: Record) -> None:
        """Create the record, or update it if it already exists."""
        if self.exists(record.name, record.kind):
            self.update(record)
        else:
            self.create(record)


ProviderFactory = Callable[[Mapping[str, str]], Provider]


# =============================================================================
# Provider Registry
# =============================================================================


class ProviderRegistry:
    """Name -> factory table, populated explicitly during process setup."""

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._factories)

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register a provider factory.

        Raises:
            RuntimeError: If the name is already registered.
        """
        with self._lock:
            if name in self._factories:
                raise RuntimeError(f"DNS provider '{name}' already registered")
            self._factories[name] = factory

    def create(self, name: str, settings: Mapping[str, str]) -> Provider:
        """Build the named provider from its settings.

        Raises:
            UnsupportedProviderError: If no factory is registered for `name`.
        """
        with self._lock:
            factory = self._factories.get(name)
            registered = list(self._factories)
        if factory is None:
            raise UnsupportedProviderError(name, registered)
        provider = factory(settings)
        logger.info(f"Created DNS provider '{name}' ({provider.name})")
        return provider


def default_registry() -> ProviderRegistry:
    """Return a registry holding the bundled backends."""
    from .adguard import AdGuardProvider
    from .opnsense import OPNsenseProvider

    registry = ProviderRegistry()
    registry.register("opnsense", OPNsenseProvider.from_settings)
    registry.register("adguard", AdGuardProvider.from_settings)
    return registry
